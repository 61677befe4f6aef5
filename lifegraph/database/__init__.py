"""Database module for the memory graph models."""

from lifegraph.database.models import MemoryEntity, MemoryMention, MemoryRelationship

__all__ = [
    "MemoryEntity",
    "MemoryMention",
    "MemoryRelationship",
]

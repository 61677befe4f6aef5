"""Repository layer modules."""

from lifegraph.repositories.base_repository import BaseRepository
from lifegraph.repositories.memory_graph_repository import MemoryGraphRepository

__all__ = [
    "BaseRepository",
    "MemoryGraphRepository",
]

"""Lifegraph: personal knowledge-graph builder for memoir narratives."""

__version__ = "0.1.0"

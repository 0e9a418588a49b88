"""Traverser store implementations."""

from .memory import InMemoryStore, InMemoryTraverser
from .redis_store import RedisStore, RedisTraverser

__all__ = [
    "InMemoryStore",
    "InMemoryTraverser",
    "RedisStore",
    "RedisTraverser",
]

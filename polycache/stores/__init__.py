"""
Storage backends satisfying the Store contract.
"""
from .memory import MemoryStore

__all__ = [
    "MemoryStore",
]

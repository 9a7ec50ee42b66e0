"""
Context store module

Bounded cache and load-or-create access to MemoryContext objects.
"""

from .cache import ContextCache
from .store import ContextStore

__all__ = [
    "ContextCache",
    "ContextStore",
]

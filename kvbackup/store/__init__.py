"""
Store control clients for kvbackup.

This module provides the client used to ask the store for a snapshot:
- Redis (SAVE / BGSAVE over the Redis protocol)
- In-memory (for testing)

Invariants:
    - Save replies are requests acknowledged, never completion signals
    - Connection failures are fatal and never retried
"""

from .base import StoreClient, create_store_client
from .memory import InMemoryStoreClient
from .redis_client import RedisStoreClient

__all__ = [
    "StoreClient",
    "create_store_client",
    "RedisStoreClient",
    "InMemoryStoreClient",
]

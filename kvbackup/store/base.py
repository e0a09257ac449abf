"""
Base protocol for store control clients.

A store client speaks the store's command protocol just far enough to ask
for a snapshot: connect, issue SAVE or BGSAVE, close. The reply to the save
command is never treated as a completion signal; completion is detected by
kvbackup.snapshot from the snapshot file itself.

Invariants:
    - connect() raises StoreConnectionError for unreachable stores and
      failed authentication alike
    - trigger_save() is issued exactly once per backup run
    - No command is retried

How to change safely:
    - Protocol changes require updating all implementations
    - Keep InMemoryStoreClient in sync for the test suite
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import SaveMode, StoreConfig


@runtime_checkable
class StoreClient(Protocol):
    """Protocol for store control clients.

    Example:
        >>> client = RedisStoreClient(config.store)
        >>> await client.connect()
        >>> await client.trigger_save(SaveMode.BGSAVE)
        >>> await client.close()
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection and verify the store answers.

        Raises:
            StoreConnectionError: If the store is unreachable or rejects AUTH
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection. Safe to call when not connected."""
        ...

    @abstractmethod
    async def trigger_save(self, mode: SaveMode) -> None:
        """Issue the save command selected by mode.

        Args:
            mode: SaveMode.SAVE or SaveMode.BGSAVE

        Raises:
            StoreConnectionError: If not connected or the connection drops
            StoreCommandError: If the store rejects the command
            ValueError: If mode is SaveMode.NONE
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the store."""
        ...


def create_store_client(config: StoreConfig) -> StoreClient:
    """Factory function to create the store client for a configuration.

    Args:
        config: Store configuration

    Returns:
        StoreClient talking to config.host:config.port
    """
    from .redis_client import RedisStoreClient

    return RedisStoreClient(config)

"""
Redis implementation of the StoreClient protocol.

Uses redis-py's asyncio client. SAVE blocks the server until the RDB file
is written; BGSAVE forks and returns immediately. Either way the reply only
says the request was accepted.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..config import SaveMode, StoreConfig
from ..errors import StoreCommandError, StoreConnectionError

logger = logging.getLogger(__name__)


class RedisStoreClient:
    """Redis implementation of StoreClient.

    Attributes:
        config: Store configuration

    Example:
        >>> client = RedisStoreClient(StoreConfig(host="localhost", port=6379))
        >>> await client.connect()
        >>> await client.trigger_save(SaveMode.BGSAVE)
        >>> await client.close()
    """

    def __init__(self, config: StoreConfig, connect_timeout: float = 5.0) -> None:
        """Initialize the client.

        Args:
            config: Store configuration
            connect_timeout: Socket connect timeout in seconds
        """
        self.config = config
        self.connect_timeout = connect_timeout
        self._client: aioredis.Redis | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Connect and PING the store.

        Raises:
            StoreConnectionError: If the store is unreachable or rejects AUTH
        """
        client = aioredis.Redis(
            host=self.config.host,
            port=self.config.port,
            password=self.config.password,
            socket_connect_timeout=self.connect_timeout,
        )
        try:
            await client.ping()
        except (RedisConnectionError, RedisTimeoutError, ResponseError, OSError) as e:
            await client.aclose()
            raise StoreConnectionError(
                f"Failed to connect to store at {self.config.address}: {e}",
                address=self.config.address,
            ) from e

        self._client = client
        logger.info("Connected to store", extra={"address": self.config.address})

    async def close(self) -> None:
        """Close the connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Store connection closed")

    async def trigger_save(self, mode: SaveMode) -> None:
        """Issue SAVE or BGSAVE.

        Args:
            mode: SaveMode.SAVE or SaveMode.BGSAVE

        Raises:
            StoreConnectionError: If not connected or the connection drops
            StoreCommandError: If the store rejects the command
            ValueError: If mode is SaveMode.NONE
        """
        if mode == SaveMode.NONE:
            raise ValueError("trigger_save() requires SAVE or BGSAVE")
        if self._client is None:
            raise StoreConnectionError("Not connected to store", address=self.config.address)

        command = mode.value.upper()
        try:
            if mode == SaveMode.SAVE:
                await self._client.save()
            else:
                await self._client.bgsave()
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreConnectionError(
                f"Store connection lost during {command}: {e}",
                address=self.config.address,
            ) from e
        except RedisError as e:
            raise StoreCommandError(f"Store rejected {command}: {e}", command=command) from e

        logger.info("Save command issued", extra={"command": command})

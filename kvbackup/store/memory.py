"""
In-memory store client for testing.

Simulates a store that rewrites its snapshot file when asked to save, so
the completion wait can be exercised without a running server.

Invariants:
    - Nothing is sent over the network
    - The snapshot file is rewritten exactly once per trigger_save()
    - BGSAVE returns before the file is rewritten; SAVE after

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with StoreClient protocol
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path

from ..config import SaveMode
from ..errors import StoreConnectionError

logger = logging.getLogger(__name__)


class InMemoryStoreClient:
    """StoreClient that rewrites a local file instead of talking to a store.

    Attributes:
        snapshot_path: File rewritten on save
        save_delay: Seconds between the command and the rewrite
        payload: Bytes written on save
        reachable: When False, connect() fails like an unreachable store
        commands: Commands received, in order

    Example:
        >>> store = InMemoryStoreClient("/tmp/dump.rdb", save_delay=0.2)
        >>> await store.connect()
        >>> await store.trigger_save(SaveMode.BGSAVE)  # returns immediately
    """

    def __init__(
        self,
        snapshot_path: str | os.PathLike[str],
        save_delay: float = 0.0,
        payload: bytes = b"REDIS0011-snapshot",
        reachable: bool = True,
    ) -> None:
        self.snapshot_path = Path(snapshot_path)
        self.save_delay = save_delay
        self.payload = payload
        self.reachable = reachable
        self.commands: list[str] = []
        self.connect_calls = 0
        self.saved_at: float | None = None
        self._connected = False
        self._pending: asyncio.Task | None = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self.connect_calls += 1
        if not self.reachable:
            raise StoreConnectionError("Connection refused", address="memory")
        self._connected = True

    async def close(self) -> None:
        if self._pending is not None and not self._pending.done():
            await self._pending
        self._connected = False

    async def trigger_save(self, mode: SaveMode) -> None:
        if mode == SaveMode.NONE:
            raise ValueError("trigger_save() requires SAVE or BGSAVE")
        if not self._connected:
            raise StoreConnectionError("Not connected to store", address="memory")

        self.commands.append(mode.value.upper())
        if mode == SaveMode.SAVE:
            await self._write_snapshot()
        else:
            self._pending = asyncio.create_task(self._write_snapshot())

    async def _write_snapshot(self) -> None:
        if self.save_delay:
            await asyncio.sleep(self.save_delay)
        self.snapshot_path.write_bytes(self.payload)
        # Guarantee a visible change on filesystems with coarse timestamps
        stat = self.snapshot_path.stat()
        bumped = max(time.time_ns(), stat.st_mtime_ns + 1_000_000_000)
        os.utime(self.snapshot_path, ns=(stat.st_atime_ns, bumped))
        self.saved_at = time.monotonic()
        logger.debug("Simulated save complete", extra={"path": str(self.snapshot_path)})

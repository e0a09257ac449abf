"""
Snapshot trigger and completion wait.

The store offers no "save finished" acknowledgement that can be trusted:
BGSAVE replies before the fork has written anything, and even the SAVE
reply does not order the write against our later read on every platform.
The only portable completion signal is the snapshot file's own metadata,
so the SnapshotWaiter:

1. Connects to the store (fatal on failure, no retry)
2. Records the snapshot file's mtime as the baseline
3. Issues SAVE or BGSAVE
4. Probes the file's mtime, yielding to the event loop between probes,
   until it differs from the baseline
5. Closes the connection

Invariants:
    - SaveMode.NONE never opens a store connection
    - The baseline is read after connecting and before the save command
    - The poll loop returns on the first probe that observes a change
    - A missing file during the wait counts as "not changed yet"
    - The wait is bounded by save_timeout_seconds unless that is 0

How to change safely:
    - Any replacement for polling (e.g. inotify) must keep the
      happens-after guarantee relative to the save command
    - Comparing at second resolution can accept a stale file when the save
      completes in the baseline's second; keep NANOSECONDS the default
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import MtimeResolution, SaveMode, StoreConfig
from ..errors import SaveTimeoutError
from ..store.base import StoreClient, create_store_client

logger = logging.getLogger(__name__)

# Returns the file's mtime in nanoseconds, or None if it does not exist
MtimeProbe = Callable[[], Optional[int]]


def file_mtime_probe(path: str | os.PathLike[str]) -> MtimeProbe:
    """Build a probe that stats path on every call."""

    def probe() -> Optional[int]:
        try:
            return os.stat(path).st_mtime_ns
        except FileNotFoundError:
            return None

    return probe


@dataclass(frozen=True)
class SaveOutcome:
    """Result of a trigger-and-wait run.

    Attributes:
        mode: Save mode that was requested
        triggered: Whether a save command was issued
        baseline_mtime: Snapshot mtime before the command, at the
            configured resolution
        observed_mtime: First differing mtime seen by the poll loop
        probes: Number of mtime probes performed
        duration_ms: Time from the command to completion detection
    """

    mode: SaveMode
    triggered: bool
    baseline_mtime: int | None = None
    observed_mtime: int | None = None
    probes: int = 0
    duration_ms: int = 0


class SnapshotWaiter:
    """Triggers a store save and blocks until the snapshot file is rewritten.

    Attributes:
        config: Store configuration (mode, endpoint, timeout, poll interval)
        snapshot_path: Path of the store's snapshot file

    Example:
        >>> waiter = SnapshotWaiter(config.store, config.snapshot_path)
        >>> outcome = await waiter.wait_for_save()
        >>> print(f"Save detected after {outcome.duration_ms}ms")
    """

    def __init__(
        self,
        config: StoreConfig,
        snapshot_path: str | os.PathLike[str],
        store: StoreClient | None = None,
        probe: MtimeProbe | None = None,
    ) -> None:
        """Initialize the waiter.

        Args:
            config: Store configuration
            snapshot_path: Snapshot file to watch
            store: Store client (created from config when omitted)
            probe: mtime source (stats snapshot_path when omitted)
        """
        self.config = config
        self.snapshot_path = snapshot_path
        self._store = store
        self._probe = probe or file_mtime_probe(snapshot_path)

    def _read_mtime(self) -> int | None:
        mtime_ns = self._probe()
        if mtime_ns is None:
            return None
        if self.config.mtime_resolution == MtimeResolution.SECONDS:
            return mtime_ns // 1_000_000_000
        return mtime_ns

    async def wait_for_save(self) -> SaveOutcome:
        """Trigger the configured save and wait for it to reach the file.

        Returns:
            SaveOutcome describing what was observed

        Raises:
            StoreConnectionError: If the store cannot be reached
            StoreCommandError: If the store rejects the save command
            SaveTimeoutError: If the file is not rewritten in time
        """
        mode = self.config.save_mode
        if mode == SaveMode.NONE:
            logger.info("Save trigger disabled, using snapshot file as-is")
            return SaveOutcome(mode=mode, triggered=False)

        store = self._store or create_store_client(self.config)
        await store.connect()

        try:
            baseline = self._read_mtime()
            start_time = time.monotonic()
            await store.trigger_save(mode)

            logger.info(
                "Waiting for snapshot file to be rewritten",
                extra={
                    "path": str(self.snapshot_path),
                    "mode": mode.value,
                    "baseline_mtime": baseline,
                },
            )

            timeout = self.config.save_timeout_seconds or None
            try:
                observed, probes = await asyncio.wait_for(
                    self._poll_until_changed(baseline), timeout
                )
            except asyncio.TimeoutError as e:
                raise SaveTimeoutError(
                    f"Snapshot file {self.snapshot_path} was not rewritten "
                    f"within {self.config.save_timeout_seconds}s",
                    timeout_seconds=self.config.save_timeout_seconds,
                ) from e

            duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.info(
                "Snapshot save detected",
                extra={"duration_ms": duration_ms, "probes": probes, "mtime": observed},
            )

            return SaveOutcome(
                mode=mode,
                triggered=True,
                baseline_mtime=baseline,
                observed_mtime=observed,
                probes=probes,
                duration_ms=duration_ms,
            )

        finally:
            await store.close()

    async def _poll_until_changed(self, baseline: int | None) -> tuple[int, int]:
        """Probe until the mtime differs from baseline.

        Returns:
            Tuple of (observed mtime, probe count)
        """
        probes = 0
        while True:
            probes += 1
            current = self._read_mtime()
            if current is not None and current != baseline:
                return current, probes
            await asyncio.sleep(self.config.poll_interval_seconds)

"""
Backup run orchestration.

Order of operations:
1. Preflight: snapshot file, backup directory, remote settings and bucket
2. Snapshot trigger and wait (unless the save mode is none)
3. Pipeline: copy, compress, upload

Invariants:
    - Nothing touches the store or copies a file until preflight passed
    - The copy starts only after the save was detected on disk
    - Every error propagates; nothing is retried

How to change safely:
    - New stages go into BackupPipeline, not here
    - Keep collaborators injectable for the integration tests
"""

from __future__ import annotations

import logging
import time
from contextlib import AsyncExitStack
from datetime import datetime

from .config import BackupConfig
from .pipeline import BackupPipeline, BackupResult, S3Uploader
from .snapshot import SaveOutcome, SnapshotWaiter
from .store import StoreClient
from .validation import check_remote_settings, check_snapshot_file, prepare_backup_dir

logger = logging.getLogger(__name__)


class BackupRunner:
    """Runs one complete backup.

    Attributes:
        config: Backup configuration
        save_outcome: Outcome of the trigger-and-wait step, once run

    Example:
        >>> runner = BackupRunner(BackupConfig.load())
        >>> result = await runner.run()
        >>> print(result.artifact_path)
    """

    def __init__(
        self,
        config: BackupConfig,
        store: StoreClient | None = None,
        uploader: S3Uploader | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            config: Backup configuration
            store: Store client override (defaults to one built from config)
            uploader: S3 uploader override (defaults to one built from config)
        """
        self.config = config
        self._store = store
        self._uploader = uploader
        self.save_outcome: SaveOutcome | None = None

    async def run(self) -> BackupResult:
        """Execute the backup.

        Returns:
            BackupResult with per-stage timings

        Raises:
            BackupError: On any validation, store, storage or I/O failure
        """
        start_time = time.monotonic()
        config = self.config

        check_snapshot_file(config.snapshot_path)
        prepare_backup_dir(config.backup_dir)
        check_remote_settings(config.s3)

        async with AsyncExitStack() as stack:
            uploader = None
            if config.s3.enabled:
                uploader = self._uploader or S3Uploader(config.s3)
                await stack.enter_async_context(uploader)
                await uploader.check_bucket()

            waiter = SnapshotWaiter(config.store, config.snapshot_path, store=self._store)
            self.save_outcome = await waiter.wait_for_save()

            capture_time = datetime.now()
            pipeline = BackupPipeline(config, uploader)
            result = await pipeline.run(capture_time)

        result.duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(
            "Backup completed",
            extra={
                "artifact": result.artifact_path,
                "stages": [stage.stage for stage in result.stages],
                "duration_ms": result.duration_ms,
            },
        )
        return result

"""
Backup pipeline: copy, then optionally compress, then optionally upload.

The artifact pointer starts at the copy, advances to the archive when
compression is enabled, and is what gets uploaded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..config import BackupConfig
from .stages import StageResult, compress_artifact, copy_snapshot
from .uploader import S3Uploader

logger = logging.getLogger(__name__)


@dataclass
class BackupResult:
    """Result of a pipeline run.

    Attributes:
        artifact_path: Final local artifact, or None if cleanup removed it
        stages: Per-stage results, in execution order
        url: Redacted download URL when uploaded
        duration_ms: Total duration, filled in by the runner
    """

    artifact_path: str | None
    stages: list[StageResult] = field(default_factory=list)
    url: str | None = None
    duration_ms: int = 0


class BackupPipeline:
    """Runs the enabled backup stages in order.

    Example:
        >>> pipeline = BackupPipeline(config, uploader)
        >>> result = await pipeline.run(datetime.now())
    """

    def __init__(self, config: BackupConfig, uploader: S3Uploader | None = None) -> None:
        """Initialize the pipeline.

        Args:
            config: Backup configuration
            uploader: Open S3Uploader, required when config.s3.enabled
        """
        if config.s3.enabled and uploader is None:
            raise ValueError("S3 upload enabled but no uploader given")
        self.config = config
        self.uploader = uploader

    async def run(self, capture_time: datetime) -> BackupResult:
        """Execute copy, compress and upload as configured.

        Args:
            capture_time: Timestamp embedded in the artifact name

        Returns:
            BackupResult

        Raises:
            PipelineError: If any stage fails
        """
        loop = asyncio.get_running_loop()

        copied = await loop.run_in_executor(
            None,
            copy_snapshot,
            self.config.snapshot_path,
            self.config.backup_dir,
            capture_time,
        )
        result = BackupResult(artifact_path=copied.path, stages=[copied])

        if self.config.compress:
            compressed = await loop.run_in_executor(
                None,
                compress_artifact,
                copied.path,
                self.config.cleanup,
            )
            result.stages.append(compressed)
            result.artifact_path = compressed.path

        if self.config.s3.enabled:
            uploaded, url = await self.uploader.upload(result.artifact_path, self.config.cleanup)
            result.stages.append(uploaded)
            result.url = url
            if self.config.cleanup:
                result.artifact_path = None

        return result

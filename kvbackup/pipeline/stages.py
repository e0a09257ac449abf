"""
Local backup stages: copy and compress.

Artifact naming:
    <backup_dir>/<YYYY-MM-DD_HH-MM-SS>-dump.<ext>     (copy)
    <backup_dir>/<YYYY-MM-DD_HH-MM-SS>-dump.zip       (compressed)
    <backup_dir>/<YYYY-MM-DD_HH-MM-SS>-dump.zip.zip   (compressed, snapshot already .zip)

The zip holds a single entry named after the copy, so extracting it yields
a file byte-identical to the copy.

Invariants:
    - The snapshot file is only ever read
    - The copy is removed after compression only when cleanup is requested
      and the archive was written completely
"""

from __future__ import annotations

import logging
import shutil
import time
import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from ..errors import PipelineError

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
DEFAULT_EXTENSION = "rdb"


@dataclass(frozen=True)
class StageResult:
    """Outcome of one pipeline stage.

    Attributes:
        stage: Stage name (copy, compress, upload)
        path: Artifact produced (local path, or object key for uploads)
        size_bytes: Artifact size
        duration_ms: Wall-clock duration of the stage
    """

    stage: str
    path: str
    size_bytes: int
    duration_ms: int


def artifact_name(snapshot_path: str | Path, capture_time: datetime) -> str:
    """Build the copy's file name from the capture time.

    The extension follows the snapshot file's, defaulting to "rdb".
    """
    ext = Path(snapshot_path).suffix.lstrip(".") or DEFAULT_EXTENSION
    return f"{capture_time.strftime(TIMESTAMP_FORMAT)}-dump.{ext}"


def copy_snapshot(
    snapshot_path: str | Path,
    backup_dir: str | Path,
    capture_time: datetime,
) -> StageResult:
    """Copy the snapshot file into the backup directory.

    Args:
        snapshot_path: Source snapshot file
        backup_dir: Destination directory (must exist)
        capture_time: Timestamp embedded in the artifact name

    Returns:
        StageResult for the copy

    Raises:
        PipelineError: If the file cannot be read or written
    """
    start_time = time.monotonic()
    dest = Path(backup_dir) / artifact_name(snapshot_path, capture_time)
    if dest.exists():
        logger.warning("Overwriting existing artifact", extra={"dest": str(dest)})

    try:
        shutil.copy2(snapshot_path, dest)
        size = dest.stat().st_size
    except OSError as e:
        raise PipelineError(f"Failed to copy {snapshot_path} to {dest}: {e}", stage="copy") from e

    duration_ms = int((time.monotonic() - start_time) * 1000)
    logger.info(
        "Copied snapshot",
        extra={"source": str(snapshot_path), "dest": str(dest), "size_bytes": size},
    )
    return StageResult(stage="copy", path=str(dest), size_bytes=size, duration_ms=duration_ms)


def archive_path(source: Path) -> Path:
    """Name the zip for source, never colliding with source itself."""
    if source.suffix == ".zip":
        return source.with_name(source.name + ".zip")
    return source.with_suffix(".zip")


def compress_artifact(artifact_path: str | Path, cleanup: bool = False) -> StageResult:
    """Wrap an artifact into a single-entry zip archive.

    Args:
        artifact_path: File to compress
        cleanup: Delete artifact_path once the archive is written

    Returns:
        StageResult for the archive

    Raises:
        PipelineError: If the archive cannot be written
    """
    start_time = time.monotonic()
    source = Path(artifact_path)
    archive = archive_path(source)

    try:
        with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.write(source, arcname=source.name)
        size = archive.stat().st_size
    except OSError as e:
        raise PipelineError(f"Failed to compress {source}: {e}", stage="compress") from e

    if cleanup:
        try:
            source.unlink()
        except OSError as e:
            raise PipelineError(
                f"Failed to remove uncompressed copy {source}: {e}", stage="compress"
            ) from e
        logger.debug("Removed uncompressed copy", extra={"path": str(source)})

    duration_ms = int((time.monotonic() - start_time) * 1000)
    logger.info(
        "Compressed artifact",
        extra={"archive": str(archive), "size_bytes": size, "source_removed": cleanup},
    )
    return StageResult(
        stage="compress", path=str(archive), size_bytes=size, duration_ms=duration_ms
    )

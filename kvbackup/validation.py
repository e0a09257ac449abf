"""
Preflight checks for kvbackup.

Everything here runs before the store is contacted and before anything is
copied, so a misconfigured run aborts without side effects beyond creating
the backup directory.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .config import S3Config
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def check_snapshot_file(path: str | os.PathLike[str]) -> Path:
    """Ensure the snapshot file exists and is readable.

    Raises:
        ConfigurationError: If the file is missing, not a file or unreadable
    """
    snapshot = Path(path)
    if not snapshot.exists():
        raise ConfigurationError(f"Snapshot file {snapshot} does not exist", item="snapshot_path")
    if not snapshot.is_file():
        raise ConfigurationError(f"Snapshot path {snapshot} is not a file", item="snapshot_path")
    if not os.access(snapshot, os.R_OK):
        raise ConfigurationError(f"Snapshot file {snapshot} is not readable", item="snapshot_path")
    return snapshot


def prepare_backup_dir(path: str | os.PathLike[str]) -> Path:
    """Create the backup directory if needed and ensure it is writable.

    Raises:
        ConfigurationError: If the path is not a directory or not writable
    """
    backup_dir = Path(path)
    if not backup_dir.exists():
        try:
            backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create backup directory {backup_dir}: {e}", item="backup_dir"
            ) from e
        logger.info("Created backup directory", extra={"path": str(backup_dir)})

    if not backup_dir.is_dir():
        raise ConfigurationError(f"Backup path {backup_dir} is not a directory", item="backup_dir")
    if not os.access(backup_dir, os.W_OK | os.X_OK):
        raise ConfigurationError(f"Backup directory {backup_dir} is not writable", item="backup_dir")
    return backup_dir


def check_remote_settings(config: S3Config) -> None:
    """Ensure bucket and credentials are set when upload is requested.

    Raises:
        ConfigurationError: Naming the first missing item
    """
    if not config.enabled:
        return
    if not config.bucket:
        raise ConfigurationError("S3_BUCKET is required when S3 upload is enabled", item="s3_bucket")
    if not config.access_key_id:
        raise ConfigurationError(
            "AWS_ACCESS_KEY_ID is required when S3 upload is enabled", item="access_key_id"
        )
    if not config.secret_access_key:
        raise ConfigurationError(
            "AWS_SECRET_ACCESS_KEY is required when S3 upload is enabled",
            item="secret_access_key",
        )

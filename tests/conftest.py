"""
Shared fixtures for kvbackup tests.
"""

import os
import tempfile
from pathlib import Path

import pytest

from tests.fakes import SNAPSHOT_BYTES

# Fixed point in the past so any rewrite moves the mtime forward
OLD_MTIME_NS = 1_700_000_000_000_000_000


@pytest.fixture
def workdir():
    """Create temporary working directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def snapshot_file(workdir):
    """Create a snapshot file with an old mtime."""
    path = workdir / "dump.rdb"
    path.write_bytes(SNAPSHOT_BYTES)
    os.utime(path, ns=(OLD_MTIME_NS, OLD_MTIME_NS))
    return path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep host environment variables out of configuration tests."""
    for name in (
        "SNAPSHOT_PATH",
        "BACKUP_DIR",
        "SAVE_MODE",
        "STORE_HOST",
        "STORE_PORT",
        "STORE_PASSWORD",
        "SAVE_TIMEOUT_SECONDS",
        "SAVE_POLL_INTERVAL_MS",
        "SAVE_MTIME_RESOLUTION",
        "COMPRESS",
        "CLEANUP",
        "S3_UPLOAD",
        "S3_BUCKET",
        "S3_REGION",
        "AWS_REGION",
        "S3_ENDPOINT",
        "S3_PREFIX",
        "AWS_ACCESS_KEY_ID",
        "AWS_SECRET_ACCESS_KEY",
        "S3_URL_EXPIRES_SECONDS",
        "LOG_LEVEL",
        "LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)

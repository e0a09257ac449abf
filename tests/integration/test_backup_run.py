"""
Integration tests for complete backup runs.

These run the real runner, pipeline and waiter against the local
filesystem, with the in-memory store client and a fake S3 client.

Tests cover:
- Compress + cleanup into a fresh backup directory
- Background save with a delayed store
- Aborting on a missing bucket before any side effect
- Upload with and without cleanup
"""

import time
import zipfile
from pathlib import Path

import pytest

from kvbackup.config import BackupConfig, S3Config, SaveMode, StoreConfig
from kvbackup.errors import BucketNotFoundError, ConfigurationError, StoreConnectionError
from kvbackup.pipeline import S3Uploader
from kvbackup.runner import BackupRunner
from kvbackup.store import InMemoryStoreClient
from tests.fakes import SNAPSHOT_BYTES, FakeS3Client

pytestmark = pytest.mark.integration


def make_config(snapshot_file, backup_dir, mode=SaveMode.NONE, s3=None, **kwargs):
    return BackupConfig(
        snapshot_path=str(snapshot_file),
        backup_dir=str(backup_dir),
        store=StoreConfig(save_mode=mode, save_timeout_seconds=5),
        s3=s3 or S3Config(),
        **kwargs,
    )


def s3_enabled(bucket="backups"):
    return S3Config(
        enabled=True,
        bucket=bucket,
        access_key_id="AKIAEXAMPLEKEY",
        secret_access_key="secret",
    )


class TestBackupRun:
    """End-to-end backup scenarios."""

    @pytest.mark.asyncio
    async def test_compress_cleanup_into_new_directory(self, snapshot_file, workdir):
        """Missing backup dir is created; only the zip remains."""
        backup_dir = workdir / "backups"
        store = InMemoryStoreClient(snapshot_file)
        config = make_config(snapshot_file, backup_dir, compress=True, cleanup=True)

        result = await BackupRunner(config, store=store).run()

        files = list(backup_dir.iterdir())
        assert backup_dir.is_dir()
        assert len(files) == 1
        assert files[0].suffix == ".zip"
        assert files[0].name.endswith("-dump.zip")
        assert not list(backup_dir.glob("*.rdb"))
        assert result.artifact_path == str(files[0])
        assert [stage.stage for stage in result.stages] == ["copy", "compress"]
        assert store.connect_calls == 0
        with zipfile.ZipFile(files[0]) as zf:
            assert zf.read(zf.namelist()[0]) == SNAPSHOT_BYTES

    @pytest.mark.asyncio
    async def test_compress_without_cleanup_keeps_copy(self, snapshot_file, workdir):
        backup_dir = workdir / "backups"
        config = make_config(snapshot_file, backup_dir, compress=True, cleanup=False)

        await BackupRunner(config, store=InMemoryStoreClient(snapshot_file)).run()

        assert len(list(backup_dir.glob("*-dump.rdb"))) == 1
        assert len(list(backup_dir.glob("*-dump.zip"))) == 1

    @pytest.mark.asyncio
    async def test_background_save_waits_for_store(self, snapshot_file, workdir):
        """The copy contains the state written by the delayed BGSAVE."""
        backup_dir = workdir / "backups"
        store = InMemoryStoreClient(snapshot_file, save_delay=0.3, payload=b"after-bgsave")
        config = make_config(snapshot_file, backup_dir, mode=SaveMode.BGSAVE)
        runner = BackupRunner(config, store=store)

        start = time.monotonic()
        result = await runner.run()
        elapsed = time.monotonic() - start

        assert elapsed >= 0.3
        assert store.commands == ["BGSAVE"]
        assert runner.save_outcome.triggered is True
        assert runner.save_outcome.observed_mtime != runner.save_outcome.baseline_mtime
        copied = Path(result.stages[0].path)
        assert copied.parent == backup_dir
        assert copied.read_bytes() == b"after-bgsave"

    @pytest.mark.asyncio
    async def test_missing_bucket_aborts_before_store_and_copy(self, snapshot_file, workdir):
        """Bucket check fails before the store is contacted or anything copied."""
        backup_dir = workdir / "backups"
        store = InMemoryStoreClient(snapshot_file)
        uploader = S3Uploader(s3_enabled("missing"), client=FakeS3Client(bucket="backups"))
        config = make_config(snapshot_file, backup_dir, mode=SaveMode.BGSAVE, s3=s3_enabled("missing"))

        with pytest.raises(BucketNotFoundError):
            await BackupRunner(config, store=store, uploader=uploader).run()

        assert store.connect_calls == 0
        assert store.commands == []
        assert list(backup_dir.iterdir()) == []
        assert snapshot_file.read_bytes() == SNAPSHOT_BYTES

    @pytest.mark.asyncio
    async def test_missing_credentials_abort(self, snapshot_file, workdir):
        store = InMemoryStoreClient(snapshot_file)
        s3 = S3Config(enabled=True, bucket="backups")
        config = make_config(snapshot_file, workdir / "backups", mode=SaveMode.SAVE, s3=s3)

        with pytest.raises(ConfigurationError) as exc_info:
            await BackupRunner(config, store=store).run()

        assert exc_info.value.item == "access_key_id"
        assert store.connect_calls == 0

    @pytest.mark.asyncio
    async def test_missing_snapshot_aborts(self, workdir):
        store = InMemoryStoreClient(workdir / "dump.rdb")
        config = make_config(workdir / "dump.rdb", workdir / "backups", mode=SaveMode.SAVE)

        with pytest.raises(ConfigurationError):
            await BackupRunner(config, store=store).run()

        assert store.connect_calls == 0

    @pytest.mark.asyncio
    async def test_unreachable_store_aborts_before_copy(self, snapshot_file, workdir):
        backup_dir = workdir / "backups"
        store = InMemoryStoreClient(snapshot_file, reachable=False)
        config = make_config(snapshot_file, backup_dir, mode=SaveMode.SAVE)

        with pytest.raises(StoreConnectionError):
            await BackupRunner(config, store=store).run()

        assert list(backup_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_compress_upload_cleanup(self, snapshot_file, workdir):
        """With cleanup, nothing is left locally after a successful upload."""
        backup_dir = workdir / "backups"
        client = FakeS3Client()
        uploader = S3Uploader(s3_enabled(), client=client)
        config = make_config(
            snapshot_file, backup_dir, s3=s3_enabled(), compress=True, cleanup=True
        )

        result = await BackupRunner(config, uploader=uploader).run()

        assert list(backup_dir.iterdir()) == []
        assert result.artifact_path is None
        assert [stage.stage for stage in result.stages] == ["copy", "compress", "upload"]
        (bucket, key), = client.objects.keys()
        assert bucket == "backups"
        assert key.endswith("-dump.zip")
        assert "AKIAEXAMPLEKEY" not in result.url

    @pytest.mark.asyncio
    async def test_upload_without_cleanup_keeps_artifact(self, snapshot_file, workdir):
        backup_dir = workdir / "backups"
        client = FakeS3Client()
        uploader = S3Uploader(s3_enabled(), client=client)
        config = make_config(snapshot_file, backup_dir, s3=s3_enabled())

        result = await BackupRunner(config, uploader=uploader).run()

        (_, key), = client.objects.keys()
        assert key.endswith("-dump.rdb")
        assert (backup_dir / key).read_bytes() == SNAPSHOT_BYTES
        assert result.artifact_path == str(backup_dir / key)

    @pytest.mark.asyncio
    async def test_zip_snapshot_compress_cleanup_keeps_backup(self, workdir):
        """A snapshot already named .zip still leaves a readable archive."""
        snapshot = workdir / "dump.zip"
        snapshot.write_bytes(SNAPSHOT_BYTES)
        backup_dir = workdir / "backups"
        config = make_config(snapshot, backup_dir, compress=True, cleanup=True)

        result = await BackupRunner(config).run()

        files = list(backup_dir.iterdir())
        assert len(files) == 1
        assert files[0].name.endswith("-dump.zip.zip")
        assert result.artifact_path == str(files[0])
        with zipfile.ZipFile(files[0]) as zf:
            assert zf.read(zf.namelist()[0]) == SNAPSHOT_BYTES

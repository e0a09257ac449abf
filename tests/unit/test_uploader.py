"""
Unit tests for the S3 upload stage.

Tests cover:
- Bucket existence and permission checks
- Upload key, cleanup and URL redaction
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from kvbackup.config import S3Config
from kvbackup.errors import BucketNotFoundError, PipelineError, StorageAccessError
from kvbackup.pipeline import S3Uploader, redact_url
from tests.fakes import SNAPSHOT_BYTES, FakeS3Client


def s3_config(**kwargs):
    defaults = dict(
        enabled=True,
        bucket="backups",
        access_key_id="AKIAEXAMPLEKEY",
        secret_access_key="secret",
    )
    defaults.update(kwargs)
    return S3Config(**defaults)


class TestRedactUrl:
    """Tests for redact_url."""

    def test_sigv4_credential(self):
        url = (
            "https://b.s3.amazonaws.com/k?X-Amz-Credential=AKIAXYZ%2F20240101%2Fus-east-1"
            "%2Fs3%2Faws4_request&X-Amz-Signature=abc"
        )
        redacted = redact_url(url)
        assert "AKIAXYZ" not in redacted
        assert "X-Amz-Credential=REDACTED%2F20240101" in redacted
        assert "X-Amz-Signature=abc" in redacted

    def test_sigv2_access_key(self):
        url = "https://b.s3.amazonaws.com/k?AWSAccessKeyId=AKIAXYZ&Expires=1&Signature=s"
        assert redact_url(url) == (
            "https://b.s3.amazonaws.com/k?AWSAccessKeyId=REDACTED&Expires=1&Signature=s"
        )

    def test_literal_key_anywhere(self):
        assert redact_url("https://h/AKIAXYZ/k", "AKIAXYZ") == "https://h/REDACTED/k"


class TestS3Uploader:
    """Tests for S3Uploader."""

    @pytest.mark.asyncio
    async def test_check_bucket_passes(self):
        client = FakeS3Client()
        async with S3Uploader(s3_config(), client=client) as uploader:
            await uploader.check_bucket()

        assert client.calls == ["head_bucket", "get_bucket_acl"]

    @pytest.mark.asyncio
    async def test_missing_bucket(self):
        uploader = S3Uploader(s3_config(bucket="missing"), client=FakeS3Client())

        with pytest.raises(BucketNotFoundError) as exc_info:
            await uploader.check_bucket()

        assert exc_info.value.bucket == "missing"
        assert "missing" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_access_denied(self):
        uploader = S3Uploader(s3_config(), client=FakeS3Client(denied=True))

        with pytest.raises(StorageAccessError) as exc_info:
            await uploader.check_bucket()

        assert not isinstance(exc_info.value, BucketNotFoundError)

    @pytest.mark.asyncio
    async def test_acl_denied(self):
        """A bucket we can see but not inspect is still rejected."""
        uploader = S3Uploader(s3_config(), client=FakeS3Client(acl_denied=True))

        with pytest.raises(StorageAccessError, match="No permission"):
            await uploader.check_bucket()

    @pytest.mark.asyncio
    async def test_acl_endpoint_unreachable(self):
        """Losing the endpoint after HeadBucket is a storage access error."""
        uploader = S3Uploader(s3_config(), client=FakeS3Client(acl_unreachable=True))

        with pytest.raises(StorageAccessError, match="Cannot reach bucket backups"):
            await uploader.check_bucket()

    @pytest.mark.asyncio
    async def test_upload(self, workdir):
        artifact = workdir / "2024-03-09_04-05-06-dump.zip"
        artifact.write_bytes(SNAPSHOT_BYTES)
        client = FakeS3Client()
        uploader = S3Uploader(s3_config(prefix="redis/"), client=client)

        result, url = await uploader.upload(artifact)

        key = "redis/2024-03-09_04-05-06-dump.zip"
        assert client.objects[("backups", key)] == SNAPSHOT_BYTES
        assert result.stage == "upload"
        assert result.path == key
        assert result.size_bytes == len(SNAPSHOT_BYTES)
        assert "AKIAEXAMPLEKEY" not in url
        assert key in url
        assert artifact.exists()

    @pytest.mark.asyncio
    async def test_upload_cleanup(self, workdir):
        artifact = workdir / "2024-03-09_04-05-06-dump.rdb"
        artifact.write_bytes(SNAPSHOT_BYTES)
        uploader = S3Uploader(s3_config(), client=FakeS3Client())

        await uploader.upload(artifact, cleanup=True)

        assert not artifact.exists()

    @pytest.mark.asyncio
    async def test_upload_missing_file(self, workdir):
        uploader = S3Uploader(s3_config(), client=FakeS3Client())

        with pytest.raises(PipelineError) as exc_info:
            await uploader.upload(workdir / "absent.zip")

        assert exc_info.value.stage == "upload"

    @pytest.mark.asyncio
    async def test_upload_cleanup_failure(self, workdir):
        artifact = workdir / "2024-03-09_04-05-06-dump.rdb"
        artifact.write_bytes(SNAPSHOT_BYTES)
        uploader = S3Uploader(s3_config(), client=FakeS3Client())

        with patch.object(Path, "unlink", side_effect=PermissionError("read-only")):
            with pytest.raises(PipelineError) as exc_info:
                await uploader.upload(artifact, cleanup=True)

        assert exc_info.value.stage == "upload"
        assert artifact.exists()

"""
S3 upload stage for kvbackup.

Uploads the current artifact to:
    s3://<bucket>/<prefix>/<artifact file name>

and returns a presigned download URL with the access key id redacted, so
it can be printed or logged.

Invariants:
    - check_bucket() runs before any store interaction or local copy
    - The local artifact is removed only after put_object succeeded
    - Credentials never appear in logs or returned URLs
"""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Any

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from ..config import S3Config
from ..errors import BucketNotFoundError, PipelineError, StorageAccessError
from .stages import StageResult

logger = logging.getLogger(__name__)

_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}
_KEY_ID_PARAMS = re.compile(r"(AWSAccessKeyId=|X-Amz-Credential=)([^&%/]+)")

CONTENT_TYPES = {
    ".zip": "application/zip",
}


def redact_url(url: str, access_key_id: str | None = None) -> str:
    """Remove the access key id from a presigned URL.

    Handles both SigV2 (AWSAccessKeyId=...) and SigV4 (X-Amz-Credential=...)
    query parameters, plus any other literal occurrence of the key id.
    """
    redacted = _KEY_ID_PARAMS.sub(r"\1REDACTED", url)
    if access_key_id:
        redacted = redacted.replace(access_key_id, "REDACTED")
    return redacted


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3Uploader:
    """Uploads backup artifacts to an S3-compatible bucket.

    Used as an async context manager so the client is opened once for the
    bucket check and the upload.

    Attributes:
        config: S3 configuration

    Example:
        >>> async with S3Uploader(config.s3) as uploader:
        ...     await uploader.check_bucket()
        ...     result, url = await uploader.upload("/backups/2024-01-01_00-00-00-dump.zip")
    """

    def __init__(self, config: S3Config, client: Any | None = None) -> None:
        """Initialize the uploader.

        Args:
            config: S3Config instance
            client: Pre-built S3 client (tests); created from config when omitted
        """
        self.config = config
        self._s3_client = client
        self._s3_ctx = None
        self._owns_client = client is None

    async def __aenter__(self) -> S3Uploader:
        await self._init_s3_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._close_s3_client()

    async def _init_s3_client(self) -> None:
        """Initialize S3 client."""
        if self._s3_client is not None:
            return

        session = get_session()

        client_kwargs = {
            "region_name": self.config.region,
        }

        if self.config.endpoint_url:
            client_kwargs["endpoint_url"] = self.config.endpoint_url

        if self.config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.config.secret_access_key

        self._s3_ctx = session.create_client("s3", **client_kwargs)
        self._s3_client = await self._s3_ctx.__aenter__()

    async def _close_s3_client(self) -> None:
        """Close S3 client."""
        if self._owns_client and self._s3_client is not None:
            await self._s3_ctx.__aexit__(None, None, None)
            self._s3_client = None
            self._s3_ctx = None

    async def check_bucket(self) -> None:
        """Verify the bucket exists and the credentials may use it.

        Checks existence with HeadBucket, then ownership/permissions with
        GetBucketAcl.

        Raises:
            BucketNotFoundError: If the bucket does not exist
            StorageAccessError: If access is denied or the endpoint fails
        """
        await self._init_s3_client()
        bucket = self.config.bucket

        try:
            await self._s3_client.head_bucket(Bucket=bucket)
        except ClientError as e:
            if _error_code(e) in _MISSING_BUCKET_CODES:
                raise BucketNotFoundError(f"Bucket {bucket} does not exist", bucket=bucket) from e
            raise StorageAccessError(
                f"Access to bucket {bucket} denied: {_error_code(e)}", bucket=bucket
            ) from e
        except BotoCoreError as e:
            raise StorageAccessError(f"Cannot reach bucket {bucket}: {e}", bucket=bucket) from e

        try:
            acl = await self._s3_client.get_bucket_acl(Bucket=bucket)
        except ClientError as e:
            raise StorageAccessError(
                f"No permission on bucket {bucket}: {_error_code(e)}", bucket=bucket
            ) from e
        except BotoCoreError as e:
            raise StorageAccessError(f"Cannot reach bucket {bucket}: {e}", bucket=bucket) from e

        owner = acl.get("Owner", {})
        logger.info(
            "Bucket check passed",
            extra={"bucket": bucket, "owner": owner.get("DisplayName") or owner.get("ID")},
        )

    async def upload(self, artifact_path: str | Path, cleanup: bool = False) -> tuple[StageResult, str]:
        """Upload an artifact and return its redacted download URL.

        Args:
            artifact_path: Local file to upload
            cleanup: Delete the local file after a successful upload

        Returns:
            Tuple of (StageResult, redacted presigned URL)

        Raises:
            PipelineError: If the file cannot be read or the upload fails
        """
        await self._init_s3_client()
        start_time = time.monotonic()
        path = Path(artifact_path)
        key = self.config.object_key(path.name)

        try:
            size = path.stat().st_size
            with open(path, "rb") as f:
                await self._s3_client.put_object(
                    Bucket=self.config.bucket,
                    Key=key,
                    Body=f.read(),
                    ContentType=CONTENT_TYPES.get(path.suffix, "application/octet-stream"),
                )
            url = await self._s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.config.bucket, "Key": key},
                ExpiresIn=self.config.url_expires_seconds,
            )
        except OSError as e:
            raise PipelineError(f"Failed to read {path}: {e}", stage="upload") from e
        except (ClientError, BotoCoreError) as e:
            raise PipelineError(
                f"Failed to upload {path.name} to bucket {self.config.bucket}: {e}",
                stage="upload",
            ) from e

        if cleanup:
            try:
                path.unlink()
            except OSError as e:
                raise PipelineError(
                    f"Uploaded {key} but failed to remove {path}: {e}", stage="upload"
                ) from e
            logger.debug("Removed local artifact after upload", extra={"path": str(path)})

        safe_url = redact_url(url, self.config.access_key_id)
        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(
            "Uploaded artifact",
            extra={"bucket": self.config.bucket, "key": key, "size_bytes": size},
        )
        return (
            StageResult(stage="upload", path=key, size_bytes=size, duration_ms=duration_ms),
            safe_url,
        )

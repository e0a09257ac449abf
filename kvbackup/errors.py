"""
Error types for kvbackup.

This module defines all exception types raised during a backup run:
- BackupError: Base exception
- ConfigurationError: Missing or invalid settings and paths
- StoreConnectionError: Store unreachable or authentication failed
- StoreCommandError: Store rejected the save command
- SaveTimeoutError: Snapshot file was not rewritten in time
- StorageAccessError / BucketNotFoundError: Remote bucket problems
- PipelineError: I/O failure while copying, compressing or uploading

Invariants:
    - All errors inherit from BackupError
    - Errors name the offending item (path, host:port, bucket)
    - Secrets never appear in error messages
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class BackupError(Exception):
    """Base exception for all kvbackup errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "BACKUP_ERROR"
        self.details = details or {}


class ConfigurationError(BackupError):
    """A setting or path is missing or unusable.

    Raised when:
    - The snapshot file does not exist or is unreadable
    - The backup directory cannot be created or written
    - Remote upload is requested without bucket or credentials
    """

    def __init__(self, message: str, item: Optional[str] = None) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR", details={"item": item})
        self.item = item


class StoreConnectionError(BackupError):
    """Failed to connect to the store.

    Raised when:
    - The store is unreachable
    - Authentication fails
    """

    def __init__(self, message: str, address: Optional[str] = None) -> None:
        super().__init__(message, code="STORE_CONNECTION_ERROR", details={"address": address})
        self.address = address


class StoreCommandError(BackupError):
    """The store answered the save command with an error."""

    def __init__(self, message: str, command: Optional[str] = None) -> None:
        super().__init__(message, code="STORE_COMMAND_ERROR", details={"command": command})
        self.command = command


class SaveTimeoutError(BackupError):
    """The snapshot file was not rewritten before the deadline."""

    def __init__(self, message: str, timeout_seconds: Optional[float] = None) -> None:
        super().__init__(
            message,
            code="SAVE_TIMEOUT",
            details={"timeout_seconds": timeout_seconds},
        )
        self.timeout_seconds = timeout_seconds


class StorageAccessError(BackupError):
    """Remote bucket is not accessible with the configured credentials."""

    def __init__(self, message: str, bucket: Optional[str] = None) -> None:
        super().__init__(message, code="STORAGE_ACCESS_ERROR", details={"bucket": bucket})
        self.bucket = bucket


class BucketNotFoundError(StorageAccessError):
    """Remote bucket does not exist."""

    def __init__(self, message: str, bucket: Optional[str] = None) -> None:
        super().__init__(message, bucket=bucket)
        self.code = "BUCKET_NOT_FOUND"


class PipelineError(BackupError):
    """A copy, compress or upload stage failed.

    Attributes:
        stage: Name of the failing stage
    """

    def __init__(self, message: str, stage: Optional[str] = None) -> None:
        super().__init__(message, code="PIPELINE_ERROR", details={"stage": stage})
        self.stage = stage

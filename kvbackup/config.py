"""
Configuration management for kvbackup.

Settings are resolved once at startup with the precedence
explicit override (CLI) > environment variable > built-in default,
and the resulting BackupConfig is passed explicitly to every component.

Invariants:
    - Configuration objects are immutable after load()
    - All settings have defaults usable against a local store
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that keep existing invocations working
    - Add the matching CLI flag in main.py
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

logger = logging.getLogger(__name__)


class SaveMode(Enum):
    """How the store is asked to persist its state before the copy."""

    NONE = "none"
    SAVE = "save"
    BGSAVE = "bgsave"


class MtimeResolution(Enum):
    """Granularity used when comparing snapshot modification times."""

    NANOSECONDS = "ns"
    SECONDS = "s"


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


def _parse_enum(enum_cls: type[Enum], env_name: str, value: str) -> Any:
    try:
        return enum_cls(value.lower())
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ValueError(f"Invalid {env_name} '{value}'. Must be one of: {choices}")


@dataclass(frozen=True)
class StoreConfig:
    """Store connection and save-trigger configuration.

    Attributes:
        host: Store host name
        port: Store TCP port
        password: Optional AUTH password
        save_mode: Which save command to issue (or none)
        save_timeout_seconds: Upper bound on the completion wait, 0 disables it
        poll_interval_seconds: Delay between snapshot file probes
        mtime_resolution: Granularity of the mtime comparison
    """

    host: str = "localhost"
    port: int = 6379
    password: str | None = None
    save_mode: SaveMode = SaveMode.NONE
    save_timeout_seconds: float = 300.0
    poll_interval_seconds: float = 0.0005
    mtime_resolution: MtimeResolution = MtimeResolution.NANOSECONDS

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("STORE_HOST", "localhost"),
            port=int(os.getenv("STORE_PORT", "6379")),
            password=os.getenv("STORE_PASSWORD") or None,
            save_mode=_parse_enum(SaveMode, "SAVE_MODE", os.getenv("SAVE_MODE", "none")),
            save_timeout_seconds=float(os.getenv("SAVE_TIMEOUT_SECONDS", "300")),
            poll_interval_seconds=float(os.getenv("SAVE_POLL_INTERVAL_MS", "0.5")) / 1000,
            mtime_resolution=_parse_enum(
                MtimeResolution,
                "SAVE_MTIME_RESOLUTION",
                os.getenv("SAVE_MTIME_RESOLUTION", "ns"),
            ),
        )


@dataclass(frozen=True)
class S3Config:
    """Remote object storage configuration.

    Attributes:
        enabled: Whether the artifact is uploaded
        bucket: S3 bucket name
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO)
        prefix: Key prefix for uploaded artifacts
        access_key_id: Access key ID
        secret_access_key: Secret access key
        url_expires_seconds: Lifetime of the presigned download URL
    """

    enabled: bool = False
    bucket: str | None = None
    region: str = "us-east-1"
    endpoint_url: str | None = None
    prefix: str = ""
    access_key_id: str | None = None
    secret_access_key: str | None = None
    url_expires_seconds: int = 7 * 24 * 3600

    @classmethod
    def from_env(cls) -> S3Config:
        """Load configuration from environment variables."""
        return cls(
            enabled=_env_bool("S3_UPLOAD", False),
            bucket=os.getenv("S3_BUCKET") or None,
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT") or None,
            prefix=os.getenv("S3_PREFIX", ""),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID") or None,
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY") or None,
            url_expires_seconds=int(os.getenv("S3_URL_EXPIRES_SECONDS", str(7 * 24 * 3600))),
        )

    def object_key(self, filename: str) -> str:
        """Build the object key for an artifact file name."""
        prefix = self.prefix.strip("/")
        return f"{prefix}/{filename}" if prefix else filename


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass(frozen=True)
class BackupConfig:
    """Complete backup configuration.

    Attributes:
        snapshot_path: The store's on-disk snapshot file
        backup_dir: Directory receiving backup artifacts
        compress: Whether the copy is zipped
        cleanup: Whether intermediate local files are removed after a
            successful compress or upload
        store: Store connection and save-trigger configuration
        s3: Remote upload configuration
        observability: Logging configuration
    """

    snapshot_path: str = "/var/lib/redis/dump.rdb"
    backup_dir: str = "./backups"
    compress: bool = False
    cleanup: bool = False
    store: StoreConfig = field(default_factory=StoreConfig)
    s3: S3Config = field(default_factory=S3Config)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> BackupConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If a value cannot be parsed.
        """
        return cls(
            snapshot_path=os.getenv("SNAPSHOT_PATH", "/var/lib/redis/dump.rdb"),
            backup_dir=os.getenv("BACKUP_DIR", "./backups"),
            compress=_env_bool("COMPRESS", False),
            cleanup=_env_bool("CLEANUP", False),
            store=StoreConfig.from_env(),
            s3=S3Config.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

    @classmethod
    def load(cls, overrides: Mapping[str, Any] | None = None) -> BackupConfig:
        """Resolve configuration from overrides, environment and defaults.

        Args:
            overrides: Explicit values, typically from the command line.
                Top-level keys name BackupConfig fields; the "store", "s3"
                and "observability" keys hold mappings for their section.
                None values are ignored.

        Returns:
            Validated BackupConfig

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls.from_env()
        if overrides:
            config = _apply_overrides(config, overrides)
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Only value-level checks happen here; filesystem and bucket checks
        belong to kvbackup.validation and run before any store interaction.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.snapshot_path:
            raise ValueError("SNAPSHOT_PATH must not be empty")
        if not self.backup_dir:
            raise ValueError("BACKUP_DIR must not be empty")
        if not 0 < self.store.port < 65536:
            raise ValueError(f"STORE_PORT out of range: {self.store.port}")
        if self.store.save_timeout_seconds < 0:
            raise ValueError("SAVE_TIMEOUT_SECONDS must be >= 0")
        if self.store.poll_interval_seconds < 0:
            raise ValueError("SAVE_POLL_INTERVAL_MS must be >= 0")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Backup configuration loaded",
            extra={
                "snapshot_path": self.snapshot_path,
                "backup_dir": self.backup_dir,
                "save_mode": self.store.save_mode.value,
                "store_address": self.store.address
                if self.store.save_mode != SaveMode.NONE
                else None,
                "store_auth": self.store.password is not None,
                "save_timeout_seconds": self.store.save_timeout_seconds,
                "compress": self.compress,
                "cleanup": self.cleanup,
                "s3_upload": self.s3.enabled,
                "s3_bucket": self.s3.bucket if self.s3.enabled else None,
                "s3_endpoint": self.s3.endpoint_url if self.s3.enabled else None,
            },
        )


def _apply_overrides(config: BackupConfig, overrides: Mapping[str, Any]) -> BackupConfig:
    sections = {"store": config.store, "s3": config.s3, "observability": config.observability}
    top_level: dict[str, Any] = {}

    for key, value in overrides.items():
        if key in sections:
            changes = {k: v for k, v in (value or {}).items() if v is not None}
            if changes:
                sections[key] = dataclasses.replace(sections[key], **changes)
        elif value is not None:
            top_level[key] = value

    return dataclasses.replace(config, **top_level, **sections)

"""
kvbackup - command line entry point.

Usage:
    kvbackup [--save-mode bgsave] [--compress] [--cleanup] [--s3-upload] ...

Every flag has an environment variable counterpart (see config.py);
flags win over the environment, the environment wins over defaults.

Exit status:
    0 - backup completed
    1 - configuration, store, storage or I/O error
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

import json_log_formatter

from .config import BackupConfig, MtimeResolution, ObservabilityConfig, SaveMode
from .errors import BackupError
from .pipeline import BackupResult
from .runner import BackupRunner

logger = logging.getLogger(__name__)


def setup_logging(config: ObservabilityConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Observability configuration
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kvbackup",
        description="Save, copy, compress and upload a key-value store snapshot",
    )
    parser.add_argument("--snapshot-path", help="Store snapshot file (SNAPSHOT_PATH)")
    parser.add_argument("--backup-dir", help="Backup destination directory (BACKUP_DIR)")
    parser.add_argument(
        "--save-mode",
        choices=[mode.value for mode in SaveMode],
        help="Save command issued before copying (SAVE_MODE)",
    )
    parser.add_argument("--store-host", help="Store host (STORE_HOST)")
    parser.add_argument("--store-port", type=int, help="Store port (STORE_PORT)")
    parser.add_argument("--store-password", help="Store AUTH password (STORE_PASSWORD)")
    parser.add_argument(
        "--save-timeout",
        type=float,
        help="Seconds to wait for the save to reach disk, 0 = forever (SAVE_TIMEOUT_SECONDS)",
    )
    parser.add_argument(
        "--mtime-resolution",
        choices=[res.value for res in MtimeResolution],
        help="Resolution of the completion check (SAVE_MTIME_RESOLUTION)",
    )
    parser.add_argument(
        "--compress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Zip the copy (COMPRESS)",
    )
    parser.add_argument(
        "--cleanup",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Remove intermediate files after compress/upload (CLEANUP)",
    )
    parser.add_argument(
        "--s3-upload",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Upload the artifact to S3 (S3_UPLOAD)",
    )
    parser.add_argument("--s3-bucket", help="S3 bucket name (S3_BUCKET)")
    parser.add_argument("--s3-region", help="AWS region (S3_REGION)")
    parser.add_argument("--s3-endpoint", help="S3 endpoint URL, for MinIO (S3_ENDPOINT)")
    parser.add_argument("--s3-prefix", help="Object key prefix (S3_PREFIX)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Map parsed arguments onto BackupConfig.load() overrides."""
    return {
        "snapshot_path": args.snapshot_path,
        "backup_dir": args.backup_dir,
        "compress": args.compress,
        "cleanup": args.cleanup,
        "store": {
            "host": args.store_host,
            "port": args.store_port,
            "password": args.store_password,
            "save_mode": SaveMode(args.save_mode) if args.save_mode else None,
            "save_timeout_seconds": args.save_timeout,
            "mtime_resolution": MtimeResolution(args.mtime_resolution)
            if args.mtime_resolution
            else None,
        },
        "s3": {
            "enabled": args.s3_upload,
            "bucket": args.s3_bucket,
            "region": args.s3_region,
            "endpoint_url": args.s3_endpoint,
            "prefix": args.s3_prefix,
        },
        "observability": {
            "log_level": "DEBUG" if args.verbose else None,
        },
    }


def format_size(size_bytes: int) -> str:
    size = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size_bytes}B"


def print_report(result: BackupResult) -> None:
    print("Backup completed successfully")
    for stage in result.stages:
        print(f"  {stage.stage}: {stage.path} ({format_size(stage.size_bytes)}, {stage.duration_ms}ms)")
    if result.url:
        print(f"  URL: {result.url}")
    print(f"  Total: {result.duration_ms}ms")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = BackupConfig.load(overrides_from_args(args))
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.observability)
    config.log_config()

    try:
        result = asyncio.run(BackupRunner(config).run())
    except BackupError as e:
        logger.error(f"Backup failed: {e.message}", extra={"code": e.code, **e.details})
        print(f"Backup failed: {e.message}", file=sys.stderr)
        sys.exit(1)

    print_report(result)
    sys.exit(0)


if __name__ == "__main__":
    main()

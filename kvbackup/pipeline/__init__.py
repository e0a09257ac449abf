"""
Backup pipeline for kvbackup.

Stages:
- copy: snapshot file -> timestamped file in the backup directory
- compress: single-entry zip of the copy (optional)
- upload: artifact -> S3 bucket (optional)

Invariants:
    - Stages run strictly in order, each on the previous stage's artifact
    - Intermediate files are deleted only after the next stage succeeded
    - No retry and no partial-artifact cleanup on failure
"""

from .pipeline import BackupPipeline, BackupResult
from .stages import StageResult, artifact_name, compress_artifact, copy_snapshot
from .uploader import S3Uploader, redact_url

__all__ = [
    "BackupPipeline",
    "BackupResult",
    "StageResult",
    "artifact_name",
    "copy_snapshot",
    "compress_artifact",
    "S3Uploader",
    "redact_url",
]

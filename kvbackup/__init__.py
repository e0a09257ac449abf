"""
kvbackup - snapshot backups for a single-node key-value store.

A backup run:
    ┌──────────┐   SAVE/BGSAVE   ┌─────────┐
    │ kvbackup │────────────────▶│  store  │
    └────┬─────┘                 └────┬────┘
         │  poll mtime                │ rewrites
         ▼                            ▼
    ┌──────────────────────────────────────┐
    │            snapshot file             │
    └──────────────────┬───────────────────┘
                       │ copy -> zip -> S3
                       ▼
                 backup artifact

Invariants:
    - The copy happens after the triggered save reached disk
    - The snapshot file is never written by kvbackup
    - Configuration is immutable and passed explicitly
"""

from ._version import __version__

__all__ = ["__version__"]

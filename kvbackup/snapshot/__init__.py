"""
Snapshot trigger for kvbackup.

Asks the store to persist its state and detects, from the snapshot file's
modification time, when that state has reached disk.

Invariants:
    - The backup copy always happens after the detected rewrite
    - No store interaction when the save trigger is disabled
"""

from .waiter import MtimeProbe, SaveOutcome, SnapshotWaiter, file_mtime_probe

__all__ = ["SnapshotWaiter", "SaveOutcome", "MtimeProbe", "file_mtime_probe"]

"""
Backup Snapshot Value Object

Architectural Intent:
- Identifies the point-in-time copy a rollback restores from
- The sentinel (no path) means the target held nothing worth copying;
  rolling back to it removes the target directory instead of restoring
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

SNAPSHOT_INFIX = "_backup_"
SNAPSHOT_TIME_FORMAT = "%Y%m%d_%H%M%S"
SENTINEL_LABEL = "no_backup_needed"


@dataclass(frozen=True)
class BackupSnapshot:
    path: Optional[str] = None

    def __post_init__(self) -> None:
        if self.path is not None and not self.path.strip():
            raise ValueError("Snapshot path cannot be blank")

    @property
    def is_sentinel(self) -> bool:
        return self.path is None

    @staticmethod
    def for_target(target_dir: str, taken_at: datetime) -> "BackupSnapshot":
        stamp = taken_at.strftime(SNAPSHOT_TIME_FORMAT)
        return BackupSnapshot(f"{target_dir.rstrip('/')}{SNAPSHOT_INFIX}{stamp}")

    def __str__(self) -> str:
        return self.path if self.path is not None else SENTINEL_LABEL


NO_SNAPSHOT = BackupSnapshot()

"""Deciding how a backup is deleted and which WAL segments have become outdated."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Optional

OLDEST = "oldest"
NEWEST_ALIASES = ("latest", "newest")


class BackupNotFoundError(LookupError):
    """Raised when no backup matches an identifier."""


@dataclass(frozen=True)
class Backup:
    """A backup of a server, identified by its label."""

    label: str
    valid: bool = True
    keep: bool = False


class DeleteAction(Enum):
    """How the backup directory is removed."""

    IN_BETWEEN = "in-between"
    OLDEST_VALID = "oldest-valid"
    LATEST_VALID = "latest-valid"
    ONLY_VALID = "only-valid"
    INVALID = "invalid"

    @property
    def relinks(self) -> bool:
        """True when files linked into the next backup must be relinked first."""
        return self in (DeleteAction.IN_BETWEEN, DeleteAction.OLDEST_VALID)


@dataclass(frozen=True)
class DeletePlan:
    """The backup to delete and, when relinking, the backup that receives its files."""

    index: int
    label: str
    action: DeleteAction
    next_label: Optional[str] = None


def find_backup_index(backups: Sequence[Backup], identifier: str) -> int:
    """Index of the backup named by a label, ``oldest``, ``newest`` or ``latest``."""
    if backups:
        if identifier == OLDEST:
            return 0
        if identifier in NEWEST_ALIASES:
            return len(backups) - 1
    for index, backup in enumerate(backups):
        if backup.label == identifier:
            return index
    raise BackupNotFoundError(f"Delete: No identifier for {identifier}")


def plan_delete(backups: Sequence[Backup], identifier: str) -> DeletePlan:
    """Work out how to delete the backup named by ``identifier``."""
    index = find_backup_index(backups, identifier)
    target = backups[index]

    if not target.valid:
        return DeletePlan(index, target.label, DeleteAction.INVALID)

    has_previous = any(backup.valid for backup in backups[:index])
    following = next(
        (backup for backup in backups[index + 1 :] if backup.valid), None
    )

    if following is not None:
        action = DeleteAction.IN_BETWEEN if has_previous else DeleteAction.OLDEST_VALID
        return DeletePlan(index, target.label, action, following.label)
    if has_previous:
        return DeletePlan(index, target.label, DeleteAction.LATEST_VALID)
    return DeletePlan(index, target.label, DeleteAction.ONLY_VALID)


def outdated_wal_files(
    backups: Sequence[Backup],
    wal_files: Iterable[str],
    oldest_backup_wal_files: Sequence[str] = (),
) -> list[str]:
    """The leading WAL segments of ``wal_files`` that no backup still needs.

    Everything goes when there are no backups. When the oldest backup is
    valid and not kept, the segments ordered before the first segment of that
    backup go. Otherwise nothing is outdated.
    """
    if not backups:
        return list(wal_files)

    first_removable = next(
        (i for i, backup in enumerate(backups) if not backup.keep and backup.valid), -1
    )
    if first_removable != 0 or not oldest_backup_wal_files:
        return []

    boundary = oldest_backup_wal_files[0]
    outdated = []
    for name in wal_files:
        if name >= boundary:
            break
        outdated.append(name)
    return outdated
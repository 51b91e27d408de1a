"""
TokenHeadroom Backup Manager

Snapshots a file before a verb mutates it. Backups land in the project's
backup directory as <basename>_<UTC timestamp>.bak and are never pruned.

Backup is best-effort: a failed copy is logged and reported through the
returned BackupResult, it does not raise.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from tokenheadroom import HeadroomError

TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S_%fZ"


class BackupError(HeadroomError):
    pass


@dataclass
class BackupResult:
    source: Path
    backup_path: Path | None = None
    error: BackupError | None = None

    @property
    def skipped(self) -> bool:
        """True when the source did not exist, so nothing needed copying."""
        return self.backup_path is None and self.error is None

    @property
    def ok(self) -> bool:
        return self.error is None

    def describe(self) -> str:
        if self.error is not None:
            return f"backup failed: {self.error}"
        if self.backup_path is None:
            return "no backup needed"
        return str(self.backup_path)


class BackupManager:
    def __init__(self, backup_dir: Path):
        self.backup_dir = backup_dir

    def backup_name(self, source: Path, now: datetime | None = None) -> str:
        now = now or datetime.now(timezone.utc)
        return f"{source.stem}_{now.strftime(TIMESTAMP_FORMAT)}.bak"

    def backup(self, path: Path | str) -> BackupResult:
        source = Path(path)
        if not source.is_file():
            logger.debug(f"[BACKUP] No backup needed, {source} does not exist")
            return BackupResult(source=source)

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            target = self._unique_target(source)
            shutil.copy2(source, target)
        except OSError as e:
            logger.warning(f"[BACKUP] Failed to back up {source}: {e}")
            return BackupResult(source=source, error=BackupError(f"{source}: {e}"))

        logger.info(f"[BACKUP] {source} → {target}")
        return BackupResult(source=source, backup_path=target)

    def list_backups(self, source: Path | str | None = None) -> list[Path]:
        """Existing backups, oldest first, optionally only those of one file."""
        if not self.backup_dir.is_dir():
            return []
        pattern = f"{Path(source).stem}_*.bak" if source else "*.bak"
        return sorted(self.backup_dir.glob(pattern))

    def _unique_target(self, source: Path) -> Path:
        name = self.backup_name(source)
        target = self.backup_dir / name
        base = name[: -len(".bak")]
        counter = 1
        # Two snapshots in the same microsecond must not overwrite each other
        while target.exists():
            target = self.backup_dir / f"{base}-{counter}.bak"
            counter += 1
        return target

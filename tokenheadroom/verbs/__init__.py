"""
TokenHeadroom Verbs

A verb is a named remediation with a side-effect-free preview and a
mutating apply. Subclasses only say what the new file content should
be; BaseVerb owns the shared apply flow:

  propose → diff → confirm → double-confirm (critical) → backup → write

Writes are atomic and keep the file's existing line endings.
"""

from __future__ import annotations

import difflib
import os
import tempfile
from pathlib import Path

from loguru import logger

from tokenheadroom import HeadroomError, ui
from tokenheadroom.gate import ConfirmationGate
from tokenheadroom.registry import ApplyOutcome, VerbRegistry
from tokenheadroom.workspace import ProjectRoot
from tokenheadroom.workspace.backup import BackupManager


class VerbError(HeadroomError):
    """A verb could not compute or write its change."""
    pass


def unified_diff(current: str, proposed: str, label: str) -> str:
    return "".join(difflib.unified_diff(
        current.splitlines(keepends=True),
        proposed.splitlines(keepends=True),
        fromfile=f"a/{label}",
        tofile=f"b/{label}",
    ))


def detect_newline(path: Path) -> str:
    """CRLF if the existing file uses it, else LF."""
    if not path.exists():
        return "\n"
    return "\r\n" if b"\r\n" in path.read_bytes() else "\n"


def atomic_write_text(path: Path, content: str, newline: str = "\n") -> None:
    """Replace path with content; "\\n" in content is written as newline."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.tmp.", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline=newline) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


class BaseVerb:
    name: str = ""
    action_id: str = ""
    description: str = ""
    critical: bool = False
    # Create the target when it does not exist yet
    creates_missing: bool = False

    def __init__(self, root: ProjectRoot, gate: ConfirmationGate, backups: BackupManager):
        self.root = root
        self.gate = gate
        self.backups = backups

    # -- subclass hooks -----------------------------------------------------

    def propose(self, path: Path, current: str, args: list[str]) -> str | None:
        """Return the new content, or None when there is nothing to write."""
        raise NotImplementedError

    def detail(self, target: str, current: str, proposed: str | None, args: list[str]) -> str:
        if proposed is None:
            return "No changes."
        return unified_diff(current, proposed, target) or "No changes."

    # -- handlers -----------------------------------------------------------

    def preview(self, target: str, absolute_path: str, args: list[str]) -> None:
        path = Path(absolute_path)
        current = self._read(target, path)
        if current is None:
            return
        proposed = self.propose(path, current, args)
        ui.preview_step(
            f"{self.action_id} ({self.name})",
            self.description,
            self.detail(target, current, proposed, args),
            "Restore backup",
            f"Write access to {target}",
        )

    def apply(self, target: str, absolute_path: str, args: list[str]) -> ApplyOutcome:
        path = Path(absolute_path)
        current = self._read(target, path)
        if current is None:
            return ApplyOutcome(message=f"{target} not found")

        proposed = self.propose(path, current, args)
        if proposed is None or proposed == current:
            ui.info(f"{target}: nothing to change.")
            return ApplyOutcome(message="no changes")

        ui.info("Diff:")
        ui.diff(unified_diff(current, proposed, target))

        if not self.gate.confirm(require_confirm=True, critical=self.critical):
            ui.warn(f"Skipped {self.name} on {target}")
            return ApplyOutcome(declined=True, message="declined")
        if not self.gate.double_confirm(self.critical):
            return ApplyOutcome(declined=True, message="critical confirmation failed")

        try:
            newline = detect_newline(path)
        except OSError as e:
            raise VerbError(f"Cannot read {target}: {e}") from e

        backup = self.backups.backup(path)
        if not backup.ok:
            ui.warn(f"Backup failed for {target}: {backup.error}")

        try:
            atomic_write_text(path, proposed, newline=newline)
        except OSError as e:
            raise VerbError(f"Failed to write {target}: {e}") from e

        ui.result(f"Updated {target} (backup: {backup.describe()})")
        logger.info(f"[VERB] {self.name} updated {path}")
        return ApplyOutcome(
            changed=True,
            backup_path=str(backup.backup_path) if backup.backup_path else None,
            message=backup.describe(),
        )

    def register(self, registry: VerbRegistry) -> None:
        registry.register(self.name, self.preview, self.apply, critical=self.critical)

    def _read(self, target: str, path: Path) -> str | None:
        if not path.exists():
            if self.creates_missing:
                return ""
            ui.warn(f"{target} not found")
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise VerbError(f"Cannot read {target}: {e}") from e

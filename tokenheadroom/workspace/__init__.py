"""
TokenHeadroom Project Root

Finds the project the tool operates on and resolves verb targets
against it. Also owns the tool-state folder (.claude/) where backups
and logs live.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

from loguru import logger

from tokenheadroom import HeadroomError

STATE_DIR = ".claude"
EXIT_RUNTIME = 32


class RootDetectionError(HeadroomError):
    exit_code = EXIT_RUNTIME


class ProjectRoot:
    """
    A resolved project root.

    Lifecycle:
        root = detect_root(hint)
        root.ensure_state_dirs(".claude/backups")
        root.abs_target(".claudeignore")
    """

    def __init__(self, path: Path):
        self.path = path.resolve()

    @property
    def state_dir(self) -> Path:
        return self.path / STATE_DIR

    def abs_target(self, target: str) -> Path:
        """Resolve a target against the root. Absolute targets pass through."""
        candidate = Path(target)
        if candidate.is_absolute():
            return candidate
        return self.path / candidate

    def policy_key(self, target: str) -> str | None:
        """
        Root-relative POSIX path of target with '..' and symlinks resolved.

        Returns None when the target lies outside the root.
        """
        resolved = self.abs_target(target).resolve()
        try:
            return resolved.relative_to(self.path).as_posix()
        except ValueError:
            return None

    def relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.path).as_posix()
        except ValueError:
            return str(path)

    def ensure_state_dirs(self, *extra: str) -> None:
        for rel in (STATE_DIR, *extra):
            directory = self.path / rel
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning(f"[ROOT] Could not create {directory}: {e}")

    def __repr__(self) -> str:
        return f"ProjectRoot({self.path})"


def detect_root(hint: str | Path | None = None, cwd: Path | None = None) -> ProjectRoot:
    """
    Pick the project root: explicit hint, else the git toplevel, else cwd.
    """
    cwd = (cwd or Path.cwd()).resolve()

    if hint:
        hinted = Path(hint).expanduser()
        if not hinted.is_absolute():
            hinted = cwd / hinted
        if not hinted.is_dir():
            raise RootDetectionError(f"Root is not a directory: {hinted}")
        root = ProjectRoot(hinted)
        logger.debug(f"[ROOT] Using hint: {root.path}")
        return root

    toplevel = _git_toplevel(cwd)
    if toplevel is not None:
        logger.debug(f"[ROOT] Using git toplevel: {toplevel}")
        return ProjectRoot(toplevel)

    logger.debug(f"[ROOT] Falling back to cwd: {cwd}")
    return ProjectRoot(cwd)


def _git_toplevel(cwd: Path) -> Path | None:
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=15,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0 or not result.stdout.strip():
        return None
    return Path(result.stdout.strip())

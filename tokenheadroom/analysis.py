"""
TokenHeadroom Analysis — Token Cost Estimation

Walks the project and estimates what an assistant would pay, in tokens,
to read every file that .claudeignore does not exclude.

Produces:
  - Total estimated tokens and headroom against the budget
  - Heaviest unignored paths
  - autoIncludePatterns from .claude/settings.json
  - Large command definitions and large docs

The report is a plain dict so it can be printed or written as JSON.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

SKIP_DIRS = {"node_modules", ".next", "dist", "build", "__pycache__"}
CHARS_PER_TOKEN = 4
MAX_UNIGNORED_PATHS = 100
MAX_LARGE_DOCS = 20
LARGE_DOC_TOKENS = 500
LARGE_COMMAND_TOKENS = 1000
DOC_MARKERS = ("readme", "doc", "wiki", "report", ".md")
COMMANDS_DIR = Path(".claude") / "commands"
TARGETS = [".claudeignore", ".claude/settings.json"]


@dataclass
class PathCost:
    path: str
    token_cost: int

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "token_cost": self.token_cost}


@dataclass
class AnalysisReport:
    root: str
    budget: int
    total_estimated_tokens: int = 0
    unignored_paths: list[PathCost] = field(default_factory=list)
    ignore_pattern_count: int = 0
    auto_include: list[str] = field(default_factory=list)
    large_commands: list[PathCost] = field(default_factory=list)

    @property
    def headroom(self) -> int:
        return self.budget - self.total_estimated_tokens

    @property
    def large_docs(self) -> list[PathCost]:
        docs = [
            p for p in self.unignored_paths
            if p.token_cost > LARGE_DOC_TOKENS and any(m in p.path.lower() for m in DOC_MARKERS)
        ]
        return docs[:MAX_LARGE_DOCS]

    def heavy_paths(self, min_tokens: int = 1000, limit: int = 5) -> list[PathCost]:
        return [p for p in self.unignored_paths if p.token_cost >= min_tokens][:limit]

    def summary(self) -> dict[str, Any]:
        return {
            "root": self.root,
            "targets": list(TARGETS),
            "budget": self.budget,
            "total_estimated_tokens": self.total_estimated_tokens,
            "headroom": self.headroom,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.summary(),
            "analysis_data": {
                "unignored_paths": [p.to_dict() for p in self.unignored_paths[:MAX_UNIGNORED_PATHS]],
                "ignore_pattern_count": self.ignore_pattern_count,
            },
            "autoInclude": list(self.auto_include),
            "largeCommands": [p.to_dict() for p in self.large_commands],
            "largeDocs": [p.to_dict() for p in self.large_docs],
        }


def estimate_tokens(path: Path) -> int:
    """Rough estimate: ~4 characters per token."""
    try:
        return path.stat().st_size // CHARS_PER_TOKEN
    except OSError:
        return 0


def load_ignore_patterns(root: Path) -> list[str]:
    ignore_file = root / ".claudeignore"
    if not ignore_file.exists():
        return []
    lines = ignore_file.read_text(encoding="utf-8", errors="ignore").splitlines()
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


def is_ignored(rel_path: str, patterns: list[str]) -> bool:
    """
    .claudeignore matching as the assistant applies it: a pattern ending in
    "/" excludes any path containing that directory name, anything else
    excludes paths containing the pattern text.
    """
    for pattern in patterns:
        needle = pattern[:-1] if pattern.endswith("/") else pattern
        if needle and needle in rel_path:
            return True
    return False


def load_settings(root: Path) -> dict[str, Any]:
    settings_file = root / ".claude" / "settings.json"
    if not settings_file.exists():
        return {}
    try:
        data = json.loads(settings_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"[ANALYSIS] Could not read {settings_file}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def build_report(root: Path, budget: int) -> AnalysisReport:
    """Walk root and build the token report."""
    root = root.resolve()
    report = AnalysisReport(root=str(root), budget=budget)
    patterns = load_ignore_patterns(root)
    report.ignore_pattern_count = len(patterns)

    costs: list[PathCost] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith(".") and d not in SKIP_DIRS)
        for fname in sorted(filenames):
            if fname.startswith("."):
                continue
            full = Path(dirpath) / fname
            rel = full.relative_to(root).as_posix()
            if is_ignored(rel, patterns):
                continue
            tokens = estimate_tokens(full)
            if tokens > 0:
                costs.append(PathCost(path=rel, token_cost=tokens))
                report.total_estimated_tokens += tokens

    costs.sort(key=lambda c: (-c.token_cost, c.path))
    report.unignored_paths = costs

    settings = load_settings(root)
    report.auto_include = list((settings.get("context") or {}).get("autoIncludePatterns") or [])
    report.large_commands = _large_commands(root)

    logger.info(
        f"[ANALYSIS] {len(costs)} files, "
        f"{report.total_estimated_tokens} tokens, "
        f"headroom {report.headroom}"
    )
    return report


def _large_commands(root: Path) -> list[PathCost]:
    """Command definitions are hidden from the walk, so scan them directly."""
    commands_dir = root / COMMANDS_DIR
    if not commands_dir.is_dir():
        return []
    found = []
    for item in sorted(commands_dir.rglob("*")):
        if item.is_file():
            tokens = estimate_tokens(item)
            if tokens > LARGE_COMMAND_TOKENS:
                found.append(PathCost(path=item.relative_to(root).as_posix(), token_cost=tokens))
    found.sort(key=lambda c: -c.token_cost)
    return found

"""
TokenHeadroom Action History — Append-Only Dispatch Log

Every dispatch can be recorded in .claude/logs/history.jsonl, depending
on the log mode:
  - off:      nothing is written
  - on:       every dispatch
  - critical: only dispatches of critical verbs

The log is append-only. Each entry is one JSON object per line (JSONL).
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

HISTORY_FILE = "history.jsonl"


class ActionHistory:
    def __init__(self, log_dir: Path, mode: str = "off"):
        self.log_dir = log_dir
        self.mode = mode
        self.history_file = self.log_dir / HISTORY_FILE

    def should_record(self, critical: bool) -> bool:
        if self.mode == "on":
            return True
        return self.mode == "critical" and critical

    def record(self, entry: dict[str, Any], critical: bool = False) -> bool:
        """
        Append one dispatch result to the log.

        Returns True if the entry was written.
        """
        if not self.should_record(critical):
            return False

        line = {"timestamp": datetime.now(timezone.utc).isoformat(), "critical": critical, **entry}
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(self.history_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(line) + "\n")
        except OSError as e:
            logger.warning(f"[HISTORY] Failed to write history: {e}")
            return False

        logger.debug(f"[HISTORY] Recorded: {entry.get('verb')} → {entry.get('status')}")
        return True

    def get_recent(self, n: int = 10) -> list[dict]:
        """Read the most recent N history entries."""
        return self.get_all()[-n:] if n > 0 else []

    def get_all(self) -> list[dict]:
        if not self.history_file.exists():
            return []
        try:
            lines = self.history_file.read_text(encoding="utf-8").strip().splitlines()
        except OSError as e:
            logger.warning(f"[HISTORY] Failed to read history: {e}")
            return []

        entries = []
        for line in lines:
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return entries

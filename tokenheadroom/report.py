"""
TokenHeadroom CI Report

Findings collected during a run, written as JSON for --json-report.
In CI mode a run with findings exits with EXIT_FINDINGS.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from tokenheadroom import TOOL_NAME, __version__

EXIT_OK = 0
EXIT_FINDINGS = 8


@dataclass
class Finding:
    id: int
    severity: str
    category: str
    message: str


class CIReport:
    def __init__(self, ci_mode: bool = False):
        self.ci_mode = ci_mode
        self.timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        self.findings: list[Finding] = []

    def add_finding(self, severity: str, category: str, message: str) -> Finding:
        finding = Finding(id=len(self.findings) + 1, severity=severity, category=category, message=message)
        self.findings.append(finding)
        logger.debug(f"[REPORT] {severity}/{category}: {message}")
        return finding

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": TOOL_NAME,
            "version": __version__,
            "timestamp": self.timestamp,
            "findings": [asdict(f) for f in self.findings],
        }

    def write(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8")
        logger.info(f"[REPORT] JSON report written: {path}")

    def exit_code(self) -> int:
        if self.ci_mode and self.findings:
            return EXIT_FINDINGS
        return EXIT_OK

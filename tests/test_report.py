from __future__ import annotations

from pathlib import Path

from conftest import load_json
from tokenheadroom import TOOL_NAME, __version__
from tokenheadroom.report import EXIT_FINDINGS, EXIT_OK, CIReport


def test_findings_get_sequential_ids() -> None:
    report = CIReport()
    report.add_finding("warning", "ignore", "heavy path: dist/app.js")
    report.add_finding("error", "settings", "invalid JSON")
    assert [f.id for f in report.findings] == [1, 2]


def test_exit_code_only_fails_in_ci_mode() -> None:
    local = CIReport(ci_mode=False)
    local.add_finding("info", "budget", "over budget")
    assert local.exit_code() == EXIT_OK

    ci = CIReport(ci_mode=True)
    assert ci.exit_code() == EXIT_OK
    ci.add_finding("info", "budget", "over budget")
    assert ci.exit_code() == EXIT_FINDINGS


def test_write_json(tmp_path: Path) -> None:
    report = CIReport(ci_mode=True)
    report.add_finding("warning", "ignore", "x")
    out = tmp_path / "out" / "report.json"

    report.write(out)

    data = load_json(out)
    assert data["tool"] == TOOL_NAME
    assert data["version"] == __version__
    assert data["findings"] == [{"id": 1, "severity": "warning", "category": "ignore", "message": "x"}]

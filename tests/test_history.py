from __future__ import annotations

from pathlib import Path

import pytest

from tokenheadroom.history import ActionHistory


def entry(verb: str, status: str = "applied") -> dict:
    return {"target": ".claudeignore", "verb": verb, "status": status}


def test_off_mode_writes_nothing(tmp_path: Path) -> None:
    history = ActionHistory(tmp_path / "logs", mode="off")
    assert history.record(entry("deduplicate_patterns"), critical=True) is False
    assert not history.history_file.exists()
    assert history.get_all() == []


@pytest.mark.parametrize(("mode", "critical", "expected"), [
    ("on", False, True),
    ("on", True, True),
    ("critical", False, False),
    ("critical", True, True),
    ("off", True, False),
])
def test_should_record(mode: str, critical: bool, expected: bool) -> None:
    assert ActionHistory(Path("."), mode=mode).should_record(critical) is expected


def test_entries_are_appended_in_order(tmp_path: Path) -> None:
    history = ActionHistory(tmp_path / "logs", mode="on")
    for verb in ("a", "b", "c"):
        history.record(entry(verb))

    assert [e["verb"] for e in history.get_all()] == ["a", "b", "c"]
    assert [e["verb"] for e in history.get_recent(2)] == ["b", "c"]
    assert history.get_recent(0) == []
    assert "timestamp" in history.get_all()[0]


def test_corrupt_lines_are_skipped(tmp_path: Path) -> None:
    history = ActionHistory(tmp_path, mode="on")
    history.record(entry("a"))
    with open(history.history_file, "a", encoding="utf-8") as f:
        f.write("not json\n")
    history.record(entry("b"))

    assert [e["verb"] for e in history.get_all()] == ["a", "b"]

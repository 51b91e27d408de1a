from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path

from tokenheadroom.workspace.backup import BackupManager


def test_backup_of_missing_file_is_a_noop(tmp_path: Path) -> None:
    manager = BackupManager(tmp_path / "backups")
    result = manager.backup(tmp_path / "does-not-exist.json")

    assert result.ok
    assert result.skipped
    assert result.backup_path is None
    assert result.describe() == "no backup needed"
    assert not (tmp_path / "backups").exists()


def test_backup_copies_file_with_timestamped_name(tmp_path: Path) -> None:
    source = tmp_path / "settings.json"
    source.write_text('{"a": 1}\n', encoding="utf-8")
    manager = BackupManager(tmp_path / "backups")

    result = manager.backup(source)

    assert result.ok and not result.skipped
    assert result.backup_path.parent == tmp_path / "backups"
    assert re.fullmatch(r"settings_\d{8}T\d{6}_\d{6}Z\.bak", result.backup_path.name)
    assert result.backup_path.read_text(encoding="utf-8") == '{"a": 1}\n'


def test_backup_name_format() -> None:
    manager = BackupManager(Path("/tmp/backups"))
    now = datetime(2025, 3, 4, 5, 6, 7, 890, tzinfo=timezone.utc)
    assert manager.backup_name(Path(".claudeignore"), now) == ".claudeignore_20250304T050607_000890Z.bak"
    assert manager.backup_name(Path("a/settings.json"), now) == "settings_20250304T050607_000890Z.bak"


def test_two_backups_never_overwrite(tmp_path: Path) -> None:
    source = tmp_path / "settings.json"
    source.write_text("v1\n", encoding="utf-8")
    manager = BackupManager(tmp_path / "backups")

    first = manager.backup(source)
    second = manager.backup(source)

    assert first.backup_path != second.backup_path
    assert first.backup_path.exists() and second.backup_path.exists()
    assert len(manager.list_backups(source)) == 2


def test_same_timestamp_collision_gets_suffix(tmp_path: Path, monkeypatch) -> None:
    source = tmp_path / "settings.json"
    source.write_text("v1\n", encoding="utf-8")
    manager = BackupManager(tmp_path / "backups")
    monkeypatch.setattr(manager, "backup_name", lambda src, now=None: "settings_fixed.bak")

    first = manager.backup(source)
    second = manager.backup(source)
    third = manager.backup(source)

    assert first.backup_path.name == "settings_fixed.bak"
    assert second.backup_path.name == "settings_fixed-1.bak"
    assert third.backup_path.name == "settings_fixed-2.bak"


def test_backup_failure_is_reported_not_raised(tmp_path: Path) -> None:
    source = tmp_path / "settings.json"
    source.write_text("v1\n", encoding="utf-8")
    blocker = tmp_path / "backups"
    blocker.write_text("not a directory", encoding="utf-8")

    result = BackupManager(blocker).backup(source)

    assert not result.ok
    assert result.backup_path is None
    assert "backup failed" in result.describe()

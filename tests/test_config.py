from __future__ import annotations

from pathlib import Path

import pytest

from tokenheadroom.config_loader import (
    CONFIG_FILE,
    DEFAULT_BUDGET,
    DEFAULT_POLICY_PATH,
    ConfigError,
    detect_ci,
    load_config,
)


def write_config(root: Path, text: str) -> None:
    path = root / CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path)
    assert config.budget == DEFAULT_BUDGET
    assert config.log_mode == "off"
    assert config.fail_closed is False
    assert config.mode.dry_run is False
    assert config.mode.ci_mode is False
    assert config.resolve_policy_path(tmp_path) == DEFAULT_POLICY_PATH


def test_yaml_file_is_layered_under_overrides(tmp_path: Path) -> None:
    write_config(tmp_path, "budget: 5000\nlog_mode: critical\npolicy_path: policy.json\n")

    config = load_config(tmp_path, {"budget": 9000, "log_mode": None, "mode": {"force": True}})

    assert config.budget == 9000
    assert config.log_mode == "critical"
    assert config.mode.force is True
    assert config.resolve_policy_path(tmp_path) == tmp_path / "policy.json"


def test_absolute_policy_path_is_kept(tmp_path: Path) -> None:
    config = load_config(tmp_path, {"policy_path": str(tmp_path / "p.json")})
    assert config.resolve_policy_path(Path("/elsewhere")) == tmp_path / "p.json"


@pytest.mark.parametrize(("value", "expected"), [
    ("true", True),
    ("1", True),
    ("false", False),
    ("0", False),
    ("", False),
])
def test_detect_ci(monkeypatch: pytest.MonkeyPatch, value: str, expected: bool) -> None:
    monkeypatch.setenv("CI", value)
    assert detect_ci() is expected


def test_ci_environment_implies_yes_all(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CI", "true")
    config = load_config(tmp_path)
    assert config.mode.ci_mode is True
    assert config.mode.yes_all is True


def test_explicit_no_ci_wins_over_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CI", "true")
    config = load_config(tmp_path, {"mode": {"ci_mode": False}})
    assert config.mode.ci_mode is False
    assert config.mode.yes_all is False


def test_dry_run_turns_logging_off(tmp_path: Path) -> None:
    config = load_config(tmp_path, {"log_mode": "on", "mode": {"dry_run": True}})
    assert config.log_mode == "off"


def test_mode_keys_from_file(tmp_path: Path) -> None:
    write_config(tmp_path, "mode:\n  dry_run: true\n  force: true\n")
    config = load_config(tmp_path)
    assert config.mode.dry_run is True
    assert config.mode.force is True


def test_mode_is_frozen(tmp_path: Path) -> None:
    config = load_config(tmp_path)
    with pytest.raises(Exception):
        config.mode.force = True  # type: ignore[misc]


@pytest.mark.parametrize("text", [
    "budget: [unclosed\n",
    "- just\n- a list\n",
    "budget: -5\n",
    "log_mode: loud\n",
    "unknown_key: 1\n",
    "mode:\n  dryrun: true\n",
])
def test_invalid_config_raises(tmp_path: Path, text: str) -> None:
    write_config(tmp_path, text)
    with pytest.raises(ConfigError):
        load_config(tmp_path)

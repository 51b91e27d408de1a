"""
TokenHeadroom Configuration

Layered config: built-in defaults → .claude/tokenheadroom.yaml in the
project root → CLI overrides. The execution-mode flags are frozen once
built and read by the dispatcher and the confirmation gate for the rest
of the run.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tokenheadroom import HeadroomError

CONFIG_FILE = Path(".claude") / "tokenheadroom.yaml"
DEFAULT_BUDGET = 200_000
DEFAULT_BACKUP_DIR = ".claude/backups"
DEFAULT_LOG_DIR = ".claude/logs"
PACKAGE_ROOT = Path(__file__).resolve().parent
DEFAULT_POLICY_PATH = PACKAGE_ROOT / "context_policy.json"

LogMode = Literal["off", "on", "critical"]


class ConfigError(HeadroomError):
    """Raised when the config file exists but cannot be used."""
    pass


class ExecutionMode(BaseModel):
    """Process-wide run flags. Nothing mutates these after startup."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    dry_run: bool = False
    ci_mode: bool = False
    force: bool = False
    yes_all: bool = False
    verbose: bool = False


class HeadroomConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    budget: int = Field(default=DEFAULT_BUDGET, gt=0)
    policy_path: str | None = None
    backup_dir: str = DEFAULT_BACKUP_DIR
    log_dir: str = DEFAULT_LOG_DIR
    log_mode: LogMode = "off"
    fail_closed: bool = False
    mode: ExecutionMode = Field(default_factory=ExecutionMode)

    def resolve_policy_path(self, root: Path) -> Path:
        """Configured policy path (relative to root) or the shipped default."""
        if not self.policy_path:
            return DEFAULT_POLICY_PATH
        path = Path(self.policy_path)
        return path if path.is_absolute() else root / path


def detect_ci() -> bool:
    """True when running under a CI system (the conventional CI env var)."""
    value = os.environ.get("CI", "").strip().lower()
    return value not in ("", "0", "false", "no")


def load_config(root: Path, overrides: dict[str, Any] | None = None) -> HeadroomConfig:
    """
    Build the effective config for a project.

    Args:
        root: Project root (the file is read from root/.claude/tokenheadroom.yaml)
        overrides: Values from the command line. `None` entries are ignored,
            mode flags go under the "mode" key.
    """
    data: dict[str, Any] = {}

    config_file = root / CONFIG_FILE
    if config_file.exists():
        try:
            loaded = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config file must contain a mapping: {config_file}")
        data.update(loaded)
        logger.debug(f"[CONFIG] Loaded {config_file}")

    overrides = overrides or {}
    mode = dict(data.get("mode") or {})
    for key, value in (overrides.get("mode") or {}).items():
        if value is not None:
            mode[key] = value
    for key, value in overrides.items():
        if key != "mode" and value is not None:
            data[key] = value

    if mode.get("ci_mode") is None:
        mode["ci_mode"] = detect_ci()
    # CI runs are non-interactive: non-critical prompts auto-confirm
    if mode["ci_mode"]:
        mode["yes_all"] = True
    data["mode"] = mode

    # dry-run never writes logs
    if mode.get("dry_run"):
        data["log_mode"] = "off"

    try:
        return HeadroomConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

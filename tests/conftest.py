from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console

from tokenheadroom.config_loader import ExecutionMode
from tokenheadroom.gate import ConfirmationGate
from tokenheadroom.governance import PolicyStore
from tokenheadroom.workspace import ProjectRoot
from tokenheadroom.workspace.backup import BackupManager


SCENARIO_POLICY = {
    "immutable": ["generated/"],
    "editable": {"config.json": ["edit"]},
}


@pytest.fixture(autouse=True)
def _no_ci_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # CI detection must not leak in from the machine running the tests
    monkeypatch.delenv("CI", raising=False)


class Recorder:
    """Fake verb handlers that log every call."""

    def __init__(self, outcome: Any = None, apply_error: Exception | None = None):
        self.calls: list[tuple[str, str, str, list[str]]] = []
        self.outcome = outcome
        self.apply_error = apply_error

    def preview(self, target: str, absolute_path: str, args: list[str]) -> None:
        self.calls.append(("preview", target, absolute_path, list(args)))

    def apply(self, target: str, absolute_path: str, args: list[str]) -> Any:
        self.calls.append(("apply", target, absolute_path, list(args)))
        if self.apply_error is not None:
            raise self.apply_error
        return self.outcome

    @property
    def kinds(self) -> list[str]:
        return [c[0] for c in self.calls]


class ExplodingStream(io.StringIO):
    """Input stream that fails the test if anything reads from it."""

    def readline(self, *args: Any) -> str:
        raise AssertionError("gate read input when it should not have")

    def read(self, *args: Any) -> str:
        raise AssertionError("gate read input when it should not have")


def quiet_console() -> Console:
    return Console(file=io.StringIO(), force_terminal=False)


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path


def load_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def loaded_policy(tmp_path: Path, data: dict[str, Any], fail_closed: bool = False) -> PolicyStore:
    store = PolicyStore(fail_closed=fail_closed)
    store.load(write_json(tmp_path / "policy" / "context_policy.json", data))
    return store


def make_gate(answers: str = "", **mode: bool) -> ConfirmationGate:
    return ConfirmationGate(ExecutionMode(**mode), stream=io.StringIO(answers), console=quiet_console())


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    project_dir = tmp_path / "proj"
    (project_dir / ".claude").mkdir(parents=True)
    (project_dir / "src").mkdir()
    (project_dir / "src" / "app.py").write_text("print('hi')\n", encoding="utf-8")
    (project_dir / ".claudeignore").write_text(
        "# generated\nnode_modules/\ndist/\nnode_modules/\n", encoding="utf-8"
    )
    write_json(project_dir / ".claude" / "settings.json", {
        "context": {
            "alwaysInclude": ["src/app.py", "missing/file.md"],
            "autoIncludePatterns": ["src/**"],
        },
        "permissions": {"deny": ["Read(./node_modules/**)"]},
    })
    return project_dir


@pytest.fixture()
def root(project: Path) -> ProjectRoot:
    return ProjectRoot(project)


@pytest.fixture()
def backups(project: Path) -> BackupManager:
    return BackupManager(project / ".claude" / "backups")

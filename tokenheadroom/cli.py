"""
TokenHeadroom CLI

EXIT CODES
  0   OK
  1   Usage error / unknown action
  8   Findings present (CI mode)
  16  Policy invalid/missing (abort by policy)
  32  Runtime error (I/O, parse, unexpected)

PRECEDENCE
  --dry-run > --log > --verbose
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import typer
from loguru import logger

from tokenheadroom import TOOL_NAME, HeadroomError, __version__, ui
from tokenheadroom.actions import ACTIONS, BUILTIN_VERBS, Session, UnknownAction
from tokenheadroom.config_loader import ConfigError, HeadroomConfig, load_config
from tokenheadroom.governance import PolicyError
from tokenheadroom.report import EXIT_OK
from tokenheadroom.workspace import EXIT_RUNTIME, ProjectRoot, RootDetectionError, detect_root

EXIT_USAGE = 1
LOG_FILE = "tokenheadroom.log"

app = typer.Typer(
    add_completion=False,
    help=f"{TOOL_NAME}: The Cognitive Capacity Manager",
)


@dataclass
class CliState:
    root_hint: Optional[str] = None
    json_report: Optional[Path] = None
    overrides: dict[str, Any] = field(default_factory=dict)


@app.callback()
def main(
    ctx: typer.Context,
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Preview only; execute nothing; no logs"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    log: Optional[str] = typer.Option(None, "--log", "-l", help="Log mode: off|on|critical"),
    force: bool = typer.Option(False, "--force", "-f", help="Apply without interactive confirmation"),
    yes: bool = typer.Option(False, "--yes", help="Auto-confirm non-critical prompts"),
    ci: Optional[bool] = typer.Option(None, "--ci/--no-ci", help="CI mode (default: detected from $CI)"),
    budget: Optional[int] = typer.Option(None, "--budget", help="Token budget target (default 200000)"),
    root: Optional[str] = typer.Option(None, "--root", help="Project root"),
    json_report: Optional[Path] = typer.Option(None, "--json-report", help="Write JSON report to file"),
    policy: Optional[str] = typer.Option(None, "--policy", help="Policy file (default: shipped policy)"),
    fail_closed: Optional[bool] = typer.Option(
        None, "--fail-closed/--fail-open", help="Deny everything when no policy is loaded",
    ),
) -> None:
    ctx.obj = CliState(
        root_hint=root,
        json_report=json_report,
        overrides={
            "budget": budget,
            "log_mode": log,
            "policy_path": policy,
            "fail_closed": fail_closed,
            "mode": {
                "dry_run": dry_run or None,
                "verbose": verbose or None,
                "force": force or None,
                "yes_all": yes or None,
                "ci_mode": ci,
            },
        },
    )


def setup_logging(config: HeadroomConfig, root: ProjectRoot) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if config.mode.verbose else "WARNING")
    if config.log_mode != "off":
        log_file = root.path / config.log_dir / LOG_FILE
        logger.add(log_file, level="DEBUG", rotation="5 MB")


def _open_session(state: CliState) -> Session:
    try:
        root = detect_root(state.root_hint)
        config = load_config(root.path, state.overrides)
    except (RootDetectionError, ConfigError) as e:
        ui.error(str(e))
        raise typer.Exit(EXIT_RUNTIME)

    setup_logging(config, root)
    ui.info(f"Project root: {root.path}")

    try:
        return Session.open(config, root)
    except PolicyError as e:
        ui.error(str(e))
        raise typer.Exit(e.exit_code)


def _finish(session: Session, state: CliState) -> None:
    if state.json_report:
        try:
            session.report.write(state.json_report)
        except OSError as e:
            ui.error(f"Cannot write JSON report: {e}")
            raise typer.Exit(EXIT_RUNTIME)
        ui.info(f"JSON report written: {state.json_report}")
    code = session.report.exit_code()
    if code != EXIT_OK:
        raise typer.Exit(code)


@app.command("run")
def run_cmd(
    ctx: typer.Context,
    action_ids: List[str] = typer.Argument(..., help="Action IDs, e.g. suggest.ignores"),
) -> None:
    """Run one or more actions non-interactively."""
    state: CliState = ctx.obj
    unknown = [a for a in action_ids if a not in ACTIONS]
    if unknown:
        ui.error(f"Unknown action: {', '.join(unknown)}")
        raise typer.Exit(EXIT_USAGE)

    session = _open_session(state)
    for action_id in action_ids:
        try:
            session.run_action(action_id)
        except UnknownAction as e:
            ui.error(str(e))
            raise typer.Exit(EXIT_USAGE)
        except (HeadroomError, OSError) as e:
            logger.exception(f"Action {action_id} failed")
            ui.error(f"{action_id} failed: {e}")
            raise typer.Exit(EXIT_RUNTIME)
    _finish(session, state)


@app.command("dispatch")
def dispatch_cmd(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Target path relative to the project root"),
    verb: str = typer.Argument(..., help="Verb name"),
    args: Optional[List[str]] = typer.Argument(None, help="Verb arguments"),
) -> None:
    """Dispatch a single verb against a target."""
    state: CliState = ctx.obj
    session = _open_session(state)
    try:
        result = session.dispatch(target, verb, list(args or []))
    except (HeadroomError, OSError) as e:
        logger.exception(f"Dispatch of {verb} on {target} failed")
        ui.error(f"{verb} failed: {e}")
        raise typer.Exit(EXIT_RUNTIME)

    _finish(session, state)
    if result is None:
        raise typer.Exit(EXIT_USAGE)


@app.command("list-actions")
def list_actions_cmd() -> None:
    """List all non-interactive action IDs."""
    for action_id in ACTIONS:
        typer.echo(action_id)


@app.command("verbs")
def verbs_cmd() -> None:
    """List built-in verbs."""
    for verb_cls in BUILTIN_VERBS:
        marker = " [critical]" if verb_cls.critical else ""
        typer.echo(f"{verb_cls.name}{marker} — {verb_cls.description}")


@app.command("version")
def version_cmd() -> None:
    """Show version info."""
    typer.echo(f"{TOOL_NAME} v{__version__}")
    typer.echo("The Cognitive Capacity Manager for Claude")


if __name__ == "__main__":
    app()

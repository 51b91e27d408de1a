"""
TokenHeadroom Actions — The Four Pillars

  1) Analysis    - analyze.*  diagnose token costs
  2) Suggestions - suggest.*  find optimization targets
  3) Application - apply.*    dispatch verbs against config files
  4) Tools       - tools.*    direct config file utilities

A Session wires the components once per process; every action id maps
to one Session method. Application actions are batches of dispatch
steps: a step refused by policy is reported and the batch moves on.
"""

from __future__ import annotations

import json
import os
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, TextIO

from loguru import logger

from tokenheadroom import HeadroomError, ui
from tokenheadroom.analysis import AnalysisReport, build_report
from tokenheadroom.config_loader import HeadroomConfig
from tokenheadroom.dispatcher import DispatchError, Dispatcher, DispatchResult, DispatchStatus
from tokenheadroom.gate import ConfirmationGate
from tokenheadroom.governance import PolicyStore
from tokenheadroom.history import ActionHistory
from tokenheadroom.registry import VerbRegistry
from tokenheadroom.report import CIReport
from tokenheadroom.verbs import BaseVerb
from tokenheadroom.verbs.ignores import (
    RECOMMENDED_PATTERNS,
    AppendRecommendedPatternsVerb,
    DeduplicatePatternsVerb,
)
from tokenheadroom.verbs.settings import (
    DEFAULT_DENY_PATTERNS,
    AddPermissionsDenyVerb,
    PruneAlwaysIncludeVerb,
    TightenAutoIncludeVerb,
)
from tokenheadroom.workspace import ProjectRoot
from tokenheadroom.workspace.backup import BackupManager

CLAUDEIGNORE = ".claudeignore"
SETTINGS = ".claude/settings.json"

BUILTIN_VERBS: list[type[BaseVerb]] = [
    AppendRecommendedPatternsVerb,
    DeduplicatePatternsVerb,
    PruneAlwaysIncludeVerb,
    AddPermissionsDenyVerb,
    TightenAutoIncludeVerb,
]

ACTIONS: dict[str, str] = {
    "analyze.quick": "High-level token and file counts",
    "analyze.deep": "Full JSON report of all analyzed paths",
    "suggest.ignores": "Recommended paths for .claudeignore",
    "suggest.settings": "Proposals for autoInclude/permissions.deny",
    "suggest.commands": "Identify large command definitions",
    "suggest.docs": "Find large docs for potential archival",
    "apply.ignores": "Append recommended patterns, dedupe patterns",
    "apply.settings": "Prune alwaysInclude, add deny permissions",
    "tools.open_claudeignore": "Open .claudeignore in $EDITOR",
    "tools.open_settings": "Open .claude/settings.json in $EDITOR",
    "tools.validate_json": "Validate .claude/settings.json",
    "tools.rerun": "Rerun analysis",
}


class UnknownAction(HeadroomError):
    pass


@dataclass
class Step:
    target: str
    verb: str
    args: list[str] = field(default_factory=list)
    label: str = ""


def build_registry(root: ProjectRoot, gate: ConfirmationGate, backups: BackupManager) -> VerbRegistry:
    registry = VerbRegistry()
    for verb_cls in BUILTIN_VERBS:
        verb_cls(root, gate, backups).register(registry)
    return registry


def list_actions() -> list[str]:
    return list(ACTIONS)


class Session:
    """Everything one run needs, wired once."""

    def __init__(
        self,
        config: HeadroomConfig,
        root: ProjectRoot,
        policy: PolicyStore,
        stream: TextIO | None = None,
    ):
        self.config = config
        self.root = root
        self.policy = policy
        self.mode = config.mode

        self.gate = ConfirmationGate(self.mode, stream=stream, console=ui.console)
        self.backups = BackupManager(root.path / config.backup_dir)
        self.history = ActionHistory(root.path / config.log_dir, config.log_mode)
        self.registry = build_registry(root, self.gate, self.backups)
        self.dispatcher = Dispatcher(root, policy, self.registry, self.mode, self.history)
        self.report = CIReport(ci_mode=self.mode.ci_mode)

        self._handlers: dict[str, Callable[[], None]] = {
            "analyze.quick": self.analyze_quick,
            "analyze.deep": self.analyze_deep,
            "suggest.ignores": self.suggest_ignores,
            "suggest.settings": self.suggest_settings,
            "suggest.commands": self.suggest_commands,
            "suggest.docs": self.suggest_docs,
            "apply.ignores": self.apply_ignores,
            "apply.settings": self.apply_settings,
            "tools.open_claudeignore": self.tools_open_claudeignore,
            "tools.open_settings": self.tools_open_settings,
            "tools.validate_json": self.tools_validate_json,
            "tools.rerun": self.tools_rerun,
        }

    @classmethod
    def open(cls, config: HeadroomConfig, root: ProjectRoot, stream: TextIO | None = None) -> "Session":
        """
        Load the policy and wire a session.

        Raises PolicyNotFound / PolicyInvalid; callers abort the run on these.
        """
        root.ensure_state_dirs(config.backup_dir)
        policy = PolicyStore(fail_closed=config.fail_closed)
        policy_path = config.resolve_policy_path(root.path)
        policy.load(policy_path)
        ui.info(f"Policy loaded: {policy_path}")
        return cls(config, root, policy, stream=stream)

    # -----------------------------------------------------------------------
    # Running
    # -----------------------------------------------------------------------

    def run_action(self, action_id: str) -> None:
        handler = self._handlers.get(action_id)
        if handler is None:
            raise UnknownAction(f"Unknown action: {action_id}")
        logger.debug(f"[ACTION] {action_id}")
        handler()

    def dispatch(self, target: str, verb: str, args: list[str] | None = None) -> DispatchResult | None:
        return self.run_steps([Step(target=target, verb=verb, args=list(args or []))])[0]

    def run_steps(self, steps: list[Step]) -> list[DispatchResult | None]:
        """
        Dispatch steps in order. Policy and registration refusals are
        recorded as findings and yield None for that step; handler
        errors propagate.
        """
        results: list[DispatchResult | None] = []
        total = len(steps)
        for index, step in enumerate(steps, start=1):
            if total > 1:
                ui.info(f"Step {index}/{total}: {step.label or step.verb}")
            try:
                result = self.dispatcher.dispatch(step.target, step.verb, step.args)
            except DispatchError as e:
                logger.warning(f"[ACTION] {step.verb} on {step.target}: {e}")
                self.report.add_finding("warning", e.status, str(e))
                results.append(None)
                continue

            if result.status == DispatchStatus.SKIPPED_CI:
                self.report.add_finding(
                    "info", "apply_skipped",
                    f"{step.verb} on {step.target} needs --force to apply",
                )
            results.append(result)
        return results

    def analysis(self) -> AnalysisReport:
        return build_report(self.root.path, self.config.budget)

    # -----------------------------------------------------------------------
    # Pillar 1: Analysis
    # -----------------------------------------------------------------------

    def analyze_quick(self) -> None:
        ui.header("TokenHeadroom: Analysis — Quick Summary")
        report = self.analysis()
        ui.json(report.summary())
        ui.info("Headroom = Budget - Estimated Tokens (higher is better)")
        self._check_budget(report)

    def analyze_deep(self) -> None:
        ui.header("TokenHeadroom: Analysis — Deep Breakdown")
        report = self.analysis()
        ui.json(report.to_dict())
        self._check_budget(report)

    def _check_budget(self, report: AnalysisReport) -> None:
        if report.headroom < 0:
            self.report.add_finding(
                "warning", "budget",
                f"Estimated {report.total_estimated_tokens} tokens exceed budget {report.budget}",
            )

    # -----------------------------------------------------------------------
    # Pillar 2: Suggestions
    # -----------------------------------------------------------------------

    def suggest_ignores(self) -> None:
        ui.header("TokenHeadroom: Suggest — Ignore Patterns")
        report = self.analysis()

        ui.info("Top 5 unignored paths costing >=1000 tokens (Dynamic Analysis):")
        heavy = report.heavy_paths()
        if heavy:
            for cost in heavy:
                ui.console.print(f"  {cost.path} (Tokens: {cost.token_cost})", markup=False)
                self.report.add_finding("info", "ignore", f"{cost.path} costs {cost.token_cost} tokens")
        else:
            ui.info("  (No paths exceeding 1000 tokens found)")

        ui.info("Standard recommendations to verify (Static Fallback):")
        for pattern in RECOMMENDED_PATTERNS:
            ui.console.print(f"  {pattern}", markup=False)
        ui.info("Use 'apply.ignores' to append verified patterns.")

    def suggest_settings(self) -> None:
        ui.header("TokenHeadroom: Suggest — Settings")
        report = self.analysis()
        ui.json({
            "autoInclude": report.auto_include,
            "note": "Review proposals; apply via apply.settings or edit manually.",
        })
        self.run_steps([Step(SETTINGS, TightenAutoIncludeVerb.name, label="Review autoInclude proposals")])

    def suggest_commands(self) -> None:
        ui.header("TokenHeadroom: Suggest — Commands")
        report = self.analysis()
        ui.json([c.to_dict() for c in report.large_commands])
        ui.info("Large command definitions consume headroom. Consider trimming or stubbing.")

    def suggest_docs(self) -> None:
        ui.header("TokenHeadroom: Suggest — Docs")
        report = self.analysis()
        ui.json([d.to_dict() for d in report.large_docs])
        ui.info("Consider moving large documentation to docs/archive/ to reclaim headroom.")

    # -----------------------------------------------------------------------
    # Pillar 3: Application
    # -----------------------------------------------------------------------

    def apply_ignores(self) -> None:
        ui.header("TokenHeadroom: Apply — .claudeignore")
        self.run_steps([
            Step(CLAUDEIGNORE, AppendRecommendedPatternsVerb.name, label="Append recommended patterns"),
            Step(CLAUDEIGNORE, DeduplicatePatternsVerb.name, label="Deduplicate patterns"),
        ])
        ui.result("Completed .claudeignore optimization.")

    def apply_settings(self) -> None:
        ui.header("TokenHeadroom: Apply — .claude/settings.json")
        self.run_steps([
            Step(SETTINGS, PruneAlwaysIncludeVerb.name,
                 label="Prune non-existent alwaysInclude paths"),
            Step(SETTINGS, AddPermissionsDenyVerb.name, list(DEFAULT_DENY_PATTERNS),
                 label="Add permissions.deny entries for heavy paths"),
            Step(SETTINGS, TightenAutoIncludeVerb.name,
                 label="Review autoInclude pattern proposals"),
        ])
        ui.result("Completed settings.json optimization.")

    # -----------------------------------------------------------------------
    # Pillar 4: Tools
    # -----------------------------------------------------------------------

    def tools_open_claudeignore(self) -> None:
        path = self.root.abs_target(CLAUDEIGNORE)
        if not path.exists() and not self.mode.dry_run:
            ui.info("Creating new .claudeignore file...")
            path.touch()
        self._open_in_editor(path)

    def tools_open_settings(self) -> None:
        path = self.root.abs_target(SETTINGS)
        if not path.exists():
            ui.warn(f"Missing: {path}")
            ui.info(f"Create one with: echo '{{}}' > {path}")
            return
        self._open_in_editor(path)

    def tools_validate_json(self) -> None:
        path = self.root.abs_target(SETTINGS)
        if not path.exists():
            ui.warn(f"File not found: {path}")
            return
        try:
            json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            ui.error(f"Invalid JSON in: {path}")
            ui.error(str(e))
            self.report.add_finding("error", "settings", f"Invalid JSON in {SETTINGS}: {e}")
            return
        ui.result(f"Valid JSON: {path}")

    def tools_rerun(self) -> None:
        ui.header("TokenHeadroom: Tools — Rerun Analysis")
        report = self.analysis()
        ui.json({
            **report.summary(),
            "top_5_heavy_paths": [p.to_dict() for p in report.unignored_paths[:5]],
        })

    def _open_in_editor(self, path: Path) -> None:
        if self.mode.ci_mode or self.mode.dry_run or not path.exists():
            ui.console.print(path.read_text(encoding="utf-8") if path.exists() else "", markup=False)
            return
        editor = shlex.split(os.environ.get("EDITOR", "nano"))
        try:
            subprocess.run([*editor, str(path)], check=False)
        except OSError as e:
            logger.debug(f"[ACTION] Editor failed ({e}); printing {path}")
            ui.console.print(path.read_text(encoding="utf-8"), markup=False)

"""
TokenHeadroom Confirmation Gate

Two decisions per mutating step:
  1. confirm()        — y/N, skipped by --yes (non-critical only) or --force
  2. double_confirm() — critical steps only; the operator must type the
                        confirmation word, a bare "y" is not enough

Both read from an injectable stream so tests can feed canned answers.
"""

from __future__ import annotations

from typing import TextIO

from loguru import logger
from rich.console import Console
from rich.prompt import Confirm, Prompt

from tokenheadroom.config_loader import ExecutionMode

CONFIRM_WORD = "yes"


class ConfirmationGate:
    def __init__(
        self,
        mode: ExecutionMode,
        stream: TextIO | None = None,
        console: Console | None = None,
    ):
        self.mode = mode
        self.stream = stream
        self.console = console or Console()

    def confirm(self, require_confirm: bool = True, critical: bool = False) -> bool:
        if self.mode.yes_all and not critical:
            logger.debug("[GATE] Auto-approved (--yes)")
            return True
        if self.mode.force:
            logger.debug("[GATE] Auto-approved (--force)")
            return True
        if not require_confirm:
            return True

        prompt = "[bold red][CRITICAL][/] Proceed?" if critical else "[bold]Proceed?[/]"
        approved = Confirm.ask(prompt, default=False, console=self.console, stream=self.stream)
        logger.debug(f"[GATE] Primary gate answered: {approved}")
        return approved

    def double_confirm(self, critical: bool = False) -> bool:
        if not critical or self.mode.force:
            return True

        answer = Prompt.ask(
            f"Type '{CONFIRM_WORD}' to confirm critical operation",
            default="",
            show_default=False,
            console=self.console,
            stream=self.stream,
        )
        if answer.strip() == CONFIRM_WORD:
            return True

        self.console.print("[yellow][WARN][/] Aborted.")
        logger.info("[GATE] Critical operation not confirmed")
        return False

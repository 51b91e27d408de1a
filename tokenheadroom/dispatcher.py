"""
TokenHeadroom Dispatcher — The Brainstem

It is NOT smart. It is deterministic.

One dispatch call:
  resolve target → authorize (policy) → resolve verb → preview (always)
  → dry-run? stop → CI without --force? stop → apply

Confirmation and backup happen inside apply handlers, at the point of
mutation, so each verb decides its own criticality.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger

from tokenheadroom import HeadroomError, ui
from tokenheadroom.config_loader import ExecutionMode
from tokenheadroom.governance import PolicyStore
from tokenheadroom.history import ActionHistory
from tokenheadroom.registry import ApplyOutcome, VerbRegistry
from tokenheadroom.workspace import ProjectRoot


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class DispatchError(HeadroomError):
    """Non-fatal: the action is skipped, a batch moves on."""

    status = "failed"


class VerbNotAllowed(DispatchError):
    status = "not_allowed"


class ImmutableTarget(DispatchError):
    status = "immutable"


class TargetOutsideRoot(DispatchError):
    status = "outside_root"


class VerbNotRegistered(DispatchError):
    status = "not_registered"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class DispatchStatus(str, Enum):
    PENDING = "pending"
    PREVIEWED = "previewed"
    SKIPPED_DRY_RUN = "skipped_dry_run"
    SKIPPED_CI = "skipped_ci"
    DECLINED = "declined"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class ActionInvocation:
    target: str
    verb: str
    args: list[str] = field(default_factory=list)
    absolute_path: Path | None = None
    policy_key: str | None = None
    allowed_verbs: list[str] | None = None
    backup_path: str | None = None


@dataclass
class DispatchResult:
    invocation: ActionInvocation
    status: DispatchStatus = DispatchStatus.PENDING
    outcome: ApplyOutcome | None = None
    error: str | None = None
    reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.status in (DispatchStatus.SKIPPED_DRY_RUN, DispatchStatus.SKIPPED_CI)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.invocation.target,
            "verb": self.invocation.verb,
            "args": list(self.invocation.args),
            "status": self.status.value,
            "backup_path": self.invocation.backup_path,
            "error": self.error,
            "reason": self.reason,
        }


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class Dispatcher:
    def __init__(
        self,
        root: ProjectRoot,
        policy: PolicyStore,
        registry: VerbRegistry,
        mode: ExecutionMode,
        history: ActionHistory | None = None,
    ):
        self.root = root
        self.policy = policy
        self.registry = registry
        self.mode = mode
        self.history = history

    def dispatch(self, target: str, verb: str, args: list[str] | None = None) -> DispatchResult:
        """
        Run one verb against one target.

        Raises:
            TargetOutsideRoot: target resolves outside the project root
            VerbNotAllowed / ImmutableTarget: policy refused the action
            VerbNotRegistered: no handlers for the verb
            Exception: whatever the preview or apply handler raised
        """
        invocation = ActionInvocation(target=target, verb=verb, args=list(args or []))
        result = DispatchResult(invocation=invocation)
        invocation.absolute_path = self.root.abs_target(target).resolve()

        try:
            self._authorize(invocation)

            preview, apply, found = self.registry.resolve(verb)
            if not found:
                ui.error(f"Verb not registered: {verb}")
                raise VerbNotRegistered(f"Verb not registered: {verb}")

            abs_path = str(invocation.absolute_path)
            logger.debug(f"[DISPATCH] Preview {verb} on {target}")
            preview(target, abs_path, invocation.args)
            result.status = DispatchStatus.PREVIEWED

            if self.mode.dry_run:
                ui.warn(f"(dry-run) Skipping apply for: {verb}")
                result.status = DispatchStatus.SKIPPED_DRY_RUN
                return result

            if self.mode.ci_mode and not self.mode.force:
                ui.info("(CI mode) Apply skipped; use --force to apply")
                result.status = DispatchStatus.SKIPPED_CI
                return result

            logger.debug(f"[DISPATCH] Apply {verb} on {target}")
            outcome = apply(target, abs_path, invocation.args)
            result.outcome = outcome
            if outcome is not None:
                invocation.backup_path = outcome.backup_path
            if outcome is not None and outcome.declined:
                result.status = DispatchStatus.DECLINED
            else:
                result.status = DispatchStatus.APPLIED
            return result

        except DispatchError as e:
            result.status = DispatchStatus.FAILED
            result.error = str(e)
            result.reason = e.status
            raise
        except Exception as e:
            result.status = DispatchStatus.FAILED
            result.error = str(e)
            logger.error(f"[DISPATCH] {verb} on {target} failed: {e}")
            raise
        finally:
            self._record(result)

    def _authorize(self, invocation: ActionInvocation) -> None:
        target, verb = invocation.target, invocation.verb

        # Policy is keyed by root-relative paths, whatever form the caller used
        key = self.root.policy_key(target)
        if key is None:
            ui.warn(f"Target '{target}' is outside the project root")
            raise TargetOutsideRoot(f"Target '{target}' is outside the project root")
        invocation.policy_key = key

        verbs, present = self.policy.allowed_verbs(key)
        invocation.allowed_verbs = verbs
        if present and verb not in (verbs or []):
            ui.warn(f"Verb '{verb}' not allowed on '{target}' by policy")
            raise VerbNotAllowed(f"Verb '{verb}' not allowed on '{target}' by policy")

        if self.policy.is_immutable(key):
            ui.warn(f"Target '{target}' is immutable by policy")
            raise ImmutableTarget(f"Target '{target}' is immutable by policy")

    def _record(self, result: DispatchResult) -> None:
        if self.history is None:
            return
        entry = self.registry.get(result.invocation.verb)
        self.history.record(result.to_dict(), critical=bool(entry and entry.critical))

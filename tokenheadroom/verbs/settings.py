"""
.claude/settings.json verbs.

prune_alwaysInclude and add_permissions_deny are critical: they edit the
settings the assistant itself runs under, so they need the typed
confirmation. tighten_auto_include only proposes.
"""

from __future__ import annotations

import glob
import json
from pathlib import Path
from typing import Any

from tokenheadroom import ui
from tokenheadroom.registry import ApplyOutcome
from tokenheadroom.verbs import BaseVerb, VerbError

AUTO_INCLUDE_MATCH_LIMIT = 50
MAX_SUGGESTIONS = 8

DEFAULT_DENY_PATTERNS = [
    "Read(./node_modules/**)",
    "Read(./.next/**)",
    "Read(./logs/**)",
    "Read(./public/export/**)",
    "Read(./docs/archive/**)",
    "Read(./_build/**)",
]


def load_settings(current: str, label: str) -> dict[str, Any]:
    if not current.strip():
        return {}
    try:
        data = json.loads(current)
    except json.JSONDecodeError as e:
        raise VerbError(f"Invalid JSON in {label}: {e}") from e
    if not isinstance(data, dict):
        raise VerbError(f"{label} must contain a JSON object")
    return data


def dump_settings(data: dict[str, Any]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


class SettingsVerb(BaseVerb):
    def settings(self, path: Path, current: str) -> dict[str, Any]:
        return load_settings(current, self.root.relative(path))


class PruneAlwaysIncludeVerb(SettingsVerb):
    name = "prune_alwaysInclude"
    action_id = "apply.settings"
    description = "Remove non-existent paths from context.alwaysInclude"
    critical = True

    def missing_entries(self, data: dict[str, Any]) -> list[str]:
        entries = (data.get("context") or {}).get("alwaysInclude") or []
        return [
            entry for entry in entries
            if isinstance(entry, str) and not self.root.abs_target(entry).exists()
        ]

    def propose(self, path: Path, current: str, args: list[str]) -> str | None:
        data = self.settings(path, current)
        missing = self.missing_entries(data)
        if not missing:
            return None
        context = data.setdefault("context", {})
        context["alwaysInclude"] = [
            entry for entry in context.get("alwaysInclude") or []
            if entry not in missing
        ]
        return dump_settings(data)

    def detail(self, target: str, current: str, proposed: str | None, args: list[str]) -> str:
        missing = self.missing_entries(load_settings(current, target))
        report = json.dumps({"missing": missing, "count": len(missing)}, indent=2)
        return f"JSON patch: prune missing alwaysInclude entries\n{report}"


class AddPermissionsDenyVerb(SettingsVerb):
    name = "add_permissions_deny"
    action_id = "apply.settings"
    description = "Add permissions.deny entries to block heavy paths"
    critical = True

    @staticmethod
    def additions(data: dict[str, Any], args: list[str]) -> list[str]:
        wanted = args or DEFAULT_DENY_PATTERNS
        deny = (data.get("permissions") or {}).get("deny") or []
        missing: list[str] = []
        for pattern in wanted:
            if pattern not in deny and pattern not in missing:
                missing.append(pattern)
        return missing

    def propose(self, path: Path, current: str, args: list[str]) -> str | None:
        data = self.settings(path, current)
        missing = self.additions(data, args)
        if not missing:
            return None
        permissions = data.setdefault("permissions", {})
        permissions["deny"] = list(permissions.get("deny") or []) + missing
        return dump_settings(data)

    def detail(self, target: str, current: str, proposed: str | None, args: list[str]) -> str:
        missing = self.additions(load_settings(current, target), args)
        return "Proposed additions:\n" + json.dumps({"add": missing}, indent=2)


class TightenAutoIncludeVerb(SettingsVerb):
    """Preview-only: proposes narrower autoIncludePatterns, never writes."""

    name = "tighten_auto_include"
    action_id = "suggest.settings"
    description = (
        f"Proposals to narrow high-match autoIncludePatterns (>{AUTO_INCLUDE_MATCH_LIMIT} files)"
    )

    def proposals(self, data: dict[str, Any]) -> list[dict[str, Any]]:
        patterns = (data.get("context") or {}).get("autoIncludePatterns") or []
        out = []
        for pattern in patterns:
            if not isinstance(pattern, str):
                continue
            matches = glob.glob(pattern, root_dir=self.root.path, recursive=True)
            if len(matches) <= AUTO_INCLUDE_MATCH_LIMIT:
                continue
            head = pattern.split("/**", 1)[0]
            subdirs = set()
            for match in matches:
                parts = Path(match).as_posix().split("/")
                if len(parts) > 2 and parts[0] == head:
                    subdirs.add(parts[1])
            out.append({
                "pattern": pattern,
                "count": len(matches),
                "suggest": [f"{head}/{sub}/**/*" for sub in sorted(subdirs)[:MAX_SUGGESTIONS]],
            })
        return out

    def propose(self, path: Path, current: str, args: list[str]) -> str | None:
        return None

    def preview(self, target: str, absolute_path: str, args: list[str]) -> None:
        path = Path(absolute_path)
        current = self._read(target, path)
        if current is None:
            return
        proposals = self.proposals(self.settings(path, current))
        ui.preview_step(
            f"{self.action_id} ({self.name})",
            self.description,
            json.dumps({"proposals": proposals}, indent=2),
            "No write in v1",
            "Review and adjust manually",
        )

    def apply(self, target: str, absolute_path: str, args: list[str]) -> ApplyOutcome:
        ui.warn(f"{self.name} is preview-only; no write performed.")
        return ApplyOutcome(message="preview-only")

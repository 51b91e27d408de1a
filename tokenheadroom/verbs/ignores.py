"""
.claudeignore verbs — append recommended patterns, remove duplicates.
"""

from __future__ import annotations

from pathlib import Path

from tokenheadroom.verbs import BaseVerb

RECOMMENDED_PATTERNS = [
    "node_modules/",
    ".next/",
    "dist/",
    "build/",
    "out/",
    "_build/",
    "coverage/",
    "logs/",
    "public/export/",
    "docs/archive/",
    "docs/kb/",
]


def _is_pattern(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith("#")


class AppendRecommendedPatternsVerb(BaseVerb):
    name = "append_recommended_patterns"
    action_id = "apply.ignores"
    description = "Append recommended ignore patterns that are not present yet"
    creates_missing = True

    def propose(self, path: Path, current: str, args: list[str]) -> str | None:
        patterns = args or RECOMMENDED_PATTERNS
        existing = {line.strip() for line in current.splitlines() if _is_pattern(line)}
        missing = []
        for pattern in patterns:
            pattern = pattern.strip()
            if pattern and pattern not in existing and pattern not in missing:
                missing.append(pattern)
        if not missing:
            return None

        content = current
        if content and not content.endswith("\n"):
            content += "\n"
        return content + "\n".join(missing) + "\n"


class DeduplicatePatternsVerb(BaseVerb):
    name = "deduplicate_patterns"
    action_id = "apply.ignores"
    description = "Remove duplicate patterns; comments and blank lines are kept"

    def propose(self, path: Path, current: str, args: list[str]) -> str | None:
        seen: set[str] = set()
        kept = []
        for line in current.splitlines():
            if _is_pattern(line):
                key = line.strip()
                if key in seen:
                    continue
                seen.add(key)
            kept.append(line)

        proposed = "\n".join(kept)
        if current.endswith("\n"):
            proposed += "\n"
        return proposed

"""
TokenHeadroom Verb Registry

Maps verb names to (preview, apply) handler pairs. Built once during
process wiring and handed to the Dispatcher; there is no module-level
registry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from loguru import logger


@dataclass
class ApplyOutcome:
    """What an apply handler did. Handlers may also return None."""

    changed: bool = False
    declined: bool = False
    backup_path: str | None = None
    message: str = ""


class Handler(Protocol):
    def __call__(
        self, target: str, absolute_path: str, args: list[str]
    ) -> ApplyOutcome | None: ...


@dataclass(frozen=True)
class VerbEntry:
    name: str
    preview: Handler
    apply: Handler
    critical: bool = False


class VerbRegistry:
    """Key-unique verb table. The last registration for a name wins."""

    def __init__(self) -> None:
        self._entries: dict[str, VerbEntry] = {}

    def register(
        self,
        name: str,
        preview: Handler,
        apply: Handler,
        critical: bool = False,
    ) -> None:
        if name in self._entries:
            logger.debug(f"[REGISTRY] Replacing handlers for verb: {name}")
        self._entries[name] = VerbEntry(name=name, preview=preview, apply=apply, critical=critical)
        logger.debug(f"[REGISTRY] Registered verb: {name}")

    def resolve(self, name: str) -> tuple[Handler | None, Handler | None, bool]:
        entry = self._entries.get(name)
        if entry is None:
            return None, None, False
        return entry.preview, entry.apply, True

    def get(self, name: str) -> VerbEntry | None:
        return self._entries.get(name)

    def names(self) -> list[str]:
        return sorted(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

"""
TokenHeadroom Governance — Policy Store + Immutability Enforcement

The policy document has two keys:
  - immutable: glob patterns for paths that may never be mutated
  - editable:  target → list of verbs permitted on that target

An absent target is unrestricted. An explicit empty list denies every verb.
"""

from __future__ import annotations

import json
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import Mapping

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tokenheadroom import HeadroomError

EXIT_POLICY = 16


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class PolicyError(HeadroomError):
    """Fatal policy setup error. The run aborts with EXIT_POLICY."""

    exit_code = EXIT_POLICY


class PolicyNotFound(PolicyError):
    pass


class PolicyInvalid(PolicyError):
    pass


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------

class PolicyDocument(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    immutable: tuple[str, ...] = ()
    editable: Mapping[str, tuple[str, ...]] = Field(default_factory=dict, validate_default=True)

    @field_validator("editable", mode="after")
    @classmethod
    def _read_only(cls, value: Mapping[str, tuple[str, ...]]) -> Mapping[str, tuple[str, ...]]:
        # Read-only and keyed the way dispatch queries it
        return MappingProxyType({normalize_path(key): verbs for key, verbs in value.items()})


def normalize_path(path: str) -> str:
    """Forward slashes, no leading './', no duplicate separators."""
    raw = path.replace("\\", "/").strip()
    is_dir = raw.endswith("/")
    while raw.startswith("./"):
        raw = raw[2:]
    parts = [p for p in raw.split("/") if p and p != "."]
    norm = "/".join(parts)
    if raw.startswith("/"):
        norm = "/" + norm
    if is_dir and norm:
        norm += "/"
    return norm


def pattern_matches(pattern: str, path: str) -> bool:
    """
    Anchored glob match of a single immutability pattern.

    "dir/"   matches "dir" and anything below it.
    "*.lock" matches a whole path; "*" may cross "/", so it hits nested files.
    Matching is case-sensitive and never a bare substring test.
    """
    pattern = normalize_path(pattern)
    path = normalize_path(path).rstrip("/")
    if not pattern or not path:
        return False

    if pattern.endswith("/"):
        prefix = pattern.rstrip("/")
        if fnmatchcase(path, prefix):
            return True
        # Prefix match against every ancestor of the path
        parents = [str(p) for p in PurePosixPath(path).parents if str(p) not in (".", "/")]
        return any(fnmatchcase(parent, prefix) for parent in parents)

    return fnmatchcase(path, pattern)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class PolicyStore:
    """
    Loads the policy once and answers immutability and allowlist queries.

    Until a document is loaded every query is permissive (fail-open).
    Construct with fail_closed=True to deny instead.
    """

    def __init__(self, fail_closed: bool = False):
        self.fail_closed = fail_closed
        self._document: PolicyDocument | None = None
        self._path: Path | None = None

    @property
    def loaded(self) -> bool:
        return self._document is not None

    @property
    def document(self) -> PolicyDocument | None:
        return self._document

    @property
    def path(self) -> Path | None:
        return self._path

    def load(self, path: Path) -> PolicyDocument:
        """
        Load and validate the policy at path, caching it for later queries.

        Raises:
            PolicyNotFound: the file does not exist
            PolicyInvalid: the file is not a valid policy document
        """
        if not path.is_file():
            logger.error(f"[POLICY] Policy file not found: {path}")
            raise PolicyNotFound(f"Policy file not found: {path}")

        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise PolicyInvalid(f"Cannot read policy file {path}: {e}") from e

        document = self.parse(raw, source=str(path))
        self._document = document
        self._path = path
        logger.info(
            f"[POLICY] Loaded {path} — "
            f"{len(document.immutable)} immutable patterns, "
            f"{len(document.editable)} editable targets"
        )
        return document

    @staticmethod
    def parse(raw: str, source: str = "<policy>") -> PolicyDocument:
        """Parse a JSON (or YAML) policy document without caching it."""
        try:
            if source.endswith((".yaml", ".yml")):
                data = yaml.safe_load(raw)
            else:
                data = json.loads(raw)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            logger.error(f"[POLICY] Invalid policy document {source}: {e}")
            raise PolicyInvalid(f"Invalid policy document {source}: {e}") from e

        if not isinstance(data, dict):
            raise PolicyInvalid(f"Policy document must be a mapping: {source}")

        try:
            return PolicyDocument(**data)
        except ValidationError as e:
            logger.error(f"[POLICY] Policy schema violation in {source}: {e}")
            raise PolicyInvalid(f"Policy schema violation in {source}: {e}") from e

    def is_immutable(self, path: str) -> bool:
        """True if path matches any immutable pattern."""
        if self._document is None:
            return self.fail_closed
        for pattern in self._document.immutable:
            if pattern_matches(pattern, path):
                logger.debug(f"[POLICY] {path} is immutable (pattern: {pattern})")
                return True
        return False

    def allowed_verbs(self, target: str) -> tuple[list[str] | None, bool]:
        """
        Return (verbs, present) for target.

        present=False means the target is unrestricted.
        """
        if self._document is None:
            return ([], True) if self.fail_closed else (None, False)

        editable = self._document.editable
        key = target if target in editable else normalize_path(target)
        if key not in editable:
            return None, False
        return list(editable[key]), True

    def is_verb_allowed(self, target: str, verb: str) -> bool:
        verbs, present = self.allowed_verbs(target)
        if not present:
            return True
        return verb in (verbs or [])

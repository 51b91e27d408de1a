from __future__ import annotations

from conftest import Recorder
from tokenheadroom.registry import VerbRegistry


def test_register_and_resolve() -> None:
    registry = VerbRegistry()
    rec = Recorder()
    registry.register("edit", rec.preview, rec.apply)

    preview, apply, found = registry.resolve("edit")
    assert found
    assert preview == rec.preview
    assert apply == rec.apply
    assert "edit" in registry
    assert len(registry) == 1


def test_resolve_unknown_verb() -> None:
    assert VerbRegistry().resolve("nope") == (None, None, False)


def test_last_registration_wins() -> None:
    registry = VerbRegistry()
    first, second = Recorder(), Recorder()
    registry.register("edit", first.preview, first.apply)
    registry.register("edit", second.preview, second.apply, critical=True)

    preview, apply, _ = registry.resolve("edit")
    assert preview == second.preview
    assert apply == second.apply
    assert registry.get("edit").critical is True
    assert registry.names() == ["edit"]

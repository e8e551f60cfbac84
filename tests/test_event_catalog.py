"""Event catalog loading and template coverage."""

from __future__ import annotations

import ast
from pathlib import Path

from sleept.logs import event_catalog
from sleept.logs.event_catalog import EVENT_TEMPLATES, reload_event_templates

_PACKAGE = Path(__file__).parents[1] / "sleept"


def _logged_events() -> set[tuple[str, str]]:
    found: set[tuple[str, str]] = set()
    for path in _PACKAGE.rglob("*.py"):
        tree = ast.parse(path.read_text(encoding="utf-8"))
        for node in ast.walk(tree):
            if not (isinstance(node, ast.Call) and isinstance(node.func, ast.Attribute)):
                continue
            if node.func.attr != "log_event" or len(node.args) < 2:
                continue
            domain, action = node.args[:2]
            if isinstance(domain, ast.Constant) and isinstance(action, ast.Constant):
                found.add((domain.value, action.value))
    return found


def test_event_templates_loads() -> None:
    assert EVENT_TEMPLATES, "EVENT_TEMPLATES should not be empty"
    assert ("app", "load_error") not in EVENT_TEMPLATES


def test_reload_idempotent() -> None:
    before = set(event_catalog.EVENT_TEMPLATES.keys())
    reload_event_templates()
    assert set(event_catalog.EVENT_TEMPLATES.keys()) == before


def test_every_logged_event_has_a_template() -> None:
    logged = _logged_events()
    assert logged, "no log_event calls found"
    missing = sorted(logged - set(event_catalog.EVENT_TEMPLATES))
    assert missing == []


def test_missing_file_is_reported(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(event_catalog, "__file__", str(tmp_path / "event_catalog.py"))
    try:
        templates = event_catalog._load_event_templates()
        assert ("app", "load_error") in templates
    finally:
        monkeypatch.undo()
        reload_event_templates()

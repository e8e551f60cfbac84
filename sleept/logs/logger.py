"""Event logger used by every session component."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

_EVENT_COLUMN = 32
_PREFIX_COLUMN = 24


def _debug_from_env() -> bool:
    return os.environ.get("DEBUG", "false").lower() in ("true", "1", "yes")


def render(domain: str, action: str, context: Mapping[str, object]) -> str:
    """Human text for an event: its catalog template filled from ``context``."""
    # Local import: the catalog loads JSON at import time
    from .event_catalog import EVENT_TEMPLATES

    template = EVENT_TEMPLATES.get((domain, action))
    if not template:
        return f"{domain.replace('_', ' ')}: {action.replace('_', ' ')}"
    try:
        return template.format(**context)
    except (KeyError, IndexError, ValueError):
        return template


class ClientLogger:
    """Writes ``(domain, action)`` events as aligned, prefixed log lines.

    ``user`` and ``room`` keywords form the ``[user#room]`` column; in
    debug mode the event name leads the line and the rest of the context
    is appended.
    """

    def __init__(self, name: str = "sleept", debug: bool | None = None) -> None:
        self.logger = logging.getLogger(name)
        self.debug_enabled = _debug_from_env() if debug is None else debug
        if self.debug_enabled:
            self.logger.setLevel(logging.DEBUG)

    def child(self, suffix: str) -> ClientLogger:
        return ClientLogger(f"{self.logger.name}.{suffix}", debug=self.debug_enabled)

    def log_event(
        self,
        domain: str,
        action: str,
        level: int = logging.INFO,
        human: str | None = None,
        *,
        exc_info: bool = False,
        **context: object,
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        text = human if human is not None else render(domain, action, context)
        user = context.pop("user", None)
        room = context.pop("room", None)
        prefix = _prefix(
            user if isinstance(user, str) else None,
            room if isinstance(room, str) else None,
        )
        if self.debug_enabled:
            line = _debug_line(f"{domain}_{action}".lower(), prefix, text, context)
        else:
            line = f"{prefix} {text}"
        self.logger.log(level, line, exc_info=exc_info)


def _prefix(user: str | None, room: str | None) -> str:
    label = f"{user or 'system'}{room or ''}"
    return f"[{label.ljust(_PREFIX_COLUMN)[:_PREFIX_COLUMN]}]"


def _debug_line(event: str, prefix: str, text: str, context: Mapping[str, object]) -> str:
    if len(event) > _EVENT_COLUMN:
        event = event[: _EVENT_COLUMN - 1] + "…"
    line = f"{event.ljust(_EVENT_COLUMN)} {prefix}"
    if text:
        line = f"{line} {text}"
    if context:
        line = f"{line} ({', '.join(f'{k}={v}' for k, v in context.items())})"
    return line


logger = ClientLogger()

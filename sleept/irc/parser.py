"""IRC wire codec: raw protocol lines <-> Frames.

Pure functions only; safe to call from any task.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from ..errors import InvalidParameter, MalformedFrame

_COMMAND_RE = re.compile(r"[A-Za-z]+|\d{3}")
_TAG_KEY_RE = re.compile(r"\+?(?:[A-Za-z0-9.\-]+/)?[A-Za-z0-9\-]+")
_LINE_BREAKS = ("\r", "\n", "\0")

_TAG_ESCAPES = {"\\": "\\\\", ";": "\\:", " ": "\\s", "\r": "\\r", "\n": "\\n"}
_TAG_UNESCAPES = {":": ";", "s": " ", "\\": "\\", "r": "\r", "n": "\n"}


@dataclass(frozen=True, slots=True)
class Frame:
    """One parsed protocol line."""

    command: str
    params: tuple[str, ...] = ()
    tags: Mapping[str, str] = field(default_factory=dict)
    prefix: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", tuple(self.params))
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))

    @property
    def nick(self) -> str:
        """Nickname part of a ``nick!user@host`` prefix (lowercased)."""
        return self.prefix.split("!", 1)[0].lower()

    @property
    def trailing(self) -> str:
        return self.params[-1] if self.params else ""

    @property
    def target(self) -> str | None:
        """First parameter when it names a room."""
        if self.params and self.params[0].startswith("#"):
            return self.params[0].lower()
        return None


def parse_frame(line: str) -> Frame:
    """Parse one protocol line.

    The trailing parameter (introduced by `` :``) keeps its spaces
    verbatim. Raises MalformedFrame when no command can be extracted.
    """
    rest = line.rstrip("\r\n")
    if not rest.strip():
        raise MalformedFrame("empty line")

    tags: dict[str, str] = {}
    if rest.startswith("@"):
        raw_tags, sep, rest = rest[1:].partition(" ")
        if not sep or not raw_tags:
            raise MalformedFrame("tags without a command", data={"line": line})
        tags = _parse_tags(raw_tags)
        rest = rest.lstrip(" ")

    prefix = ""
    if rest.startswith(":"):
        prefix, sep, rest = rest[1:].partition(" ")
        if not sep or not prefix:
            raise MalformedFrame("prefix without a command", data={"line": line})
        rest = rest.lstrip(" ")

    command, _, rest = rest.partition(" ")
    if not _COMMAND_RE.fullmatch(command):
        raise MalformedFrame(f"invalid command {command!r}", data={"line": line})

    params: list[str] = []
    while rest:
        rest = rest.lstrip(" ")
        if not rest:
            break
        if rest.startswith(":"):
            params.append(rest[1:])
            break
        param, _, rest = rest.partition(" ")
        params.append(param)

    return Frame(command=command.upper(), params=tuple(params), tags=tags, prefix=prefix)


def encode_frame(
    command: str,
    params: Iterable[str] = (),
    tags: Mapping[str, str] | None = None,
    prefix: str = "",
) -> str:
    """Build a protocol line (without the CRLF terminator).

    Raises InvalidParameter when any part would break line framing.
    """
    if not _COMMAND_RE.fullmatch(command or ""):
        raise InvalidParameter(f"invalid command {command!r}")
    params = list(params)
    for value in (*params, prefix):
        if any(ch in value for ch in _LINE_BREAKS):
            raise InvalidParameter(
                "parameter contains a line terminator", data={"command": command}
            )

    parts: list[str] = []
    if tags:
        parts.append("@" + _encode_tags(tags))
    if prefix:
        if " " in prefix:
            raise InvalidParameter("prefix contains a space")
        parts.append(f":{prefix}")
    parts.append(command.upper())

    for index, param in enumerate(params):
        is_last = index == len(params) - 1
        needs_trailing = not param or " " in param or param.startswith(":")
        if needs_trailing and not is_last:
            raise InvalidParameter(
                f"middle parameter {param!r} must be non-empty and free of spaces",
                data={"command": command},
            )
        parts.append(f":{param}" if needs_trailing else param)
    return " ".join(parts)


def _parse_tags(raw_tags: str) -> dict[str, str]:
    tags: dict[str, str] = {}
    for tag in raw_tags.split(";"):
        if not tag:
            continue
        key, _, value = tag.partition("=")
        tags[key] = _unescape_tag_value(value)
    return tags


def _unescape_tag_value(value: str) -> str:
    if "\\" not in value:
        return value
    out: list[str] = []
    chars = iter(value)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, "")
        # Unknown escapes drop the backslash; a dangling one is discarded
        out.append(_TAG_UNESCAPES.get(nxt, nxt))
    return "".join(out)


def _encode_tags(tags: Mapping[str, str]) -> str:
    encoded = []
    for key, value in tags.items():
        if not _TAG_KEY_RE.fullmatch(key):
            raise InvalidParameter(f"invalid tag key {key!r}")
        if "\0" in str(value):
            raise InvalidParameter(f"tag {key!r} value contains NUL")
        escaped = "".join(_TAG_ESCAPES.get(ch, ch) for ch in str(value))
        encoded.append(f"{key}={escaped}" if escaped else key)
    return ";".join(encoded)

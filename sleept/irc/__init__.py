"""IRC subsystem package.

Wire codec, command table, transport, session manager, event dispatcher
and keep-alive monitor for Twitch chat. Only the codec is re-exported
here; import the session modules directly.
"""

from .parser import Frame, encode_frame, parse_frame  # noqa: F401

__all__ = ["Frame", "encode_frame", "parse_frame"]

"""
Configuration constants for the Twitch chat session client

This module contains the protocol and timing constants used throughout the
library. Each constant can be overridden by setting an environment variable
with the same name.
"""

import os


def _get_env_int(name: str, default: int) -> int:
    """Retrieve an integer value from an environment variable.

    Attempts to parse the environment variable as an integer. If the variable
    is not set or cannot be parsed, prints a warning and returns the default.

    Args:
        name: The name of the environment variable to read.
        default: The default integer value to return if parsing fails.

    Returns:
        The parsed integer value from the environment, or the default if unavailable.
    """
    value = os.getenv(name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            print(
                f"Warning: Invalid integer value for {name}='{value}', using default {default}"
            )
    return default


def _get_env_float(name: str, default: float) -> float:
    """Retrieve a float value from an environment variable.

    Args:
        name: The name of the environment variable to read.
        default: The default float value to return if parsing fails.

    Returns:
        The parsed float value from the environment, or the default if unavailable.
    """
    value = os.getenv(name)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            print(
                f"Warning: Invalid float value for {name}='{value}', using default {default}"
            )
    return default


# Gateway
IRC_WS_URL = os.getenv("IRC_WS_URL", "wss://irc-ws.chat.twitch.tv:443")
TOKEN_ENV_VAR = "CLIENT_TOKEN"  # Process-wide credential fallback
ROOM_SIGIL = "#"

# Outbound rate limit (Twitch: 20 commands per 30 seconds)
RATE_LIMIT_CAPACITY = _get_env_int("RATE_LIMIT_CAPACITY", 20)  # Bucket size
RATE_LIMIT_WINDOW_SECONDS = _get_env_float(
    "RATE_LIMIT_WINDOW_SECONDS", 30.0
)  # Time for an empty bucket to refill completely

# Timeouts
CONNECT_TIMEOUT_SECONDS = _get_env_float(
    "CONNECT_TIMEOUT_SECONDS", 10.0
)  # Opening the WebSocket
AUTH_TIMEOUT_SECONDS = _get_env_float(
    "AUTH_TIMEOUT_SECONDS", 10.0
)  # Waiting for the welcome numeric
REQUEST_TIMEOUT_SECONDS = _get_env_float(
    "REQUEST_TIMEOUT_SECONDS", 10.0
)  # Waiting for a join/part echo or a PONG

# Reconnection backoff
DEFAULT_RETRY_LIMIT = _get_env_int("DEFAULT_RETRY_LIMIT", 5)  # Reconnect attempts
RECONNECT_DELAY_SECONDS = _get_env_float(
    "RECONNECT_DELAY_SECONDS", 1.0
)  # Pause before the first reconnect attempt
BACKOFF_BASE_DELAY = _get_env_float("BACKOFF_BASE_DELAY", 1.0)  # First backoff step
BACKOFF_MAX_DELAY = _get_env_float("BACKOFF_MAX_DELAY", 60.0)  # Backoff ceiling
BACKOFF_JITTER_SECONDS = _get_env_float(
    "BACKOFF_JITTER_SECONDS", 0.5
)  # Random jitter added to each backoff step

# Liveness
KEEPALIVE_CHECK_INTERVAL = _get_env_float(
    "KEEPALIVE_CHECK_INTERVAL", 30.0
)  # Seconds between keep-alive checks
SERVER_ACTIVITY_TIMEOUT = _get_env_float(
    "SERVER_ACTIVITY_TIMEOUT", 360.0
)  # Twitch pings roughly every 5 minutes

# Message cache defaults
DEFAULT_MESSAGE_CACHE_MAX_SIZE = _get_env_int(
    "DEFAULT_MESSAGE_CACHE_MAX_SIZE", 200
)  # Messages kept per room

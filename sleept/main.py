#!/usr/bin/env python3
"""
Command line entry point: log in, join rooms and log chat until interrupted
"""

import asyncio
import logging
import os
import sys

from .client import Client
from .errors import SleeptError
from .errors.handling import log_error
from .events import DisconnectEvent, MessageEvent
from .logging_config import LoggerConfigurator


def _channels_from_env() -> list[str]:
    raw = os.environ.get("SLEEPT_CHANNELS", "")
    return [c for c in (part.strip() for part in raw.split(",")) if c]


def _log_message(event: MessageEvent) -> None:
    prefix = "* " if event.message.action else ""
    logging.info(f"💬 {event.room.id} {event.author.name}: {prefix}{event.content}")


async def main() -> None:
    """Run a client built from environment variables until interrupted.

    Uses CLIENT_TOKEN for credentials (anonymous when unset),
    SLEEPT_USERNAME for the login name and SLEEPT_CHANNELS as a
    comma separated room list.
    """
    stopped = asyncio.Event()
    client = Client(
        username=os.environ.get("SLEEPT_USERNAME") or None,
        channels=_channels_from_env(),
        debug=os.environ.get("DEBUG", "").lower() in ("true", "1", "yes"),
    )
    client.on(MessageEvent, _log_message)
    client.on(DisconnectEvent, lambda _event: stopped.set())
    async with client:
        ready = await client.login()
        if ready is None:
            return
        logging.info(f"🚀 Logged in as {ready.user.name}")
        await stopped.wait()


def run() -> None:
    """Synchronous entry point for the console script.

    Raises:
        SystemExit: If the client cannot start.
    """
    LoggerConfigurator().configure()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(0)
    except SleeptError as e:
        log_error("Client error", e)
        sys.exit(1)
    finally:
        logging.info("✅ Shutdown complete")


if __name__ == "__main__":
    run()

"""Keep-alive checks on server activity."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ..constants import KEEPALIVE_CHECK_INTERVAL, SERVER_ACTIVITY_TIMEOUT

if TYPE_CHECKING:  # pragma: no cover
    from .session import SessionManager

OK = "ok"
PROBE = "probe"
STALE = "stale"


class SessionHeartbeat:
    def __init__(
        self,
        session: SessionManager,
        *,
        check_interval: float = KEEPALIVE_CHECK_INTERVAL,
        activity_timeout: float = SERVER_ACTIVITY_TIMEOUT,
    ) -> None:
        self.session = session
        self.check_interval = check_interval
        self.activity_timeout = activity_timeout
        self._probe_sent_at = float("-inf")

    def check_once(self) -> str:
        """Classify the connection by time since the last inbound line.

        Past half the activity timeout the server is probed with a PING;
        past the full timeout the connection is considered dead.
        """
        now = self.session.clock()
        idle = now - self.session.last_activity
        if idle > self.activity_timeout:
            self.session.log.log_event(
                "irc",
                "no_server_activity",
                level=logging.WARNING,
                user=self.session.username,
                idle=round(idle, 1),
                timeout=self.activity_timeout,
            )
            return STALE
        if idle > self.activity_timeout / 2:
            if self._probe_sent_at <= self.session.last_activity:
                self._probe_sent_at = now
                self.session.log.log_event(
                    "irc",
                    "stale_probe",
                    level=logging.DEBUG,
                    user=self.session.username,
                    idle=round(idle, 1),
                )
                return PROBE
        return OK

    async def run(self) -> None:
        while True:
            await self.session.sleep(self.check_interval)
            state = self.check_once()
            if state == PROBE:
                await self.session.send_keepalive()
            elif state == STALE:
                await self.session.drop_connection("no server activity")
                return


__all__ = ["OK", "PROBE", "STALE", "SessionHeartbeat"]

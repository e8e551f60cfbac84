"""
Console logging setup and structured error tracking for the chat client.

``LoggerConfigurator`` installs a colorlog formatter on the root logger.
``log_structured_error`` writes one categorized line per failure and feeds
``error_aggregator`` so a long-running client can report which kind of
failure (network, auth, protocol, ...) keeps recurring.
"""

import atexit
import logging
import os
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

import colorlog

_LOGGER_NAME = "sleept"
_RECENT_WINDOW_SECONDS = 3600.0

_LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


@dataclass
class _Category:
    occurrences: deque = field(default_factory=deque)
    total: int = 0


class ErrorAggregator:
    """Per-category error tally.

    Keeps at most ``max_per_type`` recent occurrences for each category;
    ``total_count`` keeps counting past that bound.
    """

    def __init__(self, max_per_type: int = 1000, alert_rate: float = 10.0):
        self.max_per_type = max_per_type
        self.alert_rate = alert_rate
        self.lock = threading.Lock()
        self.start_time = time.time()
        self._categories: dict[str, _Category] = {}

    def record_error(
        self, error_type: str, message: str, context: dict[str, Any] | None = None
    ) -> None:
        entry = {"timestamp": time.time(), "message": message, "context": context or {}}
        with self.lock:
            category = self._categories.get(error_type)
            if category is None:
                category = _Category(deque(maxlen=self.max_per_type))
                self._categories[error_type] = category
            category.occurrences.append(entry)
            category.total += 1

    def get_error_summary(self) -> dict[str, Any]:
        now = time.time()
        with self.lock:
            hours = max((now - self.start_time) / 3600, 1.0)
            return {
                name: {
                    "total_count": category.total,
                    "recent_count": sum(
                        1
                        for e in category.occurrences
                        if now - e["timestamp"] < _RECENT_WINDOW_SECONDS
                    ),
                    "rate_per_hour": category.total / hours,
                    "last_occurrence": category.occurrences[-1]
                    if category.occurrences
                    else None,
                }
                for name, category in self._categories.items()
            }

    def should_alert(self, error_type: str, threshold_rate: float | None = None) -> bool:
        stats = self.get_error_summary().get(error_type)
        if stats is None:
            return False
        threshold = self.alert_rate if threshold_rate is None else threshold_rate
        return stats["rate_per_hour"] > threshold

    def reset(self) -> None:
        with self.lock:
            self._categories.clear()
            self.start_time = time.time()

    def log_summary_report(self, logger: logging.Logger | None = None) -> None:
        log = logger or logging.getLogger(_LOGGER_NAME)
        summary = self.get_error_summary()
        if not summary:
            log.info("📊 No errors recorded this session")
            return
        log.warning("📊 Error summary")
        for error_type, stats in sorted(summary.items()):
            last = stats["last_occurrence"]
            log.warning(
                f"  {error_type:<9} total={stats['total_count']} "
                f"last_hour={stats['recent_count']} "
                f"rate={stats['rate_per_hour']:.1f}/h"
                + (f" last='{last['message']}'" if last else "")
            )


error_aggregator = ErrorAggregator()


def log_structured_error(
    error_type: str,
    message: str,
    exception: BaseException | None = None,
    context: dict[str, Any] | None = None,
    level: int = logging.ERROR,
) -> None:
    """Log one categorized error line and record it in ``error_aggregator``.

    Args:
        error_type: Category such as 'network', 'auth' or 'protocol'.
        message: What failed.
        exception: The exception behind the failure, if any.
        context: Extra key/value pairs appended to the line.
        level: Logging level for the line.
    """
    parts = [f"[{error_type.upper()}] {message}"]
    if exception is not None:
        parts.append(f"{type(exception).__name__}")
    if context:
        parts.append(", ".join(f"{k}={v}" for k, v in context.items()))
    log = logging.getLogger(_LOGGER_NAME)
    log.log(level, " | ".join(parts))

    error_aggregator.record_error(error_type, message, context)
    if error_aggregator.should_alert(error_type):
        rate = error_aggregator.get_error_summary()[error_type]["rate_per_hour"]
        log.critical(f"🚨 {error_type} errors at {rate:.1f}/hour")


def _debug_requested() -> bool:
    return os.environ.get("DEBUG", "").lower() in ("true", "1", "yes")


class LoggerConfigurator:
    """Installs colored console logging for the CLI.

    ``DEBUG=true`` in the environment switches to DEBUG level when
    ``configure`` is not told explicitly.
    """

    def __init__(self, stream=None):
        self.stream = stream or sys.stderr

    def build_formatter(self) -> colorlog.ColoredFormatter:
        return colorlog.ColoredFormatter(
            "%(asctime)s %(log_color)s%(levelname)-8s%(reset)s %(message)s",
            datefmt="%H:%M:%S",
            log_colors=_LEVEL_COLORS,
            reset=True,
        )

    def configure(self, debug: bool | None = None) -> None:
        level = logging.DEBUG if (_debug_requested() if debug is None else debug) else logging.INFO
        handler = logging.StreamHandler(self.stream)
        handler.setFormatter(self.build_formatter())
        logging.basicConfig(level=level, handlers=[handler])

        root = logging.getLogger()
        root.setLevel(level)
        for existing in root.handlers:
            existing.setFormatter(handler.formatter)

        # Frame-level websockets logging drowns out the client's own events
        logging.getLogger("websockets").setLevel(logging.INFO)
        atexit.register(self._log_final_error_summary)

    def _log_final_error_summary(self) -> None:
        error_aggregator.log_summary_report()

"""Rate-limited, strictly FIFO outbound command queue."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from ..errors import SendFailed
from ..logs.logger import ClientLogger, logger as default_logger
from .token_bucket import TokenBucket

Writer = Callable[[str], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class QueuedCommand:
    line: str
    # Resolves to the queue clock reading at the moment the line was written
    future: asyncio.Future[float] = field(repr=False)


class CommandQueue:
    """Single-flight dispatcher draining queued lines through a TokenBucket.

    Commands wait in the queue until ``start`` binds a writer; ``stop``
    unbinds it and fails anything still queued with SendFailed. Sends are
    never retried here: a failed write drops the command.
    """

    def __init__(
        self,
        bucket: TokenBucket | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] | None = None,
        log: ClientLogger = default_logger,
    ) -> None:
        self.bucket = bucket or TokenBucket()
        self._clock = clock or self.bucket.clock
        self._sleep = sleep
        self._queue: asyncio.Queue[QueuedCommand] = asyncio.Queue()
        self._writer: Writer | None = None
        self._task: asyncio.Task[None] | None = None
        self.log = log

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, line: str) -> asyncio.Future[float]:
        """Queue a line and return a future resolved once it is written."""
        future: asyncio.Future[float] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(QueuedCommand(line, future))
        return future

    async def send(self, line: str) -> float:
        return await self.enqueue(line)

    def start(self, writer: Writer) -> None:
        if self.running:
            return
        self._writer = writer
        self._task = asyncio.create_task(self._run(), name="sleept-command-queue")

    async def stop(self, reason: str = "connection closed") -> None:
        task, self._task = self._task, None
        self._writer = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise
        self._fail_queued(reason)

    def _fail_queued(self, reason: str) -> None:
        dropped = 0
        while not self._queue.empty():
            cmd = self._queue.get_nowait()
            if not cmd.future.done():
                cmd.future.set_exception(SendFailed(f"command dropped: {reason}"))
                cmd.future.exception()  # mark retrieved; callers may be gone
            dropped += 1
        if dropped:
            self.log.log_event(
                "queue", "dropped", level=logging.DEBUG, count=dropped, reason=reason
            )

    async def _run(self) -> None:
        while True:
            cmd = await self._queue.get()
            if cmd.future.done():
                # Caller gave up before the command reached the wire
                continue
            while (wait := self.bucket.try_acquire()) > 0:
                self.log.log_event(
                    "queue",
                    "throttled",
                    level=logging.DEBUG,
                    wait=round(wait, 3),
                    pending=self._queue.qsize() + 1,
                )
                await self._sleep(wait)
            await self._write(cmd)

    async def _write(self, cmd: QueuedCommand) -> None:
        writer = self._writer
        try:
            if writer is None:
                raise SendFailed("no transport bound")
            await writer(cmd.line)
        except (SendFailed, OSError) as e:
            self.log.log_event(
                "queue",
                "send_failed",
                level=logging.WARNING,
                error=str(e),
                command=cmd.line.split(" ", 1)[0],
            )
            if not cmd.future.done():
                failure = e if isinstance(e, SendFailed) else SendFailed(str(e))
                cmd.future.set_exception(failure)
                cmd.future.exception()
            return
        if not cmd.future.done():
            cmd.future.set_result(self._clock())

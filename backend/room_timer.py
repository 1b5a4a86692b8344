"""Pausable per-room countdown driven by an asyncio task."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import config
from errors import PreconditionError

logger = logging.getLogger(__name__)


class RoomTimer:
    def __init__(self, room_code: str, broadcast: Callable[[dict], Awaitable[None]],
                 on_expired: Optional[Callable[["RoomTimer"], None]] = None):
        self.room_code = room_code
        self.remaining = 0
        self.running = False
        self.task: Optional[asyncio.Task] = None
        self._broadcast = broadcast
        self._on_expired = on_expired

    def start(self, duration: int):
        self.cancel()
        self.remaining = duration
        self._run()
        logger.info("Timer started in room %s (%ds)", self.room_code, duration)

    def pause(self) -> int:
        if not self.running:
            raise PreconditionError("Timer is not running")
        self.cancel()
        logger.info("Timer paused in room %s at %ds", self.room_code, self.remaining)
        return self.remaining

    def resume(self) -> int:
        if self.running:
            raise PreconditionError("Timer is already running")
        if self.remaining <= 0:
            raise PreconditionError("Timer has no time left to resume")
        self._run()
        logger.info("Timer resumed in room %s at %ds", self.room_code, self.remaining)
        return self.remaining

    def cancel(self):
        """Stop ticking; must be called in the same turn that invalidates the timer."""
        if self.task:
            self.task.cancel()
            self.task = None
        self.running = False

    def _run(self):
        self.running = True
        self.task = asyncio.create_task(self._tick_loop())

    async def _tick_loop(self):
        try:
            while True:
                await asyncio.sleep(config.TIMER_TICK_SECONDS)
                if self.remaining > 0:
                    self.remaining -= 1
                    await self._broadcast({"type": "timer-updated", "remaining": self.remaining})
                else:
                    self.running = False
                    self.task = None
                    if self._on_expired:
                        self._on_expired(self)
                    logger.info("Timer expired in room %s", self.room_code)
                    await self._broadcast({"type": "timer-expired"})
                    return
        except asyncio.CancelledError:
            pass

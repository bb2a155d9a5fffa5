"""
A single shared ticker that drives every ball on every table.

Instead of each ball owning its own interval timer, balls register here and
are advanced together, one row per tick. Tests call ``tick()`` directly;
in the bot a background task calls it every ``tick_interval`` seconds.
"""
import asyncio
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class TickScheduler:
    """
    Advances registered ball lifecycles on a fixed cadence.

    ``add()`` may be called from any thread. The driver task always runs on
    the event loop the scheduler was bound to, either the ``loop`` argument
    or the first loop that registered a ball.
    """

    def __init__(self, tick_interval: float, sleep=asyncio.sleep, loop=None):
        self.tick_interval = tick_interval
        self.ticks = 0
        self.listeners: list[Callable[["TickScheduler"], None]] = []
        self._sleep = sleep
        self._loop = loop
        self._lock = threading.Lock()
        self._balls = []
        self._driver: asyncio.Task | None = None

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._balls)

    @property
    def is_running(self) -> bool:
        return self._driver is not None and not self._driver.done()

    def add(self, lifecycle):
        """Registers a ball and makes sure the background driver is running."""
        with self._lock:
            self._balls.append(lifecycle)

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None and (
            self._loop is None or self._loop is running or not self._loop.is_running()
        ):
            self._loop = running
            self._ensure_driver()
        elif self._loop is not None and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._ensure_driver)
        # Otherwise there is no loop at all: the caller drives tick() by hand

    def _ensure_driver(self):
        if self.is_running and self._driver.get_loop() is self._loop:
            return
        self._driver = self._loop.create_task(self.run_until_idle())

    def tick(self) -> int:
        """
        Advances every registered ball exactly once and forgets the finished ones.
        Balls registered while the tick is running wait for the next one.
        Returns the number of balls still in play.
        """
        with self._lock:
            self.ticks += 1
            balls = list(self._balls)

        for ball in balls:
            ball.advance()

        with self._lock:
            self._balls = [ball for ball in self._balls if not ball.is_done]
            remaining = len(self._balls)

        for listener in self.listeners:
            try:
                listener(self)
            except Exception:  # pylint: disable=broad-except
                # A broken renderer must not stall the balls
                logger.exception("Tick listener %r failed", listener)
        return remaining

    async def run_until_idle(self):
        """Ticks in real time until no ball is left in play."""
        logger.debug("Scheduler driver started with %d balls", self.active_count)
        while self.active_count:
            await self._sleep(self.tick_interval)
            self.tick()
        logger.debug("Scheduler idle after %d ticks", self.ticks)

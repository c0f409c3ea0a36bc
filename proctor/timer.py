"""
Per-question and whole-session countdowns.

Both tick once per ``tick_interval`` on their own asyncio task and can be
paused, resumed, reset and cancelled. A cancelled or paused countdown never
calls its expiry callback.
"""

import asyncio
from typing import Callable, Optional

from proctor.logger import setup_logger
from proctor.utils.exceptions import SessionStateError
from proctor.utils.helpers import format_time

logger = setup_logger(__name__)


class Countdown:
    """
    Whole-second countdown that calls ``on_expire`` once when it reaches zero.
    """

    label = "countdown"

    def __init__(
        self,
        seconds: int,
        on_expire: Callable[[], None],
        tick_interval: float = 1.0,
    ) -> None:
        """
        Args:
            seconds: Starting value in whole seconds
            on_expire: Called synchronously on the loop when remaining hits 0
            tick_interval: Wall-clock length of one tick (1.0 in production)
        """
        self.duration = seconds
        self.remaining = seconds
        self.on_expire = on_expire
        self.tick_interval = tick_interval
        self._task: Optional[asyncio.Task] = None
        self._paused = False
        self._stopped = True
        self._expired = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def expired(self) -> bool:
        return self._expired

    def elapsed(self) -> int:
        """Return whole seconds counted down so far."""
        return self.duration - self.remaining

    def time_remaining(self) -> int:
        """Return seconds left before expiry."""
        return max(0, self.remaining)

    def display(self) -> str:
        return format_time(self.time_remaining())

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------
    def start(self, seconds: Optional[int] = None) -> None:
        """(Re)start from ``seconds`` (default: the configured duration)."""
        self._paused = False
        self.reset(seconds)
        logger.info(f"⏱️  {self.label} started ({self.display()})")

    def reset(self, seconds: Optional[int] = None) -> None:
        """
        Set remaining time and run again.

        A paused countdown takes the new value but stays paused until resumed.
        """
        self._stop_task()
        if seconds is not None:
            self.duration = seconds
        self.remaining = self.duration
        self._expired = False
        self._stopped = False
        if not self._paused:
            self._spawn()

    def pause(self) -> None:
        if self._paused:
            return
        self._paused = True
        self._stop_task()
        logger.info(f"⏸️  {self.label} paused at {self.display()}")

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        if self._stopped or self._expired:
            return
        self._spawn()
        logger.info(f"▶️  {self.label} resumed at {self.display()}")

    def cancel(self) -> None:
        """Stop for good; only ``start`` or ``reset`` will run it again."""
        self._stopped = True
        self._stop_task()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _spawn(self) -> None:
        self._task = asyncio.create_task(self._run(), name=self.label)

    def _stop_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while self.remaining > 0:
            await asyncio.sleep(self.tick_interval)
            self.remaining -= 1
        # Detach first so on_expire may cancel/reset this countdown safely
        self._task = None
        self._expired = True
        logger.info(f"⌛ {self.label} expired")
        self.on_expire()


class QuestionTimer(Countdown):
    """
    Countdown for the active question; reset on every advance.
    """

    label = "question timer"


class TotalTimer(Countdown):
    """
    Countdown for the whole session. Never reset once started.
    """

    label = "total timer"

    def reset(self, seconds: Optional[int] = None) -> None:
        if not self._stopped and self.remaining != self.duration:
            raise SessionStateError("total timer cannot be reset mid-session")
        super().reset(seconds)

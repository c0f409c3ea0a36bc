"""
Cancellable one-shot delayed callbacks.

Used for answer-feedback pacing and the result -> scoreboard hand-off, so a
callback belonging to an abandoned session can be cancelled before it fires.
"""

import asyncio
from typing import Callable, Optional

from proctor.logger import setup_logger

logger = setup_logger(__name__)


class ScheduledTask:
    """
    Runs ``callback`` once after ``delay`` seconds unless cancelled first.
    """

    def __init__(self, delay: float, callback: Callable[[], None], name: str = "scheduled") -> None:
        self.delay = delay
        self.callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._fired = False
        self._cancelled = False

    def start(self) -> "ScheduledTask":
        """Schedule on the running loop. Returns self for chaining."""
        if self._task is not None:
            raise RuntimeError(f"{self.name} already started")
        self._task = asyncio.create_task(self._run(), name=self.name)
        return self

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        if self._cancelled:
            return
        self._fired = True
        self.callback()

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._fired and not self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    def cancel(self) -> bool:
        """
        Cancel before firing.

        Returns:
            True if the callback was prevented, False if it already ran
            or was never scheduled.
        """
        if not self.pending:
            return False
        self._cancelled = True
        self._task.cancel()  # type: ignore[union-attr]
        logger.debug(f"Cancelled {self.name}")
        return True

    async def wait(self) -> None:
        """Wait until the task has fired or been cancelled."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

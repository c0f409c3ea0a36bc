"""
Full-screen integrity enforcement.

Two-strike policy: the first genuine full-screen exit pauses the session and
warns; any further exit (or a failed re-entry after the warning) forces
submission.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Union

from proctor.logger import setup_logger
from proctor.models import GuardState, LifecycleState, SubmitTrigger
from proctor.primitives.fullscreen import FullscreenSurface
from proctor.utils.exceptions import CapabilityUnsupported, FullscreenError, SessionStateError

if TYPE_CHECKING:
    from proctor.controller import SessionController
    from proctor.submission import SubmissionCoordinator

logger = setup_logger(__name__)


@dataclass(frozen=True)
class Clear:
    exit_count: int = 0


@dataclass(frozen=True)
class Warned:
    exit_count: int = 1


@dataclass(frozen=True)
class Violated:
    exit_count: int = 2


IntegrityStatus = Union[Clear, Warned, Violated]


@dataclass
class IntegrityState:
    """
    Integrity bookkeeping for one session.

    ``completed_naturally`` is a latch: once set it stays set for the
    lifetime of this object.
    """

    status: IntegrityStatus = field(default_factory=Clear)
    is_fullscreen: bool = False
    completed_naturally: bool = False

    @property
    def exit_count(self) -> int:
        return self.status.exit_count

    def strike(self) -> IntegrityStatus:
        """Record one genuine exit and return the new status."""
        if isinstance(self.status, Clear):
            self.status = Warned()
        else:
            self.status = Violated(exit_count=self.status.exit_count + 1)
        return self.status

    def latch(self) -> None:
        self.completed_naturally = True


# Shortcuts swallowed while a test is running: devtools, view-source, copy, paste.
# Enforced in the page by the keydown hook in proctor/primitives/browser.py.
BLOCKED_SHORTCUTS: List[Dict[str, object]] = [
    {"key": "f12", "ctrl": False, "shift": False},
    {"key": "u", "ctrl": True, "shift": False},
    {"key": "i", "ctrl": True, "shift": True},
    {"key": "c", "ctrl": True, "shift": False},
    {"key": "v", "ctrl": True, "shift": False},
]


class IntegrityMonitor:
    """
    Subscribes to full-screen changes for one session and applies the
    two-strike policy through the controller and the submission coordinator.
    """

    def __init__(
        self,
        state: IntegrityState,
        surface: FullscreenSurface,
        controller: "SessionController",
        coordinator: "SubmissionCoordinator",
    ) -> None:
        self.state = state
        self.surface = surface
        self.controller = controller
        self.coordinator = coordinator
        self.enabled = False
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self) -> bool:
        """
        Start listening for full-screen changes.

        Returns:
            False when the surface has no full-screen capability; the session
            then proceeds without integrity enforcement.
        """
        if not self.surface.supported:
            logger.warning("⚠️ Fullscreen not supported, integrity enforcement disabled")
            return False
        try:
            self._unsubscribe = self.surface.subscribe(self.handle_fullscreen_change)
        except CapabilityUnsupported as e:
            logger.warning(f"⚠️ Fullscreen notifications unavailable: {e}")
            return False
        self.state.is_fullscreen = self.surface.is_active()
        self.enabled = True
        return True

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.enabled = False

    def _suppressed(self) -> bool:
        return (
            self.state.completed_naturally
            or self.coordinator.guard is not GuardState.NOT_STARTED
        )

    def handle_fullscreen_change(self, active: bool) -> None:
        was_fullscreen = self.state.is_fullscreen
        self.state.is_fullscreen = active

        # Only a fullscreen -> windowed transition counts as an exit
        if active or not was_fullscreen:
            return
        if self._suppressed():
            logger.debug("Fullscreen exit after submission started, ignored")
            return

        lifecycle = self.controller.state
        if isinstance(self.state.status, Clear):
            if lifecycle is not LifecycleState.IN_PROGRESS:
                return
            self.state.strike()
            logger.warning("⚠️ Fullscreen exit 1/2, pausing test")
            self.controller.pause_for_warning()
            return

        if lifecycle not in (LifecycleState.IN_PROGRESS, LifecycleState.PAUSED):
            return
        status = self.state.strike()
        logger.warning(f"🚨 Fullscreen exit {status.exit_count}/2, submitting test")
        self.coordinator.submit(SubmitTrigger.INTEGRITY_VIOLATION)

    async def resume(self) -> bool:
        """
        Re-enter full-screen after a warning.

        Returns:
            True if the session is running again, False if it was submitted
        """
        if self.controller.state is not LifecycleState.PAUSED:
            raise SessionStateError(f"Cannot resume from {self.controller.state.value}")

        logger.info("🔄 Resuming test, requesting fullscreen")
        try:
            await self.surface.request()
        except (FullscreenError, CapabilityUnsupported) as e:
            logger.error(f"❌ Failed to return to fullscreen: {e}")
            if self._suppressed():
                return False
            status = self.state.strike()
            logger.warning(f"🚨 Re-entry refused after warning ({status.exit_count}/2), submitting test")
            self.coordinator.submit(SubmitTrigger.INTEGRITY_VIOLATION)
            return False

        # Submission may have started while the request was pending
        if self._suppressed() or self.controller.state is not LifecycleState.PAUSED:
            return False
        self.state.is_fullscreen = True
        self.controller.resume_after_warning()
        logger.info("✅ Back in fullscreen, test resumed")
        return True

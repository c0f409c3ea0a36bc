"""
Full-screen capability surfaces.

The session engine only talks to ``FullscreenSurface``; how full-screen is
actually entered (a remote renderer, a Playwright page) lives in subclasses.
"""

from typing import Callable, List

from proctor.logger import setup_logger
from proctor.utils.exceptions import CapabilityUnsupported, FullscreenError

logger = setup_logger(__name__)

FullscreenListener = Callable[[bool], None]


class FullscreenSurface:
    """
    Base surface: tracks the last known state and fans change events out
    to subscribers. Subclasses implement ``request`` and ``exit``.
    """

    supported = True

    def __init__(self) -> None:
        self._active = False
        self._listeners: List[FullscreenListener] = []

    def is_active(self) -> bool:
        return self._active

    def subscribe(self, listener: FullscreenListener) -> Callable[[], None]:
        """
        Register for change notifications.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, active: bool) -> None:
        self._active = active
        for listener in list(self._listeners):
            listener(active)

    async def request(self) -> None:
        raise NotImplementedError

    async def exit(self) -> None:
        raise NotImplementedError


class UnsupportedFullscreen(FullscreenSurface):
    """Surface for environments without any full-screen API."""

    supported = False

    def subscribe(self, listener: FullscreenListener) -> Callable[[], None]:
        raise CapabilityUnsupported("Fullscreen change notifications not supported")

    async def request(self) -> None:
        raise CapabilityUnsupported("Fullscreen not supported")

    async def exit(self) -> None:
        return None


class ReportedFullscreen(FullscreenSurface):
    """
    Full-screen state as reported by a remote renderer (browser UI over HTTP).

    The renderer enters full-screen itself and posts every change; a request
    succeeds only once the renderer has confirmed it is in full-screen.
    """

    def __init__(self) -> None:
        super().__init__()
        self.requested = False

    def report(self, active: bool) -> None:
        logger.debug(f"Renderer reported fullscreen={active}")
        self._notify(active)

    async def request(self) -> None:
        self.requested = True
        if not self._active:
            raise FullscreenError("Renderer has not confirmed full-screen")

    async def exit(self) -> None:
        self.requested = False
        if self._active:
            self._notify(False)

"""
Local kiosk runner: one worker, one Chromium window, one session.

The renderer page draws whatever snapshot it is handed via
``window.renderProctorSession`` and calls back into Python through the
exposed bindings below.
"""

import asyncio

from proctor.backend.client import AssessmentApiClient
from proctor.config import settings
from proctor.controller import SessionController
from proctor.logger import setup_logger
from proctor.models import LifecycleState
from proctor.primitives.browser import browser_manager
from proctor.utils.exceptions import ProctorError, SessionStateError

logger = setup_logger(__name__)

_RENDER = "(s) => window.renderProctorSession && window.renderProctorSession(s)"


async def run_kiosk(worker_id: str, renderer_url: str) -> None:
    """
    Run a full session for ``worker_id`` until the worker returns to the
    dashboard or closes the window.
    """
    api = AssessmentApiClient()
    surface = await browser_manager.open_kiosk(renderer_url)
    page = surface.page
    controller = SessionController(api, surface)
    done = asyncio.Event()
    released = False

    def on_select(question_index: int, option_index: int) -> bool:
        try:
            return controller.select(int(question_index), int(option_index))
        except SessionStateError as e:
            logger.warning(f"⚠️ {e}")
            return False

    async def on_resume() -> bool:
        try:
            return await controller.resume()
        except SessionStateError as e:
            logger.warning(f"⚠️ {e}")
            return False

    async def on_dashboard() -> None:
        await controller.back_to_dashboard()
        done.set()

    await page.expose_function("__proctorSelect", on_select)
    await page.expose_function("__proctorResume", on_resume)
    await page.expose_function("__proctorDashboard", on_dashboard)
    page.on("close", lambda _: done.set())

    try:
        test = await controller.load_assigned_test(worker_id)
        await controller.start(test)

        while not done.is_set():
            snapshot = controller.snapshot()
            await page.evaluate(_RENDER, snapshot.model_dump(mode="json", by_alias=True))
            if not released and snapshot.state in (LifecycleState.RESULT, LifecycleState.SCOREBOARD):
                await surface.release()
                released = True
            try:
                await asyncio.wait_for(done.wait(), timeout=settings.tick_interval_seconds)
            except asyncio.TimeoutError:
                pass
    except ProctorError as e:
        logger.error(f"🔥 Kiosk session failed: {e}")
        raise
    finally:
        if controller.context is not None:
            await controller.back_to_dashboard()
        await api.close()
        await browser_manager.close()

"""
Session lifecycle orchestration.

The controller owns the lifecycle state and one ``SessionContext`` per
started test. Every timer, scheduled callback and submission belongs to a
context; callbacks from a context that is no longer current are dropped.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import List, Optional, Union

from proctor.config import Settings, settings as default_settings
from proctor.integrity import IntegrityMonitor, IntegrityState
from proctor.logger import setup_logger
from proctor.models import (
    AssignedTest,
    LifecycleState,
    QuestionView,
    ScoreboardRow,
    SessionSnapshot,
    SubmissionResult,
    SubmitTrigger,
    TestSession,
)
from proctor.primitives.fullscreen import FullscreenSurface
from proctor.recorder import AnswerRecorder, AnswerState
from proctor.scheduling import ScheduledTask
from proctor.scoreboard import aggregate_scores
from proctor.submission import SubmissionCoordinator
from proctor.timer import QuestionTimer, TotalTimer
from proctor.utils.exceptions import (
    CapabilityUnsupported,
    FullscreenError,
    InvalidTestError,
    ProctorError,
    SessionStateError,
)

logger = setup_logger(__name__)


@dataclass
class SessionContext:
    """Everything that lives and dies with one started test."""

    session: TestSession
    answers: AnswerState
    integrity: IntegrityState
    question_timer: QuestionTimer = field(init=False)
    total_timer: TotalTimer = field(init=False)
    coordinator: SubmissionCoordinator = field(init=False)
    recorder: AnswerRecorder = field(init=False)
    monitor: IntegrityMonitor = field(init=False)
    show_warning: bool = False
    result: Optional[SubmissionResult] = None
    scoreboard: List[ScoreboardRow] = field(default_factory=list)
    scoreboard_task: Optional[ScheduledTask] = None
    scoreboard_fetch: Optional[asyncio.Task] = None
    scoreboard_since: Optional[float] = None

    def cancel_pending(self) -> None:
        self.question_timer.cancel()
        self.total_timer.cancel()
        self.recorder.cancel_feedback()


class SessionController:
    """
    Drives one test-taker through dashboard -> test -> result -> scoreboard.
    """

    def __init__(
        self,
        api,
        fullscreen: FullscreenSurface,
        config: Optional[Settings] = None,
    ) -> None:
        """
        Args:
            api: Backend client (``AssessmentApiClient`` or compatible)
            fullscreen: Full-screen capability of the rendering surface
            config: Settings override (pacing intervals, thresholds)
        """
        self.api = api
        self.fullscreen = fullscreen
        self.settings = config or default_settings
        self._state = LifecycleState.DASHBOARD
        self._context: Optional[SessionContext] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def context(self) -> Optional[SessionContext]:
        return self._context

    def _transition(self, new_state: LifecycleState) -> None:
        if new_state is not self._state:
            logger.info(f"🔀 {self._state.value} -> {new_state.value}")
        self._state = new_state

    def _is_current(self, ctx: SessionContext) -> bool:
        return ctx is self._context

    def _require_context(self) -> SessionContext:
        if self._context is None:
            raise SessionStateError("No test session is active")
        return self._context

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def load_assigned_test(self, worker_id: str) -> TestSession:
        """Fetch the worker's assigned test and normalize it for start()."""
        assigned = await self.api.fetch_assigned_test(worker_id)
        return TestSession.from_assigned(assigned, self.settings.minutes_threshold)

    async def start(self, test: Union[TestSession, AssignedTest]) -> SessionSnapshot:
        """
        Start a session and begin both countdowns.

        Raises:
            InvalidTestError if the test has no questions
            SessionStateError if a session is already active
        """
        if self._context is not None:
            raise SessionStateError("A test session is already active")
        if isinstance(test, AssignedTest):
            test = TestSession.from_assigned(test, self.settings.minutes_threshold)
        if not test.questions:
            raise InvalidTestError("Test has no questions")

        cfg = self.settings
        ctx = SessionContext(
            session=test,
            answers=AnswerState(test.question_count),
            integrity=IntegrityState(),
        )
        ctx.question_timer = QuestionTimer(
            test.duration_per_question_seconds,
            on_expire=lambda: self._on_question_timeout(ctx),
            tick_interval=cfg.tick_interval_seconds,
        )
        ctx.total_timer = TotalTimer(
            test.total_duration_seconds,
            on_expire=lambda: self._on_total_timeout(ctx),
            tick_interval=cfg.tick_interval_seconds,
        )
        ctx.coordinator = SubmissionCoordinator(
            session=test,
            answers=ctx.answers,
            integrity=ctx.integrity,
            surface=self.fullscreen,
            api=self.api,
            cancel_pending=ctx.cancel_pending,
            on_complete=lambda result: self._on_complete_for(ctx, result),
        )
        ctx.recorder = AnswerRecorder(
            session=test,
            answers=ctx.answers,
            question_timer=ctx.question_timer,
            submit=ctx.coordinator.submit,
            is_accepting=lambda: self._is_current(ctx)
            and self._state is LifecycleState.IN_PROGRESS,
            is_locked=lambda: ctx.integrity.completed_naturally,
            feedback_delay=cfg.feedback_delay_seconds,
        )
        ctx.monitor = IntegrityMonitor(ctx.integrity, self.fullscreen, self, ctx.coordinator)

        self._context = ctx
        logger.info(
            f"🚀 Starting test {test.test_attempt_id}: {test.question_count} questions, "
            f"{test.duration_per_question_seconds}s each, {test.total_duration_seconds}s total"
        )
        self._transition(LifecycleState.IN_PROGRESS)
        ctx.question_timer.start()
        ctx.total_timer.start()
        ctx.monitor.attach()

        await self._enter_fullscreen()
        return self.snapshot()

    async def _enter_fullscreen(self) -> None:
        try:
            await self.fullscreen.request()
        except CapabilityUnsupported as e:
            logger.warning(f"⚠️ {e}, continuing without fullscreen")
        except FullscreenError as e:
            logger.warning(f"⚠️ Could not enter fullscreen: {e}")

    def select(self, question_index: int, option_index: int) -> bool:
        """Answer the active question. Returns True if accepted."""
        return self._require_context().recorder.select(question_index, option_index)

    async def resume(self) -> bool:
        """User-initiated resume after the first integrity warning."""
        return await self._require_context().monitor.resume()

    def on_submission_complete(self, result: SubmissionResult) -> None:
        """Show the result, then switch to the scoreboard after a fixed delay."""
        ctx = self._require_context()
        ctx.result = result
        ctx.show_warning = False
        self._transition(LifecycleState.RESULT)
        ctx.scoreboard_task = ScheduledTask(
            self.settings.result_display_seconds,
            lambda: self._show_scoreboard(ctx),
            name="result-display",
        ).start()

    async def back_to_dashboard(self) -> None:
        """Tear down the current session, whatever state it is in."""
        ctx = self._context
        self._context = None
        if ctx is not None:
            ctx.cancel_pending()
            ctx.monitor.detach()
            if ctx.scoreboard_task is not None:
                ctx.scoreboard_task.cancel()
            if ctx.scoreboard_fetch is not None and not ctx.scoreboard_fetch.done():
                ctx.scoreboard_fetch.cancel()

        if self.fullscreen.supported and self.fullscreen.is_active():
            try:
                await self.fullscreen.exit()
            except ProctorError as e:
                logger.warning(f"⚠️ Error exiting fullscreen: {e}")

        self._transition(LifecycleState.DASHBOARD)

    # ------------------------------------------------------------------
    # Integrity hooks
    # ------------------------------------------------------------------
    def pause_for_warning(self) -> None:
        ctx = self._require_context()
        if self._state is not LifecycleState.IN_PROGRESS:
            raise SessionStateError(f"Cannot pause from {self._state.value}")
        ctx.question_timer.pause()
        ctx.total_timer.pause()
        ctx.show_warning = True
        self._transition(LifecycleState.PAUSED)

    def resume_after_warning(self) -> None:
        ctx = self._require_context()
        if self._state is not LifecycleState.PAUSED:
            raise SessionStateError(f"Cannot resume from {self._state.value}")
        ctx.show_warning = False
        self._transition(LifecycleState.IN_PROGRESS)
        ctx.question_timer.resume()
        ctx.total_timer.resume()

    # ------------------------------------------------------------------
    # Timer / submission callbacks
    # ------------------------------------------------------------------
    def _on_question_timeout(self, ctx: SessionContext) -> None:
        if not self._is_current(ctx):
            return
        logger.info(f"⌛ Time up for Q{ctx.recorder.current_index + 1}")
        ctx.recorder.advance_or_finish()

    def _on_total_timeout(self, ctx: SessionContext) -> None:
        if not self._is_current(ctx):
            return
        logger.warning("⌛ Total test time expired, submitting")
        ctx.coordinator.submit(SubmitTrigger.TIME_EXPIRED)

    def _on_complete_for(self, ctx: SessionContext, result: SubmissionResult) -> None:
        if not self._is_current(ctx):
            logger.info("Submission finished for a session that was already closed")
            return
        self.on_submission_complete(result)

    def _show_scoreboard(self, ctx: SessionContext) -> None:
        if not self._is_current(ctx):
            return
        self._transition(LifecycleState.SCOREBOARD)
        ctx.scoreboard_since = time.monotonic()
        ctx.scoreboard_fetch = asyncio.create_task(self._load_scoreboard(ctx), name="scoreboard")

    async def _load_scoreboard(self, ctx: SessionContext) -> None:
        try:
            records = await self.api.fetch_scores()
        except ProctorError as e:
            logger.error(f"❌ Error fetching scoreboard: {e}")
            return
        if self._is_current(ctx):
            ctx.scoreboard = aggregate_scores(records)

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------
    def snapshot(self) -> SessionSnapshot:
        ctx = self._context
        if ctx is None:
            return SessionSnapshot(state=self._state)

        recorder = ctx.recorder
        question_view = None
        if self._state in (LifecycleState.IN_PROGRESS, LifecycleState.PAUSED):
            question = ctx.session.questions[recorder.current_index]
            question_view = QuestionView(
                index=recorder.current_index,
                id=question.id,
                text=question.text,
                format=question.format,
                options=question.options,
            )

        return SessionSnapshot(
            state=self._state,
            test_attempt_id=ctx.session.test_attempt_id,
            total_questions=ctx.session.question_count,
            answered=ctx.answers.answered_count(),
            question=question_view,
            question_time_left=ctx.question_timer.time_remaining(),
            total_time_left=ctx.total_timer.time_remaining(),
            exit_count=ctx.integrity.exit_count,
            is_fullscreen=ctx.integrity.is_fullscreen,
            show_warning=ctx.show_warning,
            feedback=recorder.feedback,
            result=ctx.result,
            scoreboard=ctx.scoreboard,
        )

"""
Single authority for submitting a session's answers.
"""

import asyncio
from typing import Callable, Optional

from proctor.integrity import IntegrityState
from proctor.logger import setup_logger
from proctor.models import (
    UNANSWERED,
    AnswerEntry,
    GuardState,
    SubmissionPayload,
    SubmissionResult,
    SubmitTrigger,
    TestSession,
)
from proctor.primitives.fullscreen import FullscreenSurface
from proctor.recorder import AnswerState
from proctor.utils.exceptions import FullscreenError, SubmissionTransportError
from proctor.utils.helpers import format_json

logger = setup_logger(__name__)

TRANSPORT_ISSUE_MESSAGE = "Test submitted with issues. Please contact administrator."
TECHNICAL_ISSUE_MESSAGE = "Test submitted with technical issues."


def build_payload(session: TestSession, answers: AnswerState) -> SubmissionPayload:
    """
    One entry per question, in question order; unanswered questions carry
    the sentinel.
    """
    return SubmissionPayload(
        answers=[
            AnswerEntry(question_id=question.id, selected_option=answers.get(index))
            for index, question in enumerate(session.questions)
        ]
    )


def degraded_result(
    session: TestSession,
    answers: AnswerState,
    message: str,
    trigger: Optional[SubmitTrigger] = None,
) -> SubmissionResult:
    """Locally computed stand-in when the backend result is unavailable."""
    return SubmissionResult(
        score=answers.answered_count(),
        total_questions=session.question_count,
        message=message,
        degraded=True,
        trigger=trigger,
    )


class SubmissionCoordinator:
    """
    Accepts the first submit request for a session and ignores the rest.

    ``submit`` does its check-and-set synchronously, so it cannot interleave
    with another trigger on the same event loop. The network call itself
    runs on a separate task; the coordinator never retries it.
    """

    def __init__(
        self,
        session: TestSession,
        answers: AnswerState,
        integrity: IntegrityState,
        surface: FullscreenSurface,
        api,
        cancel_pending: Callable[[], None],
        on_complete: Callable[[SubmissionResult], None],
    ) -> None:
        """
        Args:
            session: The running test
            answers: Shared answer state
            integrity: Integrity state whose latch is set on submit
            surface: Full-screen surface to leave before submitting
            api: Client exposing ``submit_test(attempt_id, payload)``
            cancel_pending: Cancels timers and feedback for the session
            on_complete: Receives the final (possibly degraded) result
        """
        self.session = session
        self.answers = answers
        self.integrity = integrity
        self.surface = surface
        self.api = api
        self._cancel_pending = cancel_pending
        self._on_complete = on_complete

        self.guard = GuardState.NOT_STARTED
        self.trigger: Optional[SubmitTrigger] = None
        self.result: Optional[SubmissionResult] = None
        self._task: Optional[asyncio.Task] = None

    def submit(self, trigger: SubmitTrigger) -> Optional[asyncio.Task]:
        """
        Request submission.

        Returns:
            The submission task for the accepted request, None if another
            trigger got there first
        """
        if self.guard is not GuardState.NOT_STARTED:
            logger.debug(
                f"Submission already {self.guard.value} ({self.trigger.value}), ignoring {trigger.value}"
            )
            return None

        self.guard = GuardState.IN_FLIGHT
        self.trigger = trigger
        self.integrity.latch()
        self._cancel_pending()
        logger.info(f"📤 Submitting test {self.session.test_attempt_id} ({trigger.value})")

        self._task = asyncio.create_task(self._perform(trigger), name="submission")
        return self._task

    async def wait(self) -> Optional[SubmissionResult]:
        """Wait for an accepted submission to finish."""
        if self._task is not None:
            await self._task
        return self.result

    async def _exit_fullscreen(self) -> None:
        if not self.surface.supported or not self.surface.is_active():
            return
        try:
            await self.surface.exit()
        except FullscreenError as e:
            logger.warning(f"⚠️ Could not exit fullscreen: {e}")
        except Exception as e:
            logger.warning(f"⚠️ Unexpected error exiting fullscreen: {e}")

    async def _perform(self, trigger: SubmitTrigger) -> None:
        await self._exit_fullscreen()

        payload = build_payload(self.session, self.answers)
        answered = self.answers.answered_count()
        unanswered = sum(1 for e in payload.answers if e.selected_option == UNANSWERED)
        logger.info(f"   {answered} answered, {unanswered} unanswered")
        logger.debug(f"Payload: {format_json(payload.to_wire())}")

        try:
            result = await self.api.submit_test(self.session.test_attempt_id, payload)
            if result.score > answered:
                logger.warning(
                    f"⚠️ Backend score {result.score} exceeds {answered} answered, clamping"
                )
                result = result.model_copy(update={"score": answered})
            result = result.model_copy(update={"trigger": trigger})
            logger.info(f"✅ Submitted: {result.score}/{result.total_questions}")
        except SubmissionTransportError as e:
            logger.error(f"❌ Submission failed, using local result: {e}")
            result = degraded_result(self.session, self.answers, TRANSPORT_ISSUE_MESSAGE, trigger)
        except Exception as e:
            logger.error(f"🔥 Unexpected submission error: {e}", exc_info=True)
            result = degraded_result(self.session, self.answers, TECHNICAL_ISSUE_MESSAGE, trigger)

        self.guard = GuardState.DONE
        self.result = result
        self._on_complete(result)

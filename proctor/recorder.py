"""
Answer recording and question pacing.
"""

from typing import Callable, List, Optional

from proctor.logger import setup_logger
from proctor.models import UNANSWERED, FeedbackView, SubmitTrigger, TestSession
from proctor.scheduling import ScheduledTask
from proctor.timer import QuestionTimer

logger = setup_logger(__name__)


class AnswerState:
    """
    Selected option per question index. Each index accepts exactly one write.
    """

    def __init__(self, size: int) -> None:
        self._answers: List[int] = [UNANSWERED] * size

    def __len__(self) -> int:
        return len(self._answers)

    def get(self, index: int) -> int:
        return self._answers[index]

    def is_answered(self, index: int) -> bool:
        return self._answers[index] != UNANSWERED

    def record(self, index: int, option_index: int) -> bool:
        """
        Write an answer.

        Returns:
            True if written, False if the index was already answered
        """
        if self.is_answered(index):
            return False
        self._answers[index] = option_index
        return True

    def answered_count(self) -> int:
        return sum(1 for a in self._answers if a != UNANSWERED)

    def as_list(self) -> List[int]:
        return list(self._answers)


class AnswerRecorder:
    """
    Records answers for the active question and moves the session forward.

    After an accepted answer the question timer is held while feedback is
    shown; once the feedback interval ends the recorder either advances to
    the next question or asks the coordinator to submit.
    """

    def __init__(
        self,
        session: TestSession,
        answers: AnswerState,
        question_timer: QuestionTimer,
        submit: Callable[[SubmitTrigger], object],
        is_accepting: Callable[[], bool],
        is_locked: Callable[[], bool],
        feedback_delay: float = 2.5,
    ) -> None:
        """
        Args:
            session: The running test
            answers: Shared write-once answer state
            question_timer: Timer to hold during feedback and reset on advance
            submit: SubmissionCoordinator.submit
            is_accepting: True while the session takes answers (in progress)
            is_locked: True once submission has begun
            feedback_delay: Seconds feedback stays visible before moving on
        """
        self.session = session
        self.answers = answers
        self.question_timer = question_timer
        self._submit = submit
        self._is_accepting = is_accepting
        self._is_locked = is_locked
        self.feedback_delay = feedback_delay

        self.current_index = 0
        self.feedback: Optional[FeedbackView] = None
        self._feedback_task: Optional[ScheduledTask] = None

    @property
    def is_last_question(self) -> bool:
        return self.current_index >= self.session.question_count - 1

    @property
    def feedback_pending(self) -> bool:
        return self._feedback_task is not None and self._feedback_task.pending

    def select(self, question_index: int, option_index: int) -> bool:
        """
        Record an answer for the active question.

        Returns:
            True if the answer was accepted
        """
        if self._is_locked():
            logger.debug("Submission already started, ignoring answer")
            return False
        if not self._is_accepting():
            logger.debug("Session not accepting answers")
            return False
        if question_index != self.current_index:
            logger.debug(f"Answer for Q{question_index + 1} but Q{self.current_index + 1} is active")
            return False
        question = self.session.questions[question_index]
        if not 0 <= option_index < len(question.options):
            logger.warning(f"⚠️ Option {option_index} out of range for Q{question_index + 1}")
            return False
        if not self.answers.record(question_index, option_index):
            logger.info(f"Q{question_index + 1} already answered")
            return False

        self.question_timer.cancel()
        self.feedback = FeedbackView(
            question_index=question_index,
            selected_option=option_index,
            is_correct=question.is_correct(option_index),
        )
        logger.info(f"📝 Q{question_index + 1} answered with option {option_index}")

        self._feedback_task = ScheduledTask(
            self.feedback_delay, self._end_feedback, name=f"feedback-q{question_index + 1}"
        ).start()
        return True

    def _end_feedback(self) -> None:
        self.feedback = None
        self._feedback_task = None
        self.advance_or_finish()

    def advance_or_finish(self) -> None:
        """Move to the next question, or submit after the last one."""
        if self._is_locked():
            return
        if self.feedback_pending:
            # The feedback task will advance on its own
            return
        if self.is_last_question:
            logger.info("🏁 Last question done, submitting")
            self._submit(SubmitTrigger.LAST_ANSWER_GIVEN)
            return

        self.current_index += 1
        self.question_timer.reset(self.session.duration_per_question_seconds)
        logger.info(f"➡️  Moving to Q{self.current_index + 1}/{self.session.question_count}")

    def cancel_feedback(self) -> None:
        if self._feedback_task is not None:
            self._feedback_task.cancel()
            self._feedback_task = None
        self.feedback = None

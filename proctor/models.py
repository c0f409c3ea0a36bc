from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from proctor.utils.exceptions import InvalidTestError
from proctor.utils.helpers import normalize_total_duration

# Submitted for every question the worker never answered
UNANSWERED = -1


class QuestionFormat(str, Enum):
    STANDARD = "standard"
    NARRATIVE = "narrative"


# Backend vocabulary
_FORMAT_ALIASES = {"mcq": QuestionFormat.STANDARD, "upsc": QuestionFormat.NARRATIVE}


class LifecycleState(str, Enum):
    DASHBOARD = "dashboard"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    RESULT = "result"
    SCOREBOARD = "scoreboard"


class GuardState(str, Enum):
    NOT_STARTED = "not_started"
    IN_FLIGHT = "in_flight"
    DONE = "done"


class SubmitTrigger(str, Enum):
    TIME_EXPIRED = "time_expired"
    LAST_ANSWER_GIVEN = "last_answer_given"
    INTEGRITY_VIOLATION = "integrity_violation"


class Question(BaseModel):
    """A single question as delivered by the backend."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    text: str = Field(validation_alias=AliasChoices("text", "questionText"))
    format: QuestionFormat = Field(
        default=QuestionFormat.STANDARD,
        validation_alias=AliasChoices("format", "questionFormat"),
    )
    options: Tuple[str, ...]
    correct_option: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("correct_option", "correctOption", "correctAnswer"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("format", mode="before")
    @classmethod
    def map_format(cls, v: Any) -> Any:
        if v is None:
            return QuestionFormat.STANDARD
        if isinstance(v, str):
            return _FORMAT_ALIASES.get(v.lower(), v.lower())
        return v

    @field_validator("options")
    @classmethod
    def require_options(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        if not v:
            raise ValueError("question must carry at least one option")
        return v

    def is_correct(self, option_index: int) -> Optional[bool]:
        """Correctness for display-time feedback; None when the key is not embedded."""
        if self.correct_option is None:
            return None
        return option_index == self.correct_option


class AssignedTest(BaseModel):
    """Response body of the assigned-test fetch."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    questions: List[Question] = Field(default_factory=list)
    duration_per_question: int = Field(
        validation_alias=AliasChoices("durationPerQuestion", "duration_per_question"), gt=0
    )
    total_test_duration: float = Field(
        validation_alias=AliasChoices("totalTestDuration", "total_test_duration"), gt=0
    )
    test_attempt_id: str = Field(
        validation_alias=AliasChoices("testAttemptId", "test_attempt_id")
    )
    test_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("testId", "test_id")
    )
    topic: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("latestTopic", "topic")
    )

    @field_validator("test_attempt_id", "test_id", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        return None if v is None else str(v)


class TestSession(BaseModel):
    """
    Immutable description of one started test.

    ``total_duration_seconds`` is already normalized; build instances with
    ``from_assigned`` so the minutes/seconds rule is applied exactly once.
    """

    model_config = ConfigDict(frozen=True)

    test_id: str
    questions: Tuple[Question, ...]
    duration_per_question_seconds: int = Field(gt=0)
    total_duration_seconds: int = Field(gt=0)
    test_attempt_id: str

    @classmethod
    def from_assigned(cls, test: AssignedTest, minutes_threshold: int = 100) -> "TestSession":
        if not test.questions:
            raise InvalidTestError("Assigned test has no questions")
        try:
            return cls(
                test_id=test.test_id or test.test_attempt_id,
                questions=tuple(test.questions),
                duration_per_question_seconds=test.duration_per_question,
                total_duration_seconds=normalize_total_duration(
                    test.total_test_duration, minutes_threshold
                ),
                test_attempt_id=test.test_attempt_id,
            )
        except ValidationError as e:
            raise InvalidTestError(f"Assigned test has unusable durations: {e}") from e

    @property
    def question_count(self) -> int:
        return len(self.questions)


class AnswerEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_id: str = Field(alias="questionId")
    selected_option: int = Field(alias="selectedOption")


class SubmissionPayload(BaseModel):
    answers: List[AnswerEntry]

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class SubmissionResult(BaseModel):
    """Backend grading result, or a locally computed stand-in."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    score: int = Field(ge=0)
    total_questions: int = Field(alias="totalQuestions", ge=0)
    message: Optional[str] = None
    degraded: bool = False
    trigger: Optional[SubmitTrigger] = None


class WorkerRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("id", "_id"))
    name: Optional[str] = None
    department: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return None if v is None else str(v)


class ScoreRecord(BaseModel):
    """One completed attempt as listed by the scores endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("id", "_id"))
    worker: Optional[WorkerRef] = None
    score: int = 0
    total_questions: int = Field(
        default=0, validation_alias=AliasChoices("totalQuestions", "total_questions")
    )
    created_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("createdAt", "created_at")
    )
    topic: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return None if v is None else str(v)


class ScoreboardRow(BaseModel):
    worker_id: Optional[str]
    name: str
    total_score: int = 0
    total_possible_score: int = 0
    test_count: int = 0
    percentage: int = 0


class QuestionView(BaseModel):
    index: int
    id: str
    text: str
    format: QuestionFormat
    options: Tuple[str, ...]


class FeedbackView(BaseModel):
    question_index: int
    selected_option: int
    is_correct: Optional[bool] = None


class SessionSnapshot(BaseModel):
    """Read model handed to whatever renders the session."""

    state: LifecycleState
    test_attempt_id: Optional[str] = None
    total_questions: int = 0
    answered: int = 0
    question: Optional[QuestionView] = None
    question_time_left: int = 0
    total_time_left: int = 0
    exit_count: int = 0
    is_fullscreen: bool = False
    show_warning: bool = False
    feedback: Optional[FeedbackView] = None
    result: Optional[SubmissionResult] = None
    scoreboard: List[ScoreboardRow] = Field(default_factory=list)

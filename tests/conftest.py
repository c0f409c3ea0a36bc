"""Shared fixtures: in-memory backend, scriptable fullscreen surface, fast pacing."""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from proctor.config import Settings
from proctor.controller import SessionController
from proctor.models import AssignedTest, ScoreRecord, SubmissionPayload, SubmissionResult
from proctor.models import TestSession as Session
from proctor.primitives.fullscreen import FullscreenSurface
from proctor.utils.exceptions import ApiError, FullscreenError


def make_assigned(
    count: int = 3, duration: int = 100, total: float = 600, attempt_id: str = "attempt-1"
) -> AssignedTest:
    return AssignedTest.model_validate(
        {
            "testAttemptId": attempt_id,
            "durationPerQuestion": duration,
            "totalTestDuration": total,
            "questions": [
                {
                    "_id": f"q{i}",
                    "questionText": f"Question {i}?",
                    "options": ["alpha", "beta", "gamma", "delta"],
                    "correctOption": i % 4,
                    "questionFormat": "mcq",
                }
                for i in range(count)
            ],
        }
    )


def make_session(count: int = 3, duration: int = 100, total: int = 1000) -> Session:
    """Session with seconds used as-is (no minutes normalization)."""
    assigned = make_assigned(count=count, duration=duration)
    return Session(
        test_id="test-1",
        questions=tuple(assigned.questions),
        duration_per_question_seconds=duration,
        total_duration_seconds=total,
        test_attempt_id=assigned.test_attempt_id,
    )


class FakeApi:
    """Backend double recording every submission."""

    def __init__(self, assigned: Optional[AssignedTest] = None) -> None:
        self.assigned = assigned or make_assigned()
        self.submissions: List[Tuple[str, SubmissionPayload]] = []
        self.fail_with: Optional[Exception] = None
        self.score: Optional[int] = None
        self.gate: Optional[asyncio.Event] = None
        self.scores: List[ScoreRecord] = []
        self.fail_assigned: Optional[Exception] = None
        self.score_queries: List[Dict[str, Any]] = []
        self.details: Dict[str, Dict[str, Any]] = {}

    async def fetch_assigned_test(self, worker_id: str) -> AssignedTest:
        if self.fail_assigned is not None:
            raise self.fail_assigned
        return self.assigned

    async def submit_test(self, test_attempt_id: str, payload: SubmissionPayload) -> SubmissionResult:
        self.submissions.append((test_attempt_id, payload))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        answered = sum(1 for entry in payload.answers if entry.selected_option != -1)
        return SubmissionResult(
            score=answered if self.score is None else self.score,
            total_questions=len(payload.answers),
            message="Test submitted successfully!",
        )

    async def fetch_scores(self, date=None, worker_id=None) -> List[ScoreRecord]:
        self.score_queries.append({"date": date, "worker_id": worker_id})
        if worker_id is None:
            return list(self.scores)
        return [r for r in self.scores if r.worker is not None and r.worker.id == worker_id]

    async def fetch_test_details(self, test_id: str) -> Dict[str, Any]:
        if test_id not in self.details:
            raise ApiError(f"GET /test/{test_id}/details failed: HTTP 404")
        return self.details[test_id]


class FakeFullscreen(FullscreenSurface):
    """Behaves like a browser: entering and leaving full-screen fires change events."""

    def __init__(self, grant: bool = True) -> None:
        super().__init__()
        self.grant = grant
        self.requests = 0
        self.exits = 0

    async def request(self) -> None:
        self.requests += 1
        if not self.grant:
            raise FullscreenError("denied")
        if not self._active:
            self._notify(True)

    async def exit(self) -> None:
        self.exits += 1
        if self._active:
            self._notify(False)

    def user_exit(self) -> None:
        self._notify(False)

    def user_enter(self) -> None:
        self._notify(True)


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(
        tick_interval_seconds=0.01,
        feedback_delay_seconds=0.05,
        result_display_seconds=0.05,
    )


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def surface() -> FakeFullscreen:
    return FakeFullscreen()


@pytest.fixture
async def controller(api, surface, fast_settings):
    controller = SessionController(api, surface, fast_settings)
    yield controller
    await controller.back_to_dashboard()


@pytest.fixture
def wait_until() -> Callable:
    async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.005)

    return _wait_until

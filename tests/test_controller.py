import asyncio

import pytest

from proctor.controller import SessionController
from proctor.models import (
    AssignedTest,
    GuardState,
    LifecycleState,
    ScoreRecord,
    SubmitTrigger,
)
from proctor.models import TestSession as Session
from proctor.utils.exceptions import ApiError, InvalidTestError, SessionStateError

from conftest import make_assigned, make_session


async def answer_all(controller, wait_until, option=0):
    count = controller.context.session.question_count
    for index in range(count):
        await wait_until(lambda: controller.context.recorder.current_index == index)
        assert controller.select(index, option) is True


class TestStart:
    async def test_start_from_assigned_normalizes_minutes(self, controller, surface):
        snapshot = await controller.start(make_assigned(count=2, duration=30, total=10))
        ctx = controller.context

        assert ctx.session.total_duration_seconds == 600
        assert ctx.total_timer.time_remaining() == 600
        assert ctx.question_timer.time_remaining() == 30
        assert snapshot.state is LifecycleState.IN_PROGRESS
        assert snapshot.question.index == 0
        assert snapshot.question.options == ("alpha", "beta", "gamma", "delta")
        assert snapshot.is_fullscreen is True
        assert surface.requests == 1

    async def test_load_assigned_test(self, controller, api):
        session = await controller.load_assigned_test("worker-1")
        assert isinstance(session, Session)
        assert session.question_count == 3
        assert session.total_duration_seconds == 600

    async def test_load_propagates_backend_errors(self, controller, api):
        api.fail_assigned = ApiError("GET failed: HTTP 404")
        with pytest.raises(ApiError):
            await controller.load_assigned_test("worker-1")
        assert controller.state is LifecycleState.DASHBOARD

    async def test_empty_test_rejected(self, controller):
        empty = Session(
            test_id="t",
            questions=(),
            duration_per_question_seconds=30,
            total_duration_seconds=60,
            test_attempt_id="a",
        )
        with pytest.raises(InvalidTestError):
            await controller.start(empty)
        assert controller.state is LifecycleState.DASHBOARD
        assert controller.context is None

    async def test_empty_assigned_test_rejected(self, controller):
        assigned = AssignedTest.model_validate(
            {"testAttemptId": "a1", "durationPerQuestion": 30, "totalTestDuration": 10}
        )
        with pytest.raises(InvalidTestError):
            await controller.start(assigned)

    async def test_cannot_start_twice(self, controller):
        await controller.start(make_session())
        with pytest.raises(SessionStateError):
            await controller.start(make_session())

    async def test_fullscreen_refusal_does_not_block_start(self, api, surface, fast_settings):
        surface.grant = False
        controller = SessionController(api, surface, fast_settings)
        snapshot = await controller.start(make_session())
        assert snapshot.state is LifecycleState.IN_PROGRESS
        assert snapshot.is_fullscreen is False
        await controller.back_to_dashboard()


class TestLifecycle:
    async def test_answering_everything_submits_and_shows_scoreboard(
        self, controller, api, wait_until
    ):
        api.scores = [
            ScoreRecord.model_validate(
                {"_id": "r1", "worker": {"_id": "w1", "name": "Ada"}, "score": 2, "totalQuestions": 3}
            )
        ]
        await controller.start(make_session(count=3))
        await answer_all(controller, wait_until)

        await wait_until(lambda: controller.state is LifecycleState.SCOREBOARD)
        ctx = controller.context
        assert ctx.result.trigger is SubmitTrigger.LAST_ANSWER_GIVEN
        assert ctx.result.score == 3
        assert len(api.submissions) == 1

        await wait_until(lambda: controller.context.scoreboard != [])
        assert controller.snapshot().scoreboard[0].name == "Ada"

    async def test_question_timeouts_walk_to_submission(self, controller, api, wait_until):
        await controller.start(make_session(count=3, duration=2, total=1000))

        await wait_until(lambda: controller.context.result is not None)
        ctx = controller.context
        assert ctx.result.trigger is SubmitTrigger.LAST_ANSWER_GIVEN
        assert ctx.result.score == 0
        _, payload = api.submissions[0]
        assert [e.selected_option for e in payload.answers] == [-1, -1, -1]

    async def test_total_timeout_submits(self, controller, api, wait_until):
        await controller.start(make_session(count=3, duration=100, total=3))
        await wait_until(lambda: controller.context.result is not None)
        assert controller.context.result.trigger is SubmitTrigger.TIME_EXPIRED
        assert len(api.submissions) == 1

    async def test_warning_then_completion(self, controller, surface, api, wait_until):
        await controller.start(make_session(count=2))
        surface.user_exit()
        assert controller.state is LifecycleState.PAUSED
        assert await controller.resume() is True

        await answer_all(controller, wait_until)
        await wait_until(lambda: controller.context.result is not None)

        ctx = controller.context
        assert ctx.result.trigger is SubmitTrigger.LAST_ANSWER_GIVEN
        assert ctx.integrity.exit_count == 1
        assert len(api.submissions) == 1

    async def test_result_state_precedes_scoreboard(self, controller, api, wait_until):
        api.gate = asyncio.Event()
        await controller.start(make_session(count=1))
        controller.select(0, 0)
        await wait_until(lambda: len(api.submissions) == 1)
        assert controller.state is LifecycleState.IN_PROGRESS

        api.gate.set()
        await wait_until(lambda: controller.state is not LifecycleState.IN_PROGRESS)
        assert controller.state is LifecycleState.RESULT
        snapshot = controller.snapshot()
        assert snapshot.question is None
        assert snapshot.result.score == 1


class TestBackToDashboard:
    async def test_abandon_mid_test_cancels_everything(self, controller, surface, api):
        await controller.start(make_session(count=2, duration=2, total=5))
        ctx = controller.context

        await controller.back_to_dashboard()
        await asyncio.sleep(0.1)

        assert controller.state is LifecycleState.DASHBOARD
        assert controller.context is None
        assert not ctx.question_timer.running
        assert not ctx.total_timer.running
        assert api.submissions == []
        assert not surface.is_active()

    async def test_abandon_during_feedback(self, controller, api):
        await controller.start(make_session(count=1))
        controller.select(0, 1)
        await controller.back_to_dashboard()
        await asyncio.sleep(0.1)
        assert api.submissions == []
        assert controller.state is LifecycleState.DASHBOARD

    async def test_abandon_during_result_stops_scoreboard(self, controller, wait_until):
        await controller.start(make_session(count=1))
        controller.select(0, 1)
        await wait_until(lambda: controller.context.result is not None)

        await controller.back_to_dashboard()
        await asyncio.sleep(0.1)
        assert controller.state is LifecycleState.DASHBOARD

    async def test_late_submission_result_is_dropped(self, controller, api, wait_until):
        api.gate = asyncio.Event()
        await controller.start(make_session(count=1))
        controller.select(0, 1)
        await wait_until(lambda: len(api.submissions) == 1)
        old = controller.context

        await controller.back_to_dashboard()
        api.gate.set()
        await old.coordinator.wait()

        assert old.coordinator.guard is GuardState.DONE
        assert controller.state is LifecycleState.DASHBOARD
        assert controller.context is None

    async def test_new_session_after_dashboard(self, controller, api, wait_until):
        await controller.start(make_session(count=1))
        await controller.back_to_dashboard()

        await controller.start(make_session(count=1))
        assert controller.context.coordinator.guard is GuardState.NOT_STARTED
        assert controller.context.integrity.exit_count == 0
        controller.select(0, 2)
        await wait_until(lambda: controller.context.result is not None)
        assert len(api.submissions) == 1

    async def test_operations_need_a_session(self, controller):
        with pytest.raises(SessionStateError):
            controller.select(0, 0)
        with pytest.raises(SessionStateError):
            await controller.resume()
        assert controller.snapshot().state is LifecycleState.DASHBOARD

import json

import httpx
import pytest

from proctor.backend.client import AssessmentApiClient
from proctor.models import AnswerEntry, SubmissionPayload
from proctor.utils.exceptions import ApiError, SubmissionTransportError

ASSIGNED = {
    "testAttemptId": "att-1",
    "testId": "t-1",
    "durationPerQuestion": 30,
    "totalTestDuration": 10,
    "latestTopic": "Safety",
    "questions": [
        {"_id": "q1", "questionText": "Q?", "options": ["a", "b"], "questionFormat": "mcq"}
    ],
}


def make_client(handler, **kwargs):
    return AssessmentApiClient(
        base_url="http://backend/api",
        token="secret",
        transport=httpx.MockTransport(handler),
        retry_backoff=0,
        max_retries=3,
        **kwargs,
    )


def payload():
    return SubmissionPayload(
        answers=[
            AnswerEntry(question_id="q1", selected_option=1),
            AnswerEntry(question_id="q2", selected_option=-1),
        ]
    )


async def test_fetch_assigned_test():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=ASSIGNED)

    client = make_client(handler)
    test = await client.fetch_assigned_test("w-7")
    await client.close()

    assert seen[0].url.path == "/api/test/questions/w-7"
    assert seen[0].headers["Authorization"] == "Bearer secret"
    assert test.test_attempt_id == "att-1"
    assert test.topic == "Safety"
    assert len(test.questions) == 1


async def test_fetch_retries_server_errors():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json=ASSIGNED)

    client = make_client(handler)
    test = await client.fetch_assigned_test("w-7")
    await client.close()
    assert len(calls) == 3
    assert test.test_id == "t-1"


async def test_fetch_gives_up_after_retries():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    client = make_client(handler)
    with pytest.raises(ApiError):
        await client.fetch_assigned_test("w-7")
    await client.close()
    assert len(calls) == 3


async def test_fetch_does_not_retry_client_errors():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, json={"message": "No test assigned"})

    client = make_client(handler)
    with pytest.raises(ApiError):
        await client.fetch_assigned_test("w-7")
    await client.close()
    assert len(calls) == 1


async def test_malformed_assigned_test():
    client = make_client(lambda request: httpx.Response(200, json={"questions": []}))
    with pytest.raises(ApiError):
        await client.fetch_assigned_test("w-7")
    await client.close()


async def test_submit_sends_wire_payload():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"score": 1, "totalQuestions": 2, "message": "ok"})

    client = make_client(handler)
    result = await client.submit_test("att-1", payload())
    await client.close()

    assert seen[0].method == "POST"
    assert seen[0].url.path == "/api/test/submit/att-1"
    assert json.loads(seen[0].content) == {
        "answers": [
            {"questionId": "q1", "selectedOption": 1},
            {"questionId": "q2", "selectedOption": -1},
        ]
    }
    assert result.score == 1
    assert result.total_questions == 2


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"message": "boom"}),
        httpx.Response(200, content=b"not json"),
        httpx.Response(200, json={"message": "missing score"}),
    ],
)
async def test_submit_failures_are_transport_errors(response):
    calls = []

    def handler(request):
        calls.append(request)
        return response

    client = make_client(handler)
    with pytest.raises(SubmissionTransportError):
        await client.submit_test("att-1", payload())
    await client.close()
    assert len(calls) == 1


async def test_submit_connection_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = make_client(handler)
    with pytest.raises(SubmissionTransportError):
        await client.submit_test("att-1", payload())
    await client.close()


async def test_fetch_scores_with_filters():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json=[
                {
                    "_id": "r1",
                    "worker": {"_id": "w1", "name": "Ada"},
                    "score": 4,
                    "totalQuestions": 5,
                    "createdAt": "2024-05-01T10:00:00Z",
                }
            ],
        )

    client = make_client(handler)
    records = await client.fetch_scores(date="2024-05-01", worker_id="w1")
    await client.close()

    assert seen[0].url.path == "/api/test/scores"
    assert seen[0].url.params["date"] == "2024-05-01"
    assert seen[0].url.params["workerId"] == "w1"
    assert records[0].worker.name == "Ada"
    assert records[0].created_at.day == 1


async def test_fetch_scores_rejects_non_list():
    client = make_client(lambda request: httpx.Response(200, json={"oops": True}))
    with pytest.raises(ApiError):
        await client.fetch_scores()
    await client.close()


async def test_fetch_test_details():
    def handler(request):
        assert request.url.path == "/api/test/t-1/details"
        return httpx.Response(200, json={"questions": [{"isCorrect": True}]})

    client = make_client(handler)
    details = await client.fetch_test_details("t-1")
    await client.close()
    assert details["questions"][0]["isCorrect"] is True

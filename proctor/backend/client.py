"""
HTTP client for the assessment backend.

Reads (assigned test, scores, review detail) retry transient failures with
exponential backoff. Answer submission is sent exactly once and never
retried; callers substitute a local result on failure.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from proctor.config import settings
from proctor.logger import setup_logger
from proctor.models import AssignedTest, ScoreRecord, SubmissionPayload, SubmissionResult
from proctor.utils.exceptions import ApiError, SubmissionTransportError

logger = setup_logger(__name__)


class AssessmentApiClient:
    """
    Async client for the test endpoints of the workforce backend.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_backoff: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            base_url: API root, e.g. ``http://host/api`` (default from config)
            token: Bearer token forwarded to the backend
            timeout: Request timeout in seconds
            max_retries: Attempts for read requests
            retry_backoff: First backoff delay; doubles per attempt
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.max_retries = max_retries or settings.fetch_max_retries
        self.retry_backoff = retry_backoff

        headers = {
            "Content-Type": "application/json",
            "User-Agent": "Quiz-Proctor/1.0",
        }
        token = token or settings.api_token
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=timeout or settings.request_timeout,
            headers=headers,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def fetch_assigned_test(self, worker_id: str) -> AssignedTest:
        """
        Fetch (or resume) the test assigned to a worker.

        Raises:
            ApiError if the request fails or the body is malformed
        """
        data = await self._get_json(f"/test/questions/{worker_id}")
        try:
            test = AssignedTest.model_validate(data)
        except ValidationError as e:
            raise ApiError(f"Malformed assigned test: {e}") from e
        logger.info(
            f"📋 Assigned test {test.test_attempt_id}: {len(test.questions)} questions"
        )
        return test

    async def submit_test(
        self, test_attempt_id: str, payload: SubmissionPayload
    ) -> SubmissionResult:
        """
        Submit all answers for an attempt. Single attempt, no retry.

        Raises:
            SubmissionTransportError on any transport, status or parse failure
        """
        logger.info(f"📤 POST /test/submit/{test_attempt_id} ({len(payload.answers)} answers)")
        try:
            response = await self._client.post(
                f"/test/submit/{test_attempt_id}", json=payload.to_wire()
            )
            response.raise_for_status()
            return SubmissionResult.model_validate(response.json())
        except httpx.HTTPStatusError as e:
            raise SubmissionTransportError(
                f"Submission rejected: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise SubmissionTransportError(f"Submission transport failed: {e}") from e
        except (ValueError, ValidationError) as e:
            raise SubmissionTransportError(f"Unreadable submission response: {e}") from e

    async def fetch_test_details(self, test_id: str) -> Dict[str, Any]:
        """Per-question correctness breakdown for a completed test."""
        return await self._get_json(f"/test/{test_id}/details")

    async def fetch_scores(
        self, date: Optional[str] = None, worker_id: Optional[str] = None
    ) -> List[ScoreRecord]:
        """
        List completed attempts, optionally for one day and/or one worker.
        """
        params: Dict[str, str] = {}
        if date:
            params["date"] = date
        if worker_id:
            params["workerId"] = worker_id

        data = await self._get_json("/test/scores", params=params)
        if not isinstance(data, list):
            raise ApiError("Scores response is not a list")
        try:
            return [ScoreRecord.model_validate(item) for item in data]
        except ValidationError as e:
            raise ApiError(f"Malformed score record: {e}") from e

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        """GET with retries on timeouts, transport errors and 5xx."""
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.get(path, params=params)
                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                logger.warning(f"⚠️ HTTP {status} on GET {path} (attempt {attempt}/{self.max_retries})")

                if status < 500:
                    # Client error - don't retry
                    raise ApiError(f"GET {path} failed: HTTP {status}") from e
                if attempt == self.max_retries:
                    raise ApiError(f"GET {path} failed: HTTP {status}") from e

            except httpx.HTTPError as e:
                logger.warning(f"⏱️ {type(e).__name__} on GET {path} (attempt {attempt}/{self.max_retries})")
                if attempt == self.max_retries:
                    raise ApiError(f"GET {path} failed: {e}") from e

            except ValueError as e:
                raise ApiError(f"GET {path} returned invalid JSON: {e}") from e

            await asyncio.sleep(self.retry_backoff * 2 ** (attempt - 1))

        raise ApiError(f"GET {path} failed after all retries")

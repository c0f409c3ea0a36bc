import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Set

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from proctor.backend.client import AssessmentApiClient
from proctor.config import Settings, settings
from proctor.controller import SessionController
from proctor.logger import setup_logger
from proctor.models import LifecycleState, ScoreboardRow, ScoreRecord, SessionSnapshot
from proctor.primitives.fullscreen import ReportedFullscreen
from proctor.scoreboard import aggregate_scores, filter_by_name, filter_history_by_date
from proctor.utils.exceptions import ApiError, ProctorError, SessionStateError

logger = setup_logger(__name__)


# ----------------------------------------------------------------------
# Request / response bodies
# ----------------------------------------------------------------------
class StartSessionRequest(BaseModel):
    worker_id: str


class StartSessionResponse(BaseModel):
    session_id: str
    snapshot: SessionSnapshot


class AnswerRequest(BaseModel):
    question_index: int
    option_index: int


class AnswerResponse(BaseModel):
    accepted: bool
    snapshot: SessionSnapshot


class FullscreenReport(BaseModel):
    active: bool


class HealthResponse(BaseModel):
    status: str
    active_sessions: int


# ----------------------------------------------------------------------
# Live sessions
# ----------------------------------------------------------------------
@dataclass
class LiveSession:
    worker_id: str
    controller: SessionController
    surface: ReportedFullscreen


sessions: Dict[str, LiveSession] = {}
# worker_id -> session_id of the worker's current session
worker_sessions: Dict[str, str] = {}
# Workers whose session is being created (test fetch in flight)
_starting: Set[str] = set()

api_client = AssessmentApiClient()

# Submission has completed for sessions in these states
_SUBMITTED_STATES = (LifecycleState.RESULT, LifecycleState.SCOREBOARD)


def get_api():
    return api_client


def get_settings() -> Settings:
    return settings


def get_live_session(session_id: str) -> LiveSession:
    live = sessions.get(session_id)
    if live is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return live


async def close_session(session_id: str) -> None:
    """Tear down a session and forget it."""
    live = sessions.pop(session_id, None)
    if live is None:
        return
    if worker_sessions.get(live.worker_id) == session_id:
        del worker_sessions[live.worker_id]
    await live.controller.back_to_dashboard()


def _expired(live: LiveSession, ttl: float) -> bool:
    controller = live.controller
    if controller.state is LifecycleState.DASHBOARD:
        return True
    ctx = controller.context
    if ctx is None or ctx.scoreboard_since is None:
        return False
    return time.monotonic() - ctx.scoreboard_since >= ttl


async def prune_sessions(ttl: float) -> None:
    """Evict sessions that have sat on the scoreboard longer than ``ttl``."""
    for session_id, live in list(sessions.items()):
        if _expired(live, ttl):
            logger.info(f"🧹 Evicting finished session {session_id}")
            await close_session(session_id)


async def close_all_sessions() -> None:
    for session_id in list(sessions):
        await close_session(session_id)


async def _claim_worker(worker_id: str) -> None:
    """
    Reserve ``worker_id`` for a new session.

    A previous session whose answers were already submitted is closed.

    Raises:
        SessionStateError if the worker has a session that has not submitted yet
    """
    if worker_id in _starting:
        raise SessionStateError(f"A session is already starting for worker {worker_id}")
    existing = worker_sessions.get(worker_id)
    live = sessions.get(existing) if existing is not None else None
    if live is not None and live.controller.state not in _SUBMITTED_STATES:
        raise SessionStateError(f"Worker {worker_id} already has an active test session")

    _starting.add(worker_id)
    if existing is not None:
        try:
            await close_session(existing)
        except Exception:
            _starting.discard(worker_id)
            raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager: startup and shutdown."""
    logger.info("🚀 Starting Proctor Service")
    logger.info(f"   Backend: {settings.api_base_url}")
    yield
    logger.info("🛑 Shutting down service")
    await close_all_sessions()
    await api_client.close()


app = FastAPI(title="Quiz Proctor", version="0.1.0", lifespan=lifespan)


# ----------------------------------------------------------------------
# Endpoints
# ----------------------------------------------------------------------
@app.get("/health", response_model=HealthResponse)
async def health_check(config: Settings = Depends(get_settings)):
    """Health check endpoint."""
    await prune_sessions(config.finished_session_ttl_seconds)
    return HealthResponse(status="healthy", active_sessions=len(sessions))


@app.post("/sessions", response_model=StartSessionResponse)
async def start_session(
    request: StartSessionRequest,
    api=Depends(get_api),
    config: Settings = Depends(get_settings),
):
    """
    Fetch the worker's assigned test and start a proctored session.

    One session per worker: a second start while the first has not
    submitted is rejected with 409.
    """
    await prune_sessions(config.finished_session_ttl_seconds)
    worker_id = request.worker_id
    await _claim_worker(worker_id)
    try:
        surface = ReportedFullscreen()
        controller = SessionController(api, surface, config)
        test = await controller.load_assigned_test(worker_id)
        snapshot = await controller.start(test)

        session_id = str(uuid.uuid4())
        sessions[session_id] = LiveSession(worker_id, controller, surface)
        worker_sessions[worker_id] = session_id
    finally:
        _starting.discard(worker_id)

    logger.info(f"📥 Session {session_id} started for worker {worker_id}")
    return StartSessionResponse(session_id=session_id, snapshot=snapshot)


@app.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session(live: LiveSession = Depends(get_live_session)):
    return live.controller.snapshot()


@app.post("/sessions/{session_id}/answers", response_model=AnswerResponse)
async def answer_question(request: AnswerRequest, live: LiveSession = Depends(get_live_session)):
    accepted = live.controller.select(request.question_index, request.option_index)
    return AnswerResponse(accepted=accepted, snapshot=live.controller.snapshot())


@app.post("/sessions/{session_id}/fullscreen", response_model=SessionSnapshot)
async def report_fullscreen(
    report: FullscreenReport, live: LiveSession = Depends(get_live_session)
):
    """Renderer reports a fullscreenchange event."""
    live.surface.report(report.active)
    return live.controller.snapshot()


@app.post("/sessions/{session_id}/resume", response_model=SessionSnapshot)
async def resume_session(live: LiveSession = Depends(get_live_session)):
    await live.controller.resume()
    return live.controller.snapshot()


@app.post("/sessions/{session_id}/dashboard")
async def back_to_dashboard(session_id: str, live: LiveSession = Depends(get_live_session)):
    await close_session(session_id)
    return {"status": "ok"}


@app.get("/scoreboard", response_model=List[ScoreboardRow])
async def scoreboard(
    date: Optional[str] = None,
    search: Optional[str] = None,
    api=Depends(get_api),
):
    records = await api.fetch_scores(date=date)
    return filter_by_name(aggregate_scores(records), search)


@app.get("/workers/{worker_id}/history", response_model=List[ScoreRecord])
async def worker_history(
    worker_id: str,
    on: Optional[date] = Query(default=None, alias="date"),
    api=Depends(get_api),
):
    """A worker's completed attempts, optionally limited to one day."""
    records = await api.fetch_scores(worker_id=worker_id)
    return filter_history_by_date(records, on)


@app.get("/tests/{test_id}/details")
async def review_details(test_id: str, api=Depends(get_api)) -> Dict[str, Any]:
    """Per-question review of a completed test, passed through from the backend."""
    return await api.fetch_test_details(test_id)


# ----------------------------------------------------------------------
# Error handling
# ----------------------------------------------------------------------
@app.exception_handler(SessionStateError)
async def session_state_handler(request: Request, exc: SessionStateError):
    logger.warning(f"⚠️ Invalid session operation: {exc}")
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ApiError)
async def backend_error_handler(request: Request, exc: ApiError):
    logger.error(f"🔥 Backend Error: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(ProctorError)
async def proctor_exception_handler(request: Request, exc: ProctorError):
    """Handle custom application exceptions."""
    logger.error(f"🔥 Application Error: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"🔥 Unexpected Error: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

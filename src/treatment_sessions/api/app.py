"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from treatment_sessions.api.admin import router as admin_router
from treatment_sessions.api.models import (
    CounsellingRequest,
    CreateSessionRequest,
    OwnerSummaryResponse,
    SessionStatusResponse,
)
from treatment_sessions.app_logging import configure_logging
from treatment_sessions.config import parse_duration_seconds
from treatment_sessions.containers import AppContainer
from treatment_sessions.domain.errors import (
    AlreadyStarted,
    InvalidCounselling,
    NotLost,
    RecoveryDenied,
    SessionError,
    SessionNotActive,
    UnknownSession,
    UnknownTask,
)
from treatment_sessions.domain.tasks import TaskGraph

_UNPROCESSABLE = 422

_ERROR_STATUS: dict[type[SessionError], int] = {
    UnknownSession: status.HTTP_404_NOT_FOUND,
    UnknownTask: _UNPROCESSABLE,
    InvalidCounselling: _UNPROCESSABLE,
    AlreadyStarted: status.HTTP_409_CONFLICT,
    SessionNotActive: status.HTTP_409_CONFLICT,
    NotLost: status.HTTP_409_CONFLICT,
    RecoveryDenied: status.HTTP_409_CONFLICT,
}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            state_container.store.restore()
        except Exception:
            logger.exception("Failed to restore active sessions")
        state_container.scheduler.start()
        yield
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.exception_handler(SessionError)
    async def session_error_handler(
        request: Request, exc: SessionError
    ) -> JSONResponse:
        """Translate rejected transitions into HTTP errors."""
        body: dict[str, object] = {
            "error": type(exc).__name__,
            "detail": str(exc),
        }
        if isinstance(exc, RecoveryDenied):
            body["remaining"] = exc.remaining
        return JSONResponse(
            status_code=_ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST),
            content=body,
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/sessions", status_code=status.HTTP_201_CREATED)
    async def create_session(
        payload: CreateSessionRequest, request: Request
    ) -> SessionStatusResponse:
        """Register a patient session in the waiting room."""
        state_container: AppContainer = request.app.state.container
        try:
            duration = parse_duration_seconds(
                payload.duration_seconds, state_container.settings.default_duration
            )
            graph = TaskGraph.for_prescription(
                payload.dispense_items, payload.accepted_instructions
            )
        except ValueError as exc:
            raise HTTPException(status_code=_UNPROCESSABLE, detail=str(exc)) from exc
        service = state_container.session_service
        record = await service.create_session(
            owner_id=payload.owner_id,
            subject_id=payload.subject_id,
            duration=duration,
            task_graph=graph,
        )
        return SessionStatusResponse.from_view(await service.get_status(record.id))

    @app.get("/sessions/{session_id}")
    async def get_status(session_id: UUID, request: Request) -> SessionStatusResponse:
        """Return the current status of a session."""
        state_container: AppContainer = request.app.state.container
        view = await state_container.session_service.get_status(session_id)
        return SessionStatusResponse.from_view(view)

    @app.post("/sessions/{session_id}/start")
    async def start_session(
        session_id: UUID, request: Request
    ) -> SessionStatusResponse:
        """Start the treatment timer."""
        state_container: AppContainer = request.app.state.container
        view = await state_container.session_service.start(session_id)
        return SessionStatusResponse.from_view(view)

    @app.post("/sessions/{session_id}/tasks/{task_id}")
    async def complete_task(
        session_id: UUID, task_id: str, request: Request
    ) -> SessionStatusResponse:
        """Mark a dispensing, counselling or billing task as done."""
        state_container: AppContainer = request.app.state.container
        view = await state_container.session_service.complete_task(session_id, task_id)
        return SessionStatusResponse.from_view(view)

    @app.post("/sessions/{session_id}/counselling")
    async def submit_counselling(
        session_id: UUID, payload: CounsellingRequest, request: Request
    ) -> SessionStatusResponse:
        """Submit counselling instructions for the patient."""
        state_container: AppContainer = request.app.state.container
        view = await state_container.session_service.submit_counselling(
            session_id, payload.instructions
        )
        return SessionStatusResponse.from_view(view)

    @app.post("/sessions/{session_id}/recover")
    async def recover_session(
        session_id: UUID, request: Request
    ) -> SessionStatusResponse:
        """Spend a recovery token to restart a lost patient."""
        state_container: AppContainer = request.app.state.container
        view = await state_container.session_service.recover(session_id)
        return SessionStatusResponse.from_view(view)

    @app.get("/owners/{owner_id}/summary")
    async def owner_summary(owner_id: str, request: Request) -> OwnerSummaryResponse:
        """Return waiting-room counters for a student."""
        state_container: AppContainer = request.app.state.container
        summary = await state_container.session_service.summarize_owner(owner_id)
        return OwnerSummaryResponse.from_summary(summary)

    return app

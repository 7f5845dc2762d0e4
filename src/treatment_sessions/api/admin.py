"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from treatment_sessions.api.models import SessionStatusResponse

if TYPE_CHECKING:
    from treatment_sessions.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health(request: Request) -> dict[str, object]:
    """Admin health check with scheduler state."""
    container: AppContainer = request.app.state.container
    return {
        "status": "ok",
        "armed_deadlines": container.scheduler.pending(),
        "cached_sessions": container.store.cached_sessions,
    }


@router.get("/owners/{owner_id}/sessions", dependencies=[Depends(require_admin)])
async def owner_sessions(owner_id: str, request: Request) -> dict[str, object]:
    """Return every session an owner has, with live status."""
    container: AppContainer = request.app.state.container
    views = await container.session_service.list_sessions(owner_id)
    return {
        "owner_id": owner_id,
        "recovery_tokens_remaining": container.ledger.remaining(owner_id),
        "sessions": [
            SessionStatusResponse.from_view(view).model_dump(mode="json")
            for view in views
        ],
    }

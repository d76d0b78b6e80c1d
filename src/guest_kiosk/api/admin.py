"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from guest_kiosk.api.models import OperationOut, SessionOut
from guest_kiosk.domain.errors import RemoteStoreError

if TYPE_CHECKING:
    from guest_kiosk.containers import AppContainer

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


@router.get("/queue", dependencies=[Depends(require_admin)])
async def list_queue(request: Request) -> dict[str, object]:
    """Return operations waiting to reach the remote store."""
    container: AppContainer = request.app.state.container
    operations = container.local_store.list_operations()
    return {"operations": [OperationOut.from_operation(op) for op in operations]}


@router.delete("/queue", dependencies=[Depends(require_admin)])
async def clear_queue(request: Request) -> dict[str, object]:
    """Discard every pending operation."""
    container: AppContainer = request.app.state.container
    discarded = container.local_store.count_operations()
    container.local_store.replace_operations([])
    return {"discarded": discarded}


@router.get("/remote-sessions", dependencies=[Depends(require_admin)])
async def list_remote_sessions(request: Request) -> dict[str, object]:
    """Return the sessions currently stored remotely."""
    container: AppContainer = request.app.state.container
    try:
        sessions = await container.remote_store.list_sessions()
    except RemoteStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)
        ) from exc
    return {"sessions": [SessionOut.from_session(s) for s in sessions]}

"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status

from guest_kiosk.api.admin import router as admin_router
from guest_kiosk.api.models import (
    CheckInRequest,
    CheckOutRequest,
    ConnectivityRequest,
    SessionOut,
    SyncReportOut,
    SyncStatusOut,
    TapRequest,
)
from guest_kiosk.app_logging import configure_logging
from guest_kiosk.containers import AppContainer
from guest_kiosk.domain.errors import InvalidScanError


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.container.sync_engine.start()
        yield
        try:
            await app.state.container.close_resources()
        except Exception:
            logger.exception("Failed to close kiosk resources")

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/sessions")
    async def list_sessions(request: Request) -> dict[str, object]:
        """Return locally known sessions, newest first."""
        state_container: AppContainer = request.app.state.container
        sessions = state_container.scan_service.list_sessions()
        return {"sessions": [SessionOut.from_session(s) for s in sessions]}

    @app.get("/sessions/active/{tag_id}")
    async def active_session(tag_id: str, request: Request) -> SessionOut:
        """Return the active session of a tag."""
        state_container: AppContainer = request.app.state.container
        session = state_container.scan_service.lookup_active(tag_id)
        if session is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No active session for this tag",
            )
        return SessionOut.from_session(session)

    @app.post("/taps")
    async def tap(payload: TapRequest, request: Request) -> dict[str, object]:
        """Tell the screen whether a tapped tag should check in or out."""
        state_container: AppContainer = request.app.state.container
        session = state_container.scan_service.lookup_active(payload.tag_id)
        if session is None:
            return {"action": "check_in", "session": None}
        return {"action": "check_out", "session": SessionOut.from_session(session)}

    @app.post("/sessions/check-in", status_code=status.HTTP_201_CREATED)
    async def check_in(payload: CheckInRequest, request: Request) -> dict[str, object]:
        """Record a guest entry."""
        state_container: AppContainer = request.app.state.container
        try:
            result = state_container.scan_service.check_in(
                tag_id=payload.tag_id,
                guest_type=payload.guest_type,
                adults=payload.adults,
                children=payload.children,
            )
        except InvalidScanError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
            ) from exc
        return {
            "outcome": result.outcome.value,
            "session": SessionOut.from_session(result.session),
            "closed": [s.session_id for s in result.forced_closures],
        }

    @app.post("/sessions/check-out")
    async def check_out(
        payload: CheckOutRequest, request: Request
    ) -> dict[str, object]:
        """Record a guest exit."""
        state_container: AppContainer = request.app.state.container
        result = state_container.scan_service.check_out(payload.tag_id)
        if not result.found:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No active session for this tag",
            )
        return {
            "outcome": result.outcome.value,
            "session": SessionOut.from_session(result.session),
        }

    @app.get("/sync/status")
    async def sync_status(request: Request) -> SyncStatusOut:
        """Return the current sync status."""
        state_container: AppContainer = request.app.state.container
        return SyncStatusOut.from_snapshot(state_container.sync_engine.snapshot)

    @app.post("/sync")
    async def sync_now(request: Request) -> SyncReportOut:
        """Run one sync cycle immediately."""
        state_container: AppContainer = request.app.state.container
        report = await state_container.sync_engine.run_cycle()
        return SyncReportOut.from_report(report)

    @app.post("/connectivity")
    async def connectivity(
        payload: ConnectivityRequest, request: Request
    ) -> SyncStatusOut:
        """Receive the device connectivity signal."""
        state_container: AppContainer = request.app.state.container
        state_container.sync_engine.set_online(payload.online)
        return SyncStatusOut.from_snapshot(state_container.sync_engine.snapshot)

    return app

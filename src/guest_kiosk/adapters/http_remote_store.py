"""Remote session store backed by the kiosk backend's REST API."""

import logging
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from guest_kiosk.adapters.session_payloads import (
    fields_to_wire,
    parse_session,
    parse_session_rows,
    session_to_wire,
)
from guest_kiosk.domain.errors import RemoteErrorKind, RemoteStoreError
from guest_kiosk.domain.sessions import Session
from guest_kiosk.services.sync import RemoteSessionStore

logger = logging.getLogger(__name__)

_DUPLICATE_MARKER = "already exists"


@dataclass
class HttpxRemoteSessionStore(RemoteSessionStore):
    """Talks to ``/api/scans`` endpoints with httpx."""

    base_url: str
    http_client: httpx.AsyncClient
    timeout: float = 10.0

    @classmethod
    def create(cls, base_url: str, timeout: float = 10.0) -> "HttpxRemoteSessionStore":
        """Create a store with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
            timeout=timeout,
        )

    async def list_sessions(self) -> list[Session]:
        """Fetch every session from the backend."""
        response = await self._request("GET", "/api/scans")
        payload = _json_or_none(response)
        rows = payload.get("scans") if isinstance(payload, dict) else payload
        return parse_session_rows(rows)

    async def create_session(self, session: Session) -> Session:
        """Create a session; a duplicate id is reported as a conflict."""
        response = await self._request(
            "POST", "/api/scans", json=session_to_wire(session)
        )
        return _session_or(response, session)

    async def update_session(
        self, session_id: str, fields: dict[str, object]
    ) -> Session:
        """Patch fields of an existing session."""
        response = await self._request(
            "PATCH", f"/api/scans/{session_id}", json=fields_to_wire(fields)
        )
        try:
            return parse_session(_json_or_none(response))
        except ValidationError as exc:
            raise RemoteStoreError(
                RemoteErrorKind.UNEXPECTED,
                f"invalid session returned for {session_id}",
            ) from exc

    async def delete_session(self, session_id: str) -> None:
        """Delete a session; a missing session counts as deleted."""
        try:
            await self._request("DELETE", f"/api/scans/{session_id}")
        except RemoteStoreError as exc:
            if exc.kind is not RemoteErrorKind.NOT_FOUND:
                raise

    async def find_active_by_tag(self, tag_id: str) -> Session | None:
        """Return the active session for a tag, if the backend has one."""
        try:
            response = await self._request(
                "GET", "/api/scans", params={"tagId": tag_id}
            )
        except RemoteStoreError as exc:
            if exc.kind is RemoteErrorKind.NOT_FOUND:
                return None
            raise
        try:
            session = parse_session(_json_or_none(response))
        except ValidationError:
            logger.warning("Ignoring malformed active session for tag %s", tag_id)
            return None
        return session if session.is_active else None

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _request(self, method: str, path: str, **kwargs: object) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self.http_client.request(
                method, url, timeout=self.timeout, **kwargs
            )
        except httpx.TimeoutException as exc:
            raise RemoteStoreError(RemoteErrorKind.TIMEOUT, str(exc)) from exc
        except httpx.HTTPError as exc:
            raise RemoteStoreError(RemoteErrorKind.NETWORK, str(exc)) from exc
        if response.status_code == httpx.codes.NOT_FOUND:
            raise RemoteStoreError(
                RemoteErrorKind.NOT_FOUND, f"{method} {path} returned 404"
            )
        if method == "POST" and _is_duplicate(response):
            raise RemoteStoreError(
                RemoteErrorKind.CONFLICT,
                f"{method} {path} returned {response.status_code}",
            )
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RemoteStoreError(RemoteErrorKind.HTTP, str(exc)) from exc
        return response


def _is_duplicate(response: httpx.Response) -> bool:
    """Return True when a create was rejected because the id is taken."""
    if response.status_code == httpx.codes.CONFLICT:
        return True
    if response.status_code != httpx.codes.BAD_REQUEST:
        return False
    # The backend also answers 400 for missing fields; only a duplicate
    # error message means the session reached the server.
    payload = _json_or_none(response)
    error = payload.get("error") if isinstance(payload, dict) else None
    return isinstance(error, str) and _DUPLICATE_MARKER in error.lower()


def _json_or_none(response: httpx.Response) -> object:
    try:
        return response.json()
    except ValueError:
        return None


def _session_or(response: httpx.Response, fallback: Session) -> Session:
    try:
        return parse_session(_json_or_none(response))
    except ValidationError:
        return fallback

"""Merge and dedupe rules keeping one active session per tag.

All functions here are pure: they never read the clock or touch a store, so
running them twice over the same input yields the same output. The caller
passes ``now`` when sessions may need to be force-closed.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

from guest_kiosk.domain.sessions import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DedupeResult:
    """Sessions after dedupe plus the ones that were force-closed."""

    sessions: list[Session]
    closed: list[Session]


def merge_remote_into_local(
    remote: list[Session], local: list[Session]
) -> list[Session]:
    """Merge the server view into the local view, one session id at a time."""
    local_by_id = {session.session_id: session for session in local}
    remote_by_id = {session.session_id: session for session in remote}
    merged: list[Session] = []
    for session_id in local_by_id.keys() | remote_by_id.keys():
        local_session = local_by_id.get(session_id)
        remote_session = remote_by_id.get(session_id)
        if local_session is None:
            merged.append(remote_session)
        elif remote_session is None:
            merged.append(local_session)
        else:
            merged.append(_resolve(remote_session, local_session))
    merged.sort(key=lambda session: (session.entry_time, session.session_id))
    return merged


def _resolve(remote: Session, local: Session) -> Session:
    if not local.is_active:
        if remote.is_active:
            logger.info(
                "Keeping local checkout of %s over active server copy",
                local.session_id,
            )
        return local
    if not remote.is_active:
        return remote
    if local.entry_time > remote.entry_time:
        return local
    return remote


def dedupe_active_sessions(sessions: list[Session], now: datetime) -> DedupeResult:
    """Force-close all but the most recent active session of every tag."""
    active_by_tag: dict[str, list[Session]] = defaultdict(list)
    for session in sessions:
        if session.is_active:
            active_by_tag[session.tag_id].append(session)

    closed_by_id: dict[str, Session] = {}
    for tag_id, active in active_by_tag.items():
        if len(active) < 2:  # noqa: PLR2004
            continue
        ranked = sorted(active, key=_recency_key, reverse=True)
        keeper, *stale = ranked
        logger.warning(
            "Tag %s had %d active sessions; keeping %s, closing %s",
            tag_id,
            len(active),
            keeper.session_id,
            ", ".join(session.session_id for session in stale),
        )
        for session in stale:
            closed_by_id[session.session_id] = session.close(now)

    if not closed_by_id:
        return DedupeResult(sessions=list(sessions), closed=[])
    result = [closed_by_id.get(session.session_id, session) for session in sessions]
    closed = [
        closed_by_id[session.session_id]
        for session in sessions
        if session.session_id in closed_by_id
    ]
    return DedupeResult(sessions=result, closed=closed)


def _recency_key(session: Session) -> tuple[datetime, str]:
    return session.entry_time, session.session_id


def prevent_reopen(existing: Session | None, incoming: Session) -> Session:
    """Keep a stored checkout when an active copy would overwrite it."""
    if existing is None or existing.is_active or not incoming.is_active:
        return incoming
    logger.error(
        "Blocked reopening closed session %s; keeping it closed",
        incoming.session_id,
    )
    return incoming.close(existing.exit_time)


def unpushed_closures(remote: list[Session], merged: list[Session]) -> list[Session]:
    """Return merged sessions that are closed while the server copy is active."""
    active_remote_ids = {
        session.session_id for session in remote if session.is_active
    }
    return [
        session
        for session in merged
        if not session.is_active and session.session_id in active_remote_ids
    ]

"""Sessions API — session edits with artifact invalidation.

PUT /api/v1/sessions/{session_id}
    Update title, transcript and/or note. Omitted fields keep their current
    value. A change to transcript or note deletes the session's and its
    client's artifacts and may generate a session title.
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from mypraxis.api.deps import get_account_id
from mypraxis.artifacts.context import ContextResolver
from mypraxis.artifacts.invalidation import ContentState, SessionUpdateService
from mypraxis.db.repositories import SessionRepository
from mypraxis.errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["sessions"])

_updates: SessionUpdateService | None = None
_contexts: ContextResolver | None = None
_sessions: SessionRepository | None = None


def set_dependencies(updates: SessionUpdateService, contexts: ContextResolver, sessions: SessionRepository) -> None:
    global _updates, _contexts, _sessions
    _updates = updates
    _contexts = contexts
    _sessions = sessions


class SessionUpdateRequest(BaseModel):
    title: str | None = None
    transcript: str | None = None
    note: str | None = None


class SessionResponse(BaseModel):
    id: str
    client_id: str
    title: str | None
    transcript: str | None
    note: str | None
    metadata: dict
    updated_at: datetime
    content_changed: bool


@router.put("/sessions/{session_id}", response_model=SessionResponse)
async def update_session(
    session_id: str,
    body: SessionUpdateRequest,
    account_id: str = Depends(get_account_id),
) -> SessionResponse:
    if _updates is None or _contexts is None or _sessions is None:
        raise HTTPException(status_code=503, detail="Session service not initialized.")

    current = _sessions.get(session_id, account_id=account_id)
    if current is None:
        raise HTTPException(status_code=404, detail="Session not found")

    fields = body.model_dump(exclude_unset=True)
    context = _contexts.resolve(account_id)
    try:
        updated, state = await _updates.update_session(
            session_id,
            title=fields.get("title", current.title),
            transcript=fields.get("transcript", current.transcript),
            note=fields.get("note", current.note),
            context=context,
        )
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    except PersistenceError as e:
        logger.error("Failed to update session %s: %s", session_id, e)
        raise HTTPException(status_code=500, detail="Failed to update session")

    return SessionResponse(
        id=updated.id,
        client_id=updated.client_id,
        title=updated.title,
        transcript=updated.transcript,
        note=updated.note,
        metadata=updated.session_metadata or {},
        updated_at=updated.updated_at,
        content_changed=state is ContentState.CONTENT_CHANGED,
    )

"""Session-update invalidation.

When a session's transcript or note changes, every artifact derived from it
is deleted: the session's own artifacts and the artifacts of its client.
Comparison is on normalized content, so whitespace-only edits and ""/None
swaps do not invalidate anything. Title edits never do.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from mypraxis.artifacts.context import GenerationContext
from mypraxis.artifacts.service import ArtifactService, GenerationRequest
from mypraxis.artifacts.store import ArtifactStore
from mypraxis.db.repositories import SessionRepository
from mypraxis.errors import GenerationPipelineError, NotFoundError
from mypraxis.models.practice import TherapySession
from mypraxis.models.prompt import PromptSource

logger = logging.getLogger(__name__)

SESSION_TITLE_PROMPT = "session_title"


class ContentState(str, enum.Enum):
    UNCHANGED = "unchanged"
    CONTENT_CHANGED = "content_changed"


@dataclass(frozen=True)
class SessionContent:
    transcript: str | None
    note: str | None


def normalize_content(value: str | None) -> str | None:
    """Trim whitespace; empty becomes None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def detect_content_change(before: SessionContent, after: SessionContent) -> ContentState:
    if (
        normalize_content(before.transcript) != normalize_content(after.transcript)
        or normalize_content(before.note) != normalize_content(after.note)
    ):
        return ContentState.CONTENT_CHANGED
    return ContentState.UNCHANGED


def clean_title(title: str) -> str:
    """Trim and drop one pair of surrounding double quotes."""
    title = title.strip()
    if len(title) >= 2 and title.startswith('"') and title.endswith('"'):
        return title[1:-1]
    return title


class SessionUpdateService:
    def __init__(self, sessions: SessionRepository, store: ArtifactStore, artifacts: ArtifactService) -> None:
        self.sessions = sessions
        self.store = store
        self.artifacts = artifacts

    async def update_session(
        self,
        session_id: str,
        title: str | None,
        transcript: str | None,
        note: str | None,
        context: GenerationContext,
    ) -> tuple[TherapySession, ContentState]:
        """Persist a session edit and invalidate derived artifacts if content changed.

        Raises:
            NotFoundError: the session does not exist for this account.
            PersistenceError: the update or the invalidation failed.
        """
        current = self.sessions.get(session_id, account_id=context.account_id)
        if current is None:
            raise NotFoundError(f"Session not found: {session_id}")

        state = detect_content_change(
            SessionContent(current.transcript, current.note),
            SessionContent(transcript, note),
        )
        log = context.bind(session_id=session_id).log

        # Delete before the content write; a failed delete leaves the old content for a retry
        if state is ContentState.CONTENT_CHANGED:
            log.info("Session content changed, invalidating artifacts")
            self.store.invalidate(session_id, "session")
            self.store.invalidate(current.client_id, "client")
        else:
            log.info("Session content unchanged, keeping artifacts")

        updated = self.sessions.update_content(session_id, title, transcript, note)
        if state is ContentState.CONTENT_CHANGED:
            if await self.generate_session_title(updated, context):
                updated = self.sessions.get(session_id) or updated

        return updated, state

    async def generate_session_title(self, session: TherapySession, context: GenerationContext) -> bool:
        """Best-effort title from the session content, once per session.

        Returns True when a title was written. Failures are logged and never
        fail the session update.
        """
        metadata = session.session_metadata or {}
        if metadata.get("title_initialized") is True:
            return False
        if not normalize_content(session.transcript) and not normalize_content(session.note):
            return False

        request = GenerationRequest(
            source=PromptSource.for_name(SESSION_TITLE_PROMPT),
            variables={"session_transcript": session.transcript or "", "session_note": session.note or ""},
            reference_id=session.id,
            reference_type="session",
        )
        try:
            result = await self.artifacts.generate_content(request, context)
            self.sessions.update_title(session.id, clean_title(result.content))
        except GenerationPipelineError as e:
            context.log.warning("Session title generation failed for %s: %s", session.id, e)
            return False

        try:
            self.sessions.update_metadata(session.id, {"title_initialized": True})
        except GenerationPipelineError as e:
            # Title is already saved
            context.log.error("Failed to set title_initialized for %s: %s", session.id, e)
        return True

"""Template variable generators.

Fills template variables the caller did not supply, from stored sessions,
clients and (for nested artifacts) the artifact cache itself.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from mypraxis.db.repositories import SessionRepository
from mypraxis.errors import NotFoundError, RenderError
from mypraxis.models.practice import TherapySession

if TYPE_CHECKING:
    from mypraxis.artifacts.context import GenerationContext
    from mypraxis.artifacts.service import ArtifactService

NO_SESSIONS = "No session data available."
NO_PREVIOUS_SESSION = "No previous session data available."
_SESSION_SEPARATOR = "---\n\n"


def format_session(session: TherapySession) -> str:
    """Markdown block for one session: heading, transcript, therapist notes."""
    date = session.created_at.date().isoformat()
    content = f"## Session on {date} - {session.title or 'Untitled'}\n\n"
    if session.transcript:
        content += f"### Transcript:\n{session.transcript}\n\n"
    if session.note:
        content += f"### Therapist Notes:\n{session.note}\n\n"
    return content


class VariableResolver:
    """Generates template variable values for a session or client reference."""

    def __init__(self, sessions: SessionRepository, service: ArtifactService) -> None:
        self.sessions = sessions
        self.service = service
        self._generators: dict[str, Callable[[str, str, GenerationContext], Awaitable[str]]] = {
            "full_session_contents": self.full_session_contents,
            "last_session_content": self.last_session_content,
            "session_summaries": self.session_summaries,
            "client_conceptualization": self.client_conceptualization,
            "client_bio": self.client_bio,
            "client_info": self.client_info,
            "session_transcript": self.session_transcript,
            "session_note": self.session_note,
        }

    def can_generate(self, name: str) -> bool:
        return name in self._generators

    async def generate(
        self,
        names: list[str],
        reference_id: str,
        reference_type: str,
        context: GenerationContext,
    ) -> dict[str, str]:
        """Generate values for the named variables.

        Raises:
            RenderError: if a name has no generator or needs another reference type.
        """
        values: dict[str, str] = {}
        for name in names:
            generator = self._generators.get(name)
            if generator is None:
                raise RenderError(f"Variable '{name}' is not provided and cannot be generated")
            context.log.info("Generating value for variable %s (%s %s)", name, reference_type, reference_id)
            values[name] = await generator(reference_id, reference_type, context)
        return values

    # -- client-scoped --

    async def full_session_contents(self, reference_id: str, reference_type: str, context: GenerationContext) -> str:
        _require(reference_type, "client", "full_session_contents")
        sessions = self.sessions.list_for_client(reference_id)
        if not sessions:
            return NO_SESSIONS
        return _SESSION_SEPARATOR.join(format_session(s) for s in sessions)

    async def last_session_content(self, reference_id: str, reference_type: str, context: GenerationContext) -> str:
        _require(reference_type, "client", "last_session_content")
        session = self.sessions.get_latest_for_client(reference_id)
        if session is None:
            return NO_PREVIOUS_SESSION
        return format_session(session)

    async def session_summaries(self, reference_id: str, reference_type: str, context: GenerationContext) -> str:
        _require(reference_type, "client", "session_summaries")
        # Session summaries are not aggregated yet
        return ""

    async def client_conceptualization(self, reference_id: str, reference_type: str, context: GenerationContext) -> str:
        _require(reference_type, "client", "client_conceptualization")
        return await self._nested_artifact(reference_id, "client_conceptualization", context)

    async def client_bio(self, reference_id: str, reference_type: str, context: GenerationContext) -> str:
        _require(reference_type, "client", "client_bio")
        return await self._nested_artifact(reference_id, "client_bio", context)

    async def client_info(self, reference_id: str, reference_type: str, context: GenerationContext) -> str:
        _require(reference_type, "client", "client_info")
        client = self.sessions.get_client(reference_id)
        if client is None:
            raise NotFoundError(f"Client not found: {reference_id}")
        return f"Name: {client.full_name}\nClient since: {client.created_at.date().isoformat()}"

    # -- session-scoped --

    async def session_transcript(self, reference_id: str, reference_type: str, context: GenerationContext) -> str:
        _require(reference_type, "session", "session_transcript")
        return self._session(reference_id).transcript or ""

    async def session_note(self, reference_id: str, reference_type: str, context: GenerationContext) -> str:
        _require(reference_type, "session", "session_note")
        return self._session(reference_id).note or ""

    def _session(self, session_id: str) -> TherapySession:
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")
        return session

    async def _nested_artifact(self, client_id: str, artifact_type: str, context: GenerationContext) -> str:
        variables = {"full_session_contents": await self.full_session_contents(client_id, "client", context)}
        result = await self.service.get_or_create_artifact(client_id, "client", artifact_type, context, variables)
        return result.content


def _require(reference_type: str, expected: str, variable: str) -> None:
    if reference_type != expected:
        raise RenderError(f"Variable '{variable}' requires a {expected} context, got {reference_type}")

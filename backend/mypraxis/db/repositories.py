"""Typed repositories over the relational store.

One repository per entity the pipeline touches. Each exposes only the
operations the generation and invalidation flows need; there is no generic
"query any table" access. Returned rows are expunged so callers can use them
after the session closes.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from mypraxis.errors import PersistenceError
from mypraxis.models.artifact import Artifact
from mypraxis.models.practice import (
    Client,
    TherapeuticApproach,
    Therapist,
    TherapistApproach,
    TherapySession,
    UserPreferences,
)
from mypraxis.models.prompt import Prompt

logger = logging.getLogger(__name__)

_ARTIFACT_KEY = ["reference_id", "reference_type", "type", "language"]


class PromptRepository:
    """Read-only access to active prompt templates."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get_active_by_artifact_type(self, artifact_type: str) -> Prompt | None:
        stmt = select(Prompt).where(Prompt.artifact_type == artifact_type, Prompt.active == True)  # noqa: E712
        return self._first(stmt)

    def get_active_by_name(self, name: str) -> Prompt | None:
        stmt = select(Prompt).where(Prompt.name == name, Prompt.active == True)  # noqa: E712
        return self._first(stmt)

    def list_active(self) -> list[Prompt]:
        with Session(self.engine) as session:
            prompts = session.exec(select(Prompt).where(Prompt.active == True)).all()  # noqa: E712
            for p in prompts:
                session.expunge(p)
        return list(prompts)

    def _first(self, stmt) -> Prompt | None:
        with Session(self.engine) as session:
            prompt = session.exec(stmt).first()
            if prompt is not None:
                session.expunge(prompt)
        return prompt


class ArtifactRepository:
    """Artifact rows keyed by (reference_id, reference_type, type, language)."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get(self, reference_id: str, reference_type: str, artifact_type: str, language: str) -> Artifact | None:
        stmt = select(Artifact).where(
            Artifact.reference_id == reference_id,
            Artifact.reference_type == reference_type,
            Artifact.type == artifact_type,
            Artifact.language == language,
        )
        with Session(self.engine) as session:
            artifact = session.exec(stmt).first()
            if artifact is not None:
                session.expunge(artifact)
        return artifact

    def list_for_reference(self, reference_id: str, reference_type: str) -> list[Artifact]:
        stmt = select(Artifact).where(
            Artifact.reference_id == reference_id,
            Artifact.reference_type == reference_type,
        )
        with Session(self.engine) as session:
            artifacts = session.exec(stmt).all()
            for a in artifacts:
                session.expunge(a)
        return list(artifacts)

    def upsert(
        self,
        reference_id: str,
        reference_type: str,
        artifact_type: str,
        content: str,
        language: str,
    ) -> bool:
        """Insert or update in one INSERT ... ON CONFLICT DO UPDATE statement.

        Readers never observe two rows for one key: the unique constraint and
        the conflict clause resolve concurrent writers to last-writer-wins.

        Raises:
            PersistenceError: if the statement fails.
        """
        now = datetime.now(timezone.utc)
        stmt = self._insert()(Artifact.__table__).values(
            id=str(uuid4()),
            reference_id=reference_id,
            reference_type=reference_type,
            type=artifact_type,
            content=content,
            language=language,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=_ARTIFACT_KEY,
            set_={"content": stmt.excluded.content, "updated_at": stmt.excluded.updated_at},
        )
        try:
            with Session(self.engine) as session:
                session.exec(stmt)
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to save {artifact_type} artifact for {reference_type} {reference_id}"
            ) from e
        return True

    def delete_for_reference(self, reference_id: str, reference_type: str) -> int:
        """Delete every artifact of a reference. Returns the number of rows removed."""
        stmt = delete(Artifact).where(
            Artifact.reference_id == reference_id,
            Artifact.reference_type == reference_type,
        )
        try:
            with Session(self.engine) as session:
                deleted = session.exec(stmt).rowcount or 0
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to delete artifacts for {reference_type} {reference_id}") from e
        return deleted

    def _insert(self):
        dialect = self.engine.dialect.name
        if dialect == "sqlite":
            return sqlite.insert
        if dialect == "postgresql":
            return postgresql.insert
        raise PersistenceError(f"Artifact upsert is not supported on dialect: {dialect}")


class SessionRepository:
    """Therapy sessions and the clients that own them."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get(self, session_id: str, account_id: str | None = None) -> TherapySession | None:
        with Session(self.engine) as session:
            row = session.get(TherapySession, session_id)
            if row is None or (account_id is not None and row.account_id != account_id):
                return None
            session.expunge(row)
        return row

    def get_client(self, client_id: str, account_id: str | None = None) -> Client | None:
        with Session(self.engine) as session:
            row = session.get(Client, client_id)
            if row is None or (account_id is not None and row.account_id != account_id):
                return None
            session.expunge(row)
        return row

    def list_for_client(self, client_id: str) -> list[TherapySession]:
        """All sessions of a client, newest first."""
        stmt = (
            select(TherapySession)
            .where(TherapySession.client_id == client_id)
            .order_by(col(TherapySession.created_at).desc())
        )
        with Session(self.engine) as session:
            rows = session.exec(stmt).all()
            for r in rows:
                session.expunge(r)
        return list(rows)

    def get_latest_for_client(self, client_id: str) -> TherapySession | None:
        rows = self.list_for_client(client_id)
        return rows[0] if rows else None

    def update_content(
        self,
        session_id: str,
        title: str | None,
        transcript: str | None,
        note: str | None,
    ) -> TherapySession:
        with Session(self.engine) as session:
            row = session.get(TherapySession, session_id)
            if row is None:
                raise PersistenceError(f"Session not found: {session_id}")
            row.title = title
            row.transcript = transcript
            row.note = note
            row.updated_at = datetime.now(timezone.utc)
            session.add(row)
            session.commit()
            session.refresh(row)
            session.expunge(row)
        return row

    def update_title(self, session_id: str, title: str) -> None:
        with Session(self.engine) as session:
            row = session.get(TherapySession, session_id)
            if row is None:
                raise PersistenceError(f"Session not found: {session_id}")
            row.title = title
            session.add(row)
            session.commit()

    def update_metadata(self, session_id: str, metadata: dict) -> None:
        """Merge keys into the session metadata."""
        with Session(self.engine) as session:
            row = session.get(TherapySession, session_id)
            if row is None:
                raise PersistenceError(f"Session not found: {session_id}")
            # Reassign so SQLAlchemy sees the JSON column change
            row.session_metadata = {**(row.session_metadata or {}), **metadata}
            session.add(row)
            session.commit()


class TherapistRepository:
    """Per-account context: language preference and therapeutic approach."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get_language(self, account_id: str) -> str | None:
        with Session(self.engine) as session:
            prefs = session.get(UserPreferences, account_id)
            return prefs.language if prefs is not None else None

    def get_primary_approach(self, account_id: str) -> TherapeuticApproach | None:
        """The therapist's approach with the lowest priority value."""
        stmt = (
            select(TherapeuticApproach)
            .join(TherapistApproach, TherapistApproach.approach_id == TherapeuticApproach.id)
            .join(Therapist, Therapist.id == TherapistApproach.therapist_id)
            .where(Therapist.account_id == account_id)
            .order_by(col(TherapistApproach.priority).asc())
            .limit(1)
        )
        with Session(self.engine) as session:
            approach = session.exec(stmt).first()
            if approach is not None:
                session.expunge(approach)
        return approach

"""Artifact models.

Includes: Artifact (SQL table), ArtifactResult (Pydantic), artifact type enums.

An artifact is keyed by (reference_id, reference_type, type, language); the
unique constraint backs the single-statement upsert in ArtifactRepository.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel
from sqlmodel import Field as SQLField

ArtifactType = Literal[
    "session_therapist_summary",
    "session_client_summary",
    "client_prep_note",
    "client_conceptualization",
    "client_bio",
    "session_speaker_roles_classification",
]
ReferenceType = Literal["session", "client"]
LanguageCode = Literal["en", "ru"]

# Artifact types that may be requested per reference type over HTTP
ARTIFACT_TYPES_BY_REFERENCE: dict[str, frozenset[str]] = {
    "session": frozenset({"session_therapist_summary", "session_client_summary"}),
    "client": frozenset({"client_prep_note", "client_conceptualization", "client_bio"}),
}


class Artifact(SQLModel, table=True):
    """Generated clinical text cached for a session or client."""

    __tablename__ = "artifacts"
    __table_args__ = (
        UniqueConstraint(
            "reference_id", "reference_type", "type", "language",
            name="artifacts_reference_type_language_key",
        ),
    )

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    reference_id: str = SQLField(index=True)
    reference_type: str  # "session" | "client"
    type: str
    content: str
    language: str = "en"
    created_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))


class ArtifactResult(BaseModel):
    """Artifact content as returned to callers of the pipeline."""

    content: str
    language: str
    generated: bool  # True when produced by this request
    stale: bool = False  # Stale rows are deleted, so anything returned is fresh

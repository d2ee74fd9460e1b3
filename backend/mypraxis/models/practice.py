"""Practice entities referenced by the generation pipeline.

Clients, therapy sessions, therapist profile and preferences. These tables are
owned by the web application; the pipeline reads them to build template
variables and context, and updates sessions through SessionUpdateService.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlmodel import JSON, Column, SQLModel
from sqlmodel import Field as SQLField


class Client(SQLModel, table=True):
    __tablename__ = "clients"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    account_id: str = SQLField(index=True)
    full_name: str
    email: str | None = None
    phone: str | None = None
    created_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))


class TherapySession(SQLModel, table=True):
    """A therapy session; transcript and note drive artifact invalidation."""

    __tablename__ = "sessions"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    account_id: str = SQLField(index=True)
    client_id: str = SQLField(foreign_key="clients.id", index=True)
    title: str | None = None
    transcript: str | None = None
    note: str | None = None
    # Column is "metadata" in the database; the attribute name is reserved
    session_metadata: dict = SQLField(default_factory=dict, sa_column=Column("metadata", JSON))
    created_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))


class Therapist(SQLModel, table=True):
    __tablename__ = "therapists"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    account_id: str = SQLField(index=True, unique=True)
    full_professional_name: str | None = None


class TherapeuticApproach(SQLModel, table=True):
    __tablename__ = "therapeutic_approaches"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str = SQLField(unique=True)  # e.g. "cbt"
    title: str  # e.g. "Cognitive Behavioral Therapy"


class TherapistApproach(SQLModel, table=True):
    __tablename__ = "therapists_approaches"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    therapist_id: str = SQLField(foreign_key="therapists.id", index=True)
    approach_id: str = SQLField(foreign_key="therapeutic_approaches.id")
    priority: int = 0  # 0 = primary


class UserPreferences(SQLModel, table=True):
    __tablename__ = "user_preferences"

    account_id: str = SQLField(primary_key=True)
    language: str | None = None  # "en" | "ru"; None = not chosen yet

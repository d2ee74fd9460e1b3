"""Prompt template models.

Includes: Prompt (SQL table), PromptSource (Pydantic).

Rows are authored by operators out-of-band; the pipeline only reads them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import Index, text
from sqlmodel import JSON, Column, SQLModel
from sqlmodel import Field as SQLField

PromptSourceType = Literal["artifact_type", "name"]


class Prompt(SQLModel, table=True):
    """A versioned prompt template bound to a provider and model."""

    __tablename__ = "prompts"
    __table_args__ = (
        # One active prompt per name and per artifact type
        Index(
            "prompts_unique_active_name",
            "name",
            unique=True,
            sqlite_where=text("active AND name IS NOT NULL"),
            postgresql_where=text("active AND name IS NOT NULL"),
        ),
        Index(
            "prompts_unique_active_artifact_type",
            "artifact_type",
            unique=True,
            sqlite_where=text("active AND artifact_type IS NOT NULL"),
            postgresql_where=text("active AND artifact_type IS NOT NULL"),
        ),
    )

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    artifact_type: str | None = SQLField(default=None, index=True)
    name: str | None = SQLField(default=None, max_length=64)
    description: str = ""
    template: str
    provider: str = "openai"  # "openai" | "anthropic" | "google"
    model: str
    parameters: dict = SQLField(default_factory=dict, sa_column=Column(JSON))
    active: bool = True
    created_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))


class PromptSource(BaseModel):
    """Where a generation request gets its template from."""

    source_type: PromptSourceType
    source_value: str

    @classmethod
    def for_artifact(cls, artifact_type: str) -> PromptSource:
        return cls(source_type="artifact_type", source_value=artifact_type)

    @classmethod
    def for_name(cls, name: str) -> PromptSource:
        return cls(source_type="name", source_value=name)

    @property
    def identifier(self) -> str:
        """`source_type:source_value`, used in logs and by the mock client."""
        return f"{self.source_type}:{self.source_value}"

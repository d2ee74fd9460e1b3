"""Shared test fixtures for MyPraxis backend tests."""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Ensure backend is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "test")

from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import mypraxis.models  # noqa: F401
from mypraxis.artifacts.context import ContextResolver, GenerationContext
from mypraxis.artifacts.invalidation import SessionUpdateService
from mypraxis.artifacts.service import ArtifactService
from mypraxis.artifacts.store import ArtifactStore
from mypraxis.db.repositories import (
    ArtifactRepository,
    PromptRepository,
    SessionRepository,
    TherapistRepository,
)
from mypraxis.llm.mock_layer import MockLLMLayer
from mypraxis.models.practice import (
    Client,
    TherapeuticApproach,
    Therapist,
    TherapistApproach,
    TherapySession,
    UserPreferences,
)
from mypraxis.models.prompt import Prompt
from mypraxis.prompts.registry import PromptRegistry
from mypraxis.prompts.renderer import TemplateRenderer

ACCOUNT_ID = "acct-1"
OTHER_ACCOUNT_ID = "acct-2"


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database per test.

    StaticPool keeps one connection so create_all and every session share it.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def mock_llm():
    return MockLLMLayer({"artifact_type:client_bio": "Bio text"})


class Pipeline:
    """Everything wired together on one engine, as main.wire_dependencies does."""

    def __init__(self, engine, llm):
        self.engine = engine
        self.llm = llm
        self.sessions = SessionRepository(engine)
        self.store = ArtifactStore(ArtifactRepository(engine))
        self.contexts = ContextResolver(TherapistRepository(engine))
        self.service = ArtifactService(
            registry=PromptRegistry(PromptRepository(engine)),
            renderer=TemplateRenderer(),
            llm=llm,
            store=self.store,
            sessions=self.sessions,
        )
        self.updates = SessionUpdateService(self.sessions, self.store, self.service)

    def context(self, account_id: str = ACCOUNT_ID) -> GenerationContext:
        return self.contexts.resolve(account_id)


@pytest.fixture
def pipeline(db_engine, mock_llm):
    return Pipeline(db_engine, mock_llm)


# === Seed helpers ===


def add(engine, *rows):
    with Session(engine) as session:
        for row in rows:
            session.add(row)
        session.commit()
        for row in rows:
            session.refresh(row)
            session.expunge(row)
    return rows[0] if len(rows) == 1 else rows


def seed_prompt(engine, artifact_type=None, name=None, template="Write in {{ language }}.", **kwargs) -> Prompt:
    kwargs.setdefault("provider", "openai")
    kwargs.setdefault("model", "gpt-4o-mini")
    return add(engine, Prompt(artifact_type=artifact_type, name=name, template=template, **kwargs))


def seed_therapist(engine, account_id=ACCOUNT_ID, language="en", approach_name="cbt",
                   approach_title="Cognitive Behavioral Therapy") -> Therapist:
    therapist = add(engine, Therapist(account_id=account_id, full_professional_name="Dr. Test"))
    if language is not None:
        add(engine, UserPreferences(account_id=account_id, language=language))
    if approach_name is not None:
        approach = add(engine, TherapeuticApproach(name=approach_name, title=approach_title))
        add(engine, TherapistApproach(therapist_id=therapist.id, approach_id=approach.id, priority=0))
    return therapist


def seed_client(engine, account_id=ACCOUNT_ID, full_name="Jane Doe", client_id=None) -> Client:
    kwargs = {"id": client_id} if client_id else {}
    return add(engine, Client(
        account_id=account_id,
        full_name=full_name,
        created_at=datetime(2024, 1, 15, tzinfo=timezone.utc),
        **kwargs,
    ))


def seed_session(engine, client, title="Intake", transcript="Client talked about work.",
                 note="Anxious about deadlines.", days_ago=0, metadata=None) -> TherapySession:
    return add(engine, TherapySession(
        account_id=client.account_id,
        client_id=client.id,
        title=title,
        transcript=transcript,
        note=note,
        session_metadata=metadata or {},
        created_at=datetime(2024, 3, 1, tzinfo=timezone.utc) - timedelta(days=days_ago),
    ))

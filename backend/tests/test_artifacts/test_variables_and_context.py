"""Tests for template variable generators and per-request context resolution."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "test")

import pytest

from conftest import ACCOUNT_ID, seed_client, seed_session, seed_therapist
from mypraxis.artifacts.context import GenerationContext
from mypraxis.artifacts.variables import NO_PREVIOUS_SESSION, NO_SESSIONS, format_session
from mypraxis.errors import NotFoundError, RenderError


@pytest.fixture
def ctx(db_engine, pipeline) -> GenerationContext:
    seed_therapist(db_engine)
    return pipeline.context()


# === Variables ===


@pytest.mark.asyncio
async def test_full_session_contents_newest_first(pipeline, db_engine, ctx):
    client = seed_client(db_engine, client_id="C1")
    seed_session(db_engine, client, title="First", transcript="Old talk", note=None, days_ago=7)
    seed_session(db_engine, client, title=None, transcript=None, note="Latest note", days_ago=0)

    values = await pipeline.service.variables.generate(["full_session_contents"], "C1", "client", ctx)
    text = values["full_session_contents"]
    assert text == (
        "## Session on 2024-03-01 - Untitled\n\n"
        "### Therapist Notes:\nLatest note\n\n"
        "---\n\n"
        "## Session on 2024-02-23 - First\n\n"
        "### Transcript:\nOld talk\n\n"
    )
    print("  PASS: full_session_contents_newest_first")


@pytest.mark.asyncio
async def test_session_placeholders_when_no_sessions(pipeline, db_engine, ctx):
    seed_client(db_engine, client_id="C1")
    values = await pipeline.service.variables.generate(
        ["full_session_contents", "last_session_content", "session_summaries"], "C1", "client", ctx,
    )
    assert values["full_session_contents"] == NO_SESSIONS
    assert values["last_session_content"] == NO_PREVIOUS_SESSION
    assert values["session_summaries"] == ""
    print("  PASS: session_placeholders_when_no_sessions")


@pytest.mark.asyncio
async def test_last_session_content(pipeline, db_engine, ctx):
    client = seed_client(db_engine, client_id="C1")
    seed_session(db_engine, client, title="Older", days_ago=3)
    latest = seed_session(db_engine, client, title="Newest", days_ago=0)
    values = await pipeline.service.variables.generate(["last_session_content"], "C1", "client", ctx)
    assert values["last_session_content"] == format_session(latest)
    assert "Newest" in values["last_session_content"]
    print("  PASS: last_session_content")


@pytest.mark.asyncio
async def test_session_scoped_variables(pipeline, db_engine, ctx):
    client = seed_client(db_engine, client_id="C1")
    session = seed_session(db_engine, client, transcript="Transcript text", note=None)
    values = await pipeline.service.variables.generate(
        ["session_transcript", "session_note"], session.id, "session", ctx,
    )
    assert values == {"session_transcript": "Transcript text", "session_note": ""}
    print("  PASS: session_scoped_variables")


@pytest.mark.asyncio
async def test_client_info_unknown_client(pipeline, ctx):
    with pytest.raises(NotFoundError):
        await pipeline.service.variables.generate(["client_info"], "missing", "client", ctx)
    print("  PASS: client_info_unknown_client")


@pytest.mark.asyncio
async def test_unknown_variable(pipeline, ctx):
    assert pipeline.service.variables.can_generate("client_info")
    assert not pipeline.service.variables.can_generate("weather")
    with pytest.raises(RenderError):
        await pipeline.service.variables.generate(["weather"], "C1", "client", ctx)
    print("  PASS: unknown_variable")


# === Context ===


def test_context_defaults_to_english(pipeline, db_engine):
    seed_therapist(db_engine, language=None)
    context = pipeline.context()
    assert context.account_id == ACCOUNT_ID
    assert context.language == "en"
    assert context.language_name == "English"
    assert context.primary_therapeutic_approach == "Cognitive Behavioral Therapy"
    print("  PASS: context_defaults_to_english")


def test_context_russian(pipeline, db_engine):
    seed_therapist(db_engine, language="ru")
    context = pipeline.context()
    assert context.language == "ru"
    assert context.language_name == "Russian"
    print("  PASS: context_russian")


def test_context_unspecified_approach(pipeline, db_engine):
    seed_therapist(db_engine, approach_name="other", approach_title="Other")
    context = pipeline.context()
    assert context.primary_therapeutic_approach is None
    with pytest.raises(NotFoundError):
        context.require_approach()
    print("  PASS: context_unspecified_approach")


def test_context_bind_keeps_fields(pipeline, db_engine):
    seed_therapist(db_engine)
    bound = pipeline.context().bind(reference="client:C1")
    assert bound.account_id == ACCOUNT_ID
    assert bound.log.extra == {"account_id": ACCOUNT_ID, "reference": "client:C1"}
    print("  PASS: context_bind_keeps_fields")

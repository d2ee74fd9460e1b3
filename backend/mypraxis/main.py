"""MyPraxis FastAPI application.

Entry point for the artifact generation backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from mypraxis.api.health import router as health_router
from mypraxis.api.v1.artifacts import router as artifacts_router
from mypraxis.api.v1.sessions import router as sessions_router
from mypraxis.artifacts.context import ContextResolver
from mypraxis.artifacts.invalidation import SessionUpdateService
from mypraxis.artifacts.service import ArtifactService
from mypraxis.artifacts.store import ArtifactStore
from mypraxis.config import settings
from mypraxis.db.database import create_db_and_tables
from mypraxis.db.repositories import (
    ArtifactRepository,
    PromptRepository,
    SessionRepository,
    TherapistRepository,
)
from mypraxis.llm.layer import GenerationClient, LLMLayer
from mypraxis.llm.mock_layer import MockLLMLayer
from mypraxis.prompts.registry import PromptRegistry
from mypraxis.prompts.renderer import TemplateRenderer

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_llm() -> GenerationClient:
    """Real providers, or the deterministic mock when MOCK_EXTERNAL_SERVICES is set."""
    if settings.mock_external_services:
        logger.info("MOCK_EXTERNAL_SERVICES enabled: using MockLLMLayer")
        return MockLLMLayer()
    return LLMLayer()


def wire_dependencies(db_engine: Engine, llm: GenerationClient) -> ArtifactService:
    """Build the pipeline on an engine and hand it to the routers."""
    from mypraxis.api.v1.artifacts import set_dependencies as set_artifact_deps
    from mypraxis.api.v1.sessions import set_dependencies as set_session_deps

    sessions = SessionRepository(db_engine)
    store = ArtifactStore(ArtifactRepository(db_engine))
    contexts = ContextResolver(TherapistRepository(db_engine))
    service = ArtifactService(
        registry=PromptRegistry(PromptRepository(db_engine)),
        renderer=TemplateRenderer(),
        llm=llm,
        store=store,
        sessions=sessions,
    )
    set_artifact_deps(service, contexts, sessions)
    set_session_deps(SessionUpdateService(sessions, store, service), contexts, sessions)
    return service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    configure_logging()
    from mypraxis.db.database import engine

    create_db_and_tables(engine)
    wire_dependencies(engine, build_llm())
    logger.info("MyPraxis backend started (environment=%s)", settings.environment)

    yield


app = FastAPI(
    title="MyPraxis",
    description="Clinical artifact generation for therapist practices",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["GET", "PUT", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Account-Id"],
)


# Unhandled errors return a generic 500; details go to the log only
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    # Let FastAPI handle HTTPExceptions normally (preserves status codes like 404, 503)
    if isinstance(exc, HTTPException):
        raise exc
    logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error."},
    )


app.include_router(health_router)
app.include_router(artifacts_router)
app.include_router(sessions_router)


@app.get("/")
async def root():
    return {"name": "MyPraxis", "version": "0.1.0", "status": "running"}

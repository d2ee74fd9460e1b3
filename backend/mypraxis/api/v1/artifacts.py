"""Artifacts API — get-or-generate clinical artifacts.

GET /api/v1/artifacts/{reference_type}/{reference_id}/{artifact_type}
    Return the cached artifact in the account's language, generating it on
    a miss. Session references accept the session summary types; client
    references accept client_prep_note, client_conceptualization and
    client_bio.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from mypraxis.api.deps import get_account_id
from mypraxis.artifacts.context import ContextResolver
from mypraxis.artifacts.service import ArtifactService
from mypraxis.db.repositories import SessionRepository
from mypraxis.errors import GenerationPipelineError, NotFoundError, RenderError
from mypraxis.models.artifact import ARTIFACT_TYPES_BY_REFERENCE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["artifacts"])

# Module-level refs set by main.py
_service: ArtifactService | None = None
_contexts: ContextResolver | None = None
_sessions: SessionRepository | None = None


def set_dependencies(service: ArtifactService, contexts: ContextResolver, sessions: SessionRepository) -> None:
    """Wire up dependencies (called from main.py lifespan)."""
    global _service, _contexts, _sessions
    _service = service
    _contexts = contexts
    _sessions = sessions


class ArtifactResponse(BaseModel):
    content: str
    language: str
    generated: bool
    stale: bool = False


def _require_initialized() -> tuple[ArtifactService, ContextResolver, SessionRepository]:
    if _service is None or _contexts is None or _sessions is None:
        raise HTTPException(status_code=503, detail="Artifact service not initialized.")
    return _service, _contexts, _sessions


@router.get("/artifacts/{reference_type}/{reference_id}/{artifact_type}", response_model=ArtifactResponse)
async def get_artifact(
    reference_type: str,
    reference_id: str,
    artifact_type: str,
    account_id: str = Depends(get_account_id),
) -> ArtifactResponse:
    """Get an artifact, generating and caching it if absent."""
    service, contexts, sessions = _require_initialized()

    allowed = ARTIFACT_TYPES_BY_REFERENCE.get(reference_type)
    if allowed is None:
        raise HTTPException(status_code=400, detail="Invalid reference type")
    if artifact_type not in allowed:
        raise HTTPException(status_code=400, detail="Invalid artifact type")

    if reference_type == "session":
        owner = sessions.get(reference_id, account_id=account_id)
    else:
        owner = sessions.get_client(reference_id, account_id=account_id)
    if owner is None:
        raise HTTPException(status_code=404, detail=f"{reference_type.capitalize()} not found")

    context = contexts.resolve(account_id).bind(reference=f"{reference_type}:{reference_id}")
    try:
        result = await service.get_or_create_artifact(reference_id, reference_type, artifact_type, context)
    except NotFoundError as e:
        logger.warning("Artifact %s for %s %s not configured: %s", artifact_type, reference_type, reference_id, e)
        raise HTTPException(status_code=404, detail="Artifact is not available")
    except RenderError as e:
        logger.error("Artifact %s for %s %s could not be rendered: %s", artifact_type, reference_type, reference_id, e)
        raise HTTPException(status_code=422, detail="Artifact could not be prepared")
    except GenerationPipelineError as e:
        logger.error("Failed to generate %s for %s %s: %s", artifact_type, reference_type, reference_id, e)
        raise HTTPException(status_code=500, detail="Failed to generate artifact")

    return ArtifactResponse(**result.model_dump())

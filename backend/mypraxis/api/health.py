"""Health check endpoint — database and LLM provider configuration.

Provider checks only look at configuration; they never call a provider.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from mypraxis.config import settings

router = APIRouter()

VERSION = "0.1.0"

_PROVIDER_KEYS = {
    "openai": "openai_api_key",
    "anthropic": "anthropic_api_key",
    "google": "google_api_key",
}


class HealthStatus(BaseModel):
    status: str  # "healthy" | "degraded" | "unhealthy"
    version: str
    checks: dict[str, dict]
    dependencies: dict[str, str]  # Simplified view for frontend
    timestamp: datetime


@router.get("/health", response_model=HealthStatus)
async def health_check() -> HealthStatus:
    checks: dict[str, dict] = {}
    overall_healthy = True
    has_warning = False

    # 1. Database
    try:
        from mypraxis.db.database import engine

        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
            detail = engine.dialect.name
            if detail == "sqlite":
                mode = conn.execute(text("PRAGMA journal_mode")).fetchone()
                detail = f"sqlite journal_mode={mode[0]}"
        checks["database"] = {"status": "ok", "detail": detail}
    except Exception as e:
        checks["database"] = {"status": "error", "detail": type(e).__name__}
        overall_healthy = False

    # 2. LLM providers
    if settings.mock_external_services:
        checks["llm"] = {"status": "ok", "detail": "mock mode"}
    else:
        for provider, key_name in _PROVIDER_KEYS.items():
            if getattr(settings, key_name):
                checks[f"llm_{provider}"] = {"status": "ok", "detail": "API key configured"}
            elif provider == settings.default_provider:
                checks[f"llm_{provider}"] = {"status": "error", "detail": f"{key_name.upper()} not set (default provider)"}
                overall_healthy = False
            else:
                checks[f"llm_{provider}"] = {"status": "warning", "detail": f"{key_name.upper()} not set"}
                has_warning = True

    dependencies = {name: check["status"] for name, check in checks.items()}

    if overall_healthy:
        status = "degraded" if has_warning else "healthy"
    else:
        status = "unhealthy"

    return HealthStatus(
        status=status,
        version=VERSION,
        checks=checks,
        dependencies=dependencies,
        timestamp=datetime.now(timezone.utc),
    )

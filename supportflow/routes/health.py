"""
Health check endpoints

- GET /api/v1/health - Basic health check
- GET /api/v1/health/dependencies - Supabase and OpenAI reachability
"""
import asyncio
import time
from datetime import datetime, timezone
from typing import Dict, Optional

import httpx
from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from supportflow import __version__
from supportflow.config import get_settings
from supportflow.utils.logger import get_logger

settings = get_settings()
logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/health", tags=["health"])

APP_START_TIME = time.time()
CHECK_TIMEOUT_SECONDS = 5.0


# ============================================================================
# Pydantic Models
# ============================================================================

class HealthResponse(BaseModel):
    """Basic health check response"""
    status: str = Field(..., description="Overall status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str
    uptime_seconds: float
    document_store: str


class DependencyStatus(BaseModel):
    """Status of a single dependency"""
    name: str
    status: str
    latency_ms: Optional[float] = None
    error_message: Optional[str] = None


class DependencyHealth(BaseModel):
    """Dependency health check response"""
    overall_status: str
    dependencies: Dict[str, DependencyStatus]
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# Dependency Check Functions
# ============================================================================

async def _probe(name: str, url: str, headers: Dict[str, str]) -> DependencyStatus:
    try:
        start = time.time()
        async with httpx.AsyncClient(timeout=CHECK_TIMEOUT_SECONDS) as client:
            response = await client.get(url, headers=headers)
            response.raise_for_status()
        return DependencyStatus(
            name=name,
            status="healthy",
            latency_ms=round((time.time() - start) * 1000, 2)
        )
    except httpx.TimeoutException:
        logger.error(f"{name} health check timed out")
        return DependencyStatus(
            name=name,
            status="unhealthy",
            error_message=f"Request timed out after {CHECK_TIMEOUT_SECONDS:.0f} seconds"
        )
    except httpx.HTTPStatusError as e:
        logger.error(f"{name} health check failed: {e}")
        return DependencyStatus(
            name=name,
            status="unhealthy",
            error_message=f"HTTP {e.response.status_code}: {str(e)}"
        )
    except Exception as e:
        logger.error(f"{name} health check failed: {e}")
        return DependencyStatus(name=name, status="unhealthy", error_message=str(e))


async def check_supabase() -> DependencyStatus:
    if not settings.supabase_url or not settings.supabase_key:
        return DependencyStatus(name="supabase", status="degraded", error_message="Supabase not configured")
    return await _probe(
        "supabase",
        f"{settings.supabase_url.rstrip('/')}/rest/v1/",
        {"apikey": settings.supabase_key, "Authorization": f"Bearer {settings.supabase_key}"}
    )


async def check_openai_api() -> DependencyStatus:
    if not settings.openai_api_key:
        return DependencyStatus(name="openai_api", status="degraded", error_message="API key not configured")
    return await _probe(
        "openai_api",
        "https://api.openai.com/v1/models",
        {"Authorization": f"Bearer {settings.openai_api_key}"}
    )


def determine_overall_status(dependencies: Dict[str, DependencyStatus]) -> str:
    """
    Supabase is critical: unhealthy there means unhealthy overall. Any other
    problem (including the model API, which has a fallback) is degraded.
    """
    supabase = dependencies.get("supabase")
    if supabase is not None and supabase.status == "unhealthy":
        return "unhealthy"
    if any(dep.status != "healthy" for dep in dependencies.values()):
        return "degraded"
    return "healthy"


# ============================================================================
# API Endpoints
# ============================================================================

@router.get("/", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def basic_health_check() -> HealthResponse:
    """Always 200; does not touch external dependencies"""
    return HealthResponse(
        status="healthy",
        version=__version__,
        uptime_seconds=round(time.time() - APP_START_TIME, 2),
        document_store=settings.document_store_backend
    )


@router.get("/dependencies", response_model=DependencyHealth, status_code=status.HTTP_200_OK)
async def dependency_health_check() -> DependencyHealth:
    results = await asyncio.gather(check_supabase(), check_openai_api())
    dependencies = {dep.name: dep for dep in results}
    return DependencyHealth(
        overall_status=determine_overall_status(dependencies),
        dependencies=dependencies
    )

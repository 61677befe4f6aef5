"""Health check API endpoints."""

from typing import Dict

from fastapi import APIRouter
from pydantic import BaseModel, Field

from lifegraph.core.config import settings
from lifegraph.core.database import db_client
from lifegraph.services.memory.extraction_queue import get_extraction_queue
from lifegraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="Health check status")
    version: str = Field(..., description="Running application version")
    service: str = Field(..., description="Service name")
    database: str = Field(..., description="Database status")
    llm_configured: bool = Field(..., description="Whether an LLM credential is configured")
    extraction_queue: Dict[str, int] = Field(..., description="Background extraction queue counters")


@router.get(
    "/",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health check endpoint",
    description="Check if the service is running and healthy",
    operation_id="get_service_health_status",
)
async def health_check() -> HealthCheckResponse:
    """Health check endpoint."""
    db_health = await db_client.health_check()

    return HealthCheckResponse(
        status="healthy" if db_health["status"] == "healthy" else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        database=db_health["status"],
        llm_configured=settings.llm_configured,
        extraction_queue=get_extraction_queue().stats(),
    )

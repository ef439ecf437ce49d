"""Health check API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from licencias.core.config import settings
from licencias.core.database import DatabaseClient
from licencias.dependencies import get_database_client

router = APIRouter()


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="healthy or degraded")
    version: str = Field(..., description="Running application version")
    service: str = Field(..., description="Service name")
    database: str = Field(..., description="Database status")


@router.get(
    "",
    response_model=HealthCheckResponse,
    summary="Health check endpoint",
    description="Check if the service and its database are reachable",
    operation_id="get_service_health_status",
)
async def health_check(db: Annotated[DatabaseClient, Depends(get_database_client)]) -> HealthCheckResponse:
    db_health = await db.health_check()
    return HealthCheckResponse(
        status="healthy" if db_health["status"] == "healthy" else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        database=db_health["status"],
    )

"""Dependency injection for the FastAPI application.

Long-lived resources (database client, shared HTTP client, token verifier)
live on ``app.state`` and are created by the lifespan. Everything else is
built per request from them.
"""

from typing import Annotated, AsyncGenerator

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from licencias.core.config import Settings, settings
from licencias.core.database import DatabaseClient
from licencias.core.jwt import JWTVerifier
from licencias.repositories.catalog_repository import CatalogRepository
from licencias.repositories.license_repository import LicenseRequestRepository
from licencias.repositories.profile_repository import ProfileRepository
from licencias.services.evidence_store import EvidenceStoreAdapter
from licencias.services.identity_gate import IdentityGate
from licencias.services.lifecycle_manager import LifecycleManager
from licencias.services.radicado import RadicadoGenerator
from licencias.services.storage_service import SupabaseStorageClient


def get_settings() -> Settings:
    return settings


def get_database_client(request: Request) -> DatabaseClient:
    return request.app.state.db


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_jwt_verifier(request: Request) -> JWTVerifier:
    return request.app.state.jwt_verifier


async def get_db_session(
    db: Annotated[DatabaseClient, Depends(get_database_client)],
) -> AsyncGenerator[AsyncSession, None]:
    """One session per request."""
    async with db.session_maker() as session:
        yield session


async def get_license_repository(
    db_session: Annotated[AsyncSession, Depends(get_db_session)],
) -> LicenseRequestRepository:
    return LicenseRequestRepository(db_session)


async def get_profile_repository(
    db_session: Annotated[AsyncSession, Depends(get_db_session)],
) -> ProfileRepository:
    return ProfileRepository(db_session)


async def get_catalog_repository(
    db_session: Annotated[AsyncSession, Depends(get_db_session)],
) -> CatalogRepository:
    return CatalogRepository(db_session)


async def get_storage_client(
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    app_settings: Annotated[Settings, Depends(get_settings)],
) -> SupabaseStorageClient:
    return SupabaseStorageClient(
        http_client,
        supabase_url=app_settings.supabase_url,
        service_role_key=app_settings.supabase_service_role_key,
        timeout=app_settings.http_timeout,
    )


async def get_identity_gate(
    verifier: Annotated[JWTVerifier, Depends(get_jwt_verifier)],
    profiles: Annotated[ProfileRepository, Depends(get_profile_repository)],
) -> IdentityGate:
    return IdentityGate(verifier, profiles)


async def get_lifecycle_manager(
    repository: Annotated[LicenseRequestRepository, Depends(get_license_repository)],
    app_settings: Annotated[Settings, Depends(get_settings)],
) -> LifecycleManager:
    """Lifecycle manager with a radicado generator configured from settings."""
    generator = RadicadoGenerator(
        prefix=app_settings.licenses.radicado_prefix,
        max_attempts=app_settings.licenses.radicado_max_attempts,
    )
    return LifecycleManager(repository, generator)


async def get_evidence_store(
    storage: Annotated[SupabaseStorageClient, Depends(get_storage_client)],
    repository: Annotated[LicenseRequestRepository, Depends(get_license_repository)],
    app_settings: Annotated[Settings, Depends(get_settings)],
) -> EvidenceStoreAdapter:
    return EvidenceStoreAdapter(storage, repository, app_settings.storage)

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from licencias.core.auth import CurrentActor
from licencias.database.models import LicenseRequest
from licencias.dependencies import get_evidence_store, get_lifecycle_manager
from licencias.schemas.licenses import (
    LicenseRequestCreate,
    LicenseRequestList,
    LicenseRequestResponse,
    TransitionRequest,
)
from licencias.schemas.responses import ApiResponse
from licencias.services.evidence_store import EvidenceStoreAdapter
from licencias.services.lifecycle_manager import LifecycleManager
from licencias.utils.logging import get_logger
from licencias.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()

Manager = Annotated[LifecycleManager, Depends(get_lifecycle_manager)]
Store = Annotated[EvidenceStoreAdapter, Depends(get_evidence_store)]


async def _describe(license_request: LicenseRequest, store: EvidenceStoreAdapter) -> LicenseRequestResponse:
    """Response model whose evidence URLs are usable now."""
    response = LicenseRequestResponse.model_validate(license_request)
    response.evidences = await store.present(license_request.evidences)
    return response


@router.post(
    "",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a license request",
    operation_id="create_license_request",
)
async def create_license_request(
    request: Request,
    payload: LicenseRequestCreate,
    actor: CurrentActor,
    manager: Manager,
    store: Store,
):
    """Create a request in status ``pendiente`` with a fresh radicado."""
    license_request = await manager.create_request(payload, actor.user_id)
    return create_api_response(
        data=await _describe(license_request, store),
        message=f"License request {license_request.radicado} created",
        request=request,
    )


@router.get(
    "",
    response_model=ApiResponse,
    summary="List license requests",
    operation_id="list_license_requests",
)
async def list_license_requests(
    request: Request,
    actor: CurrentActor,
    manager: Manager,
    store: Store,
    estado: Optional[str] = Query(None, description="Filter by status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Reviewers see every request, requesters only their own."""
    total, items = await manager.list_requests(actor, status=estado, limit=limit, offset=offset)
    data = LicenseRequestList(
        total=total,
        items=[await _describe(item, store) for item in items],
    )
    return create_api_response(data=data, message="License requests retrieved", request=request)


@router.get(
    "/radicado/{radicado}",
    response_model=ApiResponse,
    summary="Find a license request by radicado",
    operation_id="get_license_request_by_radicado",
)
async def get_license_request_by_radicado(
    request: Request,
    radicado: str,
    actor: CurrentActor,
    manager: Manager,
    store: Store,
):
    license_request = await manager.lookup_by_radicado(radicado, actor)
    return create_api_response(
        data=await _describe(license_request, store),
        message="License request retrieved",
        request=request,
    )


@router.get(
    "/{request_id}",
    response_model=ApiResponse,
    summary="Get a license request",
    operation_id="get_license_request",
)
async def get_license_request(
    request: Request,
    request_id: UUID,
    actor: CurrentActor,
    manager: Manager,
    store: Store,
):
    license_request = await manager.get_request(request_id, actor)
    return create_api_response(
        data=await _describe(license_request, store),
        message="License request retrieved",
        request=request,
    )


@router.post(
    "/{request_id}/transitions",
    response_model=ApiResponse,
    summary="Change the status of a license request",
    operation_id="transition_license_request",
)
async def transition_license_request(
    request: Request,
    request_id: UUID,
    payload: TransitionRequest,
    actor: CurrentActor,
    manager: Manager,
    store: Store,
):
    """Apply a status transition. Repeating the current status is a no-op."""
    license_request = await manager.transition(request_id, payload.status, actor, comment=payload.comment)
    return create_api_response(
        data=await _describe(license_request, store),
        message=f"License request is {license_request.estado.value}",
        request=request,
    )

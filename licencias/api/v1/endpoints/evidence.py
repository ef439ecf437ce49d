from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Request, UploadFile

from licencias.core.auth import CurrentActor
from licencias.core.exceptions import ValidationError
from licencias.dependencies import get_evidence_store
from licencias.schemas.licenses import CleanupResult, EvidenceLookup
from licencias.schemas.responses import ApiResponse
from licencias.services.evidence_store import EvidenceStoreAdapter
from licencias.utils.logging import get_logger
from licencias.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()

Store = Annotated[EvidenceStoreAdapter, Depends(get_evidence_store)]


async def read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """Read an upload, refusing to buffer more than ``max_bytes``."""
    content = await file.read(max_bytes + 1)
    if len(content) > max_bytes:
        LOGGER.info("Upload rejected for size", extra={"file_name": file.filename, "max": max_bytes})
        raise ValidationError(f"File exceeds {max_bytes} bytes", details={"max": max_bytes})
    return content


@router.put(
    "/{request_id}/evidence/{document_type}/{item_id}",
    response_model=ApiResponse,
    summary="Upload evidence into a slot",
    operation_id="put_evidence",
)
async def put_evidence(
    request: Request,
    request_id: UUID,
    document_type: str,
    item_id: str,
    actor: CurrentActor,
    store: Store,
    file: UploadFile = File(..., description="Supporting document (PDF, image or Word)"),
):
    """Upload or replace the file of one evidence slot."""
    content = await read_upload(file, store.config.max_upload_bytes)
    stored = await store.put(
        request_id,
        document_type,
        item_id,
        content,
        file.filename or "",
        file.content_type or "",
        actor,
    )
    return create_api_response(data=stored, message="Evidence uploaded", request=request)


@router.get(
    "/{request_id}/evidence/{document_type}/{item_id}",
    response_model=ApiResponse,
    summary="Check whether a slot holds evidence",
    operation_id="get_evidence",
)
async def get_evidence(
    request: Request,
    request_id: UUID,
    document_type: str,
    item_id: str,
    actor: CurrentActor,
    store: Store,
):
    """An empty slot is a normal outcome, reported as ``exists: false``."""
    evidence = await store.exists(request_id, document_type, item_id, actor)
    data = EvidenceLookup(exists=evidence is not None, evidence=evidence)
    return create_api_response(data=data, message="Evidence slot checked", request=request)


@router.delete(
    "/{request_id}/evidence/{document_type}/{item_id}",
    response_model=ApiResponse,
    summary="Remove the evidence of a slot",
    operation_id="delete_evidence",
)
async def delete_evidence(
    request: Request,
    request_id: UUID,
    document_type: str,
    item_id: str,
    actor: CurrentActor,
    store: Store,
):
    removed = await store.remove(request_id, document_type, item_id, actor)
    return create_api_response(
        data={"removed": removed},
        message="Evidence removed" if removed else "Evidence slot was already empty",
        request=request,
    )


@router.post(
    "/{request_id}/evidence/cleanup",
    response_model=ApiResponse,
    summary="Delete stored objects without metadata",
    operation_id="cleanup_evidence_orphans",
)
async def cleanup_evidence_orphans(
    request: Request,
    request_id: UUID,
    actor: CurrentActor,
    store: Store,
):
    deleted = await store.cleanup_orphans(request_id, actor)
    return create_api_response(
        data=CleanupResult(deleted_keys=deleted),
        message=f"Removed {len(deleted)} orphaned objects",
        request=request,
    )

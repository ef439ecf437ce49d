from typing import Annotated

from fastapi import APIRouter, Depends, Request

from licencias.core.auth import CurrentActor
from licencias.dependencies import get_catalog_repository
from licencias.repositories.catalog_repository import CatalogRepository
from licencias.schemas.responses import ApiResponse
from licencias.utils.responses import create_api_response

router = APIRouter()


@router.get(
    "/{name}",
    response_model=ApiResponse,
    summary="List the entries of a reference catalog",
    operation_id="list_catalog_entries",
)
async def list_catalog_entries(
    request: Request,
    name: str,
    actor: CurrentActor,
    catalogs: Annotated[CatalogRepository, Depends(get_catalog_repository)],
):
    """Only allow-listed catalogs can be read; anything else is a 400."""
    entries = await catalogs.list_entries(name)
    return create_api_response(
        data={"catalog": name, "items": entries},
        message=f"{len(entries)} entries",
        request=request,
    )

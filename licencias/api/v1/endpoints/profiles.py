from typing import Annotated

from fastapi import APIRouter, Depends, Request

from licencias.core.auth import CurrentActor
from licencias.dependencies import get_identity_gate
from licencias.schemas.auth import ProfileResponse, RoleUpdate
from licencias.schemas.responses import ApiResponse
from licencias.services.identity_gate import IdentityGate
from licencias.utils.logging import get_logger
from licencias.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


@router.get(
    "/me",
    response_model=ApiResponse,
    summary="Get current profile",
    description="Profile of the authenticated user, including the role used for authorization",
    operation_id="get_current_profile",
)
async def get_current_profile(
    request: Request,
    actor: CurrentActor,
    gate: Annotated[IdentityGate, Depends(get_identity_gate)],
):
    profile = await gate.get_profile(actor)
    return create_api_response(
        data=ProfileResponse.model_validate(profile),
        message="Profile retrieved",
        request=request,
    )


@router.patch(
    "/{user_id}/role",
    response_model=ApiResponse,
    summary="Change a user's role",
    description="Administrators only",
    operation_id="update_profile_role",
)
async def update_profile_role(
    request: Request,
    user_id: str,
    payload: RoleUpdate,
    actor: CurrentActor,
    gate: Annotated[IdentityGate, Depends(get_identity_gate)],
):
    profile = await gate.update_role(user_id, payload.role, actor)
    return create_api_response(
        data=ProfileResponse.model_validate(profile),
        message=f"Role updated to {profile.role.value}",
        request=request,
    )

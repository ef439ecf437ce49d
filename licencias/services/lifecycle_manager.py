"""License request lifecycle: creation, status transitions and read access.

The status machine::

    pendiente ──> en_revision ──> aprobada
        │  ^           │
        │  └───────────┤ (sent back for more evidence)
        v              v
    cancelada      rechazada

``aprobada``, ``rechazada`` and ``cancelada`` are terminal. Moving into
``en_revision``, ``aprobada``, ``rechazada`` or back to ``pendiente`` needs a
reviewer or administrator. Cancelling needs the requester or an
administrator. Authorization is decided before edge validity, so a caller
without the right role learns nothing about the request's state.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from licencias.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from licencias.database.models import LicenseRequest
from licencias.repositories.license_repository import LicenseRequestRepository
from licencias.schemas.auth import Actor
from licencias.schemas.enums import EVIDENCE_MUTABLE_STATUSES, LicenseStatus
from licencias.schemas.licenses import LicenseRequestCreate
from licencias.services.radicado import RadicadoGenerator
from licencias.utils.logging import get_logger

LOGGER = get_logger(__name__)

TRANSITIONS: Dict[LicenseStatus, frozenset] = {
    LicenseStatus.PENDING: frozenset({LicenseStatus.IN_REVIEW, LicenseStatus.CANCELLED}),
    LicenseStatus.IN_REVIEW: frozenset(
        {LicenseStatus.APPROVED, LicenseStatus.REJECTED, LicenseStatus.PENDING}
    ),
    LicenseStatus.APPROVED: frozenset(),
    LicenseStatus.REJECTED: frozenset(),
    LicenseStatus.CANCELLED: frozenset(),
}

# Targets only a reviewer or administrator may move a request into
REVIEWER_TARGETS = frozenset(
    {
        LicenseStatus.IN_REVIEW,
        LicenseStatus.APPROVED,
        LicenseStatus.REJECTED,
        LicenseStatus.PENDING,
    }
)

REQUIRED_TEXT_FIELDS = ("nombres", "apellidos", "tipo_documento", "numero_documento", "cargo")


def can_mutate_evidence(status: LicenseStatus) -> bool:
    """True while evidence may still be added, replaced or removed."""
    return status in EVIDENCE_MUTABLE_STATUSES


def is_valid_transition(current: LicenseStatus, target: LicenseStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def authorize_read(request: LicenseRequest, actor: Actor) -> None:
    """Allow the requester and elevated roles, deny everyone else.

    Raises:
        ForbiddenError: Generic denial
    """
    if actor.is_elevated or request.user_id == actor.user_id:
        return
    LOGGER.warning(
        "Read denied: actor is neither requester nor reviewer",
        extra={"license_request_id": str(request.id), "actor_id": actor.user_id},
    )
    raise ForbiddenError()


def authorize_evidence_write(request: LicenseRequest, actor: Actor) -> None:
    """Evidence may be written by the requester or an elevated role."""
    if actor.is_elevated or request.user_id == actor.user_id:
        return
    LOGGER.warning(
        "Evidence write denied",
        extra={"license_request_id": str(request.id), "actor_id": actor.user_id},
    )
    raise ForbiddenError()


class LifecycleManager:
    """Owns the request status machine and the rules about who may do what."""

    def __init__(
        self,
        repository: LicenseRequestRepository,
        radicado_generator: Optional[RadicadoGenerator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the manager.

        Args:
            repository: Persistence for requests
            radicado_generator: Tracking number source
            clock: Returns the current time, injectable for tests
        """
        self.repository = repository
        self.radicado_generator = radicado_generator or RadicadoGenerator()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    can_mutate_evidence = staticmethod(can_mutate_evidence)
    authorize_read = staticmethod(authorize_read)

    async def create_request(
        self,
        data: Union[LicenseRequestCreate, Mapping[str, Any]],
        requester_id: str,
    ) -> LicenseRequest:
        """Validate input, assign a radicado and persist a new Pending request.

        Raises:
            ValidationError: On missing fields or inconsistent dates/hours
            ConflictError: If no unique radicado could be assigned
        """
        payload = self._validate_input(data)
        now = self.clock()

        fields = payload.model_dump()
        fields.update(
            user_id=requester_id,
            estado=LicenseStatus.PENDING,
            created_at=now,
            updated_at=now,
            created_by=requester_id,
            updated_by=requester_id,
        )
        if not payload.reemplazo:
            fields["reemplazante"] = None

        async def claim(radicado: str) -> LicenseRequest:
            if await self.repository.radicado_exists(radicado):
                raise ConflictError(f"Radicado {radicado} already exists")
            return await self.repository.save(radicado=radicado, **fields)

        request = await self.radicado_generator.issue(claim)
        LOGGER.info(
            f"License request {request.radicado} created",
            extra={"license_request_id": str(request.id), "user_id": requester_id},
        )
        return request

    async def transition(
        self,
        request_id: UUID,
        target_status: Union[LicenseStatus, str],
        actor: Actor,
        comment: Optional[str] = None,
    ) -> LicenseRequest:
        """Move a request to ``target_status``.

        The current status is re-read right before validation. Asking for the
        status the request already has is a successful no-op that only
        refreshes ``updated_at``.

        Raises:
            ValidationError: If the target is not a known status
            NotFoundError: If the request does not exist
            ForbiddenError: If the actor may not move the request there
            InvalidTransitionError: If the move is not an edge of the machine
        """
        target = LicenseStatus.parse(target_status)
        request = await self._load(request_id)

        authorize_read(request, actor)
        self._authorize_transition(request, target, actor)

        current = request.estado
        now = self.clock()

        if target == current:
            LOGGER.info(
                f"Request {request.radicado} already {current.value}, refreshing timestamp",
                extra={"license_request_id": str(request.id), "actor_id": actor.user_id},
            )
            return await self.repository.update_status(
                request.id, current, actor_id=actor.user_id, updated_at=now, from_status=current
            )

        if not is_valid_transition(current, target):
            raise InvalidTransitionError(
                f"Cannot move request from {current.value} to {target.value}",
                details={"from": current.value, "to": target.value},
            )

        comment = comment.strip() if comment else None
        updated = await self.repository.update_status(
            request.id,
            target,
            actor_id=actor.user_id,
            updated_at=now,
            comment=comment or None,
            from_status=current,
        )
        LOGGER.info(
            f"Request {request.radicado} moved {current.value} -> {target.value}",
            extra={"license_request_id": str(request.id), "actor_id": actor.user_id},
        )
        return updated

    async def get_request(self, request_id: UUID, actor: Actor) -> LicenseRequest:
        request = await self._load(request_id)
        authorize_read(request, actor)
        return request

    async def lookup_by_radicado(self, radicado: str, actor: Actor) -> LicenseRequest:
        """Find a request by its tracking number.

        Raises:
            ValidationError: If the radicado is malformed
            NotFoundError: If no request carries it
            ForbiddenError: If the actor may not read it
        """
        radicado = (radicado or "").strip().upper()
        if not self.radicado_generator.pattern.match(radicado):
            raise ValidationError(f"Malformed radicado: {radicado}")

        request = await self.repository.find_by_radicado(radicado)
        if request is None:
            raise NotFoundError(f"License request {radicado} not found")
        authorize_read(request, actor)
        return request

    async def list_requests(
        self,
        actor: Actor,
        status: Optional[Union[LicenseStatus, str]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[int, List[LicenseRequest]]:
        """Requests visible to the actor: everything for reviewers, own ones otherwise."""
        status = LicenseStatus.parse(status) if status else None

        if actor.is_elevated:
            items = await self.repository.list_requests(status=status, limit=limit, offset=offset)
            total = await self.repository.count_requests(status=status)
        else:
            items = await self.repository.find_by_requester(
                actor.user_id, status=status, limit=limit, offset=offset
            )
            total = await self.repository.count_requests(user_id=actor.user_id, status=status)
        return total, items

    async def _load(self, request_id: UUID) -> LicenseRequest:
        if not isinstance(request_id, UUID):
            try:
                request_id = UUID(str(request_id))
            except ValueError as e:
                raise NotFoundError(f"License request {request_id} not found", original_error=e) from e

        request = await self.repository.find_by_id(request_id)
        if request is None:
            raise NotFoundError(f"License request {request_id} not found")
        return request

    @staticmethod
    def _authorize_transition(request: LicenseRequest, target: LicenseStatus, actor: Actor) -> None:
        if target in REVIEWER_TARGETS:
            allowed = actor.is_elevated
        elif target == LicenseStatus.CANCELLED:
            allowed = actor.is_admin or request.user_id == actor.user_id
        else:
            allowed = False

        if not allowed:
            LOGGER.warning(
                f"Transition to {target.value} denied for role {actor.role.value}",
                extra={"license_request_id": str(request.id), "actor_id": actor.user_id},
            )
            raise ForbiddenError()

    @staticmethod
    def _validate_input(data: Union[LicenseRequestCreate, Mapping[str, Any]]) -> LicenseRequestCreate:
        try:
            payload = data if isinstance(data, LicenseRequestCreate) else LicenseRequestCreate.model_validate(dict(data))
        except PydanticValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise ValidationError(
                f"Invalid license request: {', '.join(fields)}",
                original_error=e,
                details={"fields": fields},
            ) from e

        missing = [name for name in REQUIRED_TEXT_FIELDS if not getattr(payload, name)]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}", details={"fields": missing}
            )

        if payload.fecha_finalizacion < payload.fecha_inicio:
            raise ValidationError(
                "fecha_finalizacion must not be before fecha_inicio",
                details={"fields": ["fecha_inicio", "fecha_finalizacion"]},
            )

        if (
            payload.fecha_inicio == payload.fecha_finalizacion
            and payload.hora_inicio is not None
            and payload.hora_fin is not None
            and payload.hora_fin <= payload.hora_inicio
        ):
            raise ValidationError(
                "hora_fin must be after hora_inicio", details={"fields": ["hora_inicio", "hora_fin"]}
            )

        if payload.reemplazo and not payload.reemplazante:
            raise ValidationError(
                "reemplazante is required when reemplazo is set", details={"fields": ["reemplazante"]}
            )

        return payload

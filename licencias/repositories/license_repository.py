"""Repository for license requests and their evidence metadata.

This is the persistence boundary of the lifecycle core. Every query that
serves a requester filters by owner explicitly, even when row-level
security is active upstream.
"""

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from licencias.core.exceptions import ConflictError, DatabaseError, NotFoundError
from licencias.database.models import LicenseEvidence, LicenseRequest, LicenseStatusEvent
from licencias.repositories.base_repository import BaseRepository
from licencias.schemas.enums import LicenseStatus
from licencias.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LicenseRequestRepository(BaseRepository[LicenseRequest]):
    """Repository for LicenseRequest, LicenseEvidence and LicenseStatusEvent rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, LicenseRequest)

    async def save(self, **fields: Any) -> LicenseRequest:
        """Insert a new license request.

        Raises:
            ConflictError: If the radicado is already taken
            DatabaseError: On any other database failure
        """
        request = LicenseRequest(**fields)
        self.session.add(request)
        try:
            await self._commit("license request insert")
        except IntegrityError as e:
            raise ConflictError(
                f"Radicado {fields.get('radicado')} already exists", original_error=e
            ) from e
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to insert license request", original_error=e) from e

        LOGGER.info(f"Created license request {request.id} ({request.radicado})")
        return await self.find_by_id(request.id)

    async def find_by_id(self, request_id: UUID) -> Optional[LicenseRequest]:
        """Latest committed state of a request, evidences included."""
        return await self.get_by_id(request_id)

    async def find_by_radicado(self, radicado: str) -> Optional[LicenseRequest]:
        stmt = (
            select(LicenseRequest)
            .where(LicenseRequest.radicado == radicado)
            .execution_options(populate_existing=True)
        )
        result = await self._execute(stmt, f"find license request by radicado {radicado}")
        return result.scalar_one_or_none()

    async def radicado_exists(self, radicado: str) -> bool:
        stmt = select(func.count()).select_from(LicenseRequest).where(LicenseRequest.radicado == radicado)
        result = await self._execute(stmt, "radicado lookup")
        return result.scalar_one() > 0

    async def find_by_requester(
        self,
        user_id: str,
        status: Optional[LicenseStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[LicenseRequest]:
        """Requests owned by ``user_id``, newest first."""
        stmt = select(LicenseRequest).where(LicenseRequest.user_id == user_id)
        if status is not None:
            stmt = stmt.where(LicenseRequest.estado == status)
        stmt = stmt.order_by(LicenseRequest.created_at.desc()).offset(offset).limit(limit)
        result = await self._execute(stmt, f"list license requests for {user_id}")
        return list(result.scalars().all())

    async def list_requests(
        self,
        status: Optional[LicenseStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[LicenseRequest]:
        """All requests, newest first. Reviewer use only."""
        stmt = select(LicenseRequest)
        if status is not None:
            stmt = stmt.where(LicenseRequest.estado == status)
        stmt = stmt.order_by(LicenseRequest.created_at.desc()).offset(offset).limit(limit)
        result = await self._execute(stmt, "list license requests")
        return list(result.scalars().all())

    async def count_requests(self, user_id: Optional[str] = None, status: Optional[LicenseStatus] = None) -> int:
        filters = {}
        if user_id is not None:
            filters["user_id"] = user_id
        if status is not None:
            filters["estado"] = status
        return await self.count(filters)

    async def update_status(
        self,
        request_id: UUID,
        status: LicenseStatus,
        *,
        actor_id: Optional[str],
        updated_at: datetime,
        comment: Optional[str] = None,
        from_status: Optional[LicenseStatus] = None,
    ) -> LicenseRequest:
        """Write status, timestamp and optional comment in one statement.

        When ``from_status`` differs from ``status`` an audit event is
        committed in the same transaction.

        Raises:
            NotFoundError: If the request does not exist
            DatabaseError: On database failure
        """
        values = {"estado": status, "updated_at": updated_at, "updated_by": actor_id}
        if comment is not None:
            values["comentarios_rh"] = comment

        stmt = update(LicenseRequest).where(LicenseRequest.id == request_id).values(**values)
        result = await self._execute(stmt, f"update status of {request_id}")
        if result.rowcount == 0:
            await self.session.rollback()
            raise NotFoundError(f"License request {request_id} not found")

        if from_status is not None and from_status != status:
            self.session.add(
                LicenseStatusEvent(
                    license_request_id=request_id,
                    from_status=from_status.value,
                    to_status=status.value,
                    actor_id=actor_id,
                    comment=comment,
                    created_at=updated_at,
                )
            )

        try:
            await self._commit(f"status update of {request_id}")
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to update status of {request_id}", original_error=e) from e

        LOGGER.info(
            f"License request {request_id} status set to {status.value}",
            extra={"license_request_id": str(request_id), "actor_id": actor_id},
        )
        return await self.find_by_id(request_id)

    async def list_status_events(self, request_id: UUID) -> List[LicenseStatusEvent]:
        stmt = (
            select(LicenseStatusEvent)
            .where(LicenseStatusEvent.license_request_id == request_id)
            .order_by(LicenseStatusEvent.created_at)
        )
        result = await self._execute(stmt, f"list status events of {request_id}")
        return list(result.scalars().all())

    async def find_evidence(
        self, request_id: UUID, document_type: str, item_id: str
    ) -> Optional[LicenseEvidence]:
        """Metadata row occupying an evidence slot, if any."""
        stmt = (
            select(LicenseEvidence)
            .where(
                LicenseEvidence.license_request_id == request_id,
                LicenseEvidence.document_type == document_type,
                LicenseEvidence.item_id == item_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._execute(stmt, "evidence slot lookup")
        return result.scalar_one_or_none()

    async def list_evidence(self, request_id: UUID) -> List[LicenseEvidence]:
        stmt = (
            select(LicenseEvidence)
            .where(LicenseEvidence.license_request_id == request_id)
            .order_by(LicenseEvidence.uploaded_at)
            .execution_options(populate_existing=True)
        )
        result = await self._execute(stmt, f"list evidence of {request_id}")
        return list(result.scalars().all())

    async def append_evidence_metadata(
        self,
        request_id: UUID,
        document_type: str,
        item_id: str,
        **metadata: Any,
    ) -> LicenseEvidence:
        """Upsert the metadata row of an evidence slot.

        An occupied slot is updated in place, so re-uploads never create a
        second row. A concurrent insert of the same slot is resolved by
        updating the row that won.
        """
        evidence = await self.find_evidence(request_id, document_type, item_id)
        if evidence is None:
            evidence = LicenseEvidence(
                license_request_id=request_id,
                document_type=document_type,
                item_id=item_id,
                **metadata,
            )
            self.session.add(evidence)
        else:
            self._apply(evidence, metadata)

        try:
            await self._commit("evidence metadata upsert")
        except IntegrityError:
            LOGGER.info(
                "Evidence slot taken concurrently, updating existing row",
                extra={"license_request_id": str(request_id), "document_type": document_type, "item_id": item_id},
            )
            evidence = await self.find_evidence(request_id, document_type, item_id)
            if evidence is None:
                raise ConflictError(f"Evidence slot {document_type}/{item_id} could not be written")
            self._apply(evidence, metadata)
            try:
                await self._commit("evidence metadata update")
            except SQLAlchemyError as e:
                raise DatabaseError("Failed to write evidence metadata", original_error=e) from e
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to write evidence metadata", original_error=e) from e

        return evidence

    async def delete_evidence_metadata(self, evidence_id: UUID) -> bool:
        """Delete one evidence row. Returns False if it did not exist."""
        evidence = await self.session.get(LicenseEvidence, evidence_id)
        if evidence is None:
            return False
        await self.session.delete(evidence)
        try:
            await self._commit(f"evidence delete {evidence_id}")
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to delete evidence {evidence_id}", original_error=e) from e
        return True

    @staticmethod
    def _apply(evidence: LicenseEvidence, metadata: dict) -> None:
        for key, value in metadata.items():
            setattr(evidence, key, value)

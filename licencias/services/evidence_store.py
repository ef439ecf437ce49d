"""Evidence store adapter.

Binds an evidence slot ``(request, document_type, item_id)`` to an object in
the store and to one metadata row. Keys are deterministic per slot, so a
re-upload overwrites the same object and upserts the same row; a failed
``put`` can always be repeated.

Rows only keep a URL when the bucket is public. Signed URLs for a private
bucket expire, so they are created each time evidence is read.
"""

import asyncio
import re
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional
from uuid import UUID

from licencias.core.config import StorageSettings
from licencias.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    StorageUnavailableError,
    ValidationError,
)
from licencias.core.retry import RetryPolicy
from licencias.database.models import LicenseEvidence, LicenseRequest
from licencias.repositories.license_repository import LicenseRequestRepository
from licencias.schemas.auth import Actor
from licencias.schemas.licenses import EvidenceResponse, StoredObject
from licencias.services.lifecycle_manager import (
    authorize_evidence_write,
    authorize_read,
    can_mutate_evidence,
)
from licencias.services.storage_service import SupabaseStorageClient
from licencias.utils.logging import get_logger

LOGGER = get_logger(__name__)

_SLOT_SEGMENT = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class EvidenceStoreAdapter:
    """Evidence uploads, lookups and deletions for license requests."""

    def __init__(
        self,
        storage: SupabaseStorageClient,
        repository: LicenseRequestRepository,
        storage_settings: StorageSettings,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.repository = repository
        self.config = storage_settings
        self.bucket = storage_settings.bucket
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=storage_settings.max_attempts,
            base_delay=storage_settings.retry_delay,
            max_delay=storage_settings.max_retry_delay,
            retry_on=(StorageUnavailableError,),
        )
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def request_prefix(self, owner_id: str, request_id: UUID) -> str:
        """Folder holding every object of one request, scoped by owner."""
        return f"{self.config.key_prefix}/{owner_id}/{request_id}"

    def compose_key(self, owner_id: str, request_id: UUID, document_type: str, item_id: str) -> str:
        return f"{self.request_prefix(owner_id, request_id)}/{document_type}/{item_id}"

    async def put(
        self,
        request_id: UUID,
        document_type: str,
        item_id: str,
        file_bytes: bytes,
        file_name: str,
        mime_type: str,
        actor: Actor,
    ) -> StoredObject:
        """Upload a file into a slot and upsert its metadata row.

        Nothing is sent to the store unless the request is still mutable and
        the file passes validation.

        Raises:
            NotFoundError: If the request does not exist
            ForbiddenError: If the actor is neither requester nor reviewer
            InvalidStateError: If the request is in a terminal status
            ValidationError: On a bad slot, empty or oversized file, or
                disallowed MIME type
            StorageUnavailableError: If the store stays unavailable after retries
        """
        request = await self._load(request_id)
        authorize_evidence_write(request, actor)
        self._ensure_mutable(request)

        self._validate_slot(document_type, item_id)
        mime_type = self._validate_file(file_bytes, file_name, mime_type)

        key = self.compose_key(request.user_id, request.id, document_type, item_id)
        await self.retry_policy.run(
            lambda: self.storage.upload(self.bucket, key, file_bytes, content_type=mime_type, upsert=True),
            description=f"evidence upload {key}",
        )
        url = await self._url_for(key)

        await self.repository.append_evidence_metadata(
            request.id,
            document_type,
            item_id,
            file_name=file_name,
            file_path=key,
            file_url=url if self.config.public_bucket else None,
            file_type=mime_type,
            file_size=len(file_bytes),
            uploaded_at=self.clock(),
            uploaded_by=actor.user_id,
        )
        LOGGER.info(
            "Evidence stored",
            extra={
                "license_request_id": str(request.id),
                "document_type": document_type,
                "item_id": item_id,
                "size": len(file_bytes),
            },
        )
        return StoredObject(key=key, public_url=url)

    async def exists(
        self, request_id: UUID, document_type: str, item_id: str, actor: Actor
    ) -> Optional[EvidenceResponse]:
        """Current evidence of a slot with a usable URL, or None when the slot is empty."""
        request = await self._load(request_id)
        authorize_read(request, actor)
        evidence = await self.repository.find_evidence(request.id, document_type, item_id)
        if evidence is None:
            return None
        return (await self.present([evidence]))[0]

    async def present(self, evidences: Iterable[LicenseEvidence]) -> List[EvidenceResponse]:
        """Evidence rows as responses, each with a URL that works right now.

        Public buckets reuse the stored URL. Private buckets get a fresh
        signed URL per row.
        """
        evidences = list(evidences)
        urls = await asyncio.gather(*(self._url_for_evidence(evidence) for evidence in evidences))
        return [
            EvidenceResponse.model_validate(evidence).model_copy(update={"file_url": url})
            for evidence, url in zip(evidences, urls)
        ]

    async def delete(self, key: str) -> None:
        """Remove an object. Succeeds when the key does not exist."""
        await self.retry_policy.run(
            lambda: self.storage.delete(self.bucket, [key]),
            description=f"evidence delete {key}",
        )

    async def remove(self, request_id: UUID, document_type: str, item_id: str, actor: Actor) -> bool:
        """Delete the object and metadata row of a slot.

        Returns False when the slot was already empty.

        Raises:
            InvalidStateError: If the request is in a terminal status
        """
        request = await self._load(request_id)
        authorize_evidence_write(request, actor)
        self._ensure_mutable(request)

        evidence = await self.repository.find_evidence(request.id, document_type, item_id)
        if evidence is None:
            return False

        # Object first: a leftover row can be removed again, a leftover object is an orphan
        await self.delete(evidence.file_path)
        await self.repository.delete_evidence_metadata(evidence.id)
        LOGGER.info(
            "Evidence removed",
            extra={"license_request_id": str(request.id), "document_type": document_type, "item_id": item_id},
        )
        return True

    async def cleanup_orphans(self, request_id: UUID, actor: Actor) -> List[str]:
        """Delete stored objects of a request that no metadata row points to.

        Raises:
            ForbiddenError: Unless the actor is an administrator
        """
        if not actor.is_admin:
            LOGGER.warning("Orphan cleanup denied", extra={"actor_id": actor.user_id})
            raise ForbiddenError()

        request = await self._load(request_id)
        prefix = self.request_prefix(request.user_id, request.id)

        stored = await self.retry_policy.run(
            lambda: self.storage.list_objects(self.bucket, prefix),
            description=f"evidence listing {prefix}",
        )
        referenced = {evidence.file_path for evidence in await self.repository.list_evidence(request.id)}
        orphans = sorted(key for key in stored if key not in referenced)

        if orphans:
            await self.retry_policy.run(
                lambda: self.storage.delete(self.bucket, orphans),
                description=f"orphan cleanup {prefix}",
            )
        LOGGER.info(
            f"Removed {len(orphans)} orphaned objects",
            extra={"license_request_id": str(request.id), "actor_id": actor.user_id},
        )
        return orphans

    async def _url_for_evidence(self, evidence: LicenseEvidence) -> str:
        if self.config.public_bucket and evidence.file_url:
            return evidence.file_url
        return await self._url_for(evidence.file_path)

    async def _url_for(self, key: str) -> str:
        if self.config.public_bucket:
            return self.storage.public_url(self.bucket, key)
        return await self.retry_policy.run(
            lambda: self.storage.create_signed_url(self.bucket, key, self.config.signed_url_ttl),
            description=f"signed url {key}",
        )

    async def _load(self, request_id: UUID) -> LicenseRequest:
        request = await self.repository.find_by_id(request_id)
        if request is None:
            raise NotFoundError(f"License request {request_id} not found")
        return request

    @staticmethod
    def _ensure_mutable(request: LicenseRequest) -> None:
        if not can_mutate_evidence(request.estado):
            raise InvalidStateError(
                f"Evidence cannot change while request is {request.estado.value}",
                details={"status": request.estado.value},
            )

    @staticmethod
    def _validate_slot(document_type: str, item_id: str) -> None:
        for name, value in (("document_type", document_type), ("item_id", item_id)):
            if not value or not _SLOT_SEGMENT.match(value):
                raise ValidationError(f"Invalid {name}: {value!r}", details={"field": name})

    def _validate_file(self, file_bytes: bytes, file_name: str, mime_type: str) -> str:
        if not file_bytes:
            raise ValidationError("Uploaded file is empty")
        if not file_name or not file_name.strip():
            raise ValidationError("File name is required")
        if len(file_bytes) > self.config.max_upload_bytes:
            raise ValidationError(
                f"File exceeds {self.config.max_upload_bytes} bytes",
                details={"size": len(file_bytes), "max": self.config.max_upload_bytes},
            )

        mime_type = (mime_type or "").split(";")[0].strip().lower()
        if mime_type not in self.config.allowed_mime_types:
            raise ValidationError(
                f"File type {mime_type or 'unknown'} is not allowed",
                details={"allowed": list(self.config.allowed_mime_types)},
            )
        return mime_type

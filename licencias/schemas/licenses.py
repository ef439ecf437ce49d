"""Schemas for license requests and their evidence."""

from datetime import date, datetime, time
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from licencias.schemas.enums import LicenseStatus


class LicenseRequestCreate(BaseModel):
    """Input for a new license request.

    Types are checked here; business rules (blank fields, date order,
    hour order, replacement) are enforced by the lifecycle manager.
    """

    nombres: str = Field(..., description="Applicant first names")
    apellidos: str = Field(..., description="Applicant last names")
    tipo_documento: str = Field(..., description="Identity document type")
    numero_documento: str = Field(..., description="Identity document number")
    cargo: str = Field(..., description="Role/position")
    fecha_inicio: date = Field(..., description="First day of leave")
    fecha_finalizacion: date = Field(..., description="Last day of leave")
    observacion: Optional[str] = Field(None, description="Free-text observation")

    area_trabajo: Optional[str] = Field(None, description="Work area")
    codigo_tipo_permiso: Optional[str] = Field(None, description="Permission type code")
    fecha_compensacion: Optional[date] = Field(None, description="Compensation date")
    hora_inicio: Optional[time] = Field(None, description="Start hour for hour-based permissions")
    hora_fin: Optional[time] = Field(None, description="End hour for hour-based permissions")
    reemplazo: bool = Field(default=False, description="Whether a replacement covers the absence")
    reemplazante: Optional[str] = Field(None, description="Name of the replacement")

    @field_validator(
        "nombres", "apellidos", "tipo_documento", "numero_documento", "cargo",
        "observacion", "area_trabajo", "codigo_tipo_permiso", "reemplazante",
        mode="before",
    )
    @classmethod
    def strip_text(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class TransitionRequest(BaseModel):
    """Status change requested by an actor."""

    status: str = Field(..., description="Target status")
    comment: Optional[str] = Field(None, description="Reviewer comment")


class EvidenceResponse(BaseModel):
    """Evidence attachment metadata."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    license_request_id: UUID
    document_type: str
    item_id: str
    file_name: str
    file_path: str
    file_url: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    uploaded_at: datetime
    uploaded_by: Optional[str] = None


class EvidenceLookup(BaseModel):
    """Result of an evidence slot existence check."""

    exists: bool
    evidence: Optional[EvidenceResponse] = None


class LicenseRequestResponse(BaseModel):
    """License request with its evidence list."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    radicado: str
    user_id: str
    nombres: str
    apellidos: str
    tipo_documento: str
    numero_documento: str
    cargo: str
    area_trabajo: Optional[str] = None
    codigo_tipo_permiso: Optional[str] = None
    fecha_inicio: date
    fecha_finalizacion: date
    fecha_compensacion: Optional[date] = None
    hora_inicio: Optional[time] = None
    hora_fin: Optional[time] = None
    reemplazo: bool = False
    reemplazante: Optional[str] = None
    observacion: Optional[str] = None
    estado: LicenseStatus
    comentarios_rh: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    evidences: List[EvidenceResponse] = Field(default_factory=list)


class LicenseRequestList(BaseModel):
    """Page of license requests."""

    total: int
    items: List[LicenseRequestResponse]


class StoredObject(BaseModel):
    """Object store location of an uploaded file."""

    key: str
    public_url: str


class CleanupResult(BaseModel):
    """Keys removed by an orphan cleanup."""

    deleted_keys: List[str] = Field(default_factory=list)

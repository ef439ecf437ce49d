"""SQLAlchemy models for the license request system of record."""

import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from licencias.core.database import Base
from licencias.schemas.enums import LicenseStatus, Role


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class ActorProfile(Base):
    """Profile row supplying the role used for authorization."""

    __tablename__ = "profiles"

    # Identity provider user id (Supabase auth.users.id)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[Role] = mapped_column(
        SAEnum(Role, name="profile_role", native_enum=False, values_callable=_enum_values, length=16),
        nullable=False,
        default=Role.USER,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class LicenseRequest(Base):
    """One leave/permission request."""

    __tablename__ = "license_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    radicado: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    nombres: Mapped[str] = mapped_column(String(120), nullable=False)
    apellidos: Mapped[str] = mapped_column(String(120), nullable=False)
    tipo_documento: Mapped[str] = mapped_column(String(40), nullable=False)
    numero_documento: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    cargo: Mapped[str] = mapped_column(String(120), nullable=False)
    area_trabajo: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    codigo_tipo_permiso: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    fecha_inicio: Mapped[date] = mapped_column(Date, nullable=False)
    fecha_finalizacion: Mapped[date] = mapped_column(Date, nullable=False)
    fecha_compensacion: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    hora_inicio: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    hora_fin: Mapped[Optional[time]] = mapped_column(Time, nullable=True)

    reemplazo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reemplazante: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    observacion: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    estado: Mapped[LicenseStatus] = mapped_column(
        SAEnum(
            LicenseStatus,
            name="license_status",
            native_enum=False,
            values_callable=_enum_values,
            length=20,
        ),
        nullable=False,
        default=LicenseStatus.PENDING,
        index=True,
    )
    comentarios_rh: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    evidences: Mapped[list["LicenseEvidence"]] = relationship(
        "LicenseEvidence",
        back_populates="license_request",
        order_by="LicenseEvidence.uploaded_at",
        lazy="selectin",
    )
    status_events: Mapped[list["LicenseStatusEvent"]] = relationship(
        "LicenseStatusEvent",
        back_populates="license_request",
        order_by="LicenseStatusEvent.created_at",
        lazy="raise",
    )

    def __repr__(self) -> str:
        return f"<LicenseRequest {self.radicado} {self.estado.value}>"


class LicenseEvidence(Base):
    """One uploaded supporting file, bound to exactly one request slot."""

    __tablename__ = "license_evidences"
    __table_args__ = (
        UniqueConstraint(
            "license_request_id", "document_type", "item_id", name="uq_license_evidence_slot"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    license_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("license_requests.id"), nullable=False, index=True
    )
    document_type: Mapped[str] = mapped_column(String(64), nullable=False)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False, default="default")

    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(512), nullable=False)
    file_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_type: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    uploaded_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    license_request: Mapped["LicenseRequest"] = relationship("LicenseRequest", back_populates="evidences")


class LicenseStatusEvent(Base):
    """Append-only audit trail of effective status changes."""

    __tablename__ = "license_status_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    license_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("license_requests.id"), nullable=False, index=True
    )
    from_status: Mapped[str] = mapped_column(String(20), nullable=False)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    license_request: Mapped["LicenseRequest"] = relationship("LicenseRequest", back_populates="status_events")


# Reference catalogs share one shape; the table name is the catalog name.
CATALOG_NAMES = (
    "document_types",
    "marital_status",
    "academic_modalities",
    "institutions",
    "report_periods",
)

CATALOG_TABLES = {
    name: Table(
        name,
        Base.metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("code", String(40), nullable=True),
        Column("name", String(255), nullable=False),
    )
    for name in CATALOG_NAMES
}

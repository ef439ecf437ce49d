"""Canonical enumerations for license requests and actors."""

import unicodedata
from enum import Enum

from licencias.core.exceptions import ValidationError


def _normalize(value: str) -> str:
    stripped = unicodedata.normalize("NFKD", value.strip().lower())
    return "".join(c for c in stripped if not unicodedata.combining(c)).replace(" ", "_").replace("-", "_")


class LicenseStatus(str, Enum):
    """Status of a license request as stored in the system of record."""

    PENDING = "pendiente"
    IN_REVIEW = "en_revision"
    APPROVED = "aprobada"
    REJECTED = "rechazada"
    CANCELLED = "cancelada"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, value: "str | LicenseStatus") -> "LicenseStatus":
        """Parse a status, accepting legacy spellings.

        Older rows and clients used masculine or English forms
        ("Aprobado", "approved", "En revisión"). They all map onto the
        canonical member.

        Raises:
            ValidationError: If the value is not a known status
        """
        if isinstance(value, cls):
            return value
        key = _normalize(str(value))
        member = _STATUS_ALIASES.get(key)
        if member is None:
            raise ValidationError(f"Unknown license status: {value}", details={"status": value})
        return member


_STATUS_ALIASES = {
    "pendiente": LicenseStatus.PENDING,
    "pending": LicenseStatus.PENDING,
    "en_revision": LicenseStatus.IN_REVIEW,
    "revision": LicenseStatus.IN_REVIEW,
    "in_review": LicenseStatus.IN_REVIEW,
    "inreview": LicenseStatus.IN_REVIEW,
    "aprobada": LicenseStatus.APPROVED,
    "aprobado": LicenseStatus.APPROVED,
    "approved": LicenseStatus.APPROVED,
    "rechazada": LicenseStatus.REJECTED,
    "rechazado": LicenseStatus.REJECTED,
    "rejected": LicenseStatus.REJECTED,
    "cancelada": LicenseStatus.CANCELLED,
    "cancelado": LicenseStatus.CANCELLED,
    "cancelled": LicenseStatus.CANCELLED,
    "canceled": LicenseStatus.CANCELLED,
}

TERMINAL_STATUSES = frozenset(
    {LicenseStatus.APPROVED, LicenseStatus.REJECTED, LicenseStatus.CANCELLED}
)

# Evidence may only change while the request is still being worked on
EVIDENCE_MUTABLE_STATUSES = frozenset({LicenseStatus.PENDING, LicenseStatus.IN_REVIEW})


class Role(str, Enum):
    """Actor role, always read from the profiles table."""

    USER = "user"
    REVIEWER = "rh"
    ADMIN = "admin"

    @property
    def is_elevated(self) -> bool:
        return self in ELEVATED_ROLES

    @classmethod
    def parse(cls, value: "str | Role") -> "Role":
        """Parse a role value.

        Raises:
            ValidationError: If the value is not a known role
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise ValidationError(f"Unknown role: {value}", original_error=e, details={"role": value}) from e


ELEVATED_ROLES = frozenset({Role.REVIEWER, Role.ADMIN})

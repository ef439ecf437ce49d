"""Database models package."""

from licencias.database.models import ActorProfile, LicenseEvidence, LicenseRequest, LicenseStatusEvent

__all__ = [
    "ActorProfile",
    "LicenseRequest",
    "LicenseEvidence",
    "LicenseStatusEvent",
]

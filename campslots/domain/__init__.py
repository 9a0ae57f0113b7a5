"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    AuditReport,
    Caller,
    Camp,
    CampDraft,
    CampFilter,
    OrganizerStats,
    Registration,
    RegistrationStatus,
    Role,
    Slot,
    UserProfile,
)
from .slot_scheduler import SlotScheduler

__all__ = [
    "AuditReport",
    "Caller",
    "Camp",
    "CampDraft",
    "CampFilter",
    "OrganizerStats",
    "Registration",
    "RegistrationStatus",
    "Role",
    "Slot",
    "UserProfile",
    "SlotScheduler",
]

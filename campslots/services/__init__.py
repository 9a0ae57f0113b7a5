"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .camp_service import CampService
from .store import DocumentStoreProtocol, StoredDocument, Write

__all__ = ["CampService", "DocumentStoreProtocol", "StoredDocument", "Write"]

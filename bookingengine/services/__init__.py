"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .availability import AvailabilityService, RecordStoreProtocol

__all__ = ["AvailabilityService", "RecordStoreProtocol"]

"""
Service layer helpers that orchestrate the store and domain logic.
"""

from .availability_service import AvailabilityService
from .commit_guard import BookingCommitGuard
from .ports import BookingStoreProtocol

__all__ = ["AvailabilityService", "BookingCommitGuard", "BookingStoreProtocol"]

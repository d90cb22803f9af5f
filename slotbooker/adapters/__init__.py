"""
Adapters layer - Booking store implementations.
"""

from .memory_store import InMemoryBookingStore
from .rest_store import RestBookingStore

__all__ = ["InMemoryBookingStore", "RestBookingStore"]

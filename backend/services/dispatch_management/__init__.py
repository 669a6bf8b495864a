"""
Dispatch management service: assignment lifecycle for confirmed orders.

This module handles:
    - Dispatching an order to the best nearby drivers
    - Resolving exactly one winning claim per assignment
    - Driver rejections and order cancellation
    - Sweeping expired assignments (re-dispatch or escalate)
"""

from .config import DispatchConfig
from .coordinator import (
    DispatchCoordinator,
    DispatchOutcome,
    SweepResult,
    get_coordinator,
)
from .exceptions import (
    AlreadyClaimed,
    AssignmentCancelled,
    AssignmentExpired,
    AssignmentNotFound,
    DeliveryGeocodingFailed,
    DispatchError,
    DriverNotEligible,
    GeocodingFailed,
    InvalidState,
    NoDriversAvailable,
    NotificationDeliveryFailed,
    OrderNotFound,
    StoreWriteConflict,
)
from .store import AssignmentStore, DjangoAssignmentStore

__all__ = [
    # Coordination
    "DispatchCoordinator",
    "DispatchOutcome",
    "SweepResult",
    "DispatchConfig",
    "get_coordinator",
    # Persistence
    "AssignmentStore",
    "DjangoAssignmentStore",
    # Exceptions
    "DispatchError",
    "InvalidState",
    "OrderNotFound",
    "GeocodingFailed",
    "DeliveryGeocodingFailed",
    "NoDriversAvailable",
    "NotificationDeliveryFailed",
    "AssignmentNotFound",
    "AlreadyClaimed",
    "AssignmentExpired",
    "AssignmentCancelled",
    "DriverNotEligible",
    "StoreWriteConflict",
]

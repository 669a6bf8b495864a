"""Custom exceptions for dispatch management."""

from services.geo.exceptions import GeocodingFailed


class DispatchError(Exception):
    """Base class for expected dispatch outcomes."""
    code = "dispatch_error"


class InvalidState(DispatchError):
    """Raised when an order or assignment is not in a state that allows the operation."""
    code = "invalid_state"


class OrderNotFound(DispatchError):
    """Raised when the order to dispatch does not exist."""
    code = "order_not_found"


class DeliveryGeocodingFailed(DispatchError, GeocodingFailed):
    """Raised when the delivery address cannot be geocoded."""
    code = "geocoding_failed"


class NoDriversAvailable(DispatchError):
    """Raised when no driver is inside the search radius."""
    code = "no_drivers_available"


class NotificationDeliveryFailed(DispatchError):
    """Raised when every notification in a fan-out failed."""
    code = "notification_delivery_failed"


class AssignmentNotFound(DispatchError):
    """Raised when an assignment cannot be found."""
    code = "assignment_not_found"


class AlreadyClaimed(DispatchError):
    """Raised when another driver already won the assignment."""
    code = "already_claimed"


class AssignmentExpired(DispatchError):
    """Raised when the claim window has elapsed."""
    code = "expired"


class AssignmentCancelled(InvalidState):
    """Raised when the order was cancelled while the offer was open."""
    code = "cancelled"


class DriverNotEligible(DispatchError):
    """Raised when the driver was not notified for this assignment."""
    code = "driver_not_eligible"


class StoreWriteConflict(DispatchError):
    """Raised when a conditional update lost to a concurrent writer."""
    code = "store_write_conflict"

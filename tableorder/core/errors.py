"""Domain exceptions for ordering, check-in and store access.

Every error here is recoverable by re-attempting the originating action;
routes translate them into HTTP responses and client sessions surface them
to the caller without discarding local state.
"""

from typing import Optional


class OrderingError(Exception):
    """Base class for all domain errors raised by tableorder."""

    code = "ordering_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# ===== Validation =====

class OrderValidationError(OrderingError):
    """Raised when a cart cannot be turned into an order.

    ``reason`` is one of the class-level reason constants so callers can branch
    without parsing the message.
    """

    code = "order_validation"

    EMPTY_CART = "EMPTY_CART"
    NO_BRANCH = "NO_BRANCH"
    NO_TABLE = "NO_TABLE"
    TOPPING_SELECTION = "TOPPING_SELECTION"
    ITEM_UNAVAILABLE = "ITEM_UNAVAILABLE"

    def __init__(self, reason: str, message: str, menu_item_id: Optional[str] = None):
        self.reason = reason
        self.menu_item_id = menu_item_id
        super().__init__(message)


# ===== State machine =====

class OrderNotFoundError(OrderingError):
    code = "order_not_found"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order '{order_id}' not found")


class InvalidTransitionError(OrderingError):
    """Raised when no edge exists between two order statuses."""

    code = "invalid_transition"

    def __init__(self, order_id: str, current: str, target: str):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(f"Order '{order_id}' cannot move from {current} to {target}")


class TransitionNotPermittedError(OrderingError):
    """Raised when the edge exists but the acting role may not trigger it."""

    code = "transition_not_permitted"

    def __init__(self, role: str, current: str, target: str):
        self.role = role
        self.current = current
        self.target = target
        super().__init__(f"Role '{role}' may not move an order from {current} to {target}")


class ConfirmationRequiredError(OrderingError):
    """Raised when a destructive action is invoked without a confirmation."""

    code = "confirmation_required"


class ConfirmationNotFoundError(OrderingError):
    code = "confirmation_not_found"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Confirmation request '{request_id}' is unknown or already resolved")


class ConfirmationNotPermittedError(OrderingError):
    """Raised when a role other than the requesting one resolves a confirmation."""

    code = "confirmation_not_permitted"

    def __init__(self, request_id: str, role: str):
        self.request_id = request_id
        self.role = role
        super().__init__(f"Role '{role}' may not resolve confirmation request '{request_id}'")


class OrderNotEditableError(OrderingError):
    code = "order_not_editable"

    def __init__(self, order_id: str, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order '{order_id}' in status {status} can no longer be edited")


# ===== Check-in =====

class CheckInError(OrderingError):
    """Base class for the distinct, user-visible check-in failures."""

    code = "checkin_error"


class QRPayloadError(CheckInError):
    code = "qr_payload_invalid"

    def __init__(self, payload: str, detail: str):
        self.payload = payload
        self.detail = detail
        super().__init__(f"Invalid table QR code: {detail}")


class BranchNotFoundError(CheckInError):
    code = "branch_not_found"

    def __init__(self, latitude: float, longitude: float):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(f"No branch matches the scanned coordinates ({latitude}, {longitude})")


class GeolocationDeniedError(CheckInError):
    code = "geolocation_denied"

    def __init__(self, message: str = "Location permission was denied"):
        super().__init__(message)


class GeolocationUnavailableError(CheckInError):
    code = "geolocation_unavailable"

    def __init__(self, message: str = "Device location is unavailable"):
        super().__init__(message)


class GeolocationTimeoutError(CheckInError):
    code = "geolocation_timeout"

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Timed out after {timeout_seconds:g}s waiting for device location")


class OutOfRangeError(CheckInError):
    """Raised when the device is farther from the branch than allowed."""

    code = "out_of_range"

    def __init__(self, distance_meters: float, allowed_meters: float, branch_id: str):
        self.distance_meters = distance_meters
        self.allowed_meters = allowed_meters
        self.branch_id = branch_id
        super().__init__(
            f"You are {distance_meters:.1f}m away from the restaurant. "
            f"Maximum allowed distance is {allowed_meters:g}m."
        )


# ===== Store =====

class StoreError(OrderingError):
    """Raised when the document store cannot be read or written."""

    code = "store_unavailable"

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


# ===== Sessions =====

class AuthenticationError(OrderingError):
    """Raised when a staff login does not match any admin entry."""

    code = "invalid_credentials"

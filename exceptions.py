"""
Domain exceptions for the hostel service.

Every failure a ledger operation can report derives from HostelError, which
carries a machine readable code and optional details. The HTTP layer maps each
class to a status code (see STATUS_CODES) and renders to_dict().

Usage:
    from exceptions import CapacityExceeded, RoomNotFound

    if room is None:
        raise RoomNotFound(room_id)
"""

from typing import Optional, Any, Dict


class HostelError(Exception):
    """Base exception for all hostel errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(HostelError):
    """Caller identity could not be established"""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class AuthorizationError(HostelError):
    """Caller not allowed to perform this action"""

    def __init__(self, message: str = "Forbidden: insufficient role"):
        super().__init__(message, code="NOT_AUTHORIZED")


# ============================================
# Validation Errors
# ============================================

class ValidationError(HostelError):
    """Missing or invalid field; nothing was written"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else None
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class InvalidTransitionError(ValidationError):
    """Lifecycle transition not allowed from the current status"""

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")
        self.code = "INVALID_TRANSITION"
        self.details = {"entity": entity, "current": current, "target": target}


# ============================================
# Occupancy Errors
# ============================================

class CapacityExceeded(HostelError):
    """Assignment would put a room over capacity"""

    def __init__(self, room_number: str, capacity: int, requested: int):
        super().__init__(
            f"Room capacity exceeded. Room {room_number} can only accommodate {capacity} students.",
            code="CAPACITY_EXCEEDED",
            details={"room_number": room_number, "capacity": capacity, "requested": requested}
        )


class RoomOccupied(HostelError):
    """Room still has residents"""

    def __init__(self, room_number: str, occupied: int):
        super().__init__(
            f"Room {room_number} is currently occupied. Relocate or remove all residents before deleting.",
            code="ROOM_OCCUPIED",
            details={"room_number": room_number, "occupied": occupied}
        )


# ============================================
# Resource Errors (404-type)
# ============================================

class NotFoundError(HostelError):
    """Base class for not found errors"""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class UserNotFound(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__("User", user_id)


class RoomNotFound(NotFoundError):
    def __init__(self, room_id: str):
        super().__init__("Room", room_id)


class FeeNotFound(NotFoundError):
    def __init__(self, fee_id: str):
        super().__init__("Fee", fee_id)


class ComplaintNotFound(NotFoundError):
    def __init__(self, complaint_id: str):
        super().__init__("Complaint", complaint_id)


class AnnouncementNotFound(NotFoundError):
    def __init__(self, announcement_id: str):
        super().__init__("Announcement", announcement_id)


class NotificationNotFound(NotFoundError):
    def __init__(self, notification_id: str):
        super().__init__("Notification", notification_id)


# ============================================
# Store Errors
# ============================================

class ConflictError(HostelError):
    """Document kept changing underneath an optimistic update"""

    def __init__(self, collection: str, doc_id: str, attempts: int):
        super().__init__(
            f"Concurrent update on {collection} '{doc_id}' did not settle after {attempts} attempts",
            code="CONFLICT",
            details={"collection": collection, "id": doc_id, "attempts": attempts}
        )


class StoreUnavailable(HostelError):
    """Document store could not be reached"""

    def __init__(self, message: str = "Database not available"):
        super().__init__(message, code="STORE_UNAVAILABLE")


STATUS_CODES = {
    AuthenticationError: 401,
    AuthorizationError: 403,
    InvalidTransitionError: 409,
    ValidationError: 400,
    CapacityExceeded: 409,
    RoomOccupied: 409,
    NotFoundError: 404,
    ConflictError: 409,
    StoreUnavailable: 503,
}


def status_code_for(exc: HostelError) -> int:
    """HTTP status for an error, most specific class first"""
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500

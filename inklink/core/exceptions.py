# inklink/core/exceptions.py
"""
Error taxonomy for the transaction engine.

Services raise these typed failures; the boundary (see
``inklink.middleware.error_handler``) maps each one to a single HTTP status.
External-dependency and integrity failures carry a generic caller-facing
message; the real cause only goes to the log.
"""

from typing import Optional


class ErrorCategory:
    """Stable classifications exposed to callers"""
    VALIDATION = "validation_error"
    AUTHORIZATION = "authorization_error"
    NOT_FOUND = "not_found_error"
    CONFLICT = "conflict_error"
    EXTERNAL_SERVICE = "external_service_error"
    INTEGRITY = "integrity_error"
    INTERNAL = "internal_error"


class AppError(Exception):
    """Base application error with structured information"""

    def __init__(
        self,
        message: str,
        category: str = ErrorCategory.INTERNAL,
        status_code: int = 500,
        details: Optional[dict] = None,
    ):
        self.message = message
        self.category = category
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed, missing or out-of-range input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            status_code=400,
            details=details,
        )


class AuthorizationError(AppError):
    """Caller lacks the relationship the operation requires."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(
            message=message,
            category=ErrorCategory.AUTHORIZATION,
            status_code=403,
        )


class NotFoundError(AppError):
    def __init__(self, entity: str, entity_id: Optional[str] = None):
        details = {"entity": entity}
        if entity_id:
            details["id"] = entity_id
        super().__init__(
            message=f"{entity} not found",
            category=ErrorCategory.NOT_FOUND,
            status_code=404,
            details=details,
        )


class ConflictError(AppError):
    """The current state of the store does not allow the operation."""

    def __init__(self, message: str, status_code: int = 409, details: Optional[dict] = None):
        super().__init__(
            message=message,
            category=ErrorCategory.CONFLICT,
            status_code=status_code,
            details=details,
        )


class InvalidTransitionError(ConflictError):
    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            message=f"Cannot change status from {current} to {target}",
            status_code=400,
            details={"entity": entity, "from": current, "to": target},
        )
        self.current = current
        self.target = target


class RequestClosedError(ConflictError):
    def __init__(self, request_id: str, status: str):
        super().__init__(
            message="This tattoo request is no longer accepting offers",
            status_code=400,
            details={"request_id": request_id, "status": status},
        )


class DuplicateOfferError(ConflictError):
    def __init__(self, request_id: str):
        super().__init__(
            message="You have already made an offer for this tattoo request",
            status_code=400,
            details={"request_id": request_id},
        )


class SchedulingConflictError(ConflictError):
    def __init__(self, profile_id: str, conflicting_ids: Optional[list] = None):
        super().__init__(
            message="Time slot is not available",
            status_code=409,
            details={
                "profile_id": profile_id,
                "conflicting_appointment_ids": conflicting_ids or [],
            },
        )


class ExternalDependencyError(AppError):
    """A payment processor call failed or timed out."""

    def __init__(self, service: str, reason: Optional[str] = None):
        super().__init__(
            message="Payment processor request failed. Please try again.",
            category=ErrorCategory.EXTERNAL_SERVICE,
            status_code=500,
            details={"service": service},
        )
        # Kept off the response body; logged by the caller.
        self.reason = reason


class IntegrityFailure(AppError):
    """Unexpected persistence failure in the middle of a transition."""

    def __init__(self, operation: str):
        super().__init__(
            message="The operation could not be completed. Please try again.",
            category=ErrorCategory.INTEGRITY,
            status_code=500,
            details={"operation": operation},
        )

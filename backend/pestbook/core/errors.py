"""
Error taxonomy for the booking core.

Services raise these instead of HTTPException so they can be exercised
without an HTTP layer; main.py renders them as
{"ok": false, "error": <kind>, "message": <message>}.
"""

from fastapi import status


class DomainError(Exception):
    kind = "error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    # label used for booking_transitions_total{outcome=...}
    outcome = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.kind, "message": self.message}


class ValidationError(DomainError):
    """Malformed or out-of-range input. Raised before the store is touched."""

    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST
    outcome = "invalid"


class UnauthenticatedError(DomainError):
    kind = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    outcome = "unauthenticated"


class ForbiddenError(DomainError):
    """Authenticated, but lacking the role or ownership for the operation."""

    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    outcome = "forbidden"


class NotFoundError(DomainError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    outcome = "not_found"


class ConflictError(DomainError):
    """Current state forbids the operation, a race was lost, or a store constraint fired."""

    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT
    outcome = "conflict"


class StoreError(DomainError):
    """Unexpected store failure. The transaction has already been rolled back."""

    kind = "store_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    outcome = "error"

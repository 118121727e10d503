"""Typed failures raised by the allocation and assignment engine.

Every failure carries a stable ``code`` so callers can branch on the reason
without parsing messages. The four top-level categories map onto how the
caller should react:

* ``ValidationError`` - malformed input, rejected before touching the store.
* ``NotFoundError`` - an id that does not exist.
* ``ConflictError`` - the current state forbids the operation.
* ``TransactionError`` - the store failed mid-transaction and was rolled back.

Nothing is retried internally.
"""

from __future__ import annotations


class EngineError(Exception):
    code = "ENGINE_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(EngineError):
    code = "VALIDATION_ERROR"


class NotFoundError(EngineError):
    code = "NOT_FOUND"


class ConflictError(EngineError):
    code = "CONFLICT"


class TransactionError(EngineError):
    code = "TRANSACTION_FAILED"


class InvalidCoordinate(ValidationError):
    code = "INVALID_COORDINATE"


class LocationUnresolved(ValidationError):
    code = "LOCATION_UNRESOLVED"


class CategoryMismatch(ValidationError):
    code = "CATEGORY_MISMATCH"


class InvalidRequestKind(ValidationError):
    code = "INVALID_REQUEST_KIND"


class RequestNotFound(NotFoundError):
    code = "REQUEST_NOT_FOUND"


class ResourceNotFound(NotFoundError):
    code = "RESOURCE_NOT_FOUND"


class AllocationNotFound(NotFoundError):
    code = "ALLOCATION_NOT_FOUND"


class NoCategoryMatch(ConflictError):
    code = "NO_CATEGORY_MATCH"


class NoCandidatesWithinRadius(ConflictError):
    code = "NO_CANDIDATES_WITHIN_RADIUS"


class ResourceUnavailable(ConflictError):
    code = "RESOURCE_UNAVAILABLE"


class InsufficientQuantity(ConflictError):
    code = "INSUFFICIENT_QUANTITY"


class RequestNotPending(ConflictError):
    code = "INVALID_REQUEST_STATUS"


class InvalidTransition(ConflictError):
    code = "INVALID_TRANSITION"


class AlreadyCancelled(InvalidTransition):
    code = "ALREADY_CANCELLED"


class AlreadyDelivered(InvalidTransition):
    code = "ALREADY_DELIVERED"

"""
Error taxonomy shared by services and routers.

Services raise these; orderflow.main translates every OrderflowError into the
JSON envelope {"success": false, "message": ...} with the mapped status code.
"""

from __future__ import annotations

from typing import Optional


class OrderflowError(Exception):
    """Base class for every error that maps to a client-visible response."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(OrderflowError):
    """A field or schema constraint was violated."""

    status_code = 400

    def __init__(self, message: str, errors: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(OrderflowError):
    status_code = 404


class OrderNotFound(NotFoundError):
    def __init__(self, message: str = "Order not found") -> None:
        super().__init__(message)


class AuthError(OrderflowError):
    status_code = 401


class Unauthenticated(AuthError):
    status_code = 401


class Forbidden(AuthError):
    status_code = 403


class StateError(OrderflowError):
    """The entity exists but is not in a state that allows the operation."""

    status_code = 400


class InvalidTransition(StateError):
    pass


class MissingReason(StateError):
    pass


class CouponRejected(StateError):
    pass


class InsufficientPoints(StateError):
    pass


class AlreadyEarned(StateError):
    pass


class DuplicateReview(StateError):
    pass


class Unavailable(OrderflowError):
    """The platform is refusing writes, e.g. during maintenance."""

    status_code = 503

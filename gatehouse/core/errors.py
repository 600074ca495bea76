"""
Error taxonomy.

Every expected failure of the auth core is one of these types. Each carries
a stable machine-readable code and the HTTP status the boundary renders it
with. Anything else reaching the boundary is treated as an internal error.
"""

from fastapi import status


class GatehouseError(Exception):
    """Base class for expected, caller-recoverable failures."""

    code: str = "ERROR"
    status_code: int = status.HTTP_400_BAD_REQUEST
    message: str = "Request could not be completed."

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.message
        if code:
            self.code = code
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.code}>"


class InvalidCredentials(GatehouseError):
    """Unknown email or wrong secret. The two are never distinguished."""

    code = "INVALID_CREDENTIALS"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid email or password."


class Unauthenticated(GatehouseError):
    """No token, or a token that is unknown, revoked or expired."""

    code = "UNAUTHENTICATED"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Unauthenticated."


class Forbidden(GatehouseError):
    """Authenticated, but the policy denies the action."""

    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
    message = "Unauthorized to access this resource."


class SelfActionDenied(GatehouseError):
    """Action a principal may never perform against its own account."""

    code = "CANNOT_DELETE_SELF"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "You cannot delete your own account."


class NotFound(GatehouseError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Resource not found."


class Conflict(GatehouseError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT
    message = "Resource already exists."


class RegistrationFailed(GatehouseError):
    code = "REGISTRATION_FAILED"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    message = "Registration failed. Please try again."


class RateLimited(GatehouseError):
    code = "RATE_LIMITED"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Too many requests."


# Codes used by the boundary for failures that are not GatehouseErrors
VALIDATION_FAILED = "VALIDATION_FAILED"
INTERNAL_ERROR = "INTERNAL_ERROR"

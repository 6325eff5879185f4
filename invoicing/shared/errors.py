"""Domain exceptions raised by the service layer.

The API layer translates these into HTTP responses; background jobs log
them and record a failed status.
"""


class InvoicingError(Exception):
    """Base class for service-level errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(InvoicingError):
    """Requested record does not exist or belongs to another user."""

    status_code = 404


class ValidationError(InvoicingError):
    """Request violates a business rule."""

    status_code = 400


class ConflictError(InvoicingError):
    """Record already exists or is in an incompatible state."""

    status_code = 409


class LimitReachedError(InvoicingError):
    """Subscription plan limit reached; the client should offer an upgrade."""

    status_code = 403

    def __init__(self, message: str, limit_type: str) -> None:
        super().__init__(message)
        self.limit_type = limit_type


class EmailDeliveryError(InvoicingError):
    """Email provider rejected or failed to deliver a message."""

    status_code = 502


class AuthError(InvoicingError):
    """Bearer token missing, expired or rejected by the auth server."""

    status_code = 401

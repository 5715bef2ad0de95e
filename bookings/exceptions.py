# =============================================================================
# BOOKING ERRORS
# =============================================================================
"""
Typed failures raised by the booking services.

Views turn every ``BookingError`` into a JSON error response carrying
``status_code``; anything else is logged and reported as a 500.
"""


class BookingError(Exception):
    """Base class for all expected booking failures."""
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message=None, status_code=None, details=None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class NotFound(BookingError):
    status_code = 404
    default_message = "Not found"


class ValidationFailed(BookingError):
    """Input rejected before any I/O was attempted."""
    status_code = 400
    default_message = "Missing required fields"

    def __init__(self, message=None, errors=None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or {}


class ReferenceInUse(BookingError):
    """Delete blocked because other rows still point at the target."""
    status_code = 409
    default_message = "Cannot delete a record that is still in use"


class UpstreamError(BookingError):
    """Non-2xx or unreachable payment/email provider."""
    status_code = 502
    default_message = "Upstream provider error"

    def __init__(self, message=None, provider_status=None, body=None, **kwargs):
        super().__init__(message, details=body, **kwargs)
        self.provider_status = provider_status
        self.body = body


class EmailDeliveryError(UpstreamError):
    default_message = "Failed to send email"


class DatabaseUnavailable(BookingError):
    """Transient database failure that survived every retry."""
    status_code = 503
    default_message = "Database connection issue. Please try again later."

    def __init__(self, message=None, kind="unknown", **kwargs):
        super().__init__(message, **kwargs)
        self.kind = kind

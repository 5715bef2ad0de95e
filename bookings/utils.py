# =============================================================================
# UTILS.PY
# =============================================================================

import json
import logging
from typing import Dict, Any

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.http import JsonResponse

from .exceptions import ValidationFailed

# Logger
logger = logging.getLogger(__name__)


# =============================================================================
# EMAIL UTILITIES
# =============================================================================

def mask_email(email: str) -> str:
    """
    Mask an email address for privacy.

    Args:
        email: Email address to mask

    Returns:
        Masked email address
    """
    if not email or '@' not in email:
        return email

    username, domain = email.split('@', 1)
    if len(username) <= 2:
        masked_username = username[0] + '*' * (len(username) - 1)
    else:
        masked_username = username[:2] + '*' * (len(username) - 2)

    return f"{masked_username}@{domain}"


# =============================================================================
# HTTP UTILITIES
# =============================================================================

def get_client_ip(request):
    """
    Get the client's IP address from the request.

    Args:
        request: HttpRequest object

    Returns:
        Client IP address as string
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0]
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip


def parse_json_body(request) -> Dict[str, Any]:
    """
    Decode a JSON request body, falling back to form data.

    Returns an empty dict for an empty body.

    Raises:
        ValidationFailed: If the body is not a JSON object
    """
    if request.content_type == 'application/json':
        if not request.body:
            return {}
        try:
            data = json.loads(request.body.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ValidationFailed("Invalid JSON payload")
        if not isinstance(data, dict):
            raise ValidationFailed("Invalid JSON payload")
        return data
    return request.POST.dict()


def create_error_response(message: str, errors: Dict = None, status: int = 400, details=None):
    """
    Create a standardized error response.

    Args:
        message: Error message
        errors: Optional per-field error dictionary
        status: HTTP status code
        details: Optional provider or diagnostic payload

    Returns:
        JsonResponse with error information
    """
    response_data = {
        "success": False,
        "message": message
    }

    if errors:
        response_data["errors"] = errors
    if details is not None:
        response_data["details"] = details

    return JsonResponse(response_data, status=status)


def create_success_response(data: Dict = None, message: str = "Success", status: int = 200):
    """
    Create a standardized success response.

    Args:
        data: Optional response data
        message: Success message
        status: HTTP status code

    Returns:
        JsonResponse with success information
    """
    response_data = {
        "success": True,
        "message": message
    }

    if data:
        response_data.update(data)

    return JsonResponse(response_data, status=status)


def booking_error_response(error):
    """JsonResponse for a ``BookingError`` raised by the services."""
    return create_error_response(
        error.message,
        errors=getattr(error, 'errors', None),
        status=error.status_code,
        details=error.details,
    )


# =============================================================================
# PAYMENT UTILITIES
# =============================================================================

def log_payment_event(event_type: str, payment_id: str, **kwargs):
    """
    Log a payment-related event.

    Args:
        event_type: Type of event
        payment_id: External payment ID
        **kwargs: Additional event data
    """
    logger.info(
        f"Payment event: {event_type} for payment {payment_id}",
        extra={"event_type": event_type, "payment_id": payment_id, "event_data": kwargs}
    )


def validate_payment_config():
    """
    Validate that payment and email providers are configured.

    Raises:
        ImproperlyConfigured: If a required key is missing
    """
    if not settings.DIBSY.get('SECRET_KEY'):
        raise ImproperlyConfigured("DIBSY_SECRET_KEY is not set")
    if not settings.DIBSY.get('BASE_URL'):
        raise ImproperlyConfigured("DIBSY_BASE_URL is not set")
    if not settings.RESEND.get('API_KEY'):
        raise ImproperlyConfigured("RESEND_API_KEY is not set")

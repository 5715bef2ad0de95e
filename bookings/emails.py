# =============================================================================
# IMPORTS
# =============================================================================
import logging
from functools import lru_cache
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import requests
from django.conf import settings
from django.template.loader import render_to_string

from . import queries
from .exceptions import EmailDeliveryError, ValidationFailed
from .utils import mask_email

# Logger
logger = logging.getLogger(__name__)


# =============================================================================
# RESEND CLIENT
# =============================================================================
class ResendClient:
    """Thin client for the Resend transactional e-mail API."""

    def __init__(self, api_key, base_url="https://api.resend.com",
                 default_from="noreply@qtours.dakaeitechnologies.com",
                 session=None, timeout=30):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.default_from = default_from
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, session=None):
        conf = settings.RESEND
        return cls(
            api_key=conf['API_KEY'],
            base_url=conf['BASE_URL'],
            default_from=conf['DEFAULT_FROM'],
            session=session,
            timeout=conf.get('TIMEOUT', 30),
        )

    def send(self, to: Union[str, Iterable[str]], subject: str, html: Optional[str] = None,
             text: Optional[str] = None, sender: Optional[str] = None) -> str:
        """
        Send one message and return the provider's message id.

        Raises ValidationFailed before any request when recipient, subject
        or both bodies are missing, and EmailDeliveryError when the provider
        rejects the message or cannot be reached.
        """
        if not to or not subject:
            raise ValidationFailed("Missing required fields: to, subject")
        if not html and not text:
            raise ValidationFailed("Either html or text content is required")

        payload = {
            "from": sender or self.default_from,
            "to": [to] if isinstance(to, str) else list(to),
            "subject": subject,
        }
        if html:
            payload["html"] = html
        if text:
            payload["text"] = text

        try:
            response = self.session.post(
                f"{self.base_url}/emails",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Error reaching Resend: {e}")
            raise EmailDeliveryError("Internal server error", body=str(e)) from e

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}

        if not response.ok:
            message = body.get("message") if isinstance(body, dict) else None
            logger.error(f"Resend rejected email to {payload['to']}: {response.status_code} {body}")
            raise EmailDeliveryError(
                message or f"Failed to send email ({response.status_code})",
                provider_status=response.status_code,
                body=body,
            )
        return body.get("id")


@lru_cache(maxsize=None)
def get_email_client() -> ResendClient:
    """Process-wide client, built once from settings."""
    return ResendClient.from_settings()


# =============================================================================
# SENDING
# =============================================================================
def send_email(to, subject, html=None, text=None, sender=None, client=None) -> Dict[str, Any]:
    """``ResendClient.send`` reported as a result dict instead of raising."""
    client = client or get_email_client()
    try:
        email_id = client.send(to, subject, html=html, text=text, sender=sender)
    except ValidationFailed as e:
        return {"success": False, "error": e.message, "details": e.errors or None}
    except EmailDeliveryError as e:
        return {"success": False, "error": e.message, "details": e.body}

    recipients = [to] if isinstance(to, str) else list(to)
    logger.info(f"Email sent to {', '.join(mask_email(r) for r in recipients)} ({email_id})")
    return {"success": True, "message": "Email sent successfully", "emailId": email_id}


# =============================================================================
# BOOKING TEMPLATES
# =============================================================================
def _business_context():
    return {
        'business_email': queries.get_system_setting('business_email'),
        'business_phone': queries.get_system_setting('business_phone'),
        'business_location': queries.get_system_setting('business_location'),
    }


def render_booking_email(kind: str, booking: Dict[str, Any]) -> Tuple[str, str, str]:
    """Render (subject, text, html) for ``kind`` ('confirmation' or 'admin_notification')."""
    context = {'booking': booking, 'tours': booking.get('tours', []), **_business_context()}
    subject = render_to_string(f'bookings/email/{kind}_subject.txt', context).strip()
    text_body = render_to_string(f'bookings/email/{kind}.txt', context)
    html_body = render_to_string(f'bookings/email/{kind}.html', context)
    return subject, text_body, html_body

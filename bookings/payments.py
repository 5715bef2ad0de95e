# =============================================================================
# IMPORTS
# =============================================================================
import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import lru_cache
from typing import Any, Dict, Optional

import requests
from django.conf import settings
from django.db import DatabaseError

from . import queries
from .exceptions import DatabaseUnavailable, NotFound, UpstreamError, ValidationFailed
from .models import BookingStatus, normalize_reference
from .reconciliation import BookingReconciler
from .services import create_booking_from_payment
from .utils import log_payment_event, mask_email

# Logger
logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')
SETTLEMENT_CURRENCY = "QAR"
CHECKOUT_METHODS = ("creditcard", "naps", "applepay", "googlepay")
PAID_STATUSES = {"paid", "succeeded"}
FAILED_STATUSES = {"failed", "canceled", "cancelled", "expired"}


# =============================================================================
# CURRENCY
# =============================================================================
def convert_eur_to_qar(amount, rate=None) -> Decimal:
    """
    EUR amount in QAR, rounded half-up to 2 decimals.

    The gateway always receives this major-unit figure as a string such as
    "357.00"; integer minor units are not used anywhere.
    """
    rate = Decimal(str(rate if rate is not None else settings.DIBSY.get('EUR_TO_QAR_RATE', '4.20')))
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationFailed("Invalid amount", errors={"amount": ["Enter a number."]})
    if not value.is_finite() or value <= 0:
        raise ValidationFailed("Amount must be greater than zero", errors={"amount": ["Must be positive."]})
    return (value * rate).quantize(CENTS, rounding=ROUND_HALF_UP)


# =============================================================================
# DIBSY CLIENT
# =============================================================================
class DibsyClient:
    """Thin client for the Dibsy v2 payments API."""

    def __init__(self, secret_key, base_url="https://api.dibsy.one/v2", session=None, timeout=30):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, session=None):
        conf = settings.DIBSY
        return cls(
            secret_key=conf['SECRET_KEY'],
            base_url=conf['BASE_URL'],
            session=session,
            timeout=conf.get('TIMEOUT', 30),
        )

    def _request(self, method, path, payload=None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }
        try:
            response = self.session.request(method, url, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Error reaching Dibsy ({method} {path}): {e}")
            raise UpstreamError("Payment provider unreachable", body=str(e)) from e

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}

        if not response.ok:
            message = None
            if isinstance(body, dict):
                message = body.get('title') or body.get('message') or body.get('detail')
            logger.error(f"Dibsy {method} {path} failed: {response.status_code} {body}")
            raise UpstreamError(
                message or f"Dibsy API error ({response.status_code})",
                provider_status=response.status_code,
                body=body,
            )
        return body

    def create_payment(self, payload) -> Dict[str, Any]:
        return self._request("POST", "/payments", payload)

    def get_payment(self, payment_id) -> Dict[str, Any]:
        return self._request("GET", f"/payments/{payment_id}")


@lru_cache(maxsize=None)
def get_dibsy_client() -> DibsyClient:
    """Process-wide client, built once from settings."""
    return DibsyClient.from_settings()


def _link(response, name) -> Optional[str]:
    return ((response.get('_links') or {}).get(name) or {}).get('href')


# =============================================================================
# PAYMENT SERVICE
# =============================================================================
class PaymentService:
    """Creates gateway payments for bookings and applies their outcomes."""

    def __init__(self, client=None, reconciler=None):
        self.client = client or get_dibsy_client()
        self.reconciler = reconciler or BookingReconciler()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _require_booking(reference) -> Dict[str, Any]:
        booking = queries.find_booking_by_reference(reference)
        if booking is None:
            raise NotFound("Booking not found")
        return booking

    @staticmethod
    def _remember_payment_id(reference, payment_id):
        """Best effort: the payment exists at the gateway either way."""
        if not payment_id:
            return
        try:
            queries.set_booking_payment_id(reference, payment_id)
        except (DatabaseError, DatabaseUnavailable) as e:
            logger.warning(f"Could not store payment id {payment_id} on booking {reference}: {e}")

    @staticmethod
    def _metadata(booking, amount_eur, amount_qar, customer_name, customer_email):
        return {
            "booking_reference": booking['booking_reference'],
            "booking_id": booking['id'],
            "customer_name": customer_name or booking.get('customer_name') or "",
            "customer_email": customer_email or booking.get('customer_email') or "",
            "amount_eur": f"{Decimal(str(amount_eur)):.2f}",
            "amount_qar": f"{amount_qar:.2f}",
        }

    # ------------------------------------------------------------------
    # Hosted checkout
    # ------------------------------------------------------------------
    def create_checkout_payment(self, booking_reference, amount, customer_name="",
                                customer_email="", return_url=None) -> Dict[str, Any]:
        reference = normalize_reference(booking_reference)
        if not reference or amount in (None, ""):
            raise ValidationFailed("Booking reference and amount are required")
        amount_qar = convert_eur_to_qar(amount)
        booking = self._require_booking(reference)

        payload = {
            "amount": {"value": f"{amount_qar:.2f}", "currency": SETTLEMENT_CURRENCY},
            "description": f"Payment for booking {booking['booking_reference']}",
            "method": list(CHECKOUT_METHODS),
            "sequenceType": "oneoff",
            "redirectUrl": return_url or f"{settings.DIBSY['RETURN_URL']}?booking={reference}",
            "webhookUrl": settings.DIBSY['WEBHOOK_URL'],
            "locale": "en_US",
            "metadata": self._metadata(booking, amount, amount_qar, customer_name, customer_email),
        }
        response = self.client.create_payment(payload)
        payment_id = response.get('id')
        self._remember_payment_id(reference, payment_id)

        log_payment_event(
            "checkout_created", payment_id,
            booking_reference=reference, amount_qar=str(amount_qar),
            email=mask_email(customer_email),
        )
        return {
            "paymentId": payment_id,
            "paymentUrl": _link(response, 'checkout'),
            "status": response.get('status'),
            "amount": f"{amount_qar:.2f}",
            "currency": SETTLEMENT_CURRENCY,
        }

    # ------------------------------------------------------------------
    # Card token
    # ------------------------------------------------------------------
    def create_card_payment(self, card_token, booking_reference, amount, customer_name="",
                            customer_email="", tour_id=None, tour_date=None,
                            passengers=None) -> Dict[str, Any]:
        """
        Charge a tokenized card.

        ``paid`` settles the booking immediately; ``requires_authentication``
        returns the 3-D Secure redirect and leaves the booking untouched
        until the payment is verified.
        """
        reference = normalize_reference(booking_reference)
        if not card_token or not reference or amount in (None, ""):
            raise ValidationFailed("Missing required fields")
        amount_qar = convert_eur_to_qar(amount)
        booking = self._require_booking(reference)

        metadata = self._metadata(booking, amount, amount_qar, customer_name, customer_email)
        metadata.update({
            "bookingReference": booking['booking_reference'],
            "customerName": metadata['customer_name'],
            "customerEmail": metadata['customer_email'],
            "tourId": tour_id or booking.get('tour_id'),
            "tourDate": str(tour_date or booking.get('tour_date') or ""),
            "passengers": passengers or booking.get('total_pax'),
            "originalEurAmount": metadata['amount_eur'],
        })
        payload = {
            "amount": {"value": f"{amount_qar:.2f}", "currency": SETTLEMENT_CURRENCY},
            "description": f"Payment for booking {booking['booking_reference']}",
            "method": "creditcard",
            "cardToken": card_token,
            "redirectUrl": f"{settings.APP_URL}/booking/{reference}/verify",
            "webhookUrl": settings.DIBSY['WEBHOOK_URL'],
            "metadata": metadata,
        }
        response = self.client.create_payment(payload)
        payment_id = response.get('id')
        status = (response.get('status') or "").lower()
        log_payment_event("card_payment_created", payment_id, booking_reference=reference, status=status)

        if status == "requires_authentication":
            self._remember_payment_id(reference, payment_id)
            return {
                "success": True,
                "requiresAuthentication": True,
                "redirectUrl": _link(response, 'redirect') or response.get('redirect_url'),
                "paymentId": payment_id,
            }

        if status in PAID_STATUSES:
            result = self.reconciler.update_status(reference, BookingStatus.PAID, payment_id)
            return {"success": True, "paymentId": payment_id, "status": "paid", **result}

        return {
            "success": False,
            "message": f"Payment status: {status or 'unknown'}",
            "paymentId": payment_id,
        }

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------
    def verify_payment(self, payment_id, booking_reference=None) -> Dict[str, Any]:
        """Ask the gateway for the payment and settle its booking if it was paid."""
        if not payment_id:
            raise ValidationFailed("Payment ID is required")

        payment = self.client.get_payment(payment_id)
        status = (payment.get('status') or "").lower()
        if status not in PAID_STATUSES:
            log_payment_event("verification_unpaid", payment_id, status=status)
            return {
                "success": False,
                "paymentId": payment_id,
                "status": status,
                "message": f"Payment status: {status or 'unknown'}",
            }

        metadata = payment.get('metadata') or {}
        reference = (
            booking_reference
            or metadata.get('booking_reference')
            or metadata.get('bookingReference')
        )
        booking = queries.find_booking_by_payment_id(payment_id)
        if booking is None and reference:
            booking = queries.find_booking_by_reference(reference)
        if booking is None:
            raise NotFound("Booking not found for this payment")

        result = self.reconciler.update_status(booking['booking_reference'], BookingStatus.PAID, payment_id)
        log_payment_event("verified", payment_id, booking_reference=booking['booking_reference'])
        return {"success": True, "paymentId": payment_id, "status": "paid", **result}

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------
    def handle_webhook(self, payload) -> Dict[str, Any]:
        """
        Apply a gateway notification. Paid payments are re-checked with the
        gateway before settling; a booking missing locally is rebuilt from
        the payment metadata. Always acknowledged.
        """
        payment_id = payload.get('id')
        if not payment_id:
            raise ValidationFailed("Missing payment id")
        status = (payload.get('status') or "").lower()
        metadata = payload.get('metadata') or {}
        reference = normalize_reference(
            metadata.get('bookingReference') or metadata.get('booking_reference')
        )
        log_payment_event("webhook_received", payment_id, status=status, booking_reference=reference)

        if status in PAID_STATUSES:
            if reference and queries.find_booking_by_reference(reference) is None:
                if metadata.get('tourId'):
                    created = create_booking_from_payment(payment_id, metadata)
                    log_payment_event("booking_created_from_webhook", payment_id,
                                      booking_reference=created['bookingReference'])
                else:
                    logger.warning(f"Webhook for payment {payment_id}: booking {reference} does not exist")
                return {"received": True}

            try:
                self.verify_payment(payment_id, reference or None)
            except UpstreamError as e:
                logger.warning(f"Could not verify payment {payment_id} with Dibsy ({e}); settling directly")
                if reference:
                    self.reconciler.update_status(reference, BookingStatus.PAID, payment_id)
        elif status in FAILED_STATUSES:
            logger.warning(f"Payment {payment_id} for booking {reference or '?'} ended as {status}")
        else:
            logger.info(f"Payment {payment_id} status update: {status}")

        return {"received": True}


def get_payment_service() -> PaymentService:
    return PaymentService(client=get_dibsy_client())

# =============================================================================
# BOOKING STATUS RECONCILIATION
# =============================================================================
"""
The one place a booking changes status in response to a payment outcome.

Confirmation e-mails are not sent inline: the status update enqueues an
``EmailDispatch`` row in the same transaction and delivery runs after
commit. The row's unique (booking, kind, target_status) key means two
concurrent "paid" calls can never produce two confirmations.
"""
import logging
from decimal import Decimal
from functools import partial
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F

from . import queries
from .assembly import assemble_booking
from .db import run_query
from .emails import get_email_client, render_booking_email
from .exceptions import EmailDeliveryError, NotFound, ValidationFailed
from .models import (
    Booking, BookingStatus, DispatchKind, DispatchStatus, EmailDispatch, normalize_reference,
)
from .utils import mask_email

# Logger
logger = logging.getLogger(__name__)


# =============================================================================
# EMAIL OUTBOX
# =============================================================================
def enqueue_email(booking, kind, recipient, target_status=None) -> Optional[EmailDispatch]:
    """
    Record that ``recipient`` is owed a ``kind`` e-mail for ``booking``.

    Returns the new dispatch, or None if one already existed for this
    transition. Delivery is scheduled for after the surrounding commit.
    """
    if not recipient:
        return None
    dispatch, created = EmailDispatch.objects.get_or_create(
        booking=booking,
        kind=kind,
        target_status=target_status or booking.status,
        defaults={'recipient': recipient},
    )
    if not created:
        logger.info(f"{kind} email for booking {booking.booking_reference} already queued")
        return None
    transaction.on_commit(partial(deliver_after_commit, dispatch.pk))
    return dispatch


def deliver_dispatch(dispatch_id, email_client=None) -> bool:
    """Send one queued e-mail; returns True when the provider accepted it."""
    dispatch = EmailDispatch.objects.filter(pk=dispatch_id).first()
    if dispatch is None or dispatch.status == DispatchStatus.SENT:
        return False

    EmailDispatch.objects.filter(pk=dispatch.pk).update(attempts=F('attempts') + 1)
    booking = assemble_booking(dispatch.booking_id)
    if booking is None:
        dispatch.mark_failed("Booking no longer exists")
        return False

    subject, text_body, html_body = render_booking_email(dispatch.kind, booking)
    client = email_client or get_email_client()
    try:
        message_id = client.send(dispatch.recipient, subject, html=html_body, text=text_body)
    except (EmailDeliveryError, ValidationFailed) as e:
        logger.error(
            f"Failed to send {dispatch.kind} email for {booking['booking_reference']} "
            f"to {mask_email(dispatch.recipient)}: {e}"
        )
        dispatch.mark_failed(e)
        return False

    dispatch.mark_sent(message_id)
    logger.info(
        f"{dispatch.kind} email sent to {mask_email(dispatch.recipient)} "
        f"for booking {booking['booking_reference']}"
    )
    return True


def deliver_after_commit(dispatch_id):
    """on_commit hook: delivery problems are logged and left for the retry command."""
    try:
        deliver_dispatch(dispatch_id)
    except Exception:
        logger.exception(f"Unexpected error delivering email dispatch {dispatch_id}")


def process_pending_dispatches(limit=50, email_client=None) -> Dict[str, int]:
    """Retry every pending or failed dispatch that has attempts left."""
    max_attempts = getattr(settings, 'EMAIL_DISPATCH_MAX_ATTEMPTS', 5)
    dispatch_ids = list(
        EmailDispatch.objects.deliverable(max_attempts)
        .order_by('created_at')
        .values_list('pk', flat=True)[:limit]
    )
    sent = 0
    for dispatch_id in dispatch_ids:
        if deliver_dispatch(dispatch_id, email_client=email_client):
            sent += 1
    return {"processed": len(dispatch_ids), "sent": sent, "failed": len(dispatch_ids) - sent}


# =============================================================================
# RECONCILER
# =============================================================================
class BookingReconciler:
    """Applies payment outcomes to bookings."""

    def update_status(self, reference, status, payment_id=None) -> Dict[str, Any]:
        """
        Move the booking with ``reference`` to ``status``.

        When the new status is paid the booking is fully settled
        (remaining balance 0, deposit = total). A confirmation e-mail is
        queued only on the first transition into a settled state and only
        if the customer has an address. An existing payment id is never
        replaced by an empty one.
        """
        new_status = BookingStatus.parse(status)
        normalized = normalize_reference(reference)
        if not normalized:
            raise ValidationFailed(
                "Missing required fields",
                errors={"bookingReference": ["This field is required."]},
            )

        booking_id, email_queued = run_query(self._apply, normalized, new_status, payment_id)
        return {
            "booking": queries.get_booking_row(booking_id),
            "emailSent": email_queued,
        }

    def _apply(self, reference, new_status, payment_id):
        with transaction.atomic():
            booking = Booking.objects.by_reference(reference).select_for_update().first()
            if booking is None:
                raise NotFound("Booking not found")

            was_already_paid = booking.is_settled
            previous_status = booking.status

            booking.status = new_status
            update_fields = ['status', 'updated_at']
            if new_status == BookingStatus.PAID:
                booking.remaining_balance = Decimal('0.00')
                booking.deposit = booking.total_payment
                update_fields += ['remaining_balance', 'deposit']
            if payment_id:
                booking.payment_id = str(payment_id)
                update_fields.append('payment_id')
            booking.save(update_fields=update_fields)

            dispatch = None
            email = booking.customer.email
            if new_status == BookingStatus.PAID and not was_already_paid and email:
                dispatch = enqueue_email(booking, DispatchKind.CONFIRMATION, email, BookingStatus.PAID)

        logger.info(
            f"Booking {booking.booking_reference} status {previous_status} -> {new_status}"
            f"{' (confirmation queued)' if dispatch else ''}"
        )
        return booking.pk, dispatch is not None

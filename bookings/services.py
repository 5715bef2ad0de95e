# =============================================================================
# IMPORTS
# =============================================================================
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.utils import timezone

from . import queries
from .db import run_query
from .exceptions import NotFound, ValidationFailed
from .forms import PaymentMetadataForm, clean_payload
from .models import (
    Booking, BookingStatus, BookingTour, DispatchKind, Tour, generate_booking_reference,
    normalize_reference,
)
from .reconciliation import enqueue_email

# Logger
logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


# =============================================================================
# HELPERS
# =============================================================================
def _money(value) -> Decimal:
    if value in (None, ""):
        return ZERO
    return Decimal(str(value))


def unique_booking_reference(prefix: str = "REF", attempts: int = 10) -> str:
    """A fresh ``PREFIX-YYMMDD-NNNN`` reference not used by any booking."""
    for _ in range(attempts):
        reference = generate_booking_reference(prefix)
        if not Booking.objects.filter(booking_reference=reference).exists():
            return reference
    stamp = timezone.localdate().strftime("%y%m%d")
    return f"{prefix}-{stamp}-{uuid.uuid4().hex[:6].upper()}"


def summarize_line_items(line_items: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Booking totals derived from its line items."""
    totals = {
        'total_payment': ZERO, 'deposit': ZERO, 'remaining_balance': ZERO,
        'adults': 0, 'children': 0,
    }
    for item in line_items:
        price = _money(item.get('price'))
        deposit = _money(item.get('deposit'))
        remaining = item.get('remainingBalance')
        totals['total_payment'] += price
        totals['deposit'] += deposit
        totals['remaining_balance'] += price - deposit if remaining is None else _money(remaining)
        totals['adults'] += item.get('adults') or 0
        totals['children'] += item.get('children') or 0
    totals['total_pax'] = totals['adults'] + totals['children']
    return totals


# =============================================================================
# LINE ITEMS
# =============================================================================
def _validate_booking_input(customer: Dict[str, Any], line_items: List[Dict[str, Any]]):
    if not line_items:
        raise ValidationFailed("At least one tour booking is required")
    if not customer.get('name') or not customer.get('email'):
        raise ValidationFailed("Customer name and email are required")
    for index, item in enumerate(line_items):
        if not item.get('tourId') or not item.get('tourDate'):
            raise ValidationFailed(
                "Each tour booking needs a tour and a date",
                errors={f"tours[{index}]": ["tourId and tourDate are required."]},
            )


def _check_tours_exist(line_items: List[Dict[str, Any]]):
    tour_ids = {int(item['tourId']) for item in line_items}
    known = set(Tour.objects.filter(pk__in=tour_ids).values_list('pk', flat=True))
    if tour_ids - known:
        raise ValidationFailed(
            "Tour not found",
            errors={"tourId": [f"Unknown tour id(s): {sorted(tour_ids - known)}"]},
        )


def _build_line_items(booking: Booking, line_items: List[Dict[str, Any]]) -> List[BookingTour]:
    return [
        BookingTour(
            booking=booking,
            tour_id=item['tourId'],
            tour_date=item['tourDate'],
            ship_id=item.get('shipId'),
            booking_agent_id=item.get('bookingAgentId'),
            adults=item.get('adults') or 0,
            children=item.get('children') or 0,
            total_pax=(item.get('adults') or 0) + (item.get('children') or 0),
            price=_money(item.get('price')),
            tour_guide=item.get('tourGuide') or "",
            notes=item.get('notes') or "",
        )
        for item in line_items
    ]


# =============================================================================
# BOOKING CREATION
# =============================================================================
def create_booking(customer: Dict[str, Any], line_items: List[Dict[str, Any]],
                   details: Optional[Dict[str, Any]] = None, *, prefix: str = "REF",
                   created_by=None) -> Dict[str, Any]:
    """
    Create a booking with all of its line items, or nothing at all.

    ``customer`` holds name/email/phone; each line item holds tourId,
    tourDate, pax, price and optional deposit, guide and ship; ``details``
    holds booking-level fields (agentId, status, commission, paymentId,
    notes, other, paymentLocation, bookingReference). Money and pax totals
    are summed from the line items. The booking notification address is
    owed an e-mail, and a paid booking owes its customer a confirmation.
    """
    details = details or {}
    _validate_booking_input(customer, line_items)

    status = BookingStatus.parse(details.get('status') or BookingStatus.PENDING)
    totals = summarize_line_items(line_items)
    if status == BookingStatus.PAID:
        totals['deposit'] = totals['total_payment']
        totals['remaining_balance'] = ZERO
    notification_email = queries.get_system_setting('booking_notifications_email')

    def _create():
        with transaction.atomic():
            _check_tours_exist(line_items)
            customer_row = queries.save_customer(
                customer['name'], customer['email'], customer.get('phone', ""),
            )
            first = line_items[0]
            booking = Booking.objects.create(
                booking_reference=(
                    normalize_reference(details.get('bookingReference'))
                    or unique_booking_reference(prefix)
                ),
                customer=customer_row,
                agent_id=details.get('agentId'),
                tour_id=first['tourId'],
                tour_date=first['tourDate'],
                status=status,
                commission=_money(details.get('commission')),
                payment_id=details.get('paymentId') or "",
                payment_location=details.get('paymentLocation') or "",
                other=details.get('other') or "",
                notes=details.get('notes') or "",
                **totals,
            )
            BookingTour.objects.bulk_create(_build_line_items(booking, line_items))

            enqueue_email(booking, DispatchKind.ADMIN_NOTIFICATION, notification_email)
            if status == BookingStatus.PAID:
                enqueue_email(booking, DispatchKind.CONFIRMATION, customer_row.email, BookingStatus.PAID)
        return booking

    booking = run_query(_create)
    logger.info(
        f"Booking {booking.booking_reference} created with {len(line_items)} tour(s) "
        f"for customer {booking.customer_id}"
    )

    if created_by is not None and getattr(created_by, 'pk', None):
        queries.create_notification(
            created_by.pk,
            "New booking",
            f"Booking {booking.booking_reference} created for {customer['name']}",
            link=f"/bookings/{booking.pk}",
            type="booking",
        )

    return {
        "bookingId": booking.pk,
        "bookingReference": booking.booking_reference,
        "message": f"Booking created successfully with reference: {booking.booking_reference}",
    }


def update_booking(booking_id, customer: Dict[str, Any], line_items: List[Dict[str, Any]],
                   details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Replace a booking's customer details, booking-level fields and line
    items in one transaction.

    Totals are summed again from the new line items. The reference is kept,
    and so is the payment id unless a new one is given. Moving an unsettled
    booking to paid owes the customer a confirmation, as a status update does.
    """
    details = details or {}
    _validate_booking_input(customer, line_items)

    status = BookingStatus.parse(details.get('status') or BookingStatus.PENDING)
    totals = summarize_line_items(line_items)
    if status == BookingStatus.PAID:
        totals['deposit'] = totals['total_payment']
        totals['remaining_balance'] = ZERO

    def _update():
        with transaction.atomic():
            booking = (
                Booking.objects.select_for_update()
                .select_related('customer')
                .filter(pk=booking_id)
                .first()
            )
            if booking is None:
                raise NotFound(f"Booking with ID {booking_id} not found")
            _check_tours_exist(line_items)
            was_settled = booking.status in BookingStatus.settled()

            customer_row = booking.customer
            customer_row.name = customer['name'].strip()
            customer_row.email = customer['email'].strip()
            customer_row.phone = (customer.get('phone') or "").strip()
            customer_row.save(update_fields=['name', 'email', 'phone', 'updated_at'])

            first = line_items[0]
            booking.tour_id = first['tourId']
            booking.tour_date = first['tourDate']
            booking.status = status
            booking.commission = _money(details.get('commission'))
            booking.payment_location = details.get('paymentLocation') or ""
            booking.other = details.get('other') or ""
            booking.notes = details.get('notes') or ""
            if details.get('agentId'):
                booking.agent_id = details['agentId']
            if details.get('paymentId'):
                booking.payment_id = details['paymentId']
            for field, value in totals.items():
                setattr(booking, field, value)
            booking.save()

            BookingTour.objects.filter(booking=booking).delete()
            BookingTour.objects.bulk_create(_build_line_items(booking, line_items))

            email_queued = False
            if status == BookingStatus.PAID and not was_settled:
                email_queued = enqueue_email(
                    booking, DispatchKind.CONFIRMATION, customer_row.email, BookingStatus.PAID,
                ) is not None
        return booking, email_queued

    booking, email_queued = run_query(_update)
    logger.info(f"Booking {booking.booking_reference} updated with {len(line_items)} tour(s)")
    return {
        "bookingId": booking.pk,
        "bookingReference": booking.booking_reference,
        "emailSent": email_queued,
        "message": "Booking updated successfully",
    }


def create_pending_booking(customer: Dict[str, Any], booking_data: Dict[str, Any]) -> Dict[str, Any]:
    """Public single-tour booking awaiting payment: nothing paid yet."""
    total = _money(booking_data.get('totalAmount'))
    item = {
        'tourId': booking_data.get('tourId'),
        'tourDate': booking_data.get('tourDate'),
        'adults': booking_data.get('adults') or 0,
        'children': booking_data.get('children') or 0,
        'price': total,
        'deposit': ZERO,
        'remainingBalance': total,
        'notes': booking_data.get('notes') or "",
    }
    return create_booking(
        customer, [item],
        {'status': BookingStatus.PENDING, 'notes': booking_data.get('notes') or ""},
        prefix="VDQ",
    )


def create_booking_from_payment(payment_id: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Paid booking rebuilt from the metadata a payment was created with."""
    data = clean_payload(PaymentMetadataForm, {
        'tourId': metadata.get('tourId'),
        'tourDate': metadata.get('tourDate'),
        'passengers': metadata.get('passengers'),
        'amount': metadata.get('originalEurAmount') or metadata.get('amount_eur'),
        'customerName': metadata.get('customerName') or metadata.get('customer_name'),
        'customerEmail': metadata.get('customerEmail') or metadata.get('customer_email'),
        'customerPhone': metadata.get('customerPhone'),
        'bookingReference': metadata.get('bookingReference') or metadata.get('booking_reference'),
    }, message="Payment metadata does not describe a booking")

    item = {
        'tourId': data['tourId'],
        'tourDate': data['tourDate'],
        'adults': data.get('passengers') or 1,
        'children': 0,
        'price': data.get('amount'),
    }
    customer = {
        'name': data['customerName'],
        'email': data['customerEmail'],
        'phone': data.get('customerPhone') or "",
    }
    return create_booking(customer, [item], {
        'status': BookingStatus.PAID,
        'paymentId': payment_id,
        'bookingReference': data.get('bookingReference'),
        'notes': f"Created from payment {payment_id}",
    })

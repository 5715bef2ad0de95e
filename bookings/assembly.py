# =============================================================================
# BOOKING ASSEMBLY
# =============================================================================
"""
Build display-ready bookings: the booking row, its customer and agent, and
every tour line item with a resolved guide name and net figure.
"""
import logging
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from django.db import DatabaseError
from django.utils import timezone

from . import queries
from .exceptions import DatabaseUnavailable, ValidationFailed
from .models import normalize_reference

# Logger
logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')
NO_GUIDE = "No Guide"


# =============================================================================
# DERIVED FIELDS
# =============================================================================
def _decimal(value) -> Decimal:
    if value is None or value == "":
        return Decimal('0')
    return value if isinstance(value, Decimal) else Decimal(str(value))


def line_item_net(price, commission, total_payment) -> Decimal:
    """
    Net of one line item: its price minus its share of the booking commission.

    A zero or missing booking total counts as 1.
    """
    price = _decimal(price)
    total = _decimal(total_payment) or Decimal('1')
    net = price - (price * _decimal(commission) / total)
    return net.quantize(CENTS, rounding=ROUND_HALF_UP)


def booking_net(row) -> Decimal:
    if row.get('total_net') is not None:
        return _decimal(row['total_net'])
    return _decimal(row.get('total_payment')) - _decimal(row.get('commission'))


def resolve_guide_name(item: Dict[str, Any]) -> str:
    """tour_guide, then the joined booking agent, then a lookup by id."""
    if item.get('tour_guide'):
        return item['tour_guide']
    if item.get('booking_agent_name'):
        return item['booking_agent_name']
    agent_id = item.get('booking_agent_id')
    if agent_id is None:
        return NO_GUIDE
    # Degrades to "Unknown Agent" when the row or the database is gone
    return queries.get_booking_agent_name(agent_id)


def _legacy_line_item(row) -> Dict[str, Any]:
    """The booking's own tour presented as its only line item."""
    return {
        'id': None,
        'booking_id': row['id'],
        'tour_id': row['tour_id'],
        'ship_id': None,
        'booking_agent_id': None,
        'tour_name': row.get('tour_name'),
        'ship_name': row.get('ship_name'),
        'location_name': row.get('location_name'),
        'booking_agent_name': None,
        'tour_date': row.get('tour_date'),
        'adults': row.get('adults') or 0,
        'children': row.get('children') or 0,
        'total_pax': row.get('total_pax') or 0,
        'price': row.get('total_payment'),
        'tour_guide': row.get('tour_guide') or "",
        'notes': "",
        'synthetic': True,
    }


# =============================================================================
# ASSEMBLY
# =============================================================================
def _load_row(identifier) -> Optional[Dict[str, Any]]:
    if isinstance(identifier, int):
        return queries.get_booking_row(identifier)
    text = str(identifier or "").strip()
    if text.isdigit():
        return queries.get_booking_row(int(text))
    return queries.find_booking_by_reference(text)


def _assemble(row) -> Optional[Dict[str, Any]]:
    if row is None:
        return None

    items = queries.list_booking_tours(row['id'])
    if not items and row.get('tour_id'):
        items = [_legacy_line_item(row)]

    tours = []
    for item in items:
        item.setdefault('synthetic', False)
        item['guide_name'] = resolve_guide_name(item)
        item['total_net'] = line_item_net(item.get('price'), row.get('commission'), row.get('total_payment'))
        tours.append(item)

    booking = dict(row)
    booking['net_amount'] = booking_net(row)
    booking['tours'] = tours
    booking['tour_count'] = len(tours)
    return booking


def assemble_booking(identifier) -> Optional[Dict[str, Any]]:
    """
    Booking by numeric id or by reference, with nested ``tours``.

    Returns None when no booking matches. Database failures propagate
    (``DatabaseUnavailable`` for transient ones).
    """
    return _assemble(_load_row(identifier))


def safe_assemble_booking(identifier) -> Optional[Dict[str, Any]]:
    """``assemble_booking`` that logs database failures and returns None."""
    try:
        return assemble_booking(identifier)
    except (DatabaseError, DatabaseUnavailable) as exc:
        logger.error(f"Could not assemble booking {identifier!r}: {exc}")
        return None


# =============================================================================
# UPCOMING TOURS
# =============================================================================
MAX_UPCOMING_DAYS = 90


def upcoming_tours(days: int = 7, limit: int = 100) -> List[Dict[str, Any]]:
    """Line items running from today through ``days`` ahead, with guide names."""
    if days < 0 or days > MAX_UPCOMING_DAYS:
        raise ValidationFailed(f"Invalid days parameter. Must be between 0 and {MAX_UPCOMING_DAYS}.")
    today = timezone.localdate()
    items = queries.list_upcoming_tours(today, today + timedelta(days=days), limit)
    for item in items:
        item['guide_name'] = resolve_guide_name(item)
    return items


# =============================================================================
# RECEIPT VERIFICATION
# =============================================================================
def _receipt_failure_reason(exc) -> str:
    if isinstance(exc, DatabaseUnavailable) and exc.kind in ("connection", "timeout"):
        return "Database connection issue. Please try again later."
    if "not found" in str(exc).lower():
        return "Booking reference not found in our records."
    return "Please check the reference and try again."


def verify_receipt(reference) -> Dict[str, Any]:
    """Public receipt check: ``{"valid": True, "booking": ...}`` or a reason."""
    normalized = normalize_reference(reference)
    if not normalized:
        return {"valid": False, "message": "Please enter a booking reference."}

    try:
        booking = _assemble(queries.find_booking_by_reference(normalized))
    except (DatabaseError, DatabaseUnavailable) as exc:
        logger.error(f"Receipt verification failed for {normalized}: {exc}")
        return {
            "valid": False,
            "message": f'Unable to verify receipt "{normalized}". {_receipt_failure_reason(exc)}',
        }

    if booking is None:
        return {
            "valid": False,
            "message": (
                f'No booking found with reference "{normalized}". '
                "Please check the reference and try again."
            ),
        }

    return {
        "valid": True,
        "booking": {
            "reference": booking['booking_reference'],
            "customerName": booking.get('customer_name'),
            "email": booking.get('customer_email'),
            "phone": booking.get('customer_phone'),
            "status": booking['status'],
            "totalPayment": booking['total_payment'],
            "deposit": booking['deposit'],
            "remainingBalance": booking['remaining_balance'],
            "totalPassengers": booking['total_pax'],
            "createdAt": booking['created_at'],
            "notes": booking.get('notes') or "",
            "tours": [
                {
                    "tourName": item.get('tour_name') or "Unknown Tour",
                    "shipName": item.get('ship_name') or "No Ship Assigned",
                    "location": item.get('location_name') or "Location Not Found",
                    "tourDate": item.get('tour_date'),
                    "passengers": item.get('total_pax') or 0,
                    "adults": item.get('adults') or 0,
                    "children": item.get('children') or 0,
                    "price": item.get('price'),
                    "tourGuide": item['guide_name'] if item['guide_name'] != NO_GUIDE else "Not Assigned",
                }
                for item in booking['tours']
            ],
        },
    }

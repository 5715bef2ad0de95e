# =============================================================================
# DOMAIN QUERY FUNCTIONS
# =============================================================================
"""
One function per entity operation.

Reads used by dashboards go through ``safe_query`` and degrade to an empty
result; writes and lookups the caller must act on go through ``run_query``.
"""
import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.db.models import Count, DecimalField, F, IntegerField, Q, Sum, Value
from django.db.models.functions import Coalesce, Trim, Upper
from django.utils import timezone

from .db import QueryPolicy, run_query, safe_query
from .exceptions import NotFound, ReferenceInUse, ValidationFailed
from .models import (
    SYSTEM_SETTING_DEFAULTS, Agent, Booking, BookingAgent, BookingStatus, BookingTour, Customer,
    Location, Notification, Ship, SystemSetting, Tour, normalize_reference,
)

# Logger
logger = logging.getLogger(__name__)

BOOKING_FIELDS = (
    'id', 'booking_reference', 'customer_id', 'agent_id', 'tour_id', 'status',
    'deposit', 'remaining_balance', 'total_payment', 'commission', 'total_net',
    'adults', 'children', 'total_pax', 'tour_date', 'payment_id',
    'payment_location', 'tour_guide', 'other', 'notes', 'created_at', 'updated_at',
)

LINE_ITEM_FIELDS = (
    'id', 'booking_id', 'tour_id', 'ship_id', 'booking_agent_id', 'tour_date',
    'adults', 'children', 'total_pax', 'price', 'tour_guide', 'notes',
)


def _booking_joins():
    return {
        'customer_name': F('customer__name'),
        'customer_email': F('customer__email'),
        'customer_phone': F('customer__phone'),
        'agent_name': F('agent__name'),
        'tour_name': F('tour__name'),
        'ship_name': F('tour__ship__name'),
        'location_name': F('tour__location__name'),
    }


def _line_item_joins():
    return {
        'tour_name': F('tour__name'),
        'ship_name': Coalesce(F('ship__name'), F('tour__ship__name')),
        'location_name': F('tour__location__name'),
        'booking_agent_name': F('booking_agent__name'),
    }


# =============================================================================
# BOOKINGS
# =============================================================================
def get_booking_row(booking_id) -> Optional[Dict[str, Any]]:
    """Booking joined to customer, agent, tour, ship and location."""
    def _fetch():
        return (
            Booking.objects.filter(pk=booking_id)
            .values(*BOOKING_FIELDS, **_booking_joins())
            .first()
        )
    return run_query(_fetch)


def find_booking_by_reference(reference) -> Optional[Dict[str, Any]]:
    """Lookup ignoring case and surrounding whitespace on both sides."""
    normalized = normalize_reference(reference)
    if not normalized:
        return None

    def _fetch():
        return (
            Booking.objects.annotate(reference_key=Upper(Trim('booking_reference')))
            .filter(reference_key=normalized)
            .values(*BOOKING_FIELDS, **_booking_joins())
            .first()
        )
    return run_query(_fetch)


def find_booking_by_payment_id(payment_id) -> Optional[Dict[str, Any]]:
    if not payment_id:
        return None

    def _fetch():
        return (
            Booking.objects.filter(payment_id=payment_id)
            .order_by('-created_at')
            .values(*BOOKING_FIELDS, **_booking_joins())
            .first()
        )
    return run_query(_fetch)


def find_booking_for_payment(payment_id, email) -> Optional[Dict[str, Any]]:
    """Most recent booking that mentions ``payment_id`` and belongs to ``email``."""
    def _fetch():
        return (
            Booking.objects.filter(
                Q(payment_id=payment_id)
                | Q(other__contains=payment_id)
                | Q(notes__contains=payment_id),
                customer__email__iexact=email.strip(),
            )
            .order_by('-created_at')
            .values(*BOOKING_FIELDS, **_booking_joins())
            .first()
        )
    return run_query(_fetch)


def list_bookings(limit: Optional[int] = None) -> List[Dict[str, Any]]:
    def _fetch():
        queryset = (
            Booking.objects.annotate(tour_count=Count('tours'))
            .order_by('-created_at')
            .values(*BOOKING_FIELDS, 'tour_count', **_booking_joins())
        )
        return list(queryset[:limit] if limit else queryset)
    return safe_query(_fetch, policy=QueryPolicy.default(fallback=[], demo_dataset='bookings'))


def search_bookings(term: str) -> List[Dict[str, Any]]:
    term = (term or "").strip()
    if not term:
        return []

    def _fetch():
        return list(
            Booking.objects.filter(
                Q(booking_reference__icontains=term)
                | Q(customer__name__icontains=term)
                | Q(customer__email__icontains=term)
            )
            .order_by('-created_at')
            .values(*BOOKING_FIELDS, **_booking_joins())[:50]
        )
    return safe_query(_fetch, policy=QueryPolicy.default(fallback=[]))


def set_booking_payment_id(reference, payment_id) -> int:
    """Attach an external payment id; returns the number of rows changed."""
    def _update():
        return Booking.objects.by_reference(reference).update(payment_id=payment_id)
    return run_query(_update)


def delete_booking(booking_id) -> Dict[str, Any]:
    def _delete():
        deleted, _ = Booking.objects.filter(pk=booking_id).delete()
        if not deleted:
            raise NotFound(f"Booking with ID {booking_id} not found")
        return {"success": True, "message": "Booking deleted successfully"}
    return run_query(_delete)


# =============================================================================
# LINE ITEMS
# =============================================================================
def list_booking_tours(booking_id) -> List[Dict[str, Any]]:
    def _fetch():
        return list(
            BookingTour.objects.filter(booking_id=booking_id)
            .order_by('tour_date', 'id')
            .values(*LINE_ITEM_FIELDS, **_line_item_joins())
        )
    return run_query(_fetch)


def count_booking_tours(booking_id) -> int:
    return run_query(lambda: BookingTour.objects.filter(booking_id=booking_id).count())


# =============================================================================
# DASHBOARD
# =============================================================================
STATS_PERIODS = {'all': None, 'today': 0, 'week': 7, 'month': 30}

MONEY = DecimalField(max_digits=14, decimal_places=2)


def _empty_stats() -> Dict[str, Any]:
    return {
        'total_bookings': 0, 'total_passengers': 0,
        'total_revenue': Decimal('0.00'), 'total_deposits': Decimal('0.00'),
        'total_net': Decimal('0.00'),
        'confirmed_bookings': 0, 'pending_bookings': 0, 'paid_bookings': 0,
    }


def _money_sum(expression):
    return Coalesce(Sum(expression, output_field=MONEY), Value(Decimal('0.00')), output_field=MONEY)


def dashboard_stats(period: str = 'all') -> Dict[str, Any]:
    """
    Booking counts and money totals for bookings created in ``period``
    (all, today, week or month). Zeroes when the database is unavailable.
    """
    if period not in STATS_PERIODS:
        raise ValidationFailed(
            "Invalid period",
            errors={"period": [f"Must be one of: {', '.join(STATS_PERIODS)}"]},
        )

    def _fetch():
        queryset = Booking.objects.all()
        days = STATS_PERIODS[period]
        if days is not None:
            today = timezone.localdate()
            queryset = queryset.filter(created_at__date__range=(today - timedelta(days=days), today))
        return queryset.aggregate(
            total_bookings=Count('id'),
            total_passengers=Coalesce(Sum('total_pax'), 0, output_field=IntegerField()),
            total_revenue=_money_sum('total_payment'),
            total_deposits=_money_sum('deposit'),
            total_net=_money_sum(Coalesce('total_net', F('total_payment') - F('commission'))),
            confirmed_bookings=Count('id', filter=Q(status=BookingStatus.CONFIRMED)),
            pending_bookings=Count('id', filter=Q(status=BookingStatus.PENDING)),
            paid_bookings=Count('id', filter=Q(status=BookingStatus.PAID)),
        )
    return safe_query(_fetch, policy=QueryPolicy.default(fallback=_empty_stats()))


def list_upcoming_tours(start, end, limit: int = 100) -> List[Dict[str, Any]]:
    """Line items running between ``start`` and ``end``, soonest first."""
    def _fetch():
        return list(
            BookingTour.objects.filter(tour_date__range=(start, end))
            .order_by('tour_date', 'id')
            .values(
                *LINE_ITEM_FIELDS, **_line_item_joins(),
                booking_reference=F('booking__booking_reference'),
                booking_status=F('booking__status'),
                customer_name=F('booking__customer__name'),
            )[:limit]
        )
    return safe_query(_fetch, policy=QueryPolicy.default(fallback=[]))


# =============================================================================
# TOURS
# =============================================================================
def list_tours() -> List[Dict[str, Any]]:
    def _fetch():
        return list(
            Tour.objects.order_by('name').values(
                'id', 'name', 'ship_id', 'location_id', 'price', 'capacity',
                'status', 'description',
                ship_name=F('ship__name'), location_name=F('location__name'),
            )
        )
    return safe_query(_fetch, policy=QueryPolicy.default(fallback=[], demo_dataset='tours'))


def get_tour(tour_id) -> Optional[Tour]:
    return run_query(lambda: Tour.objects.select_related('ship', 'location').filter(pk=tour_id).first())


def get_tour_name(tour_id) -> str:
    def _fetch():
        return Tour.objects.filter(pk=tour_id).values_list('name', flat=True).first()
    return safe_query(_fetch, policy=QueryPolicy.default(fallback=None)) or "Unknown Tour"


# =============================================================================
# REFERENCE DATA
# =============================================================================
def _list_named(model, dataset):
    def _fetch():
        return list(model.objects.order_by('name').values('id', 'name', 'created_at', 'updated_at'))
    _fetch.__name__ = f"list_{dataset}"
    return safe_query(_fetch, policy=QueryPolicy.default(fallback=[], demo_dataset=dataset))


def list_ships():
    return _list_named(Ship, 'ships')


def list_locations():
    return _list_named(Location, 'locations')


def list_agents():
    return _list_named(Agent, 'agents')


def list_booking_agents():
    return _list_named(BookingAgent, 'booking_agents')


def _guarded_delete(model, pk, label, usages):
    """
    Delete ``model`` row ``pk`` unless any queryset in ``usages`` still
    references it. The check and the delete share one transaction.
    """
    def _delete():
        with transaction.atomic():
            instance = model.objects.select_for_update().filter(pk=pk).first()
            if instance is None:
                raise NotFound(f"{label} with ID {pk} not found")
            for where, queryset in usages:
                count = queryset.count()
                if count:
                    raise ReferenceInUse(
                        f"Cannot delete {label.lower()} that is used in {where}",
                        details={"count": count},
                    )
            instance.delete()
        logger.info(f"{label} {pk} deleted")
        return {"success": True, "message": f"{label} deleted successfully"}

    _delete.__name__ = f"delete_{model._meta.model_name}"
    return run_query(_delete)


def delete_ship(ship_id):
    return _guarded_delete(Ship, ship_id, "Ship", [
        ("bookings", BookingTour.objects.filter(ship_id=ship_id)),
        ("tours", Tour.objects.filter(ship_id=ship_id)),
    ])


def delete_location(location_id):
    return _guarded_delete(Location, location_id, "Location", [
        ("tours", Tour.objects.filter(location_id=location_id)),
    ])


def delete_agent(agent_id):
    return _guarded_delete(Agent, agent_id, "Agent", [
        ("bookings", Booking.objects.filter(agent_id=agent_id)),
    ])


def delete_booking_agent(booking_agent_id):
    return _guarded_delete(BookingAgent, booking_agent_id, "Booking agent", [
        ("bookings", BookingTour.objects.filter(booking_agent_id=booking_agent_id)),
    ])


def delete_tour(tour_id):
    return _guarded_delete(Tour, tour_id, "Tour", [
        ("bookings", Booking.objects.filter(tour_id=tour_id)),
        ("bookings", BookingTour.objects.filter(tour_id=tour_id)),
    ])


def get_booking_agent_name(booking_agent_id) -> str:
    if booking_agent_id is None:
        return "Direct Booking"

    def _fetch():
        return BookingAgent.objects.filter(pk=booking_agent_id).values_list('name', flat=True).first()
    return safe_query(_fetch, policy=QueryPolicy.default(fallback=None)) or "Unknown Agent"


# =============================================================================
# CUSTOMERS
# =============================================================================
def save_customer(name: str, email: str, phone: str = "") -> Customer:
    """
    Find the customer by e-mail (case-insensitive) or create one.

    Plain ORM work with no retry wrapper, for use inside a transaction.
    """
    email = (email or "").strip()
    name = (name or "").strip()
    phone = (phone or "").strip()

    customer = Customer.objects.filter(email__iexact=email).order_by('id').first() if email else None
    if customer is None:
        return Customer.objects.create(name=name, email=email, phone=phone)

    changed = []
    if name and customer.name != name:
        customer.name = name
        changed.append('name')
    if phone and customer.phone != phone:
        customer.phone = phone
        changed.append('phone')
    if changed:
        customer.save(update_fields=changed + ['updated_at'])
    return customer


def upsert_customer(name: str, email: str, phone: str = "") -> Customer:
    return run_query(save_customer, name, email, phone)


def search_customers(term: str) -> List[Dict[str, Any]]:
    term = (term or "").strip()

    def _fetch():
        queryset = Customer.objects.order_by('name')
        if term:
            queryset = queryset.filter(
                Q(name__icontains=term) | Q(email__icontains=term) | Q(phone__icontains=term)
            )
        return list(queryset.values('id', 'name', 'email', 'phone')[:50])
    return safe_query(_fetch, policy=QueryPolicy.default(fallback=[]))


# =============================================================================
# NOTIFICATIONS
# =============================================================================
def list_notifications(user_id, limit: int = 50) -> List[Dict[str, Any]]:
    def _fetch():
        return list(
            Notification.objects.filter(user_id=user_id)
            .order_by('-created_at')
            .values('id', 'title', 'message', 'link', 'type', 'read', 'created_at')[:limit]
        )
    return safe_query(_fetch, policy=QueryPolicy.default(fallback=[]))


def unread_notification_count(user_id) -> int:
    def _fetch():
        return Notification.objects.filter(user_id=user_id, read=False).count()
    return safe_query(_fetch, policy=QueryPolicy.default(fallback=0))


def create_notification(user_id, title, message, link="", type="info") -> Optional[Notification]:
    def _create():
        return Notification.objects.create(
            user_id=user_id, title=title, message=message, link=link or "", type=type,
        )
    return safe_query(_create, policy=QueryPolicy.default(fallback=None))


def mark_notification_read(notification_id, user_id=None) -> bool:
    def _update():
        queryset = Notification.objects.filter(pk=notification_id)
        if user_id is not None:
            queryset = queryset.filter(user_id=user_id)
        return queryset.update(read=True) > 0
    return safe_query(_update, policy=QueryPolicy.default(fallback=False))


def mark_all_notifications_read(user_id) -> int:
    def _update():
        return Notification.objects.filter(user_id=user_id, read=False).update(read=True)
    return safe_query(_update, policy=QueryPolicy.default(fallback=0))


def delete_notification(notification_id, user_id=None) -> bool:
    def _delete():
        queryset = Notification.objects.filter(pk=notification_id)
        if user_id is not None:
            queryset = queryset.filter(user_id=user_id)
        deleted, _ = queryset.delete()
        return deleted > 0
    return safe_query(_delete, policy=QueryPolicy.default(fallback=False))


# =============================================================================
# SYSTEM SETTINGS
# =============================================================================
def get_system_setting(key: str) -> str:
    """Stored value for ``key``, falling back to the built-in default."""
    def _fetch():
        return SystemSetting.objects.filter(key=key).values_list('content', flat=True).first()
    value = safe_query(_fetch, policy=QueryPolicy.default(fallback=None))
    if value is None:
        return SYSTEM_SETTING_DEFAULTS.get(key, "")
    return value


def update_system_setting(key: str, content: str) -> SystemSetting:
    def _upsert():
        setting, _ = SystemSetting.objects.update_or_create(key=key, defaults={'content': content})
        return setting
    return run_query(_upsert)

"""Tests for the domain query functions."""

import datetime
from decimal import Decimal
from unittest import mock

import pytest
from django.db import OperationalError
from django.utils import timezone

from bookings import queries
from bookings.exceptions import NotFound, ReferenceInUse, ValidationFailed
from bookings.models import Booking, BookingTour, Customer, Notification, Ship, SystemSetting


@pytest.mark.django_db
class TestBookingLookups:

    def test_reference_lookup_ignores_case_and_whitespace(self, booking):
        """Stored ' abc-123 ' and requested 'ABC-123' are the same booking."""
        Booking.objects.filter(pk=booking.pk).update(booking_reference=" abc-123 ")

        row = queries.find_booking_by_reference("ABC-123")
        assert row is not None
        assert row['id'] == booking.pk

        assert queries.find_booking_by_reference("  abc-123")['id'] == booking.pk

    def test_reference_lookup_missing(self, db):
        assert queries.find_booking_by_reference("REF-000000-0000") is None
        assert queries.find_booking_by_reference("   ") is None

    def test_save_normalizes_reference(self, customer):
        booking = Booking.objects.create(booking_reference=" ref-1 ", customer=customer)
        assert booking.booking_reference == "REF-1"

    def test_booking_row_has_joined_names(self, booking):
        row = queries.get_booking_row(booking.pk)
        assert row['customer_name'] == "Maria Rossi"
        assert row['customer_email'] == "maria@example.com"
        assert row['tour_name'] == "Doha City Tour"
        assert row['ship_name'] == "MSC World Europa"
        assert row['location_name'] == "Doha Port"

    def test_find_by_payment_id(self, booking):
        queries.set_booking_payment_id(booking.booking_reference, "pay_123")
        assert queries.find_booking_by_payment_id("pay_123")['id'] == booking.pk
        assert queries.find_booking_by_payment_id("") is None

    def test_find_for_payment_matches_email_and_notes(self, booking):
        Booking.objects.filter(pk=booking.pk).update(notes="Dibsy payment pay_777")

        assert queries.find_booking_for_payment("pay_777", "MARIA@example.com")['id'] == booking.pk
        assert queries.find_booking_for_payment("pay_777", "someone@example.com") is None

    def test_list_and_search(self, booking, legacy_booking):
        rows = queries.list_bookings()
        assert {row['id'] for row in rows} == {booking.pk, legacy_booking.pk}
        counts = {row['id']: row['tour_count'] for row in rows}
        assert counts[booking.pk] == 1
        assert counts[legacy_booking.pk] == 0

        assert [row['id'] for row in queries.search_bookings("9597")] == [booking.pk]
        assert queries.search_bookings("") == []

    def test_delete_booking_removes_line_items(self, booking):
        result = queries.delete_booking(booking.pk)
        assert result == {"success": True, "message": "Booking deleted successfully"}
        assert not BookingTour.objects.filter(booking_id=booking.pk).exists()

        with pytest.raises(NotFound) as excinfo:
            queries.delete_booking(booking.pk)
        assert excinfo.value.message == f"Booking with ID {booking.pk} not found"


@pytest.mark.django_db
class TestLineItems:

    def test_line_items_carry_names(self, booking, booking_agent, ship):
        BookingTour.objects.filter(booking=booking).update(booking_agent=booking_agent, ship=ship)

        items = queries.list_booking_tours(booking.pk)
        assert len(items) == 1
        assert items[0]['tour_name'] == "Doha City Tour"
        assert items[0]['ship_name'] == "MSC World Europa"
        assert items[0]['booking_agent_name'] == "Ahmed Al-Thani"
        assert queries.count_booking_tours(booking.pk) == 1

    def test_ship_falls_back_to_tour_ship(self, booking):
        items = queries.list_booking_tours(booking.pk)
        assert items[0]['ship_name'] == "MSC World Europa"

    def test_tour_name(self, tour):
        assert queries.get_tour_name(tour.pk) == "Doha City Tour"
        assert queries.get_tour_name(999999) == "Unknown Tour"


@pytest.mark.django_db
class TestCatalogue:

    def test_tours_sorted_with_names(self, tour, second_tour):
        rows = queries.list_tours()
        assert [row['name'] for row in rows] == ["Desert Safari", "Doha City Tour"]
        assert rows[1]['ship_name'] == "MSC World Europa"
        assert rows[1]['location_name'] == "Doha Port"

    def test_get_tour(self, tour):
        assert queries.get_tour(tour.pk).ship.name == "MSC World Europa"
        assert queries.get_tour(999999) is None

    def test_reference_lists(self, ship, location, agent, booking_agent):
        assert [row['name'] for row in queries.list_ships()] == ["MSC World Europa"]
        assert [row['name'] for row in queries.list_locations()] == ["Doha Port"]
        assert [row['id'] for row in queries.list_agents()] == [agent.pk]
        assert [row['name'] for row in queries.list_booking_agents()] == ["Ahmed Al-Thani"]


@pytest.mark.django_db
class TestDeletionGuards:

    def test_ship_used_by_line_item_is_kept(self, booking, ship):
        """A ship referenced by a booking line item cannot be deleted."""
        tour_ship = Ship.objects.create(name="Costa Smeralda")
        BookingTour.objects.filter(booking=booking).update(ship=tour_ship)

        with pytest.raises(ReferenceInUse) as excinfo:
            queries.delete_ship(tour_ship.pk)
        assert excinfo.value.status_code == 409
        assert excinfo.value.message == "Cannot delete ship that is used in bookings"
        assert Ship.objects.filter(pk=tour_ship.pk).exists()

    def test_ship_used_by_tour_is_kept(self, tour, ship):
        with pytest.raises(ReferenceInUse) as excinfo:
            queries.delete_ship(ship.pk)
        assert excinfo.value.message == "Cannot delete ship that is used in tours"

    def test_unused_ship_deleted_then_not_found(self, db):
        ship = Ship.objects.create(name="Spare")

        assert queries.delete_ship(ship.pk) == {"success": True, "message": "Ship deleted successfully"}
        with pytest.raises(NotFound) as excinfo:
            queries.delete_ship(ship.pk)
        assert excinfo.value.message == f"Ship with ID {ship.pk} not found"

    def test_location_in_use(self, tour, location):
        with pytest.raises(ReferenceInUse):
            queries.delete_location(location.pk)

    def test_agent_in_use(self, booking, agent):
        Booking.objects.filter(pk=booking.pk).update(agent=agent)
        with pytest.raises(ReferenceInUse) as excinfo:
            queries.delete_agent(agent.pk)
        assert excinfo.value.details == {"count": 1}

    def test_booking_agent_in_use(self, booking, booking_agent):
        BookingTour.objects.filter(booking=booking).update(booking_agent=booking_agent)
        with pytest.raises(ReferenceInUse) as excinfo:
            queries.delete_booking_agent(booking_agent.pk)
        assert excinfo.value.message == "Cannot delete booking agent that is used in bookings"

    def test_tour_in_use(self, booking, tour):
        with pytest.raises(ReferenceInUse):
            queries.delete_tour(tour.pk)

    def test_tour_of_legacy_booking_is_kept(self, legacy_booking, tour):
        """A booking without line items still points at its tour."""
        with pytest.raises(ReferenceInUse) as excinfo:
            queries.delete_tour(tour.pk)

        assert excinfo.value.message == "Cannot delete tour that is used in bookings"
        legacy_booking.refresh_from_db()
        assert legacy_booking.tour_id == tour.pk


@pytest.mark.django_db
class TestBookingAgentName:

    def test_names(self, booking_agent):
        assert queries.get_booking_agent_name(None) == "Direct Booking"
        assert queries.get_booking_agent_name(booking_agent.pk) == "Ahmed Al-Thani"
        assert queries.get_booking_agent_name(999999) == "Unknown Agent"


@pytest.mark.django_db
class TestCustomers:

    def test_upsert_matches_email_case_insensitively(self, customer):
        same = queries.upsert_customer("Maria R.", "MARIA@EXAMPLE.COM", "")
        assert same.pk == customer.pk
        customer.refresh_from_db()
        assert customer.name == "Maria R."
        assert customer.phone == "+39 333 1234567"
        assert Customer.objects.count() == 1

    def test_upsert_creates(self, db):
        created = queries.upsert_customer("John Smith", "john@example.com", "+44 20 1234")
        assert created.pk is not None
        assert created.email == "john@example.com"

    def test_search(self, customer):
        assert [row['id'] for row in queries.search_customers("rossi")] == [customer.pk]
        assert queries.search_customers("nobody") == []


@pytest.mark.django_db
class TestNotifications:

    def test_lifecycle(self, staff_user, django_user_model):
        other = django_user_model.objects.create_user(username="other", password="x")
        first = queries.create_notification(staff_user.pk, "New booking", "REF-1 created", link="/bookings/1")
        queries.create_notification(staff_user.pk, "Payment", "REF-1 paid", type="payment")
        queries.create_notification(other.pk, "Other", "not yours")

        assert len(queries.list_notifications(staff_user.pk)) == 2
        assert queries.unread_notification_count(staff_user.pk) == 2

        assert queries.mark_notification_read(first.pk, user_id=other.pk) is False
        assert queries.mark_notification_read(first.pk, user_id=staff_user.pk) is True
        assert queries.unread_notification_count(staff_user.pk) == 1

        assert queries.mark_all_notifications_read(staff_user.pk) == 1
        assert queries.unread_notification_count(staff_user.pk) == 0

        assert queries.delete_notification(first.pk, user_id=staff_user.pk) is True
        assert not Notification.objects.filter(pk=first.pk).exists()


@pytest.mark.django_db
class TestSystemSettings:

    def test_defaults_until_saved(self):
        assert queries.get_system_setting('business_location') == "Doha, Qatar"
        assert queries.get_system_setting('no_such_key') == ""

    def test_update(self):
        queries.update_system_setting('business_phone', '+974 5555 0000')
        queries.update_system_setting('business_phone', '+974 5555 1111')
        assert queries.get_system_setting('business_phone') == '+974 5555 1111'
        assert SystemSetting.objects.filter(key='business_phone').count() == 1


@pytest.mark.django_db
class TestDashboard:

    def test_stats(self, booking, legacy_booking):
        stats = queries.dashboard_stats()

        assert stats['total_bookings'] == 2
        assert stats['total_passengers'] == 6
        assert stats['total_revenue'] == Decimal("540.00")
        assert stats['total_deposits'] == Decimal("390.00")
        assert stats['total_net'] == Decimal("520.00")
        assert stats['confirmed_bookings'] == 1
        assert stats['pending_bookings'] == 1
        assert stats['paid_bookings'] == 0

    def test_stats_by_period(self, booking, legacy_booking):
        Booking.objects.filter(pk=legacy_booking.pk).update(
            created_at=timezone.now() - datetime.timedelta(days=60),
        )

        assert queries.dashboard_stats('week')['total_bookings'] == 1
        assert queries.dashboard_stats('all')['total_bookings'] == 2

    def test_stats_unknown_period(self, db):
        with pytest.raises(ValidationFailed):
            queries.dashboard_stats('decade')

    def test_stats_fall_back_to_zero(self, db):
        with mock.patch.object(Booking.objects, "all", side_effect=OperationalError("server closed the connection")):
            stats = queries.dashboard_stats()
        assert stats['total_bookings'] == 0
        assert stats['total_revenue'] == Decimal("0.00")

    def test_upcoming_line_items(self, booking, customer, second_tour):
        today = timezone.localdate()
        later = Booking.objects.create(booking_reference="REF-UPCOMING-1", customer=customer)
        BookingTour.objects.create(booking=later, tour=second_tour, tour_date=today + datetime.timedelta(days=3),
                                   adults=2)
        BookingTour.objects.create(booking=later, tour=second_tour, tour_date=today + datetime.timedelta(days=30))

        rows = queries.list_upcoming_tours(today, today + datetime.timedelta(days=7))

        assert len(rows) == 1
        assert rows[0]['booking_reference'] == "REF-UPCOMING-1"
        assert rows[0]['customer_name'] == "Maria Rossi"
        assert rows[0]['tour_name'] == "Desert Safari"

"""Pytest configuration for booking tests."""

import datetime
from decimal import Decimal
from unittest import mock

import pytest


@pytest.fixture
def ship(db):
    from bookings.models import Ship

    return Ship.objects.create(name="MSC World Europa")


@pytest.fixture
def location(db):
    from bookings.models import Location

    return Location.objects.create(name="Doha Port")


@pytest.fixture
def tour(db, ship, location):
    """Create a tour on the test ship."""
    from bookings.models import Tour

    return Tour.objects.create(
        name="Doha City Tour", ship=ship, location=location,
        price=Decimal("85.00"), capacity=40,
    )


@pytest.fixture
def second_tour(db, location):
    from bookings.models import Tour

    return Tour.objects.create(name="Desert Safari", location=location, price=Decimal("120.00"))


@pytest.fixture
def agent(db):
    from bookings.models import Agent

    return Agent.objects.create(name="Cruise Desk")


@pytest.fixture
def booking_agent(db):
    from bookings.models import BookingAgent

    return BookingAgent.objects.create(name="Ahmed Al-Thani")


@pytest.fixture
def customer(db):
    from bookings.models import Customer

    return Customer.objects.create(name="Maria Rossi", email="maria@example.com", phone="+39 333 1234567")


@pytest.fixture
def booking(db, customer, tour):
    """A pending single-tour booking with one line item."""
    from bookings.models import Booking, BookingTour

    booking = Booking.objects.create(
        booking_reference="REF-250524-9597",
        customer=customer,
        tour=tour,
        tour_date=datetime.date(2025, 5, 24),
        status="pending",
        adults=2,
        total_payment=Decimal("200.00"),
        deposit=Decimal("50.00"),
        remaining_balance=Decimal("150.00"),
        commission=Decimal("20.00"),
    )
    BookingTour.objects.create(
        booking=booking, tour=tour, tour_date=datetime.date(2025, 5, 24),
        adults=2, price=Decimal("200.00"),
    )
    return booking


@pytest.fixture
def legacy_booking(db, customer, tour):
    """A booking written before line items existed: tour on the row, no BookingTour."""
    from bookings.models import Booking

    return Booking.objects.create(
        booking_reference="REF-240101-0001",
        customer=customer,
        tour=tour,
        tour_date=datetime.date(2024, 1, 1),
        status="confirmed",
        adults=3,
        children=1,
        total_payment=Decimal("340.00"),
        deposit=Decimal("340.00"),
    )


@pytest.fixture
def staff_user(db, django_user_model):
    return django_user_model.objects.create_user(
        username="staff", password="secret", email="staff@example.com", is_staff=True,
    )


@pytest.fixture
def staff_client(client, staff_user):
    client.force_login(staff_user)
    return client


def make_response(status_code=200, body=None):
    """Stand-in for a ``requests.Response``."""
    response = mock.Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = body if body is not None else {}
    response.text = str(body)
    return response


@pytest.fixture
def http_response():
    return make_response


@pytest.fixture
def email_client():
    """Resend client whose HTTP session always accepts the message."""
    from bookings.emails import ResendClient

    session = mock.Mock()
    session.post.return_value = make_response(200, {"id": "email_123"})
    return ResendClient(api_key="re_test_key", base_url="https://api.resend.test", session=session)


@pytest.fixture
def patched_email_client(email_client):
    """Route after-commit deliveries through ``email_client``."""
    with mock.patch("bookings.reconciliation.get_email_client", return_value=email_client):
        yield email_client

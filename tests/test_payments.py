"""Tests for the Dibsy payment adapter."""

from decimal import Decimal
from unittest import mock

import pytest
import requests

from bookings.exceptions import NotFound, UpstreamError, ValidationFailed
from bookings.models import Booking, BookingStatus, DispatchKind, EmailDispatch
from bookings.payments import DibsyClient, PaymentService, convert_eur_to_qar


@pytest.fixture
def dibsy_session():
    return mock.Mock()


@pytest.fixture
def service(dibsy_session):
    client = DibsyClient(secret_key="sk_test_dibsy", base_url="https://api.dibsy.test/v2",
                         session=dibsy_session)
    return PaymentService(client=client)


class TestCurrencyConversion:

    def test_eur_to_qar(self):
        assert convert_eur_to_qar(85) == Decimal("357.00")
        assert convert_eur_to_qar("170.00") == Decimal("714.00")

    def test_rounds_half_up(self):
        assert convert_eur_to_qar(Decimal("0.125")) == Decimal("0.53")

    def test_rate_comes_from_settings(self, settings):
        settings.DIBSY = {**settings.DIBSY, 'EUR_TO_QAR_RATE': '4.00'}
        assert convert_eur_to_qar(10) == Decimal("40.00")

    @pytest.mark.parametrize("amount", [0, -5, "abc", None, "NaN"])
    def test_invalid_amounts(self, amount):
        with pytest.raises(ValidationFailed):
            convert_eur_to_qar(amount)


class TestDibsyClient:

    def test_error_response_raises_upstream_error(self, dibsy_session, http_response):
        dibsy_session.request.return_value = http_response(422, {"title": "Invalid card token"})
        client = DibsyClient("sk_test", session=dibsy_session)

        with pytest.raises(UpstreamError) as excinfo:
            client.create_payment({"amount": {"value": "1.00", "currency": "QAR"}})
        assert excinfo.value.message == "Invalid card token"
        assert excinfo.value.provider_status == 422
        assert excinfo.value.status_code == 502

    def test_unreachable_provider(self, dibsy_session):
        dibsy_session.request.side_effect = requests.exceptions.ConnectionError("refused")
        client = DibsyClient("sk_test", session=dibsy_session)

        with pytest.raises(UpstreamError) as excinfo:
            client.get_payment("pay_1")
        assert excinfo.value.message == "Payment provider unreachable"

    def test_authorization_header(self, dibsy_session, http_response):
        dibsy_session.request.return_value = http_response(200, {"id": "pay_1"})
        DibsyClient("sk_test", base_url="https://api.dibsy.test/v2/", session=dibsy_session).get_payment("pay_1")

        call = dibsy_session.request.call_args
        assert call.args == ("GET", "https://api.dibsy.test/v2/payments/pay_1")
        assert call.kwargs['headers']['Authorization'] == "Bearer sk_test"


@pytest.mark.django_db
class TestCheckoutPayment:

    def test_creates_qar_payment(self, service, dibsy_session, http_response, booking):
        dibsy_session.request.return_value = http_response(201, {
            "id": "pay_abc",
            "status": "open",
            "_links": {"checkout": {"href": "https://pay.dibsy.test/checkout/pay_abc"}},
        })

        result = service.create_checkout_payment(
            "ref-250524-9597", "85.00", customer_name="Maria Rossi", customer_email="maria@example.com",
        )

        assert result == {
            "paymentId": "pay_abc",
            "paymentUrl": "https://pay.dibsy.test/checkout/pay_abc",
            "status": "open",
            "amount": "357.00",
            "currency": "QAR",
        }
        payload = dibsy_session.request.call_args.kwargs['json']
        assert payload['amount'] == {"value": "357.00", "currency": "QAR"}
        assert payload['redirectUrl'] == "https://qtours.test/payment/success?booking=REF-250524-9597"
        assert payload['webhookUrl'] == "https://qtours.test/api/payments/webhook/"
        assert payload['metadata']['booking_reference'] == "REF-250524-9597"
        assert payload['metadata']['amount_eur'] == "85.00"

        booking.refresh_from_db()
        assert booking.payment_id == "pay_abc"
        assert booking.status == BookingStatus.PENDING

    def test_unknown_booking(self, service, dibsy_session, db):
        with pytest.raises(NotFound):
            service.create_checkout_payment("REF-000000-0000", "85.00")
        dibsy_session.request.assert_not_called()

    def test_invalid_amount_rejected_before_request(self, service, dibsy_session, booking):
        with pytest.raises(ValidationFailed):
            service.create_checkout_payment(booking.booking_reference, "0")
        dibsy_session.request.assert_not_called()


@pytest.mark.django_db
class TestCardPayment:

    def test_requires_authentication_leaves_booking_alone(self, service, dibsy_session, http_response, booking):
        """A 3-D Secure challenge must not mark the booking paid or send e-mail."""
        dibsy_session.request.return_value = http_response(201, {
            "id": "pay_3ds",
            "status": "requires_authentication",
            "_links": {"redirect": {"href": "https://3ds.dibsy.test/pay_3ds"}},
        })

        result = service.create_card_payment("tok_1", booking.booking_reference, "85.00")

        assert result == {
            "success": True,
            "requiresAuthentication": True,
            "redirectUrl": "https://3ds.dibsy.test/pay_3ds",
            "paymentId": "pay_3ds",
        }
        booking.refresh_from_db()
        assert booking.status == BookingStatus.PENDING
        assert booking.remaining_balance == Decimal("150.00")
        assert booking.payment_id == "pay_3ds"
        assert not EmailDispatch.objects.exists()

    def test_paid_settles_booking(self, service, dibsy_session, http_response, booking):
        dibsy_session.request.return_value = http_response(201, {"id": "pay_ok", "status": "paid"})

        result = service.create_card_payment("tok_1", booking.booking_reference, "85.00")

        assert result['success'] is True
        assert result['status'] == "paid"
        assert result['emailSent'] is True
        booking.refresh_from_db()
        assert booking.status == BookingStatus.PAID
        assert booking.payment_id == "pay_ok"
        assert EmailDispatch.objects.filter(kind=DispatchKind.CONFIRMATION).count() == 1

        payload = dibsy_session.request.call_args.kwargs['json']
        assert payload['method'] == "creditcard"
        assert payload['cardToken'] == "tok_1"
        assert payload['amount'] == {"value": "357.00", "currency": "QAR"}

    def test_declined(self, service, dibsy_session, http_response, booking):
        dibsy_session.request.return_value = http_response(201, {"id": "pay_no", "status": "failed"})

        result = service.create_card_payment("tok_1", booking.booking_reference, "85.00")

        assert result == {"success": False, "message": "Payment status: failed", "paymentId": "pay_no"}
        booking.refresh_from_db()
        assert booking.status == BookingStatus.PENDING

    def test_provider_error_leaves_booking_unchanged(self, service, dibsy_session, http_response, booking):
        dibsy_session.request.return_value = http_response(500, {"message": "Gateway down"})

        with pytest.raises(UpstreamError):
            service.create_card_payment("tok_1", booking.booking_reference, "85.00")

        booking.refresh_from_db()
        assert booking.status == BookingStatus.PENDING
        assert booking.payment_id == ""

    def test_missing_token(self, service, booking):
        with pytest.raises(ValidationFailed):
            service.create_card_payment("", booking.booking_reference, "85.00")


@pytest.mark.django_db
class TestVerifyPayment:

    def test_paid_payment_settles_booking(self, service, dibsy_session, http_response, booking):
        dibsy_session.request.return_value = http_response(200, {
            "id": "pay_1", "status": "paid",
            "metadata": {"booking_reference": booking.booking_reference},
        })

        result = service.verify_payment("pay_1")

        assert result['success'] is True
        booking.refresh_from_db()
        assert booking.status == BookingStatus.PAID
        assert booking.payment_id == "pay_1"

    def test_unpaid_payment(self, service, dibsy_session, http_response, booking):
        dibsy_session.request.return_value = http_response(200, {"id": "pay_1", "status": "open"})

        result = service.verify_payment("pay_1", booking.booking_reference)

        assert result['success'] is False
        assert result['message'] == "Payment status: open"
        booking.refresh_from_db()
        assert booking.status == BookingStatus.PENDING

    def test_paid_without_booking(self, service, dibsy_session, http_response, db):
        dibsy_session.request.return_value = http_response(200, {"id": "pay_1", "status": "paid"})
        with pytest.raises(NotFound):
            service.verify_payment("pay_1")


@pytest.mark.django_db
class TestWebhook:

    def test_paid_webhook_is_verified_then_applied(self, service, dibsy_session, http_response, booking):
        dibsy_session.request.return_value = http_response(200, {
            "id": "pay_1", "status": "paid",
            "metadata": {"bookingReference": booking.booking_reference},
        })

        result = service.handle_webhook({
            "id": "pay_1", "status": "paid",
            "metadata": {"bookingReference": booking.booking_reference},
        })

        assert result == {"received": True}
        assert dibsy_session.request.call_args.args == ("GET", "https://api.dibsy.test/v2/payments/pay_1")
        booking.refresh_from_db()
        assert booking.status == BookingStatus.PAID

    def test_verification_failure_falls_back_to_direct_update(self, service, dibsy_session, booking):
        dibsy_session.request.side_effect = requests.exceptions.Timeout("slow")

        service.handle_webhook({
            "id": "pay_1", "status": "paid",
            "metadata": {"bookingReference": booking.booking_reference},
        })

        booking.refresh_from_db()
        assert booking.status == BookingStatus.PAID

    def test_duplicate_webhooks_send_one_confirmation(self, service, dibsy_session, http_response, booking):
        dibsy_session.request.return_value = http_response(200, {"id": "pay_1", "status": "paid"})
        payload = {"id": "pay_1", "status": "paid", "metadata": {"bookingReference": booking.booking_reference}}

        service.handle_webhook(payload)
        service.handle_webhook(payload)

        assert EmailDispatch.objects.filter(kind=DispatchKind.CONFIRMATION).count() == 1

    def test_missing_booking_is_rebuilt_from_metadata(self, service, dibsy_session, tour, db):
        service.handle_webhook({
            "id": "pay_new", "status": "paid",
            "metadata": {
                "bookingReference": "VDQ-250601-1234",
                "tourId": tour.pk,
                "tourDate": "2025-06-01",
                "passengers": 2,
                "originalEurAmount": "170.00",
                "customerName": "John Smith",
                "customerEmail": "john@example.com",
            },
        })

        booking = Booking.objects.get(booking_reference="VDQ-250601-1234")
        assert booking.status == BookingStatus.PAID
        assert booking.payment_id == "pay_new"
        assert booking.total_payment == Decimal("170.00")
        assert booking.remaining_balance == Decimal("0.00")
        assert booking.customer.email == "john@example.com"
        dibsy_session.request.assert_not_called()

    @pytest.mark.parametrize("overrides", [
        {"tourId": "tour-abc"},
        {"passengers": "two"},
        {"tourDate": "next tuesday"},
        {"customerEmail": ""},
    ])
    def test_unusable_metadata_is_rejected(self, service, dibsy_session, tour, db, overrides):
        metadata = {
            "bookingReference": "VDQ-250601-1234",
            "tourId": tour.pk,
            "tourDate": "2025-06-01",
            "passengers": 2,
            "originalEurAmount": "170.00",
            "customerName": "John Smith",
            "customerEmail": "john@example.com",
        }
        metadata.update(overrides)

        with pytest.raises(ValidationFailed) as excinfo:
            service.handle_webhook({"id": "pay_new", "status": "paid", "metadata": metadata})

        assert excinfo.value.message == "Payment metadata does not describe a booking"
        assert not Booking.objects.exists()

    def test_failed_payment_changes_nothing(self, service, dibsy_session, booking):
        result = service.handle_webhook({
            "id": "pay_1", "status": "failed",
            "metadata": {"bookingReference": booking.booking_reference},
        })

        assert result == {"received": True}
        booking.refresh_from_db()
        assert booking.status == BookingStatus.PENDING
        dibsy_session.request.assert_not_called()

    def test_missing_payment_id(self, service):
        with pytest.raises(ValidationFailed):
            service.handle_webhook({"status": "paid"})

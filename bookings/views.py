# =============================================================================
# IMPORTS
# =============================================================================

# Standard library
import logging

# Django core
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

# Local apps - Services
from . import queries
from .assembly import (
    assemble_booking, safe_assemble_booking, upcoming_tours, verify_receipt as verify_booking_receipt,
)
from .db import check_database_connection
from .emails import send_email as deliver_email
from .exceptions import BookingError, ValidationFailed
from .payments import get_payment_service
from .reconciliation import BookingReconciler
from .services import create_booking, create_pending_booking, update_booking

# Local apps - Forms
from .forms import (
    BookingDetailsForm, CardPaymentForm, CheckoutPaymentForm, CustomerForm, LineItemForm,
    PaymentLookupForm, PendingBookingForm, SendEmailForm, StatusUpdateForm, clean_payload,
)

# Local apps - Utils
from .utils import (
    booking_error_response, create_error_response, create_success_response,
    get_client_ip, mask_email, parse_json_body, validate_payment_config,
)

# Local apps - Decorators
from .decorators import staff_required

# Logger
logger = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION VALIDATION
# =============================================================================

# Validate configuration on module load
try:
    validate_payment_config()
except ImproperlyConfigured as e:
    logger.error(f"Payment configuration error: {e}")
    if not settings.DEBUG:
        raise


# =============================================================================
# BOOKING STATUS & VERIFICATION
# =============================================================================

@csrf_exempt
@require_POST
def update_payment_status(request):
    """Apply a payment outcome to a booking: {bookingReference, status, paymentId?}."""
    try:
        data = clean_payload(StatusUpdateForm, parse_json_body(request))
        result = BookingReconciler().update_status(
            data['bookingReference'], data['status'], data.get('paymentId') or None,
        )
        return create_success_response(result, message="Booking updated successfully")
    except BookingError as e:
        return booking_error_response(e)
    except Exception:
        logger.exception("Error updating booking payment status")
        return create_error_response("Internal server error", status=500)


@require_GET
def verify_booking_payment(request):
    """Find the most recent booking that mentions a payment id for a customer e-mail."""
    try:
        data = clean_payload(PaymentLookupForm, request.GET, message="Missing payment ID or email")
        booking = queries.find_booking_for_payment(data['paymentId'], data['email'])
        if booking is None:
            logger.info(f"No booking yet for payment {data['paymentId']} ({mask_email(data['email'])})")
            return create_error_response("Booking not found. It may still be processing.", status=404)
        return create_success_response({"booking": booking}, message="Booking found and confirmed")
    except BookingError as e:
        return booking_error_response(e)
    except Exception:
        logger.exception("Error verifying booking payment")
        return create_error_response("Internal server error", status=500)


@csrf_exempt
@require_http_methods(["GET", "POST"])
def verify_receipt(request):
    """Public receipt check by booking reference."""
    try:
        if request.method == "POST":
            reference = parse_json_body(request).get('reference', '')
        else:
            reference = request.GET.get('reference', '')
        result = verify_booking_receipt(reference)
        logger.info(f"Receipt check from {get_client_ip(request)}: valid={result['valid']}")
        message = "Booking verified" if result['valid'] else result['message']
        return JsonResponse({"success": result['valid'], **result, "message": message})
    except Exception:
        logger.exception("Error verifying receipt")
        return create_error_response("Internal server error", status=500)


# =============================================================================
# BOOKINGS
# =============================================================================

def _clean_booking_payload(payload):
    customer = clean_payload(CustomerForm, payload.get('customer') or {})
    raw_items = payload.get('tours') or []
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationFailed("At least one tour booking is required")
    line_items = []
    for index, raw_item in enumerate(raw_items):
        try:
            line_items.append(clean_payload(LineItemForm, raw_item))
        except ValidationFailed as e:
            raise ValidationFailed(e.message, errors={f"tours[{index}]": e.errors})
    details = clean_payload(BookingDetailsForm, payload)
    return customer, line_items, details


@csrf_exempt
@staff_required
@require_http_methods(["GET", "POST"])
def booking_list(request):
    """GET lists (or searches) bookings; POST creates one with its tour line items."""
    try:
        if request.method == "GET":
            term = request.GET.get('search', '').strip()
            bookings = queries.search_bookings(term) if term else queries.list_bookings()
            return create_success_response({"bookings": bookings}, message="Bookings retrieved")

        customer, line_items, details = _clean_booking_payload(parse_json_body(request))
        result = create_booking(customer, line_items, details, created_by=request.user)
        return create_success_response(
            {"bookingId": result['bookingId'], "bookingReference": result['bookingReference']},
            message=result['message'],
            status=201,
        )
    except BookingError as e:
        return booking_error_response(e)
    except Exception:
        logger.exception("Error creating booking")
        return create_error_response("Failed to create booking", status=500)


@csrf_exempt
@require_POST
def create_pending_booking_view(request):
    """Public single-tour booking that waits for payment."""
    try:
        payload = parse_json_body(request)
        customer = clean_payload(
            CustomerForm, payload.get('customerInfo') or {},
            message="Customer name and email are required",
        )
        booking_data = clean_payload(PendingBookingForm, payload.get('bookingData') or {})
        result = create_pending_booking(customer, booking_data)
        return create_success_response(
            {"bookingId": result['bookingId'], "bookingReference": result['bookingReference']},
            message="Pending booking created",
            status=201,
        )
    except BookingError as e:
        return booking_error_response(e)
    except Exception:
        logger.exception("Error creating pending booking")
        return create_error_response("Failed to create booking", status=500)


@csrf_exempt
@staff_required
@require_http_methods(["GET", "PUT", "DELETE"])
def booking_detail(request, booking_id):
    """Assembled booking by numeric id; PUT replaces it, DELETE removes it with its line items."""
    if not str(booking_id).isdigit():
        return create_error_response("Invalid booking ID format", status=400)

    try:
        if request.method == "DELETE":
            result = queries.delete_booking(int(booking_id))
            return create_success_response(message=result['message'])

        if request.method == "PUT":
            customer, line_items, details = _clean_booking_payload(parse_json_body(request))
            result = update_booking(int(booking_id), customer, line_items, details)
            message = result.pop('message')
            return create_success_response(result, message=message)

        booking = assemble_booking(int(booking_id))
        if booking is None:
            return create_error_response("Booking not found", status=404)
        return create_success_response({"booking": booking}, message="Booking retrieved")
    except BookingError as e:
        return booking_error_response(e)
    except Exception:
        logger.exception(f"Error handling booking {booking_id}")
        return create_error_response("Internal server error", status=500)


@staff_required
@require_GET
def booking_by_reference(request, reference):
    booking = safe_assemble_booking(reference)
    if booking is None:
        return create_error_response("Booking not found", status=404)
    return create_success_response({"booking": booking}, message="Booking retrieved")


# =============================================================================
# DASHBOARD
# =============================================================================

@staff_required
@require_GET
def booking_stats(request):
    """Booking counts and revenue: ?period=all|today|week|month."""
    period = request.GET.get('period', 'all').strip().lower() or 'all'
    try:
        stats = queries.dashboard_stats(period)
        return create_success_response({"stats": stats, "period": period}, message="Stats retrieved")
    except BookingError as e:
        return booking_error_response(e)


@staff_required
@require_GET
def upcoming_bookings(request):
    """Tours running in the next ?days=N days (0-90, default 7)."""
    try:
        try:
            days = int(request.GET.get('days', '7'))
        except ValueError:
            raise ValidationFailed("Invalid days parameter. Must be between 0 and 90.")
        tours = upcoming_tours(days)
        return create_success_response({"tours": tours}, message="Upcoming tours retrieved")
    except BookingError as e:
        return booking_error_response(e)
    except Exception:
        logger.exception("Error fetching upcoming tours")
        return create_error_response("Failed to fetch upcoming bookings", status=500)


# =============================================================================
# DIBSY PAYMENT VIEWS
# =============================================================================

@csrf_exempt
@require_POST
def create_card_payment(request):
    """Charge a card token; may answer with a 3-D Secure redirect."""
    try:
        data = clean_payload(CardPaymentForm, parse_json_body(request))
        result = get_payment_service().create_card_payment(
            card_token=data['cardToken'],
            booking_reference=data['bookingReference'],
            amount=data['amount'],
            customer_name=data.get('customerName') or "",
            customer_email=data.get('customerEmail') or "",
            tour_id=data.get('tourId'),
            tour_date=data.get('tourDate'),
            passengers=data.get('passengers'),
        )
        if not result.pop('success'):
            return create_error_response(result.pop('message'), status=400, details=result)
        return create_success_response(result, message="Payment processed")
    except BookingError as e:
        return booking_error_response(e)
    except Exception:
        logger.exception("Error creating card payment")
        return create_error_response("Error creating payment", status=500)


@csrf_exempt
@require_POST
def create_checkout_payment(request):
    """Hosted checkout: returns the Dibsy payment page URL."""
    try:
        data = clean_payload(
            CheckoutPaymentForm, parse_json_body(request),
            message="Booking reference and amount are required",
        )
        result = get_payment_service().create_checkout_payment(
            booking_reference=data['bookingReference'],
            amount=data['amount'],
            customer_name=data.get('customerName') or "",
            customer_email=data.get('customerEmail') or "",
            return_url=data.get('returnUrl') or None,
        )
        return create_success_response(result, message="Payment created")
    except BookingError as e:
        return booking_error_response(e)
    except Exception:
        logger.exception("Error creating checkout payment")
        return create_error_response("Error creating payment", status=500)


@require_GET
def verify_payment(request):
    """Re-check a payment with Dibsy after the customer returns from checkout."""
    try:
        payment_id = request.GET.get('paymentId', '').strip()
        if not payment_id:
            return create_error_response("Payment ID is required", status=400)
        result = get_payment_service().verify_payment(
            payment_id, request.GET.get('bookingReference') or None,
        )
        if not result.pop('success'):
            return create_error_response(result.pop('message'), status=402, details=result)
        return create_success_response(result, message="Payment verified")
    except BookingError as e:
        return booking_error_response(e)
    except Exception:
        logger.exception("Error verifying payment")
        return create_error_response("Internal server error", status=500)


@csrf_exempt
@require_POST
def payment_webhook(request):
    """
    Dibsy payment notifications. Expected problems are logged and
    acknowledged; only unexpected errors ask Dibsy to retry.
    """
    try:
        payload = parse_json_body(request)
    except ValidationFailed as e:
        return JsonResponse({"received": False, "message": e.message}, status=400)

    try:
        result = get_payment_service().handle_webhook(payload)
    except BookingError as e:
        logger.warning(f"Webhook for payment {payload.get('id')} not applied: {e.message}")
        result = {"received": True}
    except Exception:
        logger.exception(f"Webhook processing error for payment {payload.get('id')}")
        return JsonResponse({"received": False, "message": "Internal server error"}, status=500)
    return JsonResponse(result)


# =============================================================================
# EMAIL
# =============================================================================

@csrf_exempt
@staff_required
@require_POST
def send_email(request):
    try:
        data = clean_payload(SendEmailForm, parse_json_body(request))
        result = deliver_email(
            data['to'], data['subject'],
            html=data.get('html') or None,
            text=data.get('text') or None,
            sender=data.get('from') or None,
        )
        if not result['success']:
            return create_error_response(result['error'], status=502, details=result.get('details'))
        return create_success_response({"emailId": result['emailId']}, message=result['message'])
    except BookingError as e:
        return booking_error_response(e)
    except Exception:
        logger.exception("Error sending email")
        return create_error_response("Internal server error", status=500)


# =============================================================================
# HEALTH
# =============================================================================

@require_GET
def db_status(request):
    status = check_database_connection()
    return JsonResponse(status, status=200 if status['connected'] else 503)


@require_GET
def health_check(request):
    """Health check endpoint for monitoring."""
    status = check_database_connection()
    try:
        validate_payment_config()
        configured = True
    except ImproperlyConfigured as e:
        logger.warning(f"Health check: {e}")
        configured = False

    healthy = status['connected'] and configured
    return JsonResponse({
        'status': 'healthy' if healthy else 'unhealthy',
        'database': status['message'],
        'paymentsConfigured': configured,
        'timestamp': timezone.now().isoformat(),
    }, status=200 if healthy else 503)

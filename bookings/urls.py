# =============================================================================
# URLS – Bookings App
# =============================================================================
from django.urls import path

from . import views

app_name = "bookings"

urlpatterns = [
    # ===============================
    # 📋 Bookings
    # ===============================
    path("bookings/", views.booking_list, name="booking_list"),
    path("bookings/create-pending/", views.create_pending_booking_view, name="create_pending_booking"),
    path("bookings/update-payment-status/", views.update_payment_status, name="update_payment_status"),
    path("bookings/verify-payment/", views.verify_booking_payment, name="verify_booking_payment"),
    path("bookings/stats/", views.booking_stats, name="booking_stats"),
    path("bookings/upcoming/", views.upcoming_bookings, name="upcoming_bookings"),
    path("bookings/reference/<str:reference>/", views.booking_by_reference, name="booking_by_reference"),
    path("bookings/<str:booking_id>/", views.booking_detail, name="booking_detail"),

    # ===============================
    # 🧾 Receipts
    # ===============================
    path("receipts/verify/", views.verify_receipt, name="verify_receipt"),

    # ===============================
    # 💳 Dibsy Payments
    # ===============================
    path("payments/create/", views.create_card_payment, name="create_card_payment"),
    path("payments/create-simple/", views.create_checkout_payment, name="create_checkout_payment"),
    path("payments/verify/", views.verify_payment, name="verify_payment"),
    path("payments/webhook/", views.payment_webhook, name="payment_webhook"),

    # ===============================
    # ✉️ Email
    # ===============================
    path("emails/send/", views.send_email, name="send_email"),

    # ===============================
    # 🩺 Status
    # ===============================
    path("db-status/", views.db_status, name="db_status"),
]

# =============================================================================
# IMPORTS
# =============================================================================
import logging
import random
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models.functions import Trim, Upper
from django.utils import timezone

from .exceptions import ValidationFailed

# Logger
logger = logging.getLogger(__name__)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================
def normalize_reference(reference) -> str:
    """Canonical form of a booking reference: trimmed and upper-cased."""
    if reference is None:
        return ""
    return str(reference).strip().upper()


def generate_booking_reference(prefix: str = "REF") -> str:
    """Generate a booking reference such as REF-250524-9597."""
    stamp = timezone.localdate().strftime("%y%m%d")
    return f"{prefix}-{stamp}-{random.randint(0, 9999):04d}"


# =============================================================================
# BASE ABSTRACT MODELS
# =============================================================================
class TimeStampedModel(models.Model):
    """Abstract base model with created_at and updated_at fields."""
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ['-created_at']


class NamedModel(TimeStampedModel):
    """Reference rows that carry nothing but a name."""
    name = models.CharField(max_length=200)

    class Meta(TimeStampedModel.Meta):
        abstract = True
        ordering = ['name']

    def __str__(self):
        return self.name


# =============================================================================
# CHOICES
# =============================================================================
class BookingStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PAID = "paid", "Paid"
    CANCELLED = "cancelled", "Cancelled"

    @classmethod
    def parse(cls, value):
        """Map free text ('PAID ', 'Confirmed') onto a member or reject it."""
        if isinstance(value, cls):
            return value
        cleaned = str(value or "").strip().lower()
        try:
            return cls(cleaned)
        except ValueError:
            raise ValidationFailed(
                f"Invalid booking status: {value!r}",
                errors={"status": f"Must be one of: {', '.join(cls.values)}"},
            )

    @classmethod
    def settled(cls):
        return {cls.PAID, cls.CONFIRMED}


class DispatchKind(models.TextChoices):
    CONFIRMATION = "confirmation", "Booking confirmation"
    ADMIN_NOTIFICATION = "admin_notification", "Admin notification"


class DispatchStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    SENT = "sent", "Sent"
    FAILED = "failed", "Failed"


# =============================================================================
# CUSTOM MANAGERS
# =============================================================================
class BookingManager(models.Manager):
    """Custom manager for Booking model."""

    def by_reference(self, reference):
        """Case and whitespace insensitive lookup by booking reference."""
        return self.annotate(
            reference_key=Upper(Trim('booking_reference'))
        ).filter(reference_key=normalize_reference(reference))

    def pending(self):
        return self.filter(status=BookingStatus.PENDING)

    def settled(self):
        return self.filter(status__in=BookingStatus.settled())


class EmailDispatchManager(models.Manager):

    def deliverable(self, max_attempts):
        return self.filter(
            status__in=[DispatchStatus.PENDING, DispatchStatus.FAILED],
            attempts__lt=max_attempts,
        )


# =============================================================================
# REFERENCE DATA
# =============================================================================
class Ship(NamedModel):
    """Cruise ship whose passengers take the tours."""


class Location(NamedModel):
    """Place a tour runs from."""


class Agent(NamedModel):
    """Sales agent credited with a booking."""


class BookingAgent(NamedModel):
    """Guide attributed to an individual booking line item."""

    class Meta(NamedModel.Meta):
        verbose_name = "Booking Agent"
        verbose_name_plural = "Booking Agents"


class Customer(TimeStampedModel):
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")

    class Meta(TimeStampedModel.Meta):
        indexes = [
            models.Index(fields=['email'], name='bookings_customer_email_idx'),
        ]

    def __str__(self):
        return self.name


class Tour(TimeStampedModel):
    name = models.CharField(max_length=200)
    ship = models.ForeignKey(
        Ship, on_delete=models.PROTECT, null=True, blank=True, related_name='tours'
    )
    location = models.ForeignKey(
        Location, on_delete=models.PROTECT, null=True, blank=True, related_name='tours'
    )
    price = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    capacity = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=20, default='active')
    description = models.TextField(blank=True, default="")

    class Meta(TimeStampedModel.Meta):
        ordering = ['name']

    def __str__(self):
        return self.name


# =============================================================================
# BOOKINGS
# =============================================================================
class Booking(TimeStampedModel):
    """A customer's reservation, spanning one or more tour line items."""
    booking_reference = models.CharField(
        max_length=50, unique=True, default=generate_booking_reference
    )
    customer = models.ForeignKey(
        Customer, on_delete=models.PROTECT, related_name='bookings'
    )
    agent = models.ForeignKey(
        Agent, on_delete=models.PROTECT, null=True, blank=True, related_name='bookings'
    )
    # Legacy single-tour bookings predate line items
    tour = models.ForeignKey(
        Tour, on_delete=models.SET_NULL, null=True, blank=True, related_name='bookings'
    )
    status = models.CharField(
        max_length=20, choices=BookingStatus.choices, default=BookingStatus.PENDING
    )

    # Money
    deposit = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    remaining_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_payment = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    commission = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_net = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    # Passengers
    adults = models.PositiveIntegerField(default=0)
    children = models.PositiveIntegerField(default=0)
    total_pax = models.PositiveIntegerField(default=0)
    tour_date = models.DateField(null=True, blank=True)

    # Payment
    payment_id = models.CharField(max_length=100, blank=True, default="", db_index=True)
    payment_location = models.CharField(max_length=100, blank=True, default="")

    # Additional information
    tour_guide = models.CharField(max_length=200, blank=True, default="")
    other = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")

    # Managers
    objects = BookingManager()

    class Meta(TimeStampedModel.Meta):
        verbose_name = "Booking"
        verbose_name_plural = "Bookings"
        indexes = [
            models.Index(fields=['status'], name='bookings_booking_status_idx'),
            models.Index(fields=['tour_date'], name='bookings_booking_date_idx'),
        ]

    def __str__(self):
        return f"{self.booking_reference} - {self.customer}"

    def save(self, *args, **kwargs):
        self.booking_reference = normalize_reference(self.booking_reference)
        if not self.total_pax:
            self.total_pax = (self.adults or 0) + (self.children or 0)
        super().save(*args, **kwargs)

    @property
    def booking_status(self):
        """Status as a BookingStatus; None for legacy free text."""
        try:
            return BookingStatus.parse(self.status)
        except ValidationFailed:
            return None

    @property
    def is_settled(self):
        return self.booking_status in BookingStatus.settled()

    @property
    def net_amount(self):
        """Stored net if present, otherwise gross minus commission."""
        if self.total_net is not None:
            return self.total_net
        return (self.total_payment or Decimal('0')) - (self.commission or Decimal('0'))


class BookingTour(TimeStampedModel):
    """One tour leg within a booking."""
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='tours')
    tour = models.ForeignKey(
        Tour, on_delete=models.PROTECT, null=True, blank=True, related_name='booking_tours'
    )
    ship = models.ForeignKey(
        Ship, on_delete=models.PROTECT, null=True, blank=True, related_name='booking_tours'
    )
    booking_agent = models.ForeignKey(
        BookingAgent, on_delete=models.PROTECT, null=True, blank=True,
        related_name='booking_tours'
    )
    tour_date = models.DateField(null=True, blank=True)
    adults = models.PositiveIntegerField(default=0)
    children = models.PositiveIntegerField(default=0)
    total_pax = models.PositiveIntegerField(default=0)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tour_guide = models.CharField(max_length=200, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ['tour_date', 'id']
        verbose_name = "Booking Tour"
        verbose_name_plural = "Booking Tours"

    def __str__(self):
        return f"{self.booking.booking_reference} / {self.tour or 'No tour'}"

    def save(self, *args, **kwargs):
        if not self.total_pax:
            self.total_pax = (self.adults or 0) + (self.children or 0)
        super().save(*args, **kwargs)


# =============================================================================
# NOTIFICATIONS & SETTINGS
# =============================================================================
class Notification(TimeStampedModel):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, null=True, blank=True,
        related_name='booking_notifications'
    )
    title = models.CharField(max_length=200)
    message = models.TextField()
    link = models.CharField(max_length=300, blank=True, default="")
    type = models.CharField(max_length=30, default='info')
    read = models.BooleanField(default=False)

    class Meta(TimeStampedModel.Meta):
        indexes = [
            models.Index(fields=['user', 'read'], name='bookings_notif_user_read_idx'),
        ]

    def __str__(self):
        return self.title


SYSTEM_SETTING_DEFAULTS = {
    'business_email': 'info@viaggidelqatar.com',
    'business_phone': '+974 xxxx xxxx',
    'business_location': 'Doha, Qatar',
    'terms_and_conditions': (
        'Terms and conditions have not been set yet. Please contact the administrator.'
    ),
    'booking_notifications_email': 'palma@qtours.tours',
    'dibsy_mode': 'sandbox',
}


class SystemSetting(TimeStampedModel):
    """Key/value configuration read at request time."""
    key = models.CharField(max_length=100, unique=True)
    content = models.TextField(blank=True, default="")

    class Meta(TimeStampedModel.Meta):
        ordering = ['key']

    def __str__(self):
        return self.key


# =============================================================================
# EMAIL OUTBOX
# =============================================================================
class EmailDispatch(TimeStampedModel):
    """
    One e-mail owed to someone because a booking reached a status.

    The (booking, kind, target_status) key makes enqueueing idempotent:
    however many requests observe the same transition, only one row exists.
    """
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='email_dispatches')
    kind = models.CharField(max_length=30, choices=DispatchKind.choices)
    target_status = models.CharField(max_length=20, choices=BookingStatus.choices)
    recipient = models.EmailField()
    status = models.CharField(
        max_length=20, choices=DispatchStatus.choices, default=DispatchStatus.PENDING
    )
    attempts = models.PositiveIntegerField(default=0)
    provider_message_id = models.CharField(max_length=100, blank=True, default="")
    last_error = models.TextField(blank=True, default="")
    sent_at = models.DateTimeField(null=True, blank=True)

    objects = EmailDispatchManager()

    class Meta(TimeStampedModel.Meta):
        verbose_name = "Email Dispatch"
        verbose_name_plural = "Email Dispatches"
        constraints = [
            models.UniqueConstraint(
                fields=['booking', 'kind', 'target_status'],
                name='unique_email_dispatch_per_transition',
            ),
        ]

    def __str__(self):
        return f"{self.kind} -> {self.recipient} ({self.status})"

    def mark_sent(self, message_id):
        self.status = DispatchStatus.SENT
        self.provider_message_id = message_id or ""
        self.sent_at = timezone.now()
        self.last_error = ""
        self.save(update_fields=['status', 'provider_message_id', 'sent_at', 'last_error', 'updated_at'])

    def mark_failed(self, error):
        self.status = DispatchStatus.FAILED
        self.last_error = str(error)[:2000]
        self.save(update_fields=['status', 'last_error', 'updated_at'])

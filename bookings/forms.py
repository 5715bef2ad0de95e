from decimal import Decimal

from django import forms

from .exceptions import ValidationFailed
from .models import BookingStatus


def clean_payload(form_class, data, message=None, **kwargs):
    """
    Bind ``data`` to ``form_class`` and return its cleaned data.

    Raises ValidationFailed with per-field errors when the payload is invalid.
    """
    form = form_class(data=data, **kwargs)
    if form.is_valid():
        return form.cleaned_data

    errors = {field: [str(e) for e in errs] for field, errs in form.errors.items()}
    if message is None:
        missing = any(
            error.code == 'required'
            for errs in form.errors.as_data().values() for error in errs
        )
        message = "Missing required fields" if missing else "Invalid request data"
    raise ValidationFailed(message, errors=errors)


class StatusUpdateForm(forms.Form):
    """Payload of the booking status update endpoint."""
    bookingReference = forms.CharField(max_length=50)
    status = forms.CharField(max_length=20)
    paymentId = forms.CharField(max_length=100, required=False)

    def clean_status(self):
        try:
            return BookingStatus.parse(self.cleaned_data['status'])
        except ValidationFailed as e:
            raise forms.ValidationError(e.message, code='invalid')


class CheckoutPaymentForm(forms.Form):
    """Hosted-checkout payment request."""
    bookingReference = forms.CharField(max_length=50)
    amount = forms.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('0.01'),
        error_messages={'min_value': 'Amount must be greater than zero'}
    )
    customerName = forms.CharField(max_length=200, required=False)
    customerEmail = forms.EmailField(required=False)
    returnUrl = forms.URLField(required=False)


class CardPaymentForm(forms.Form):
    """Card-token payment request."""
    cardToken = forms.CharField(max_length=255)
    bookingReference = forms.CharField(max_length=50)
    amount = forms.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('0.01'),
        error_messages={'min_value': 'Amount must be greater than zero'}
    )
    customerName = forms.CharField(max_length=200, required=False)
    customerEmail = forms.EmailField(required=False)
    tourId = forms.IntegerField(required=False)
    tourDate = forms.DateField(required=False)
    passengers = forms.IntegerField(min_value=1, required=False)


class PaymentMetadataForm(forms.Form):
    """Booking details a checkout stored on the payment, read back by the webhook."""
    tourId = forms.IntegerField()
    tourDate = forms.DateField()
    passengers = forms.IntegerField(min_value=1, required=False)
    amount = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False)
    customerName = forms.CharField(max_length=200)
    customerEmail = forms.EmailField()
    customerPhone = forms.CharField(max_length=50, required=False)
    bookingReference = forms.CharField(max_length=50, required=False)


class PaymentLookupForm(forms.Form):
    """Query string of the booking verification endpoint."""
    paymentId = forms.CharField(max_length=100)
    email = forms.EmailField()


class SendEmailForm(forms.Form):
    to = forms.EmailField()
    subject = forms.CharField(max_length=300)
    html = forms.CharField(required=False, strip=False)
    text = forms.CharField(required=False, strip=False)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # "from" is a keyword, so the field is added by name
        self.fields['from'] = forms.EmailField(required=False)

    def clean(self):
        cleaned_data = super().clean()
        if not cleaned_data.get('html') and not cleaned_data.get('text'):
            raise forms.ValidationError("Either html or text content is required", code='required')
        return cleaned_data


class CustomerForm(forms.Form):
    name = forms.CharField(max_length=200, error_messages={
        'required': 'Customer name and email are required'
    })
    email = forms.EmailField(error_messages={
        'required': 'Customer name and email are required'
    })
    phone = forms.CharField(max_length=50, required=False)


class LineItemForm(forms.Form):
    """One tour leg of a booking."""
    tourId = forms.IntegerField()
    tourDate = forms.DateField()
    adults = forms.IntegerField(min_value=0, required=False)
    children = forms.IntegerField(min_value=0, required=False)
    price = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False)
    deposit = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False)
    remainingBalance = forms.DecimalField(max_digits=12, decimal_places=2, required=False)
    shipId = forms.IntegerField(required=False)
    bookingAgentId = forms.IntegerField(required=False)
    tourGuide = forms.CharField(max_length=200, required=False)
    notes = forms.CharField(required=False)


class BookingDetailsForm(forms.Form):
    """Booking-level fields that are not summed from line items."""
    agentId = forms.IntegerField(required=False)
    status = forms.CharField(max_length=20, required=False)
    commission = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False)
    paymentLocation = forms.CharField(max_length=100, required=False)
    paymentId = forms.CharField(max_length=100, required=False)
    other = forms.CharField(required=False)
    notes = forms.CharField(required=False)

    def clean_status(self):
        value = self.cleaned_data.get('status')
        if not value:
            return BookingStatus.PENDING
        try:
            return BookingStatus.parse(value)
        except ValidationFailed as e:
            raise forms.ValidationError(e.message, code='invalid')


class PendingBookingForm(forms.Form):
    """Single-tour booking submitted from the public site."""
    tourId = forms.IntegerField()
    tourDate = forms.DateField()
    adults = forms.IntegerField(min_value=1)
    children = forms.IntegerField(min_value=0, required=False)
    totalAmount = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    notes = forms.CharField(required=False)

# bookings/admin.py
from django.contrib import admin, messages
from django.contrib.admin import SimpleListFilter
from django.db.models import Count
from django.utils import timezone
from django.utils.html import format_html

from .exceptions import BookingError
from .models import (
    Agent, Booking, BookingAgent, BookingStatus, BookingTour, Customer, DispatchStatus,
    EmailDispatch, Location, Notification, Ship, SystemSetting, Tour,
)
from .reconciliation import BookingReconciler, deliver_dispatch


# =============================================================================
# CUSTOM FILTERS
# =============================================================================

class TourDateFilter(SimpleListFilter):
    title = 'tour date'
    parameter_name = 'tour_date_range'

    def lookups(self, request, model_admin):
        return (
            ('today', 'Today'),
            ('upcoming', 'Upcoming'),
            ('past', 'Past'),
            ('undated', 'No date'),
        )

    def queryset(self, request, queryset):
        today = timezone.localdate()
        if self.value() == 'today':
            return queryset.filter(tour_date=today)
        elif self.value() == 'upcoming':
            return queryset.filter(tour_date__gt=today)
        elif self.value() == 'past':
            return queryset.filter(tour_date__lt=today)
        elif self.value() == 'undated':
            return queryset.filter(tour_date__isnull=True)
        return queryset


# =============================================================================
# INLINES
# =============================================================================

class BookingTourInline(admin.TabularInline):
    model = BookingTour
    extra = 0
    fields = ('tour', 'tour_date', 'ship', 'booking_agent', 'adults', 'children', 'total_pax',
              'price', 'tour_guide')
    readonly_fields = ('total_pax',)
    autocomplete_fields = ('tour', 'ship', 'booking_agent')


class EmailDispatchInline(admin.TabularInline):
    model = EmailDispatch
    extra = 0
    can_delete = False
    fields = ('kind', 'target_status', 'recipient', 'status', 'attempts', 'sent_at', 'last_error')
    readonly_fields = fields


# =============================================================================
# REFERENCE DATA
# =============================================================================

class NamedAdmin(admin.ModelAdmin):
    list_display = ('name', 'created_at')
    search_fields = ('name',)


admin.site.register(Ship, NamedAdmin)
admin.site.register(Location, NamedAdmin)
admin.site.register(Agent, NamedAdmin)
admin.site.register(BookingAgent, NamedAdmin)


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ('name', 'email', 'phone', 'total_bookings', 'created_at')
    search_fields = ('name', 'email', 'phone')

    def get_queryset(self, request):
        return super().get_queryset(request).annotate(booking_count=Count('bookings'))

    def total_bookings(self, obj):
        return obj.booking_count

    total_bookings.admin_order_field = 'booking_count'


@admin.register(Tour)
class TourAdmin(admin.ModelAdmin):
    list_display = ('name', 'ship', 'location', 'price', 'capacity', 'status')
    list_filter = ('status', 'ship', 'location')
    search_fields = ('name', 'description')
    list_select_related = ('ship', 'location')


# =============================================================================
# BOOKINGS
# =============================================================================

@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ('booking_reference', 'customer', 'tour_date', 'status_badge', 'total_payment',
                    'remaining_balance', 'total_pax')
    list_filter = ('status', TourDateFilter, 'agent')
    search_fields = ('booking_reference', 'payment_id', 'customer__name', 'customer__email')
    list_select_related = ('customer', 'agent')
    readonly_fields = ('total_pax', 'created_at', 'updated_at')
    autocomplete_fields = ('customer',)
    actions = ['mark_as_paid', 'cancel_bookings']

    fieldsets = (
        ('Booking Information', {
            'fields': ('booking_reference', 'status', 'customer', 'agent', 'tour', 'tour_date')
        }),
        ('Passengers', {
            'fields': ('adults', 'children', 'total_pax')
        }),
        ('Pricing', {
            'fields': ('total_payment', 'deposit', 'remaining_balance', 'commission', 'total_net')
        }),
        ('Payment', {
            'fields': ('payment_id', 'payment_location')
        }),
        ('Additional Information', {
            'fields': ('tour_guide', 'other', 'notes', 'created_at', 'updated_at')
        }),
    )
    inlines = [BookingTourInline, EmailDispatchInline]

    def status_badge(self, obj):
        colors = {
            BookingStatus.PENDING: '#f0ad4e',
            BookingStatus.CONFIRMED: '#5bc0de',
            BookingStatus.PAID: '#5cb85c',
            BookingStatus.CANCELLED: '#d9534f',
        }
        return format_html(
            '<span style="color: {}; font-weight: bold;">{}</span>',
            colors.get(obj.booking_status, '#777'),
            obj.status,
        )

    status_badge.short_description = 'Status'
    status_badge.admin_order_field = 'status'

    def _apply_status(self, request, queryset, status):
        reconciler = BookingReconciler()
        count = 0
        for booking in queryset:
            try:
                reconciler.update_status(booking.booking_reference, status)
                count += 1
            except BookingError as e:
                self.message_user(request, f"{booking.booking_reference}: {e.message}", messages.ERROR)
        return count

    # Custom actions
    def mark_as_paid(self, request, queryset):
        count = self._apply_status(request, queryset, BookingStatus.PAID)
        self.message_user(request, f"{count} bookings have been marked as paid.", messages.SUCCESS)

    mark_as_paid.short_description = "Mark selected bookings as paid"

    def cancel_bookings(self, request, queryset):
        count = self._apply_status(request, queryset, BookingStatus.CANCELLED)
        self.message_user(request, f"{count} bookings have been cancelled.", messages.WARNING)

    cancel_bookings.short_description = "Cancel selected bookings"


# =============================================================================
# NOTIFICATIONS, SETTINGS & OUTBOX
# =============================================================================

@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('title', 'user', 'type', 'read', 'created_at')
    list_filter = ('type', 'read')
    search_fields = ('title', 'message')


@admin.register(SystemSetting)
class SystemSettingAdmin(admin.ModelAdmin):
    list_display = ('key', 'content', 'updated_at')
    search_fields = ('key', 'content')


@admin.register(EmailDispatch)
class EmailDispatchAdmin(admin.ModelAdmin):
    list_display = ('booking', 'kind', 'target_status', 'recipient', 'status', 'attempts', 'sent_at')
    list_filter = ('kind', 'status')
    search_fields = ('booking__booking_reference', 'recipient')
    readonly_fields = ('provider_message_id', 'attempts', 'sent_at', 'last_error', 'created_at')
    actions = ['retry_dispatches']

    def retry_dispatches(self, request, queryset):
        sent = 0
        for dispatch in queryset.exclude(status=DispatchStatus.SENT):
            if deliver_dispatch(dispatch.pk):
                sent += 1
        self.message_user(request, f"{sent} emails have been sent.", messages.SUCCESS)

    retry_dispatches.short_description = "Retry selected emails"

import logging

from rest_framework import filters, mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from bookings import queries
from bookings.exceptions import BookingError
from bookings.models import (
    SYSTEM_SETTING_DEFAULTS, Agent, BookingAgent, Customer, Location, Notification, Ship,
    SystemSetting, Tour,
)

from .serializers import (
    AgentSerializer, BookingAgentSerializer, CustomerSerializer, LocationSerializer,
    NotificationSerializer, ShipSerializer, SystemSettingSerializer, TourSerializer,
)

logger = logging.getLogger(__name__)


def error_response(error):
    return Response(
        {"success": False, "message": error.message, "details": error.details},
        status=error.status_code,
    )


class GuardedDeleteMixin:
    """
    Deletes go through a guard from ``bookings.queries`` that refuses to
    remove rows other records still point at.
    """
    delete_guard_name = None

    def destroy(self, request, *args, **kwargs):
        lookup = self.kwargs[self.lookup_url_kwarg or self.lookup_field]
        if not str(lookup).isdigit():
            return Response(
                {"success": False, "message": f"Invalid ID: {lookup}"},
                status=status.HTTP_404_NOT_FOUND,
            )
        guard = getattr(queries, self.delete_guard_name)
        try:
            result = guard(lookup)
        except BookingError as e:
            return error_response(e)
        return Response(result, status=status.HTTP_200_OK)


# =============================================================================
# REFERENCE DATA
# =============================================================================
class ShipViewSet(GuardedDeleteMixin, viewsets.ModelViewSet):
    """
    API endpoint that allows ships to be viewed or edited.
    """
    queryset = Ship.objects.all()
    serializer_class = ShipSerializer
    permission_classes = [permissions.IsAdminUser]
    delete_guard_name = 'delete_ship'


class LocationViewSet(GuardedDeleteMixin, viewsets.ModelViewSet):
    """
    API endpoint that allows tour locations to be viewed or edited.
    """
    queryset = Location.objects.all()
    serializer_class = LocationSerializer
    permission_classes = [permissions.IsAdminUser]
    delete_guard_name = 'delete_location'


class AgentViewSet(GuardedDeleteMixin, viewsets.ModelViewSet):
    queryset = Agent.objects.all()
    serializer_class = AgentSerializer
    permission_classes = [permissions.IsAdminUser]
    delete_guard_name = 'delete_agent'


class BookingAgentViewSet(GuardedDeleteMixin, viewsets.ModelViewSet):
    queryset = BookingAgent.objects.all()
    serializer_class = BookingAgentSerializer
    permission_classes = [permissions.IsAdminUser]
    delete_guard_name = 'delete_booking_agent'


# =============================================================================
# CUSTOMERS & TOURS
# =============================================================================
class CustomerViewSet(viewsets.ModelViewSet):
    """
    Customers, searchable by name, email or phone (``?search=``).
    Customers with bookings cannot be deleted.
    """
    queryset = Customer.objects.all().order_by('name')
    serializer_class = CustomerSerializer
    permission_classes = [permissions.IsAdminUser]
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['name', 'email', 'phone']
    ordering_fields = ['name', 'created_at']

    def destroy(self, request, *args, **kwargs):
        customer = self.get_object()
        count = customer.bookings.count()
        if count:
            return Response(
                {
                    "success": False,
                    "message": "Cannot delete customer that is used in bookings",
                    "details": {"count": count},
                },
                status=status.HTTP_409_CONFLICT,
            )
        return super().destroy(request, *args, **kwargs)


class TourViewSet(GuardedDeleteMixin, viewsets.ModelViewSet):
    """
    API endpoint that allows tours to be viewed or edited.
    """
    queryset = Tour.objects.all().select_related('ship', 'location')
    serializer_class = TourSerializer
    permission_classes = [permissions.IsAdminUser]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['ship', 'location', 'status']
    search_fields = ['name', 'description']
    ordering_fields = ['name', 'price', 'capacity']
    ordering = ['name']
    delete_guard_name = 'delete_tour'


# =============================================================================
# NOTIFICATIONS
# =============================================================================
class NotificationViewSet(mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          mixins.DestroyModelMixin,
                          viewsets.GenericViewSet):
    """
    The signed-in user's notifications, newest first.
    """
    serializer_class = NotificationSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return Notification.objects.filter(user=self.request.user).order_by('-created_at')

    @action(detail=True, methods=['post'])
    def mark_read(self, request, pk=None):
        updated = queries.mark_notification_read(pk, user_id=request.user.pk)
        if not updated:
            return Response(
                {"success": False, "message": "Notification not found"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response({"success": True, "message": "Notification marked as read"})

    @action(detail=False, methods=['post'])
    def mark_all_read(self, request):
        count = queries.mark_all_notifications_read(request.user.pk)
        return Response({"success": True, "message": "All notifications marked as read", "updated": count})

    @action(detail=False, methods=['get'])
    def unread_count(self, request):
        return Response({"count": queries.unread_notification_count(request.user.pk)})


# =============================================================================
# SYSTEM SETTINGS
# =============================================================================
class SystemSettingViewSet(viewsets.ViewSet):
    """
    Business settings by key. Keys that were never saved report their
    built-in default.
    """
    permission_classes = [permissions.IsAdminUser]
    lookup_field = 'key'
    lookup_value_regex = '[a-z0-9_]+'

    def list(self, request):
        stored = {s.key: s.content for s in SystemSetting.objects.all()}
        values = {**SYSTEM_SETTING_DEFAULTS, **stored}
        return Response([{"key": key, "content": values[key]} for key in sorted(values)])

    def retrieve(self, request, key=None):
        return Response({"key": key, "content": queries.get_system_setting(key)})

    def update(self, request, key=None):
        content = request.data.get('content')
        if content is None:
            return Response(
                {"success": False, "message": "Content is required"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            setting = queries.update_system_setting(key, str(content))
        except BookingError as e:
            return error_response(e)
        logger.info(f"System setting {key} updated by user {request.user.pk}")
        return Response(SystemSettingSerializer(setting).data)

    def partial_update(self, request, key=None):
        return self.update(request, key=key)

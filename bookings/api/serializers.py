# =============================================================================
# IMPORTS
# =============================================================================
from rest_framework import serializers
from bookings.models import (
    Agent, BookingAgent, Customer, Location, Notification, Ship, SystemSetting, Tour,
)

# =============================================================================
# REFERENCE DATA SERIALIZERS
# =============================================================================
class ShipSerializer(serializers.ModelSerializer):
    class Meta:
        model = Ship
        fields = ['id', 'name', 'created_at', 'updated_at']
        read_only_fields = ('id', 'created_at', 'updated_at')


class LocationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Location
        fields = ['id', 'name', 'created_at', 'updated_at']
        read_only_fields = ('id', 'created_at', 'updated_at')


class AgentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Agent
        fields = ['id', 'name', 'created_at', 'updated_at']
        read_only_fields = ('id', 'created_at', 'updated_at')


class BookingAgentSerializer(serializers.ModelSerializer):
    class Meta:
        model = BookingAgent
        fields = ['id', 'name', 'created_at', 'updated_at']
        read_only_fields = ('id', 'created_at', 'updated_at')


# =============================================================================
# CUSTOMER & TOUR SERIALIZERS
# =============================================================================
class CustomerSerializer(serializers.ModelSerializer):
    booking_count = serializers.SerializerMethodField()

    class Meta:
        model = Customer
        fields = ['id', 'name', 'email', 'phone', 'booking_count', 'created_at']
        read_only_fields = ('id', 'created_at')

    def get_booking_count(self, obj):
        return obj.bookings.count()

    def validate_email(self, value):
        value = (value or "").strip()
        existing = Customer.objects.filter(email__iexact=value) if value else Customer.objects.none()
        if self.instance is not None:
            existing = existing.exclude(pk=self.instance.pk)
        if existing.exists():
            raise serializers.ValidationError("A customer with this email already exists.")
        return value


class TourSerializer(serializers.ModelSerializer):
    ship_name = serializers.CharField(source='ship.name', read_only=True, default=None)
    location_name = serializers.CharField(source='location.name', read_only=True, default=None)

    class Meta:
        model = Tour
        fields = [
            'id', 'name', 'ship', 'ship_name', 'location', 'location_name',
            'price', 'capacity', 'status', 'description', 'created_at', 'updated_at',
        ]
        read_only_fields = ('id', 'created_at', 'updated_at')


# =============================================================================
# NOTIFICATIONS & SETTINGS
# =============================================================================
class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'title', 'message', 'link', 'type', 'read', 'created_at']
        read_only_fields = ('id', 'created_at')


class SystemSettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = SystemSetting
        fields = ['key', 'content', 'updated_at']
        read_only_fields = ('key', 'updated_at')

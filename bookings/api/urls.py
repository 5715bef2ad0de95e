from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import (
    AgentViewSet, BookingAgentViewSet, CustomerViewSet, LocationViewSet,
    NotificationViewSet, ShipViewSet, SystemSettingViewSet, TourViewSet,
)

router = DefaultRouter()
router.register(r'ships', ShipViewSet)
router.register(r'locations', LocationViewSet)
router.register(r'agents', AgentViewSet)
router.register(r'booking-agents', BookingAgentViewSet)
router.register(r'customers', CustomerViewSet)
router.register(r'tours', TourViewSet)
router.register(r'notifications', NotificationViewSet, basename='notification')
router.register(r'settings', SystemSettingViewSet, basename='setting')

urlpatterns = [
    path('', include(router.urls)),
]

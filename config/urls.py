from django.contrib import admin
from django.urls import path, include

from bookings.views import health_check

urlpatterns = [
    # Django Admin
    path('admin/', admin.site.urls),

    # Monitoring
    path('health/', health_check, name='health_check'),

    # Booking, payment and receipt endpoints
    path('api/', include('bookings.urls')),

    # Dashboard CRUD (REST framework router)
    path('api/', include('bookings.api.urls')),
]

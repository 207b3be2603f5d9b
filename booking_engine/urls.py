"""
URL configuration for booking_engine project.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/recurring/', include('recurring.urls')),
]

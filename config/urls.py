"""
URL configuration for the payment gateway project.

The payment app mounts its own route sets:
- /payment/...           web routes
- /api/v1/payments/...   API routes, including the admin API
"""
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include('payment_gateway.urls')),
]

from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/billing/", include("billing.urls", namespace="billing")),
    path("api/payments/", include("payments.urls", namespace="payments")),
    path("api/settlements/", include("settlements.urls", namespace="settlements")),
    path("api/merchants/", include("merchants.urls", namespace="merchants")),
]

from django.urls import path
from . import views

app_name = "settlements"

urlpatterns = [
    path("stats/", views.merchant_stats, name="merchant_stats"),
    path("request/", views.request_settlement, name="request_settlement"),
    path("<int:settlement_id>/", views.settlement_detail, name="detail"),
    path("<int:settlement_id>/approve/", views.approve, name="approve"),
    path("<int:settlement_id>/reject/", views.reject, name="reject"),
    path("<int:settlement_id>/bank-status/", views.bank_status, name="bank_status"),
]

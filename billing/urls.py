from django.urls import path
from . import views

app_name = "billing"

urlpatterns = [
    path("stripe-status/", views.stripe_status, name="stripe_status"),
    path("stripe-webhook/", views.stripe_webhook, name="stripe_webhook"),
    path("verify/", views.verify_payment, name="verify_payment"),
    path("transactions/", views.transactions, name="transactions"),
    path("wallet/", views.wallet_balance, name="wallet_balance"),
    path("wallet/transactions/", views.wallet_transactions, name="wallet_transactions"),
    path("wallet/withdraw/", views.wallet_withdraw, name="wallet_withdraw"),
]

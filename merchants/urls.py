from django.urls import path
from . import views

app_name = "merchants"

urlpatterns = [
    path("register/", views.register, name="register"),
    path("profile/", views.profile, name="profile"),
    path("kyc/", views.submit_kyc, name="submit_kyc"),
    path("settlement-account/", views.settlement_account, name="settlement_account"),
    path("api-key/", views.api_key, name="api_key"),
    path("<uuid:merchant_id>/review-kyc/", views.review_kyc, name="review_kyc"),
]

from django.urls import path
from . import views

app_name = "payments"

urlpatterns = [
    path("requests/", views.history, name="history"),
    path("requests/pay-for-me/", views.create_pay_for_me, name="create_pay_for_me"),
    path("requests/group-split/", views.create_group_split, name="create_group_split"),
    path("requests/<int:payment_request_id>/", views.payment_request_detail, name="detail"),
    path("requests/<int:payment_request_id>/pay/", views.pay, name="pay"),
    path("requests/<int:payment_request_id>/remind/", views.send_reminders, name="send_reminders"),
    path(
        "requests/<int:payment_request_id>/participants/<int:participant_id>/pay/",
        views.pay_participant,
        name="pay_participant",
    ),
    path("link/<str:token>/", views.resolve_link, name="resolve_link"),
    path("qr-codes/", views.qr_codes, name="qr_codes"),
    path("qr-codes/<int:qr_code_id>/deactivate/", views.deactivate_qr, name="deactivate_qr"),
    path("qr/<str:token>/pay/", views.pay_qr, name="pay_qr"),
]

from django.contrib import admin
from .models import Participant, PaymentRequest, QRCode


class ParticipantInline(admin.TabularInline):
    model = Participant
    extra = 0
    readonly_fields = ("amount", "has_paid", "paid_amount", "paid_at", "link_token")


@admin.register(PaymentRequest)
class PaymentRequestAdmin(admin.ModelAdmin):
    list_display = ("id", "type", "user", "amount", "currency", "status", "expires_at", "created_at")
    list_filter = ("type", "status", "currency")
    search_fields = ("description", "link_token", "user__email")
    readonly_fields = ("link_token", "payment_link", "created_at", "updated_at")
    exclude = ("qr_code_url",)
    inlines = [ParticipantInline]


@admin.register(QRCode)
class QRCodeAdmin(admin.ModelAdmin):
    list_display = ("name", "merchant", "type", "amount", "is_active", "usage_count", "usage_limit", "expires_at")
    list_filter = ("type", "is_active")
    search_fields = ("name", "merchant__business_name")
    readonly_fields = ("usage_count", "link_token", "payment_link", "created_at", "updated_at")
    exclude = ("qr_data",)

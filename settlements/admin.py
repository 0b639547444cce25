from django.contrib import admin
from .models import Settlement


@admin.register(Settlement)
class SettlementAdmin(admin.ModelAdmin):
    list_display = ("reference", "merchant", "amount", "fee", "net_amount", "status", "settlement_type", "created_at")
    list_filter = ("status", "settlement_type")
    search_fields = ("reference", "merchant__business_name", "bank_reference")
    readonly_fields = ("amount", "fee", "net_amount", "bank_account", "reference", "transaction_count", "created_at", "updated_at")

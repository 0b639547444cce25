from django.contrib import admin
from .models import Merchant


@admin.register(Merchant)
class MerchantAdmin(admin.ModelAdmin):
    list_display = ("business_name", "user", "kyc_status", "settlement_bank_code", "created_at")
    list_filter = ("kyc_status", "settlement_schedule")
    search_fields = ("business_name", "business_email", "user__email")
    readonly_fields = ("api_key", "kyc_submitted_at", "kyc_approved_at", "created_at", "updated_at")

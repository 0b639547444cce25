from django.contrib import admin
from .models import Transaction, Wallet, WalletTransaction


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ("user", "balance", "currency", "is_active", "last_transaction_at")
    list_filter = ("currency", "is_active")
    search_fields = ("user__email",)
    readonly_fields = ("balance", "last_transaction_at", "created_at", "updated_at")


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    list_display = ("reference", "user", "type", "amount", "balance_after", "created_at")
    list_filter = ("type", "currency")
    search_fields = ("reference", "user__email")

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ("external_reference", "owner_key", "user", "amount", "tip_amount", "currency", "status", "effects_applied_at", "created_at")
    list_filter = ("status", "payment_provider", "currency")
    search_fields = ("external_reference", "reference", "customer_email")
    readonly_fields = ("external_reference", "owner_key", "gateway_response", "effects_applied_at", "reconcile_attempts", "last_error", "created_at", "updated_at")

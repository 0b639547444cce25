"""
Merchant aggregate: KYC status, settlement bank details and fee schedule.
KYC approval gates settlement requests and API key issuance.
"""
import uuid
from decimal import Decimal

from django.db import models


class Merchant(models.Model):
    KYC_STATUS_CHOICES = [
        ("pending", "Pending"),
        ("submitted", "Submitted"),
        ("approved", "Approved"),
        ("rejected", "Rejected"),
    ]
    SETTLEMENT_SCHEDULE_CHOICES = [
        ("daily", "Daily"),
        ("weekly", "Weekly"),
        ("monthly", "Monthly"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        "accounts.CustomUser",
        on_delete=models.CASCADE,
        related_name="merchant",
    )
    business_name = models.CharField(max_length=255)
    business_email = models.EmailField(blank=True)
    business_phone = models.CharField(max_length=20, blank=True)
    business_type = models.CharField(max_length=100, blank=True)

    kyc_status = models.CharField(max_length=20, choices=KYC_STATUS_CHOICES, default="pending")
    kyc_submitted_at = models.DateTimeField(null=True, blank=True)
    kyc_approved_at = models.DateTimeField(null=True, blank=True)

    settlement_account_name = models.CharField(max_length=255, blank=True)
    settlement_account_number = models.CharField(max_length=20, blank=True)
    settlement_bank_code = models.CharField(max_length=10, blank=True)
    settlement_schedule = models.CharField(max_length=10, choices=SETTLEMENT_SCHEDULE_CHOICES, default="daily")
    # None means the platform default (settings.SETTLEMENT_FEE_RATE)
    settlement_fee_rate = models.DecimalField(max_digits=5, decimal_places=4, null=True, blank=True)

    api_key = models.CharField(max_length=255, unique=True, null=True, blank=True)
    webhook_url = models.URLField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.business_name} ({self.kyc_status})"

    @property
    def is_kyc_approved(self) -> bool:
        return self.kyc_status == "approved"

    @property
    def has_settlement_account(self) -> bool:
        return bool(self.settlement_account_number and self.settlement_bank_code)

    def fee_rate(self, default: Decimal) -> Decimal:
        return self.settlement_fee_rate if self.settlement_fee_rate is not None else default

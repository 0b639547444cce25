from django.db import models


class Settlement(models.Model):
    """
    Payout batch to a merchant's bank account. net_amount = amount - fee is fixed at
    creation; bank_account is a snapshot taken when the settlement was requested.
    """

    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("processing", "Processing"),
        ("completed", "Completed"),
        ("failed", "Failed"),
    ]
    TYPE_CHOICES = [
        ("T+0", "Same day"),
        ("T+1", "Next day"),
        ("manual", "Manual"),
    ]
    IN_FLIGHT_STATUSES = ("pending", "processing")

    merchant = models.ForeignKey(
        "merchants.Merchant",
        on_delete=models.PROTECT,
        related_name="settlements",
    )
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    fee = models.DecimalField(max_digits=15, decimal_places=2)
    net_amount = models.DecimalField(max_digits=15, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="pending")
    bank_account = models.JSONField(default=dict)
    reference = models.CharField(max_length=32, unique=True)
    transaction_count = models.PositiveIntegerField(default=0)
    settlement_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default="manual")
    description = models.CharField(max_length=255, blank=True)
    period_start = models.DateTimeField(null=True, blank=True)
    period_end = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True)
    bank_reference = models.CharField(max_length=100, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Settlement {self.reference} {self.amount} ({self.status})"

    @property
    def bank_account_display(self) -> str:
        bank = self.bank_account or {}
        if bank.get("bank_name") and bank.get("masked_account_number"):
            return f"{bank['bank_name']} • {bank['masked_account_number']}"
        return bank.get("account_name") or "N/A"

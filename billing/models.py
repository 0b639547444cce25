"""
Billing models: wallet ledger and gateway reconciliation records.
The wallet balance only changes through wallet_service, always paired with a WalletTransaction.
"""
from django.conf import settings
from django.db import models


class Wallet(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="wallet",
    )
    balance = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    currency = models.CharField(max_length=3, default="NGN")
    is_active = models.BooleanField(default=True)
    last_transaction_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Wallet user={self.user_id} {self.balance} {self.currency}"


class WalletTransaction(models.Model):
    """Append-only ledger entry. Never updated or deleted once written."""

    TYPE_CHOICES = [
        ("credit", "Credit"),
        ("debit", "Debit"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="wallet_transactions",
    )
    transaction = models.ForeignKey(
        "billing.Transaction",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="wallet_transactions",
    )
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    currency = models.CharField(max_length=3)
    description = models.CharField(max_length=255, blank=True)
    balance_after = models.DecimalField(max_digits=15, decimal_places=2)
    reference = models.CharField(max_length=100, unique=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"WalletTransaction {self.reference} {self.type} {self.amount}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValueError("Wallet transactions are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Wallet transactions cannot be deleted")

    @property
    def signed_amount(self):
        return self.amount if self.type == "credit" else -self.amount


class Transaction(models.Model):
    """
    One gateway payment event. Unique per (external_reference, owner_key), so the same
    confirmation can never produce two rows; effects_applied_at marks the post-completion
    effects (wallet credit, state machine advance, QR usage) as done.
    """

    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("processing", "Processing"),
        ("completed", "Completed"),
        ("failed", "Failed"),
        ("refunded", "Refunded"),
    ]

    reference = models.CharField(max_length=100, blank=True, db_index=True)
    external_reference = models.CharField(max_length=255)
    owner_key = models.CharField(max_length=100)

    payment_request = models.ForeignKey(
        "payments.PaymentRequest",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    participant = models.ForeignKey(
        "payments.Participant",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    qr_code = models.ForeignKey(
        "payments.QRCode",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    # Beneficiary: request owner or QR merchant's user
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="received_transactions",
    )

    customer_name = models.CharField(max_length=255, blank=True)
    customer_email = models.EmailField(blank=True)
    customer_phone = models.CharField(max_length=20, blank=True)

    amount = models.DecimalField(max_digits=15, decimal_places=2)
    tip_amount = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    currency = models.CharField(max_length=3, default="NGN")
    payment_method = models.CharField(max_length=30, blank=True)
    payment_provider = models.CharField(max_length=30, default="stripe")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="pending")
    gateway_response = models.JSONField(default=dict, blank=True)

    effects_applied_at = models.DateTimeField(null=True, blank=True)
    reconcile_attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["external_reference", "owner_key"],
                name="unique_transaction_per_owner",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "status"], name="billing_txn_user_status_idx"),
        ]

    def __str__(self):
        return f"Transaction {self.external_reference} {self.owner_key} ({self.status})"

    @property
    def effects_pending(self) -> bool:
        return self.status == "completed" and self.effects_applied_at is None

    @property
    def total_amount(self):
        return self.amount + self.tip_amount

    @staticmethod
    def owner_key_for(participant=None, payment_request=None, qr_code=None) -> str:
        """Accepts instances or ids. Most specific owner wins: a participant payment is keyed by the participant."""
        if participant is not None:
            return f"participant:{getattr(participant, 'pk', participant)}"
        if payment_request is not None:
            return f"request:{getattr(payment_request, 'pk', payment_request)}"
        if qr_code is not None:
            return f"qr:{getattr(qr_code, 'pk', qr_code)}"
        raise ValueError("A transaction needs an owning request, participant or QR code")

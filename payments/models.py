"""
Payment collection models: payment requests (pay-for-me and group split), split
participants, and reusable merchant QR codes.
"""
from django.conf import settings
from django.db import models

TYPE_CHOICES = [
    ("pay_for_me", "Pay for me"),
    ("group_split", "Group split"),
]


class QRCode(models.Model):
    merchant = models.ForeignKey(
        "merchants.Merchant",
        on_delete=models.CASCADE,
        related_name="qr_codes",
    )
    name = models.CharField(max_length=255)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    amount = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, default="NGN")
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    usage_count = models.PositiveIntegerField(default=0)
    expires_at = models.DateTimeField(null=True, blank=True)
    link_token = models.CharField(max_length=64, unique=True)
    payment_link = models.CharField(max_length=500)
    qr_data = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "QR code"

    def __str__(self):
        return f"QRCode {self.name} ({self.usage_count}/{self.usage_limit or '∞'})"


class PaymentRequest(models.Model):
    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("partially_paid", "Partially paid"),
        ("completed", "Completed"),
        ("expired", "Expired"),
    ]
    SPLIT_TYPE_CHOICES = [
        ("equal", "Equal"),
        ("custom", "Custom"),
    ]
    TERMINAL_STATUSES = ("completed", "expired")

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment_requests",
    )
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    description = models.TextField()
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    currency = models.CharField(max_length=3, default="NGN")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="pending")
    expires_at = models.DateTimeField(null=True, blank=True)
    link_token = models.CharField(max_length=64, unique=True)
    payment_link = models.CharField(max_length=500)
    qr_code_url = models.TextField(blank=True)
    qr_code = models.ForeignKey(
        QRCode,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment_requests",
    )
    allow_tips = models.BooleanField(default=True)
    total_amount = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    split_type = models.CharField(max_length=10, choices=SPLIT_TYPE_CHOICES, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "status"], name="pay_req_user_status_idx"),
        ]

    def __str__(self):
        return f"PaymentRequest {self.pk} {self.type} ({self.status})"

    @property
    def is_group_split(self) -> bool:
        return self.type == "group_split"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES


class Participant(models.Model):
    payment_request = models.ForeignKey(
        PaymentRequest,
        on_delete=models.CASCADE,
        related_name="participants",
    )
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    # fixed at creation; a different split needs a new request
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    has_paid = models.BooleanField(default=False)
    paid_amount = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_method = models.CharField(max_length=30, blank=True)
    link_token = models.CharField(max_length=64, unique=True)
    participant_link = models.CharField(max_length=500)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"Participant {self.name} {self.amount} paid={self.has_paid}"

import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Merchant",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("business_name", models.CharField(max_length=255)),
                ("business_email", models.EmailField(blank=True, max_length=254)),
                ("business_phone", models.CharField(blank=True, max_length=20)),
                ("business_type", models.CharField(blank=True, max_length=100)),
                ("kyc_status", models.CharField(choices=[("pending", "Pending"), ("submitted", "Submitted"), ("approved", "Approved"), ("rejected", "Rejected")], default="pending", max_length=20)),
                ("kyc_submitted_at", models.DateTimeField(blank=True, null=True)),
                ("kyc_approved_at", models.DateTimeField(blank=True, null=True)),
                ("settlement_account_name", models.CharField(blank=True, max_length=255)),
                ("settlement_account_number", models.CharField(blank=True, max_length=20)),
                ("settlement_bank_code", models.CharField(blank=True, max_length=10)),
                ("settlement_schedule", models.CharField(choices=[("daily", "Daily"), ("weekly", "Weekly"), ("monthly", "Monthly")], default="daily", max_length=10)),
                ("settlement_fee_rate", models.DecimalField(blank=True, decimal_places=4, max_digits=5, null=True)),
                ("api_key", models.CharField(blank=True, max_length=255, null=True, unique=True)),
                ("webhook_url", models.URLField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="merchant", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]

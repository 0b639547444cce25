import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("merchants", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="QRCode",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("type", models.CharField(choices=[("pay_for_me", "Pay for me"), ("group_split", "Group split")], max_length=20)),
                ("amount", models.DecimalField(blank=True, decimal_places=2, max_digits=15, null=True)),
                ("currency", models.CharField(default="NGN", max_length=3)),
                ("description", models.TextField(blank=True)),
                ("is_active", models.BooleanField(default=True)),
                ("usage_limit", models.PositiveIntegerField(blank=True, null=True)),
                ("usage_count", models.PositiveIntegerField(default=0)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("link_token", models.CharField(max_length=64, unique=True)),
                ("payment_link", models.CharField(max_length=500)),
                ("qr_data", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("merchant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="qr_codes", to="merchants.merchant")),
            ],
            options={
                "verbose_name": "QR code",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="PaymentRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("type", models.CharField(choices=[("pay_for_me", "Pay for me"), ("group_split", "Group split")], max_length=20)),
                ("description", models.TextField()),
                ("amount", models.DecimalField(decimal_places=2, max_digits=15)),
                ("currency", models.CharField(default="NGN", max_length=3)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("partially_paid", "Partially paid"), ("completed", "Completed"), ("expired", "Expired")], default="pending", max_length=20)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("link_token", models.CharField(max_length=64, unique=True)),
                ("payment_link", models.CharField(max_length=500)),
                ("qr_code_url", models.TextField(blank=True)),
                ("allow_tips", models.BooleanField(default=True)),
                ("total_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=15, null=True)),
                ("split_type", models.CharField(blank=True, choices=[("equal", "Equal"), ("custom", "Custom")], max_length=10)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("qr_code", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="payment_requests", to="payments.qrcode")),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="payment_requests", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["user", "status"], name="pay_req_user_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="Participant",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("phone", models.CharField(blank=True, max_length=20)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=15)),
                ("has_paid", models.BooleanField(default=False)),
                ("paid_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=15, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("payment_method", models.CharField(blank=True, max_length=30)),
                ("link_token", models.CharField(max_length=64, unique=True)),
                ("participant_link", models.CharField(max_length=500)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("payment_request", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="participants", to="payments.paymentrequest")),
            ],
            options={
                "ordering": ["id"],
            },
        ),
    ]

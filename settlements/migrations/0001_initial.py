import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("merchants", "0001_initial"),
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Settlement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=15)),
                ("fee", models.DecimalField(decimal_places=2, max_digits=15)),
                ("net_amount", models.DecimalField(decimal_places=2, max_digits=15)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("processing", "Processing"), ("completed", "Completed"), ("failed", "Failed")], default="pending", max_length=20)),
                ("bank_account", models.JSONField(default=dict)),
                ("reference", models.CharField(max_length=32, unique=True)),
                ("transaction_count", models.PositiveIntegerField(default=0)),
                ("settlement_type", models.CharField(choices=[("T+0", "Same day"), ("T+1", "Next day"), ("manual", "Manual")], default="manual", max_length=10)),
                ("description", models.CharField(blank=True, max_length=255)),
                ("period_start", models.DateTimeField(blank=True, null=True)),
                ("period_end", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True)),
                ("bank_reference", models.CharField(blank=True, max_length=100)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("merchant", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="settlements", to="merchants.merchant")),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]

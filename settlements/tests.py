from datetime import datetime
from decimal import Decimal

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from accounts.models import CustomUser, Role
from billing.models import Transaction
from common.errors import InsufficientBalance, KycNotApproved, NotFound, ValidationError
from merchants.services import merchant_service
from settlements.models import Settlement
from settlements.services import settlement_service


def completed_revenue(user, amount, ref):
    return Transaction.objects.create(
        external_reference=ref,
        owner_key=f"qr:{ref}",
        user=user,
        amount=amount,
        status="completed",
    )


class SettlementTestMixin:
    def setUp(self):
        self.user = CustomUser.objects.create_user("shop@example.com", password="pass12345")
        self.merchant = merchant_service.register_merchant(self.user, "Shop Ventures")
        merchant_service.submit_kyc(self.merchant)
        merchant_service.review_kyc(self.merchant, approved=True)
        merchant_service.update_settlement_account(self.merchant, "Shop Ventures", "0123456789", "058")
        completed_revenue(self.user, Decimal("100000"), "cs_revenue")


class AvailableBalanceTests(SettlementTestMixin, TestCase):
    def test_only_completed_transactions_count(self):
        Transaction.objects.create(
            external_reference="cs_pending", owner_key="qr:pending", user=self.user,
            amount=Decimal("999"), status="pending",
        )
        self.assertEqual(settlement_service.compute_available_balance(self.merchant), Decimal("100000.00"))

    def test_in_flight_settlements_are_subtracted(self):
        first, _ = settlement_service.request_settlement(self.merchant, Decimal("10000"))
        second, _ = settlement_service.request_settlement(self.merchant, Decimal("5000"))
        settlement_service.approve_settlement(second.pk)

        self.assertEqual(settlement_service.compute_available_balance(self.merchant), Decimal("85000.00"))

        settlement_service.reject_settlement(first.pk)
        self.assertEqual(settlement_service.compute_available_balance(self.merchant), Decimal("95000.00"))

    def test_mask_account_number(self):
        self.assertEqual(settlement_service.mask_account_number("0123456789"), "****6789")


class RequestSettlementTests(SettlementTestMixin, TestCase):
    def test_never_overdraws(self):
        first, _ = settlement_service.request_settlement(self.merchant, Decimal("60000"))

        self.assertEqual(first.fee, Decimal("1200.00"))
        self.assertEqual(first.net_amount, Decimal("58800.00"))
        self.assertEqual(first.status, "pending")
        with self.assertRaises(InsufficientBalance):
            settlement_service.request_settlement(self.merchant, Decimal("45000"))

        second, _ = settlement_service.request_settlement(self.merchant, Decimal("40000"))
        self.assertEqual(second.status, "pending")
        with self.assertRaises(InsufficientBalance):
            settlement_service.request_settlement(self.merchant, Decimal("0.01"))
        self.assertEqual(Settlement.objects.count(), 2)

    def test_checks_run_in_order(self):
        merchant_service.review_kyc(self.merchant, approved=False)
        with self.assertRaises(KycNotApproved):
            settlement_service.request_settlement(self.merchant, Decimal("0"))

        merchant_service.review_kyc(self.merchant, approved=True)
        with self.assertRaises(ValidationError):
            settlement_service.request_settlement(self.merchant, Decimal("0"))

        self.merchant.settlement_account_number = ""
        self.merchant.save(update_fields=["settlement_account_number"])
        with self.assertRaises(ValidationError):
            settlement_service.request_settlement(self.merchant, Decimal("500000"))

    def test_reference_and_snapshot(self):
        settlement, eta = settlement_service.request_settlement(self.merchant, Decimal("1000"), description="Weekly payout")

        self.assertRegex(settlement.reference, r"^STL[0-9A-F]{8}$")
        self.assertEqual(settlement.settlement_type, "manual")
        self.assertEqual(settlement.transaction_count, 1)
        self.assertEqual(settlement.bank_account["bank_name"], "GTBank")
        self.assertEqual(settlement.bank_account["masked_account_number"], "****6789")
        self.assertGreater(eta, settlement.created_at)

        merchant_service.update_settlement_account(self.merchant, "New Name", "9999999999", "044")
        settlement.refresh_from_db()
        self.assertEqual(settlement.bank_account["account_number"], "0123456789")

    def test_merchant_fee_rate_overrides_default(self):
        self.merchant.settlement_fee_rate = Decimal("0.0150")
        self.merchant.save(update_fields=["settlement_fee_rate"])

        settlement, _ = settlement_service.request_settlement(self.merchant, Decimal("10000"))

        self.assertEqual(settlement.fee, Decimal("150.00"))
        self.assertEqual(settlement.net_amount, Decimal("9850.00"))


class EstimatedCompletionTests(TestCase):
    def test_next_business_day_at_cutoff(self):
        friday = timezone.make_aware(datetime(2024, 3, 1, 9, 30))
        eta = settlement_service.estimated_completion(friday)
        self.assertEqual(eta.weekday(), 0)
        self.assertEqual((eta.day, eta.hour, eta.minute), (4, 14, 0))

    def test_midweek(self):
        tuesday = timezone.make_aware(datetime(2024, 3, 5, 18, 0))
        eta = settlement_service.estimated_completion(tuesday)
        self.assertEqual((eta.day, eta.hour), (6, 14))


class TransitionTests(SettlementTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.settlement, _ = settlement_service.request_settlement(self.merchant, Decimal("20000"))

    def test_approve_then_complete(self):
        settlement = settlement_service.approve_settlement(self.settlement.pk)
        self.assertEqual(settlement.status, "processing")
        self.assertIsNotNone(settlement.processed_at)

        settlement = settlement_service.complete_settlement(self.settlement.pk, bank_reference="NIP123")
        self.assertEqual(settlement.status, "completed")
        self.assertEqual(settlement.bank_reference, "NIP123")
        self.assertIsNotNone(settlement.completed_at)

    def test_approve_only_pending(self):
        settlement_service.approve_settlement(self.settlement.pk)
        with self.assertRaises(ValidationError):
            settlement_service.approve_settlement(self.settlement.pk)

    def test_reject_uses_default_reason(self):
        settlement = settlement_service.reject_settlement(self.settlement.pk)
        self.assertEqual(settlement.status, "failed")
        self.assertEqual(settlement.failure_reason, "Settlement rejected by admin")

    def test_complete_requires_processing(self):
        with self.assertRaises(ValidationError):
            settlement_service.complete_settlement(self.settlement.pk)

    def test_failed_transfer(self):
        settlement_service.approve_settlement(self.settlement.pk)
        settlement = settlement_service.fail_settlement(self.settlement.pk, "Account closed")
        self.assertEqual(settlement.status, "failed")
        self.assertEqual(settlement.failure_reason, "Account closed")

    def test_unknown_settlement(self):
        with self.assertRaises(NotFound):
            settlement_service.approve_settlement(999999)

    def test_stats(self):
        stats = settlement_service.merchant_settlement_stats(self.merchant)

        self.assertEqual(stats["completed_transactions"], 1)
        self.assertEqual(stats["total_revenue"], Decimal("100000.00"))
        self.assertEqual(stats["pending_settlement"], Decimal("20000.00"))
        self.assertEqual(stats["available_balance"], Decimal("80000.00"))
        self.assertEqual(len(stats["settlement_history"]), 1)


class SettlementViewTests(SettlementTestMixin, TestCase):
    def test_merchant_requests_settlement(self):
        self.client.force_login(self.user)

        response = self.client.post(
            reverse("settlements:request_settlement"), data={"amount": "60000"}, content_type="application/json"
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()["data"]
        self.assertEqual(body["net_amount"], "58800.00")
        self.assertEqual(body["bank_account"], "GTBank • ****6789")
        self.assertIn("estimated_completion", body)

    def test_merchant_cannot_approve(self):
        settlement, _ = settlement_service.request_settlement(self.merchant, Decimal("1000"))
        self.client.force_login(self.user)

        response = self.client.post(reverse("settlements:approve", args=[settlement.pk]))

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "AUTHORIZATION_ERROR")

    def test_admin_approves(self):
        settlement, _ = settlement_service.request_settlement(self.merchant, Decimal("1000"))
        admin = CustomUser.objects.create_user("ops@example.com", password="pass12345", role=Role.ADMIN)
        self.client.force_login(admin)

        response = self.client.post(reverse("settlements:approve", args=[settlement.pk]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["status"], "processing")

from decimal import Decimal
from io import StringIO
from types import SimpleNamespace
from unittest import TestCase as UnitTestCase
from unittest.mock import Mock, patch

import stripe
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.urls import reverse

from accounts.models import CustomUser, Role
from billing import config
from billing.models import Transaction, Wallet, WalletTransaction
from billing.services import transaction_service, wallet_service
from billing.services.context import ServiceContext
from billing.services.gateway_service import StripeGateway
from billing.services.reconciliation_service import (
    mark_failed,
    reconcile,
    retry_pending_effects,
    verify_and_reconcile,
)
from billing.views import event_status, handle_checkout_event
from common.errors import (
    Conflict,
    GatewayError,
    InsufficientBalance,
    InvalidStatus,
    NotFound,
    PaymentFailed,
    ValidationError,
    WalletNotFound,
)
from merchants.services import merchant_service
from payments.services.payment_request_service import (
    create_group_split_request,
    create_single_payer_request,
    record_single_payer_payment,
)
from payments.services.qr_code_service import create_qr_code
from testing.financial.base import ScenarioGateway


def make_ctx(gateway=None):
    return ServiceContext(
        gateway=gateway or ScenarioGateway(),
        notifier=Mock(),
        render_qr=Mock(return_value="data:image/png;base64,AAAA"),
    )


def ledger_sum(user):
    return sum((e.signed_amount for e in WalletTransaction.objects.filter(user=user)), Decimal("0.00"))


class ConfigTests(UnitTestCase):
    def test_quantize_rounds_half_up(self):
        self.assertEqual(config.quantize("10.005"), Decimal("10.01"))
        self.assertEqual(config.quantize(3), Decimal("3.00"))

    def test_amounts_match_within_one_cent(self):
        self.assertTrue(config.amounts_match(Decimal("100.00"), Decimal("100.01")))
        self.assertFalse(config.amounts_match(Decimal("100.00"), Decimal("100.02")))

    def test_minor_unit_conversion(self):
        self.assertEqual(config.to_minor_units(Decimal("250.50")), 25050)
        self.assertEqual(config.from_minor_units(25050), Decimal("250.50"))

    def test_rejects_values_that_are_not_finite_amounts(self):
        for value in ("Infinity", "-Infinity", "NaN", "sNaN", "ten", None):
            with self.assertRaises(ValidationError):
                config.quantize(value)


class WalletServiceTests(TestCase):
    def setUp(self):
        self.user = CustomUser.objects.create_user("wallet@example.com", password="pass12345", preferred_currency="GHS")

    def test_first_credit_creates_wallet_in_preferred_currency(self):
        balance = wallet_service.credit(self.user, Decimal("100.00"), description="top up")

        self.assertEqual(balance, Decimal("100.00"))
        wallet = Wallet.objects.get(user=self.user)
        self.assertEqual(wallet.currency, "GHS")
        self.assertIsNotNone(wallet.last_transaction_at)
        entry = WalletTransaction.objects.get(user=self.user)
        self.assertEqual(entry.type, "credit")
        self.assertEqual(entry.balance_after, Decimal("100.00"))
        self.assertRegex(entry.reference, r"^CREDIT_[0-9A-F]{16}$")

    def test_debit_reduces_balance(self):
        wallet_service.credit(self.user, Decimal("100.00"))
        balance = wallet_service.debit(self.user, Decimal("40.50"))

        self.assertEqual(balance, Decimal("59.50"))
        self.assertRegex(WalletTransaction.objects.filter(type="debit").get().reference, r"^DEBIT_")

    def test_debit_above_balance_writes_nothing(self):
        wallet_service.credit(self.user, Decimal("10.00"))

        with self.assertRaises(InsufficientBalance):
            wallet_service.debit(self.user, Decimal("10.01"))

        self.assertEqual(Wallet.objects.get(user=self.user).balance, Decimal("10.00"))
        self.assertEqual(WalletTransaction.objects.filter(user=self.user).count(), 1)

    def test_debit_without_wallet(self):
        with self.assertRaises(WalletNotFound):
            wallet_service.debit(self.user, Decimal("1.00"))

    def test_credit_unknown_user(self):
        with self.assertRaises(WalletNotFound):
            wallet_service.credit(987654, Decimal("1.00"))

    def test_non_positive_amount_rejected(self):
        with self.assertRaises(ValidationError):
            wallet_service.credit(self.user, Decimal("0"))
        self.assertFalse(Wallet.objects.filter(user=self.user).exists())

    def test_reused_reference_is_a_conflict_and_rolls_back(self):
        wallet_service.credit(self.user, Decimal("5.00"), reference="CREDIT_FIXED")

        with self.assertRaises(Conflict):
            wallet_service.credit(self.user, Decimal("5.00"), reference="CREDIT_FIXED")

        self.assertEqual(Wallet.objects.get(user=self.user).balance, Decimal("5.00"))

    def test_reference_collision_is_retried(self):
        wallet_service.credit(self.user, Decimal("1.00"), reference="CREDIT_AAAA")
        with patch(
            "billing.services.wallet_service._new_reference",
            side_effect=["CREDIT_AAAA", "CREDIT_BBBB"],
        ):
            wallet_service.credit(self.user, Decimal("2.00"))

        self.assertTrue(WalletTransaction.objects.filter(reference="CREDIT_BBBB").exists())

    def test_ledger_conservation_after_mixed_operations(self):
        wallet_service.credit(self.user, Decimal("500.00"))
        wallet_service.debit(self.user, Decimal("120.25"))
        with self.assertRaises(InsufficientBalance):
            wallet_service.debit(self.user, Decimal("1000.00"))
        wallet_service.credit(self.user, Decimal("0.75"))
        wallet_service.withdraw(self.user, Decimal("80.00"), "bank_transfer", {"account_number": "0123456789"})

        wallet = Wallet.objects.get(user=self.user)
        self.assertEqual(wallet.balance, Decimal("300.50"))
        self.assertEqual(ledger_sum(self.user), wallet.balance)

    def test_withdraw_records_pending_metadata(self):
        wallet_service.credit(self.user, Decimal("50.00"))
        entry = wallet_service.withdraw(self.user, Decimal("20.00"), "bank_transfer", {"bank_code": "058"})

        self.assertRegex(entry.reference, r"^WDR_[0-9A-F]{16}$")
        self.assertEqual(entry.metadata["status"], "pending")
        self.assertEqual(entry.metadata["bank_details"], {"bank_code": "058"})

    def test_entries_are_append_only(self):
        wallet_service.credit(self.user, Decimal("5.00"))
        entry = WalletTransaction.objects.get(user=self.user)

        entry.description = "edited"
        with self.assertRaises(ValueError):
            entry.save()
        with self.assertRaises(ValueError):
            entry.delete()

    def test_wallet_stats(self):
        wallet_service.credit(self.user, Decimal("30.00"))
        wallet_service.credit(self.user, Decimal("20.00"))
        wallet_service.debit(self.user, Decimal("15.00"))

        stats = wallet_service.wallet_stats(self.user)

        self.assertEqual(stats["total_credits"], Decimal("50.00"))
        self.assertEqual(stats["total_debits"], Decimal("15.00"))
        self.assertEqual(stats["credit_count"], 2)
        self.assertEqual(stats["net"], stats["balance"])


class ReconciliationTests(TestCase):
    def setUp(self):
        self.owner = CustomUser.objects.create_user("owner@example.com", password="pass12345")
        self.ctx = make_ctx()
        self.request = create_single_payer_request("Rent", Decimal("5000"), user=self.owner, ctx=self.ctx)

    def _reconcile(self, status="success", ref="cs_test_1", **kwargs):
        kwargs.setdefault("payment_request_id", self.request.pk)
        kwargs.setdefault("amount", Decimal("5000"))
        return reconcile(status, ref, ctx=self.ctx, **kwargs)

    def test_replayed_confirmation_is_applied_once(self):
        first = self._reconcile()
        second = self._reconcile(status="SUCCEEDED")

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Transaction.objects.filter(external_reference="cs_test_1").count(), 1)
        self.assertEqual(WalletTransaction.objects.filter(user=self.owner).count(), 1)
        self.assertEqual(Wallet.objects.get(user=self.owner).balance, Decimal("5000.00"))
        self.request.refresh_from_db()
        self.assertEqual(self.request.status, "completed")

    def test_failure_tokens_raise_without_writing(self):
        for token in ("failed", "Cancelled", "abandoned", "reversed", "error", "failure"):
            with self.assertRaises(PaymentFailed):
                self._reconcile(status=token)
        self.assertFalse(Transaction.objects.exists())

    def test_unknown_status_token(self):
        with self.assertRaises(InvalidStatus):
            self._reconcile(status="on_hold")

    def test_unresolved_owner_codes(self):
        with self.assertRaises(NotFound) as ctx:
            reconcile("success", "cs_x", participant_id=999999, amount=1, ctx=self.ctx)
        self.assertEqual(ctx.exception.code, "PARTICIPANT_NOT_FOUND")
        with self.assertRaises(NotFound) as ctx:
            reconcile("success", "cs_x", payment_request_id=999999, amount=1, ctx=self.ctx)
        self.assertEqual(ctx.exception.code, "PAYMENT_REQUEST_NOT_FOUND")
        with self.assertRaises(NotFound) as ctx:
            reconcile("success", "cs_x", qr_code_id=999999, amount=1, ctx=self.ctx)
        self.assertEqual(ctx.exception.code, "QR_CODE_NOT_FOUND")

    def test_pending_transaction_is_completed_in_place(self):
        txn, redirect_url = record_single_payer_payment(
            self.request.pk, Decimal("5000"), tip_amount=Decimal("250"), payer_email="payer@example.com", ctx=self.ctx
        )
        self.assertEqual(txn.status, "pending")
        self.assertTrue(redirect_url)

        completed = reconcile("paid", txn.external_reference, payment_request_id=self.request.pk, ctx=self.ctx)

        self.assertEqual(completed.pk, txn.pk)
        self.assertEqual(completed.status, "completed")
        self.assertEqual(Transaction.objects.count(), 1)
        # tip goes to the beneficiary together with the amount
        self.assertEqual(Wallet.objects.get(user=self.owner).balance, Decimal("5250.00"))

    def test_confirmation_email_sent_once_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            self._reconcile(payer={"email": "payer@example.com"})
        with self.captureOnCommitCallbacks(execute=True):
            self._reconcile(payer={"email": "payer@example.com"})

        self.ctx.notifier.send_payment_confirmation.assert_called_once()
        kwargs = self.ctx.notifier.send_payment_confirmation.call_args.kwargs
        self.assertEqual(kwargs["recipient"], "payer@example.com")

    def test_notifier_failure_does_not_affect_reconciliation(self):
        self.ctx.notifier.send_payment_confirmation.side_effect = RuntimeError("smtp down")

        with self.captureOnCommitCallbacks(execute=True):
            txn = self._reconcile(payer={"email": "payer@example.com"})

        self.assertEqual(txn.status, "completed")
        self.assertIsNotNone(txn.effects_applied_at)

    def test_effect_failure_is_retried_within_the_call(self):
        real_credit = wallet_service.credit
        calls = []

        def flaky_credit(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("wallet unavailable")
            return real_credit(*args, **kwargs)

        with patch("billing.services.reconciliation_service.wallet_service.credit", side_effect=flaky_credit):
            txn = self._reconcile()

        self.assertEqual(txn.reconcile_attempts, 1)
        self.assertIsNotNone(txn.effects_applied_at)
        self.assertEqual(txn.last_error, "")
        self.assertEqual(Wallet.objects.get(user=self.owner).balance, Decimal("5000.00"))

    def test_exhausted_retries_leave_completed_transaction_for_later(self):
        with patch(
            "billing.services.reconciliation_service.wallet_service.credit",
            side_effect=RuntimeError("wallet unavailable"),
        ):
            txn = self._reconcile()

        self.assertEqual(txn.status, "completed")
        self.assertIsNone(txn.effects_applied_at)
        self.assertEqual(txn.reconcile_attempts, 3)
        self.assertIn("wallet unavailable", txn.last_error)
        self.request.refresh_from_db()
        self.assertEqual(self.request.status, "pending")

        result = retry_pending_effects(ctx=self.ctx)

        self.assertEqual(result, {"done": 1, "still_pending": 0})
        self.request.refresh_from_db()
        self.assertEqual(self.request.status, "completed")
        self.assertEqual(Wallet.objects.get(user=self.owner).balance, Decimal("5000.00"))

    def test_replay_finishes_pending_effects(self):
        with patch(
            "billing.services.reconciliation_service.wallet_service.credit",
            side_effect=RuntimeError("wallet unavailable"),
        ):
            self._reconcile()

        txn = self._reconcile()

        self.assertIsNotNone(txn.effects_applied_at)
        self.assertEqual(WalletTransaction.objects.filter(user=self.owner).count(), 1)

    def test_request_without_owner_credits_matching_payer(self):
        payer = CustomUser.objects.create_user("payer@example.com", password="pass12345")
        orphan = create_single_payer_request("Gift", Decimal("100"), ctx=self.ctx)

        reconcile("success", "cs_orphan", payment_request_id=orphan.pk, payer={"email": "PAYER@example.com"}, ctx=self.ctx)

        self.assertEqual(Wallet.objects.get(user=payer).balance, Decimal("100.00"))

    def test_no_beneficiary_skips_credit(self):
        orphan = create_single_payer_request("Gift", Decimal("100"), ctx=self.ctx)

        txn = reconcile("success", "cs_orphan", payment_request_id=orphan.pk, ctx=self.ctx)

        self.assertIsNotNone(txn.effects_applied_at)
        self.assertFalse(WalletTransaction.objects.exists())
        orphan.refresh_from_db()
        self.assertEqual(orphan.status, "completed")

    def test_second_payment_for_paid_participant_is_credited_not_reapplied(self):
        split = create_group_split_request(
            "Dinner", Decimal("200"), "NGN", [{"name": "A"}, {"name": "B"}], user=self.owner, ctx=self.ctx
        )
        participant = split.participants.first()
        reconcile("success", "cs_a", participant_id=participant.pk, ctx=self.ctx)
        participant.refresh_from_db()
        first_paid_at = participant.paid_at

        reconcile("success", "cs_b", participant_id=participant.pk, ctx=self.ctx)

        participant.refresh_from_db()
        self.assertEqual(participant.paid_at, first_paid_at)
        self.assertEqual(Transaction.objects.filter(participant=participant).count(), 2)
        self.assertEqual(Wallet.objects.get(user=self.owner).balance, Decimal("200.00"))

    def test_qr_payment_credits_merchant_and_counts_usage(self):
        merchant_user = CustomUser.objects.create_user("shop@example.com", password="pass12345")
        merchant = merchant_service.register_merchant(merchant_user, "Shop")
        qr = create_qr_code(merchant, "Counter", "pay_for_me", amount=Decimal("1500"), usage_limit=1, ctx=self.ctx)

        reconcile("success", "cs_qr", qr_code_id=qr.pk, ctx=self.ctx)

        qr.refresh_from_db()
        self.assertEqual(qr.usage_count, 1)
        self.assertFalse(qr.is_active)
        self.assertEqual(Wallet.objects.get(user=merchant_user).balance, Decimal("1500.00"))

    def test_mark_failed_flips_pending_transaction(self):
        txn, _ = record_single_payer_payment(self.request.pk, Decimal("5000"), ctx=self.ctx)

        failed = mark_failed(txn.external_reference, payment_request_id=self.request.pk, raw_payload={"event": "expired"})

        self.assertEqual(failed.pk, txn.pk)
        self.assertEqual(failed.status, "failed")
        self.assertIsNone(mark_failed("cs_unknown"))

    def test_verify_and_reconcile(self):
        txn, _ = record_single_payer_payment(self.request.pk, Decimal("5000"), ctx=self.ctx)

        verified_txn, verified = verify_and_reconcile(txn.reference, ctx=self.ctx)

        self.assertTrue(verified)
        self.assertEqual(verified_txn.pk, txn.pk)
        self.assertEqual(verified_txn.status, "completed")

    def test_verify_leaves_unconfirmed_charge_pending(self):
        gateway = Mock()
        gateway.provider = "stripe"
        gateway.initialize_charge.return_value = {"external_reference": "cs_pending", "redirect_url": "https://pay"}
        gateway.verify_charge.return_value = {"verified": False, "raw_payload": {}}
        ctx = make_ctx(gateway)
        txn, _ = record_single_payer_payment(self.request.pk, Decimal("5000"), ctx=ctx)

        same, verified = verify_and_reconcile("cs_pending", ctx=ctx)

        self.assertFalse(verified)
        self.assertEqual(same.status, "pending")

    def test_verify_unknown_reference(self):
        with self.assertRaises(NotFound):
            verify_and_reconcile("nope", ctx=self.ctx)


class CheckoutEventMappingTests(UnitTestCase):
    def test_completed_counts_only_when_paid(self):
        self.assertEqual(event_status("checkout.session.completed", {"payment_status": "paid"}), "paid")
        self.assertIsNone(event_status("checkout.session.completed", {"payment_status": "unpaid"}))

    def test_async_and_expired_events(self):
        self.assertEqual(event_status("checkout.session.async_payment_succeeded", {}), "succeeded")
        self.assertEqual(event_status("checkout.session.async_payment_failed", {}), "failed")
        self.assertEqual(event_status("checkout.session.expired", {}), "failed")
        self.assertIsNone(event_status("payment_intent.created", {}))


class StripeWebhookTests(TestCase):
    def setUp(self):
        self.owner = CustomUser.objects.create_user("owner@example.com", password="pass12345")
        self.ctx = make_ctx()
        self.request = create_single_payer_request("Rent", Decimal("5000"), user=self.owner, ctx=self.ctx)

    def _session(self, **overrides):
        obj = {
            "id": "cs_live_1",
            "payment_status": "paid",
            "amount_total": 550000,
            "currency": "ngn",
            "customer_email": "payer@example.com",
            "metadata": {"payment_request_id": str(self.request.pk), "tip_amount": "500.00"},
        }
        obj.update(overrides)
        return obj

    def test_checkout_completed_reconciles_amount_and_tip(self):
        txn = handle_checkout_event("checkout.session.completed", self._session(), ctx=self.ctx)

        self.assertEqual(txn.amount, Decimal("5000.00"))
        self.assertEqual(txn.tip_amount, Decimal("500.00"))
        self.assertEqual(Wallet.objects.get(user=self.owner).balance, Decimal("5500.00"))

    def test_unpaid_completion_is_ignored(self):
        self.assertIsNone(handle_checkout_event("checkout.session.completed", self._session(payment_status="unpaid")))
        self.assertFalse(Transaction.objects.exists())

    def test_missing_metadata_is_ignored(self):
        self.assertIsNone(handle_checkout_event("checkout.session.completed", self._session(metadata={})))

    def test_expired_session_marks_pending_failed(self):
        txn, _ = record_single_payer_payment(self.request.pk, Decimal("5000"), ctx=self.ctx)

        failed = handle_checkout_event(
            "checkout.session.expired", self._session(id=txn.external_reference, payment_status="unpaid")
        )

        self.assertEqual(failed.status, "failed")

    def test_webhook_requires_signature(self):
        response = self.client.post(reverse("billing:stripe_webhook"), data=b"{}", content_type="application/json")
        self.assertEqual(response.status_code, 400)

    @override_settings(STRIPE_WEBHOOK_SECRET="whsec_test")
    def test_webhook_rejects_bad_signature(self):
        with patch(
            "billing.views.stripe.Webhook.construct_event",
            side_effect=stripe.error.SignatureVerificationError("bad signature", "t=1,v1=x"),
        ):
            response = self.client.post(
                reverse("billing:stripe_webhook"), data=b"{}", content_type="application/json",
                HTTP_STRIPE_SIGNATURE="t=1,v1=x",
            )
        self.assertEqual(response.status_code, 400)

    @override_settings(STRIPE_WEBHOOK_SECRET="whsec_test")
    def test_webhook_reconciles_verified_event(self):
        event = {"type": "checkout.session.completed", "data": {"object": self._session()}}
        with patch("billing.views.stripe.Webhook.construct_event", return_value=event), \
                patch("billing.services.reconciliation_service.get_context", return_value=self.ctx):
            response = self.client.post(
                reverse("billing:stripe_webhook"), data=b"{}", content_type="application/json",
                HTTP_STRIPE_SIGNATURE="t=1,v1=x",
            )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(Transaction.objects.filter(external_reference="cs_live_1", status="completed").exists())

    @override_settings(STRIPE_WEBHOOK_SECRET="whsec_test")
    def test_webhook_unknown_owner_is_acknowledged(self):
        event = {
            "type": "checkout.session.completed",
            "data": {"object": self._session(metadata={"payment_request_id": "999999"})},
        }
        with patch("billing.views.stripe.Webhook.construct_event", return_value=event), \
                patch("billing.services.reconciliation_service.get_context", return_value=self.ctx):
            response = self.client.post(
                reverse("billing:stripe_webhook"), data=b"{}", content_type="application/json",
                HTTP_STRIPE_SIGNATURE="t=1,v1=x",
            )

        self.assertEqual(response.status_code, 200)
        self.assertFalse(Transaction.objects.exists())


class WalletViewTests(TestCase):
    def setUp(self):
        self.user = CustomUser.objects.create_user("viewer@example.com", password="pass12345")
        self.client.force_login(self.user)

    def test_balance_and_withdraw(self):
        wallet_service.credit(self.user, Decimal("100.00"))

        response = self.client.get(reverse("billing:wallet_balance"))
        self.assertEqual(response.json()["data"]["balance"], "100.00")

        response = self.client.post(
            reverse("billing:wallet_withdraw"),
            data={"amount": "150.00", "method": "bank_transfer"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "INSUFFICIENT_BALANCE")

        response = self.client.post(
            reverse("billing:wallet_withdraw"),
            data={"amount": "60.00", "method": "bank_transfer"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Wallet.objects.get(user=self.user).balance, Decimal("40.00"))


class TransactionListTests(TestCase):
    def setUp(self):
        self.ctx = make_ctx()
        self.owner = CustomUser.objects.create_user("owner@example.com", password="pass12345")
        self.other = CustomUser.objects.create_user("other@example.com", password="pass12345")
        rent = create_single_payer_request("Rent", Decimal("5000"), user=self.owner, ctx=self.ctx)
        self.paid = reconcile(
            "success", "cs_rent", payment_request_id=rent.pk,
            payer={"email": "tenant@example.com", "name": "Tenant"}, ctx=self.ctx,
        )
        deposit = create_single_payer_request("Deposit", Decimal("700"), user=self.owner, ctx=self.ctx)
        self.pending, _ = record_single_payer_payment(deposit.pk, Decimal("700"), ctx=self.ctx)
        gift = create_single_payer_request("Gift", Decimal("100"), user=self.other, ctx=self.ctx)
        self.foreign = reconcile("success", "cs_gift", payment_request_id=gift.pk, ctx=self.ctx)

    def _ids(self, result):
        return {t.pk for t in result["transactions"]}

    def test_owner_sees_only_own_transactions(self):
        result = transaction_service.list_transactions(self.owner)

        self.assertEqual(self._ids(result), {self.paid.pk, self.pending.pk})
        self.assertEqual(result["pagination"], {"total": 2, "page": 1, "limit": 20, "total_pages": 1})

    def test_filters(self):
        completed = transaction_service.list_transactions(self.owner, status="completed")
        self.assertEqual(self._ids(completed), {self.paid.pk})

        found = transaction_service.list_transactions(self.owner, search="TENANT@")
        self.assertEqual(self._ids(found), {self.paid.pk})

        by_request = transaction_service.list_transactions(self.owner, payment_request_id=str(self.pending.payment_request_id))
        self.assertEqual(self._ids(by_request), {self.pending.pk})

    def test_pagination(self):
        first = transaction_service.list_transactions(self.owner, page=1, limit=1)
        second = transaction_service.list_transactions(self.owner, page="2", limit="1")
        beyond = transaction_service.list_transactions(self.owner, page=5, limit=1)

        self.assertEqual(first["pagination"]["total_pages"], 2)
        self.assertEqual(self._ids(first) | self._ids(second), {self.paid.pk, self.pending.pk})
        self.assertEqual(beyond["transactions"], [])

    def test_bad_filters(self):
        with self.assertRaises(ValidationError):
            transaction_service.list_transactions(self.owner, status="settled")
        with self.assertRaises(ValidationError):
            transaction_service.list_transactions(self.owner, page="first")
        with self.assertRaises(ValidationError):
            transaction_service.list_transactions(self.owner, qr_code_id="abc")

    def test_admin_sees_everyone(self):
        admin = CustomUser.objects.create_user("ops@example.com", password="pass12345", role=Role.ADMIN)

        everything = transaction_service.list_transactions(admin)
        narrowed = transaction_service.list_transactions(admin, beneficiary_id=self.other.pk)

        self.assertEqual(self._ids(everything), {self.paid.pk, self.pending.pk, self.foreign.pk})
        self.assertEqual(self._ids(narrowed), {self.foreign.pk})

    def test_view(self):
        self.client.force_login(self.owner)

        response = self.client.get(reverse("billing:transactions"), {"status": "completed"})
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual([t["reference"] for t in data["transactions"]], [self.paid.reference])
        self.assertEqual(data["pagination"]["total"], 1)

        response = self.client.get(reverse("billing:transactions"), {"start_date": "yesterday"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")


class StripeGatewayTests(UnitTestCase):
    @patch("billing.services.gateway_service.get_client")
    def test_initialize_charge_sends_minor_units_and_string_metadata(self, get_client):
        client = Mock()
        client.checkout.Session.create.return_value = SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.com/c/cs_test_123")
        get_client.return_value = client

        result = StripeGateway().initialize_charge(
            Decimal("5500.00"), "NGN", "payer@example.com", "SPLT_ABC",
            {"payment_request_id": 7, "participant_id": None, "tip_amount": "500.00"},
        )

        self.assertEqual(result, {"external_reference": "cs_test_123", "redirect_url": "https://checkout.stripe.com/c/cs_test_123"})
        kwargs = client.checkout.Session.create.call_args.kwargs
        self.assertEqual(kwargs["line_items"][0]["price_data"]["unit_amount"], 550000)
        self.assertEqual(kwargs["line_items"][0]["price_data"]["currency"], "ngn")
        self.assertEqual(kwargs["metadata"], {"payment_request_id": "7", "tip_amount": "500.00"})
        self.assertEqual(kwargs["customer_email"], "payer@example.com")
        self.assertEqual(kwargs["idempotency_key"], "SPLT_ABC")

    @patch("billing.services.gateway_service.get_client")
    def test_stripe_errors_become_gateway_errors(self, get_client):
        client = Mock()
        client.checkout.Session.create.side_effect = stripe.error.APIConnectionError("connection reset")
        get_client.return_value = client

        with self.assertRaises(GatewayError):
            StripeGateway().initialize_charge(Decimal("10"), "NGN", "", "SPLT_X", {})
        self.assertEqual(get_client.return_value.checkout.Session.create.call_count, 1)

    @override_settings(STRIPE_SECRET_KEY="")
    def test_unconfigured_gateway(self):
        with self.assertRaises(GatewayError):
            StripeGateway().verify_charge("cs_test_123")


class RetryReconciliationsCommandTests(TestCase):
    def test_reports_pending_effects(self):
        owner = CustomUser.objects.create_user("owner@example.com", password="pass12345")
        ctx = make_ctx()
        request = create_single_payer_request("Rent", Decimal("100"), user=owner, ctx=ctx)
        with patch(
            "billing.services.reconciliation_service.wallet_service.credit",
            side_effect=RuntimeError("wallet unavailable"),
        ):
            reconcile("success", "cs_cmd", payment_request_id=request.pk, ctx=ctx)

        out = StringIO()
        with patch("billing.services.reconciliation_service.get_context", return_value=ctx):
            call_command("retry_reconciliations", "--limit", "10", stdout=out)

        self.assertIn("Effects applied: 1", out.getvalue())
        self.assertEqual(Wallet.objects.get(user=owner).balance, Decimal("100.00"))

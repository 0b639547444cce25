from datetime import timedelta
from decimal import Decimal
from itertools import permutations
from unittest import TestCase as UnitTestCase
from unittest.mock import Mock, patch

from django.conf import settings
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from accounts.models import CustomUser
from billing.models import Transaction, Wallet
from billing.services.context import ServiceContext
from billing.services.reconciliation_service import reconcile
from common.errors import (
    AlreadyPaid,
    AmountMismatch,
    Expired,
    GatewayError,
    NotFound,
    QrCodeExpired,
    QrCodeInactive,
    UsageLimitReached,
    ValidationError,
)
from merchants.services import merchant_service
from payments.models import Participant, PaymentRequest, QRCode
from payments.services import payment_request_service as prs
from payments.services import qr_code_service
from payments.services.qr_render import render_qr
from testing.financial.base import ScenarioClock, ScenarioGateway


def make_ctx(gateway=None, clock=None):
    return ServiceContext(
        gateway=gateway or ScenarioGateway(),
        notifier=Mock(),
        render_qr=Mock(return_value="data:image/png;base64,AAAA"),
        clock=clock or ScenarioClock(),
    )


def three_friends(**amounts):
    return [
        {"name": "Ada", "email": "ada@example.com", "amount": amounts.get("ada")},
        {"name": "Bola", "email": "bola@example.com", "amount": amounts.get("bola")},
        {"name": "Chidi", "amount": amounts.get("chidi")},
    ]


class SplitEquallyTests(UnitTestCase):
    def test_last_share_takes_remainder(self):
        self.assertEqual(
            prs.split_equally(Decimal("100.00"), 3),
            [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")],
        )

    def test_shares_always_sum_to_total(self):
        for total in ("0.05", "10.00", "999.99", "1234567.89"):
            for count in range(2, 8):
                self.assertEqual(sum(prs.split_equally(Decimal(total), count)), Decimal(total))


class QrRenderTests(UnitTestCase):
    def test_returns_png_data_uri(self):
        self.assertTrue(render_qr("https://pay.example.com/p/abc").startswith("data:image/png;base64,"))


class PaymentRequestCreationTests(TestCase):
    def setUp(self):
        self.owner = CustomUser.objects.create_user("owner@example.com", password="pass12345")
        self.ctx = make_ctx()

    def test_single_payer_request(self):
        pr = prs.create_single_payer_request("Rent", "5000", currency="NGN", expires_in_hours=24, user=self.owner, ctx=self.ctx)

        self.assertEqual(pr.type, "pay_for_me")
        self.assertEqual(pr.status, "pending")
        self.assertEqual(pr.amount, Decimal("5000.00"))
        self.assertEqual(len(pr.link_token), 64)
        self.assertEqual(pr.payment_link, f"{settings.PAYMENT_LINK_DOMAIN}/p/{pr.link_token}")
        self.assertEqual(pr.expires_at, self.ctx.now() + timedelta(hours=24))
        self.ctx.render_qr.assert_called_once_with(pr.payment_link)

    def test_single_payer_rejects_non_positive_amount(self):
        with self.assertRaises(ValidationError):
            prs.create_single_payer_request("Rent", 0, ctx=self.ctx)
        self.assertFalse(PaymentRequest.objects.exists())

    def test_equal_split(self):
        pr = prs.create_group_split_request("Dinner", Decimal("100"), "NGN", three_friends(), user=self.owner, ctx=self.ctx)

        amounts = list(pr.participants.order_by("id").values_list("amount", flat=True))
        self.assertEqual(amounts, [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")])
        self.assertEqual(pr.total_amount, Decimal("100.00"))

    def test_participant_links_are_distinct(self):
        pr = prs.create_group_split_request("Dinner", Decimal("90"), "NGN", three_friends(), ctx=self.ctx)

        tokens = {pr.link_token, *pr.participants.values_list("link_token", flat=True)}
        self.assertEqual(len(tokens), 4)
        for participant in pr.participants.all():
            self.assertEqual(participant.participant_link, f"{settings.PAYMENT_LINK_DOMAIN}/split/{participant.link_token}")

    def test_custom_split_within_tolerance(self):
        pr = prs.create_group_split_request(
            "Trip", Decimal("100"), "NGN",
            [{"name": "A", "amount": "50.00"}, {"name": "B", "amount": "49.99"}],
            split_type="custom", ctx=self.ctx,
        )
        self.assertEqual(pr.participants.count(), 2)

    def test_custom_split_mismatch_writes_nothing(self):
        with self.assertRaises(AmountMismatch):
            prs.create_group_split_request(
                "Trip", Decimal("100"), "NGN",
                [{"name": "A", "amount": "50"}, {"name": "B", "amount": "40"}],
                split_type="custom", ctx=self.ctx,
            )
        self.assertFalse(PaymentRequest.objects.exists())
        self.assertFalse(Participant.objects.exists())

    def test_rejects_non_finite_numbers(self):
        for amount in ("Infinity", "NaN", "-Infinity", "ten"):
            with self.assertRaises(ValidationError):
                prs.create_single_payer_request("Rent", amount, ctx=self.ctx)
        for hours in ("nan", "inf", 0):
            with self.assertRaises(ValidationError):
                prs.create_single_payer_request("Rent", "5000", expires_in_hours=hours, ctx=self.ctx)
        self.assertFalse(PaymentRequest.objects.exists())

    def test_group_split_needs_two_participants(self):
        with self.assertRaises(ValidationError):
            prs.create_group_split_request("Solo", Decimal("10"), "NGN", [{"name": "A"}], ctx=self.ctx)

    def test_notices_sent_after_commit_to_participants_with_email(self):
        with self.captureOnCommitCallbacks(execute=True):
            prs.create_group_split_request("Dinner", Decimal("90"), "NGN", three_friends(), ctx=self.ctx)

        recipients = [c.kwargs["recipient"] for c in self.ctx.notifier.send_payment_request_notice.call_args_list]
        self.assertEqual(sorted(recipients), ["ada@example.com", "bola@example.com"])

    def test_failed_notice_does_not_break_creation(self):
        self.ctx.notifier.send_payment_request_notice.side_effect = RuntimeError("smtp down")

        with self.captureOnCommitCallbacks(execute=True):
            pr = prs.create_group_split_request("Dinner", Decimal("90"), "NGN", three_friends(), ctx=self.ctx)

        self.assertTrue(PaymentRequest.objects.filter(pk=pr.pk).exists())


class LinkResolutionTests(TestCase):
    def setUp(self):
        self.ctx = make_ctx()
        self.pr = prs.create_group_split_request(
            "Dinner", Decimal("90"), "NGN", three_friends(), expires_in_hours=1, ctx=self.ctx
        )

    def test_parent_token(self):
        pr, participant = prs.resolve_by_link_token(self.pr.link_token, ctx=self.ctx)
        self.assertEqual(pr.pk, self.pr.pk)
        self.assertIsNone(participant)

    def test_participant_token(self):
        target = self.pr.participants.first()
        pr, participant = prs.resolve_by_link_token(target.link_token, ctx=self.ctx)
        self.assertEqual(pr.pk, self.pr.pk)
        self.assertEqual(participant.pk, target.pk)

    def test_unknown_token(self):
        with self.assertRaises(NotFound):
            prs.resolve_by_link_token("0" * 64, ctx=self.ctx)

    def test_expired_request_is_persisted_as_expired(self):
        self.ctx.clock.advance(hours=2)

        with self.assertRaises(Expired):
            prs.resolve_by_link_token(self.pr.link_token, ctx=self.ctx)

        self.pr.refresh_from_db()
        self.assertEqual(self.pr.status, "expired")

    def test_completed_request_never_expires(self):
        PaymentRequest.objects.filter(pk=self.pr.pk).update(status="completed")
        self.ctx.clock.advance(hours=2)

        pr, _ = prs.resolve_by_link_token(self.pr.link_token, ctx=self.ctx)

        self.assertEqual(pr.status, "completed")


class ParticipantPaymentTests(TestCase):
    def setUp(self):
        self.owner = CustomUser.objects.create_user("owner@example.com", password="pass12345")
        self.ctx = make_ctx()
        self.pr = prs.create_group_split_request(
            "Dinner", Decimal("90"), "NGN", three_friends(), expires_in_hours=1, allow_tips=False,
            user=self.owner, ctx=self.ctx,
        )
        self.ada, self.bola, self.chidi = self.pr.participants.order_by("id")

    def _pay(self, participant, amount=Decimal("30"), **kwargs):
        return prs.record_participant_payment(self.pr.pk, participant.pk, amount, ctx=self.ctx, **kwargs)

    def _confirm(self, participant, ref):
        return reconcile("success", ref, participant_id=participant.pk, payment_request_id=self.pr.pk, ctx=self.ctx)

    def test_starts_pending_charge(self):
        txn, redirect_url = self._pay(self.ada)

        self.assertEqual(txn.status, "pending")
        self.assertEqual(txn.owner_key, f"participant:{self.ada.pk}")
        self.assertRegex(txn.reference, r"^SPLT_[0-9A-F]{16}$")
        self.assertTrue(redirect_url)
        self.ada.refresh_from_db()
        self.assertFalse(self.ada.has_paid)

    def test_unknown_participant(self):
        with self.assertRaises(NotFound) as ctx:
            prs.record_participant_payment(self.pr.pk, 999999, Decimal("30"), ctx=self.ctx)
        self.assertEqual(ctx.exception.code, "PARTICIPANT_NOT_FOUND")

    def test_participant_of_another_request(self):
        other = prs.create_group_split_request("Other", Decimal("20"), "NGN", three_friends(), ctx=self.ctx)
        with self.assertRaises(ValidationError):
            prs.record_participant_payment(other.pk, self.ada.pk, Decimal("30"), ctx=self.ctx)

    def test_amount_must_match_share(self):
        with self.assertRaises(AmountMismatch):
            self._pay(self.ada, Decimal("29.98"))
        self._pay(self.ada, Decimal("29.99"))

    def test_tips_disallowed(self):
        with self.assertRaises(ValidationError):
            self._pay(self.ada, tip_amount=Decimal("5"))

    def test_already_paid_is_checked_before_expiry(self):
        self._confirm(self.ada, "cs_ada")
        self.ctx.clock.advance(hours=2)

        with self.assertRaises(AlreadyPaid):
            self._pay(self.ada)
        with self.assertRaises(Expired):
            self._pay(self.bola)

    def test_gateway_error_leaves_no_transaction(self):
        gateway = Mock()
        gateway.initialize_charge.side_effect = GatewayError("Card network unavailable")
        ctx = make_ctx(gateway=gateway)

        with self.assertRaises(GatewayError):
            prs.record_participant_payment(self.pr.pk, self.ada.pk, Decimal("30"), ctx=ctx)

        self.assertFalse(Transaction.objects.exists())

    def test_partial_then_complete(self):
        self._confirm(self.ada, "cs_ada")
        self.pr.refresh_from_db()
        self.assertEqual(self.pr.status, "partially_paid")

        self._confirm(self.bola, "cs_bola")
        self._confirm(self.chidi, "cs_chidi")

        self.pr.refresh_from_db()
        self.assertEqual(self.pr.status, "completed")
        self.assertEqual(prs.total_collected(self.pr), Decimal("90.00"))
        self.assertEqual(Wallet.objects.get(user=self.owner).balance, Decimal("90.00"))

    def test_status_converges_for_every_confirmation_order(self):
        for order in permutations(range(3)):
            pr = prs.create_group_split_request("Order", Decimal("30"), "NGN", three_friends(), ctx=self.ctx)
            participants = list(pr.participants.order_by("id"))
            for i in order:
                reconcile("success", f"cs_{pr.pk}_{i}", participant_id=participants[i].pk, ctx=self.ctx)
            pr.refresh_from_db()
            self.assertEqual(pr.status, "completed", order)

    def test_recalculate_keeps_terminal_status(self):
        PaymentRequest.objects.filter(pk=self.pr.pk).update(status="expired")
        Participant.objects.filter(payment_request=self.pr).update(has_paid=True)

        self.assertEqual(prs.recalculate_status(self.pr.pk).status, "expired")

    def test_late_confirmation_on_expired_request_credits_owner(self):
        txn, _ = self._pay(self.ada)
        self.ctx.clock.advance(hours=2)
        prs.get_payment_request(self.pr.pk, ctx=self.ctx)

        reconcile("success", txn.external_reference, participant_id=self.ada.pk, ctx=self.ctx)

        self.pr.refresh_from_db()
        self.assertEqual(self.pr.status, "expired")
        self.assertEqual(Wallet.objects.get(user=self.owner).balance, Decimal("30.00"))

    def test_late_last_confirmation_expires_unread_request(self):
        charges = [self._pay(p)[0] for p in (self.ada, self.bola, self.chidi)]
        for participant, txn in zip((self.ada, self.bola), charges):
            reconcile("success", txn.external_reference, participant_id=participant.pk, ctx=self.ctx)
        self.ctx.clock.advance(hours=2)

        reconcile("success", charges[2].external_reference, participant_id=self.chidi.pk, ctx=self.ctx)

        self.pr.refresh_from_db()
        self.assertEqual(self.pr.status, "expired")
        self.assertEqual(Wallet.objects.get(user=self.owner).balance, Decimal("90.00"))


class SinglePayerPaymentTests(TestCase):
    def setUp(self):
        self.owner = CustomUser.objects.create_user("owner@example.com", password="pass12345")
        self.ctx = make_ctx()
        self.pr = prs.create_single_payer_request("Rent", Decimal("5000"), expires_in_hours=24, user=self.owner, ctx=self.ctx)

    def test_pay_and_confirm(self):
        txn, _ = prs.record_single_payer_payment(
            self.pr.pk, Decimal("5000"), tip_amount=Decimal("500"), payer_email="payer@example.com", ctx=self.ctx
        )
        self.assertEqual(txn.owner_key, f"request:{self.pr.pk}")

        reconcile("success", txn.external_reference, payment_request_id=self.pr.pk, ctx=self.ctx)

        self.pr.refresh_from_db()
        self.assertEqual(self.pr.status, "completed")
        self.assertEqual(Wallet.objects.get(user=self.owner).balance, Decimal("5500.00"))
        with self.assertRaises(AlreadyPaid):
            prs.record_single_payer_payment(self.pr.pk, Decimal("5000"), ctx=self.ctx)

    def test_group_split_rejected(self):
        split = prs.create_group_split_request("Dinner", Decimal("90"), "NGN", three_friends(), ctx=self.ctx)
        with self.assertRaises(ValidationError):
            prs.record_single_payer_payment(split.pk, Decimal("90"), ctx=self.ctx)

    def test_expired(self):
        self.ctx.clock.advance(hours=25)
        with self.assertRaises(Expired):
            prs.record_single_payer_payment(self.pr.pk, Decimal("5000"), ctx=self.ctx)

    def test_amount_mismatch(self):
        with self.assertRaises(AmountMismatch):
            prs.record_single_payer_payment(self.pr.pk, Decimal("4999"), ctx=self.ctx)

    def test_late_confirmation_expires_unread_request(self):
        txn, _ = prs.record_single_payer_payment(self.pr.pk, Decimal("5000"), ctx=self.ctx)
        self.ctx.clock.advance(hours=25)

        reconcile("success", txn.external_reference, payment_request_id=self.pr.pk, ctx=self.ctx)

        self.pr.refresh_from_db()
        self.assertEqual(self.pr.status, "expired")
        self.assertEqual(Wallet.objects.get(user=self.owner).balance, Decimal("5000.00"))


class ReminderTests(TestCase):
    def setUp(self):
        self.owner = CustomUser.objects.create_user("owner@example.com", password="pass12345")
        self.ctx = make_ctx()
        self.pr = prs.create_group_split_request(
            "Dinner", Decimal("90"), "NGN", three_friends(), expires_in_hours=1, user=self.owner, ctx=self.ctx
        )
        self.ada, self.bola, self.chidi = self.pr.participants.order_by("id")
        self.ctx.notifier.reset_mock()

    def test_reminds_unpaid_participants_with_email(self):
        Participant.objects.filter(pk=self.ada.pk).update(has_paid=True)

        result = prs.send_reminders(self.pr.pk, ctx=self.ctx)

        self.assertEqual(result, {"pending": 2, "sent": 1})
        self.ctx.notifier.send_payment_request_notice.assert_called_once()
        kwargs = self.ctx.notifier.send_payment_request_notice.call_args.kwargs
        self.assertEqual(kwargs["recipient"], "bola@example.com")
        self.assertEqual(kwargs["pay_url"], self.bola.participant_link)

    def test_failed_reminder_is_not_counted(self):
        self.ctx.notifier.send_payment_request_notice.side_effect = RuntimeError("smtp down")

        self.assertEqual(prs.send_reminders(self.pr.pk, ctx=self.ctx), {"pending": 3, "sent": 0})

    def test_single_payer_request_has_no_reminders(self):
        pr = prs.create_single_payer_request("Rent", Decimal("5000"), user=self.owner, ctx=self.ctx)
        with self.assertRaises(ValidationError):
            prs.send_reminders(pr.pk, ctx=self.ctx)

    def test_expired_request(self):
        self.ctx.clock.advance(hours=2)
        with self.assertRaises(Expired):
            prs.send_reminders(self.pr.pk, ctx=self.ctx)
        self.ctx.notifier.send_payment_request_notice.assert_not_called()


class QrCodeTests(TestCase):
    def setUp(self):
        self.ctx = make_ctx()
        self.merchant_user = CustomUser.objects.create_user("shop@example.com", password="pass12345")
        self.merchant = merchant_service.register_merchant(self.merchant_user, "Shop")

    def _qr(self, **kwargs):
        kwargs.setdefault("amount", Decimal("1500"))
        return qr_code_service.create_qr_code(self.merchant, "Counter", kwargs.pop("type", "pay_for_me"), ctx=self.ctx, **kwargs)

    def test_create(self):
        qr = self._qr(usage_limit=5)

        self.assertTrue(qr.is_active)
        self.assertEqual(qr.usage_count, 0)
        self.assertEqual(qr.payment_link, f"{settings.PAYMENT_LINK_DOMAIN}/q/{qr.link_token}")
        self.assertEqual(qr.qr_data, "data:image/png;base64,AAAA")

    def test_create_rejects_bad_input(self):
        with self.assertRaises(ValidationError):
            self._qr(type="donation")
        with self.assertRaises(ValidationError):
            self._qr(usage_limit=0)
        with self.assertRaises(ValidationError):
            self._qr(expires_at=self.ctx.now() - timedelta(minutes=1))
        with self.assertRaises(ValidationError):
            self._qr(amount="NaN")

    def test_naive_expiry_is_read_in_default_timezone(self):
        naive = timezone.now().replace(tzinfo=None) + timedelta(hours=1)

        qr = self._qr(expires_at=naive)

        self.assertTrue(timezone.is_aware(qr.expires_at))
        self.assertEqual(qr.expires_at, timezone.make_aware(naive))

    def test_validation_order(self):
        now = self.ctx.now()
        qr = self._qr(usage_limit=1, expires_at=now + timedelta(hours=1))
        QRCode.objects.filter(pk=qr.pk).update(is_active=False, usage_count=1)
        qr.refresh_from_db()
        later = now + timedelta(hours=2)

        with self.assertRaises(QrCodeInactive):
            qr_code_service.validate_for_use(qr, None, now=later)
        qr.is_active = True
        with self.assertRaises(QrCodeExpired):
            qr_code_service.validate_for_use(qr, None, now=later)
        with self.assertRaises(UsageLimitReached):
            qr_code_service.validate_for_use(qr, None, now=now)
        qr.usage_count = 0
        with self.assertRaises(ValidationError):
            qr_code_service.validate_for_use(qr, Decimal("1000"), now=now)
        self.assertEqual(qr_code_service.validate_for_use(qr, None, now=now), Decimal("1500.00"))

    def test_group_split_qr_allows_partial_amount(self):
        qr = self._qr(type="group_split")
        self.assertEqual(qr_code_service.validate_for_use(qr, Decimal("500"), now=self.ctx.now()), Decimal("500.00"))
        with self.assertRaises(ValidationError):
            qr_code_service.validate_for_use(qr, Decimal("1500.01"), now=self.ctx.now())

    def test_open_amount_qr_requires_amount(self):
        qr = self._qr(amount=None)
        with self.assertRaises(ValidationError):
            qr_code_service.validate_for_use(qr, None, now=self.ctx.now())

    def test_start_qr_payment(self):
        qr = self._qr()

        txn, redirect_url = qr_code_service.start_qr_payment(qr.link_token, payer_email="buyer@example.com", ctx=self.ctx)

        self.assertEqual(txn.owner_key, f"qr:{qr.pk}")
        self.assertEqual(txn.user, self.merchant_user)
        self.assertEqual(txn.amount, Decimal("1500.00"))
        self.assertTrue(redirect_url)

    def test_usage_limit_deactivates(self):
        qr = self._qr(usage_limit=2)

        qr_code_service.increment_usage(qr.pk)
        self.assertTrue(QRCode.objects.get(pk=qr.pk).is_active)
        qr = qr_code_service.increment_usage(qr.pk)

        self.assertEqual(qr.usage_count, 2)
        self.assertFalse(qr.is_active)
        with self.assertRaises(QrCodeInactive):
            qr_code_service.start_qr_payment(qr.link_token, ctx=self.ctx)

    def test_stats(self):
        qr = self._qr()
        reconcile("success", "cs_qr_1", qr_code_id=qr.pk, ctx=self.ctx)

        stats = qr_code_service.qr_code_stats(self.merchant)

        self.assertEqual(stats["total_qr_codes"], 1)
        self.assertEqual(stats["total_usage"], 1)
        self.assertEqual(stats["total_revenue"], Decimal("1500.00"))


class ScenarioTests(TestCase):
    """End-to-end money flows, confirmed the way the gateway webhook confirms them."""

    def setUp(self):
        self.ctx = make_ctx()
        self.owner = CustomUser.objects.create_user("organiser@example.com", password="pass12345")

    def test_group_split_paid_by_all(self):
        pr = prs.create_group_split_request(
            "Team lunch", Decimal("100"), "NGN", three_friends(), user=self.owner, ctx=self.ctx
        )
        participants = list(pr.participants.order_by("id"))
        for p in participants:
            txn, _ = prs.record_participant_payment(pr.pk, p.pk, p.amount, ctx=self.ctx)
            reconcile("success", txn.external_reference, participant_id=p.pk, ctx=self.ctx)

        pr.refresh_from_db()
        self.assertEqual(pr.status, "completed")
        self.assertTrue(all(p.has_paid for p in pr.participants.all()))
        self.assertEqual(Wallet.objects.get(user=self.owner).balance, Decimal("100.00"))
        self.assertEqual(Transaction.objects.filter(payment_request=pr, status="completed").count(), 3)

    def test_expired_request_refuses_payment(self):
        pr = prs.create_single_payer_request("Ticket", Decimal("2500"), expires_in_hours=1, user=self.owner, ctx=self.ctx)
        self.ctx.clock.advance(hours=1, seconds=1)

        with self.assertRaises(Expired):
            prs.resolve_by_link_token(pr.link_token, ctx=self.ctx)
        with self.assertRaises(Expired):
            prs.record_single_payer_payment(pr.pk, Decimal("2500"), ctx=self.ctx)

        self.assertFalse(Transaction.objects.exists())
        self.assertFalse(Wallet.objects.filter(user=self.owner).exists())


class PaymentViewTests(TestCase):
    def setUp(self):
        self.ctx = make_ctx()
        self.user = CustomUser.objects.create_user("owner@example.com", password="pass12345")

    def test_create_pay_for_me_requires_login(self):
        response = self.client.post(
            reverse("payments:create_pay_for_me"), data={"description": "x", "amount": "10"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 302)

    def test_create_and_resolve(self):
        self.client.force_login(self.user)
        with patch("payments.services.payment_request_service.get_context", return_value=self.ctx):
            response = self.client.post(
                reverse("payments:create_pay_for_me"),
                data={"description": "Rent", "amount": "5000", "expires_in_hours": 1},
                content_type="application/json",
            )
            self.assertEqual(response.status_code, 201)
            token = PaymentRequest.objects.get().link_token

            response = self.client.get(reverse("payments:resolve_link", args=[token]))
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.json()["data"]["amount"], "5000.00")

            self.ctx.clock.advance(hours=2)
            response = self.client.get(reverse("payments:resolve_link", args=[token]))

        self.assertEqual(response.status_code, 410)
        self.assertEqual(response.json()["error"]["code"], "PAYMENT_EXPIRED")

    def test_qr_codes_need_merchant_role(self):
        self.client.force_login(self.user)
        response = self.client.get(reverse("payments:qr_codes"))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "AUTHORIZATION_ERROR")

    def test_non_finite_amount_is_a_validation_error(self):
        self.client.force_login(self.user)
        response = self.client.post(
            reverse("payments:create_pay_for_me"),
            data={"description": "Rent", "amount": "Infinity"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_send_reminders_is_owner_only(self):
        pr = prs.create_group_split_request("Dinner", Decimal("90"), "NGN", three_friends(), user=self.user, ctx=self.ctx)
        url = reverse("payments:send_reminders", args=[pr.pk])
        stranger = CustomUser.objects.create_user("stranger@example.com", password="pass12345")

        self.client.force_login(stranger)
        self.assertEqual(self.client.post(url).status_code, 404)

        self.client.force_login(self.user)
        with patch("payments.services.payment_request_service.get_context", return_value=self.ctx):
            response = self.client.post(url)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"], {"pending": 3, "sent": 2})

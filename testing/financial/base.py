"""
Helpers for the financial scenario runner. Scenarios run against the configured database
inside a transaction that is always rolled back, with an in-process gateway, so they leave
no rows behind and never reach Stripe.
"""
from contextlib import contextmanager
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from accounts.models import CustomUser
from billing.services.context import ServiceContext
from merchants.services import merchant_service
from payments.services.qr_render import render_qr

SCENARIO_EMAIL_DOMAIN = "scenario.local.test"


def assert_scenarios_enabled():
    if not settings.ALLOW_TEST_SCENARIOS:
        raise Exception("Test scenarios disabled in this environment.")


class ScenarioGateway:
    """Accepts every charge; the external reference is derived from our reference."""

    provider = "scenario"

    def initialize_charge(self, amount, currency, payer_email, reference, metadata):
        return {
            "external_reference": f"cs_scenario_{reference}",
            "redirect_url": f"{settings.PAYMENT_LINK_DOMAIN}/checkout/{reference}",
        }

    def verify_charge(self, reference):
        return {"verified": True, "raw_payload": {"id": reference, "payment_status": "paid"}}


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send_payment_request_notice(self, **kwargs):
        self.sent.append(("payment_request", kwargs))

    def send_payment_confirmation(self, **kwargs):
        self.sent.append(("payment_confirmation", kwargs))


class ScenarioClock:
    def __init__(self, start=None):
        self.current = start or timezone.now()

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)


def scenario_context(clock=None) -> ServiceContext:
    return ServiceContext(
        gateway=ScenarioGateway(),
        notifier=RecordingNotifier(),
        render_qr=render_qr,
        clock=clock or ScenarioClock(),
    )


@contextmanager
def rolled_back():
    """Run the block in a transaction that is rolled back even when it succeeds."""
    with transaction.atomic():
        yield
        transaction.set_rollback(True)


def create_user(name: str, **extra) -> CustomUser:
    return CustomUser.objects.create_user(f"{name}@{SCENARIO_EMAIL_DOMAIN}", password=None, **extra)


def create_approved_merchant(name: str):
    user = create_user(name)
    merchant = merchant_service.register_merchant(user, f"{name} Ventures")
    merchant_service.submit_kyc(merchant)
    merchant_service.review_kyc(merchant, approved=True)
    merchant_service.update_settlement_account(merchant, f"{name} Ventures", "0123456789", "058")
    return merchant


def pay_and_confirm(start_result, ctx, **owner_ids):
    """Confirm a charge started by one of the payment services, as the gateway webhook would."""
    from billing.services.reconciliation_service import reconcile

    txn, _ = start_result
    return reconcile(
        "success",
        txn.external_reference,
        amount=txn.amount,
        tip_amount=txn.tip_amount,
        ctx=ctx,
        **owner_ids,
    )


def expect(condition, message):
    if not condition:
        raise Exception(message)

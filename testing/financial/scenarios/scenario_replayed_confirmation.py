from decimal import Decimal

from billing.models import Transaction, WalletTransaction
from billing.services.reconciliation_service import reconcile
from payments.services.payment_request_service import create_single_payer_request
from testing.financial.base import create_user, expect, rolled_back, scenario_context


def run():
    print("Running: scenario_replayed_confirmation")
    with rolled_back():
        ctx = scenario_context()
        owner = create_user("replay_owner")
        request = create_single_payer_request("Rent share", Decimal("5000"), user=owner, ctx=ctx)
        first = reconcile("success", "cs_scenario_replay", payment_request_id=request.pk, amount=Decimal("5000"), ctx=ctx)
        second = reconcile("paid", "cs_scenario_replay", payment_request_id=request.pk, amount=Decimal("5000"), ctx=ctx)
        expect(first.pk == second.pk, "Replay created a second transaction")
        expect(
            Transaction.objects.filter(external_reference="cs_scenario_replay").count() == 1,
            "Expected exactly one transaction for the replayed confirmation",
        )
        credits = WalletTransaction.objects.filter(user=owner, type="credit").count()
        expect(credits == 1, f"Expected one wallet credit, got {credits}")
    print("✓ Passed")

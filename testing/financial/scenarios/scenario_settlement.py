from decimal import Decimal

from common.errors import InsufficientBalance
from payments.services.payment_request_service import create_single_payer_request, record_single_payer_payment
from settlements.services.settlement_service import compute_available_balance, request_settlement
from testing.financial.base import create_approved_merchant, expect, pay_and_confirm, rolled_back, scenario_context


def run():
    print("Running: scenario_settlement")
    with rolled_back():
        ctx = scenario_context()
        merchant = create_approved_merchant("settling_merchant")
        request = create_single_payer_request("Invoice 001", Decimal("100000"), user=merchant.user, ctx=ctx)
        started = record_single_payer_payment(request.pk, Decimal("100000"), payer_email="payer@example.com", ctx=ctx)
        pay_and_confirm(started, ctx, payment_request_id=request.pk)

        settlement, _ = request_settlement(merchant, Decimal("60000"))
        expect(settlement.fee == Decimal("1200.00"), f"Expected fee 1200.00, got {settlement.fee}")
        expect(settlement.net_amount == Decimal("58800.00"), f"Expected net 58800.00, got {settlement.net_amount}")
        available = compute_available_balance(merchant)
        expect(available == Decimal("40000.00"), f"Expected 40000.00 available, got {available}")
        try:
            request_settlement(merchant, Decimal("45000"))
        except InsufficientBalance:
            print("✓ Passed")
            return
    raise Exception("Expected InsufficientBalance for a settlement above the available balance.")

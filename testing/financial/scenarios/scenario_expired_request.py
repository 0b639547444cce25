from decimal import Decimal

from common.errors import Expired
from payments.services.payment_request_service import (
    create_single_payer_request,
    get_payment_request,
    record_single_payer_payment,
)
from testing.financial.base import ScenarioClock, create_user, expect, rolled_back, scenario_context


def run():
    print("Running: scenario_expired_request")
    with rolled_back():
        clock = ScenarioClock()
        ctx = scenario_context(clock)
        request = create_single_payer_request(
            "Fuel money", Decimal("25000"), expires_in_hours=1, user=create_user("expiry_owner"), ctx=ctx
        )
        clock.advance(hours=2)
        status = get_payment_request(request.pk, ctx=ctx).status
        expect(status == "expired", f"Expected expired after 2 hours, got {status}")
        try:
            record_single_payer_payment(request.pk, Decimal("25000"), ctx=ctx)
        except Expired:
            print("✓ Passed")
            return
    raise Exception("Expected Expired for a late payment.")

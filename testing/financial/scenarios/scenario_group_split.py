from decimal import Decimal

from payments.services.payment_request_service import (
    create_group_split_request,
    get_payment_request,
    record_participant_payment,
)
from testing.financial.base import create_user, expect, pay_and_confirm, rolled_back, scenario_context


def run():
    print("Running: scenario_group_split")
    with rolled_back():
        ctx = scenario_context()
        owner = create_user("split_owner")
        request = create_group_split_request(
            "Team dinner",
            Decimal("75000"),
            "NGN",
            [{"name": "Ada"}, {"name": "Bola"}, {"name": "Chidi"}],
            split_type="equal",
            user=owner,
            ctx=ctx,
        )
        participants = list(request.participants.all())
        expect(
            [p.amount for p in participants] == [Decimal("25000.00")] * 3,
            f"Expected three shares of 25000.00, got {[p.amount for p in participants]}",
        )
        for participant, expected_status in zip(participants, ["partially_paid", "partially_paid", "completed"]):
            started = record_participant_payment(request.pk, participant.pk, participant.amount, ctx=ctx)
            pay_and_confirm(started, ctx, participant_id=participant.pk)
            status = get_payment_request(request.pk, ctx=ctx).status
            expect(status == expected_status, f"Expected {expected_status} after {participant.name} paid, got {status}")
        expect(owner.wallet.balance == Decimal("75000.00"), f"Owner wallet should hold 75000.00, got {owner.wallet.balance}")
    print("✓ Passed")

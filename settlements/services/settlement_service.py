"""
Settlement engine: merchant payouts against the available balance.

available = sum(completed transactions credited to the merchant's user)
            - sum(pending and processing settlements)

It is always computed from the database. request_settlement() holds the merchant row
lock while it checks and inserts, so concurrent requests for the same merchant are
serialized and the second one sees the first one's pending settlement.
"""
import logging
import secrets
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Min, Q, Sum
from django.utils import timezone

from billing import config
from billing.models import Transaction
from common.errors import (
    Conflict,
    InsufficientBalance,
    KycNotApproved,
    NotFound,
    ValidationError,
)
from merchants.models import Merchant
from merchants.services.merchant_service import bank_name
from settlements.models import Settlement

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _completed_transactions(merchant):
    return Transaction.objects.filter(user_id=merchant.user_id, status="completed")


def _in_flight_total(merchant) -> Decimal:
    total = Settlement.objects.filter(
        merchant_id=merchant.pk, status__in=Settlement.IN_FLIGHT_STATUSES
    ).aggregate(total=Sum("amount"))["total"]
    return total or ZERO


def compute_available_balance(merchant) -> Decimal:
    revenue = _completed_transactions(merchant).aggregate(total=Sum("amount"))["total"] or ZERO
    return revenue - _in_flight_total(merchant)


def mask_account_number(number: str) -> str:
    return f"****{(number or '')[-4:]}"


def estimated_completion(now):
    """Next business day at the settlement cutoff hour. Advisory only."""
    day = now + timedelta(days=1)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day.replace(hour=config.SETTLEMENT_CUTOFF_HOUR, minute=0, second=0, microsecond=0)


def _new_reference() -> str:
    return f"{config.SETTLEMENT_PREFIX}{secrets.token_hex(config.SETTLEMENT_REFERENCE_BYTES).upper()}"


@transaction.atomic()
def request_settlement(merchant, amount, description: str = None, now=None):
    """
    Create a pending manual settlement. Checks, in order: KYC approved, amount > 0,
    bank account configured, amount <= available balance.
    Returns (settlement, estimated_completion).
    """
    now = now or timezone.now()
    merchant = Merchant.objects.select_for_update().get(pk=merchant.pk)
    if not merchant.is_kyc_approved:
        raise KycNotApproved("KYC must be approved before requesting settlement")
    amount = config.quantize(amount)
    if amount <= 0:
        raise ValidationError("Invalid settlement amount")
    if not merchant.has_settlement_account:
        raise ValidationError("No bank account configured")
    available = compute_available_balance(merchant)
    if amount > available:
        raise InsufficientBalance(f"Amount exceeds available balance of {available}")

    fee = config.quantize(amount * merchant.fee_rate(settings.SETTLEMENT_FEE_RATE))
    completed = _completed_transactions(merchant).aggregate(count=Count("id"), first=Min("created_at"))
    bank_account = {
        "account_name": merchant.settlement_account_name,
        "account_number": merchant.settlement_account_number,
        "masked_account_number": mask_account_number(merchant.settlement_account_number),
        "bank_code": merchant.settlement_bank_code,
        "bank_name": bank_name(merchant.settlement_bank_code),
    }
    try:
        with transaction.atomic():
            settlement = Settlement.objects.create(
                merchant=merchant,
                amount=amount,
                fee=fee,
                net_amount=amount - fee,
                status="pending",
                bank_account=bank_account,
                reference=_new_reference(),
                transaction_count=completed["count"],
                settlement_type="manual",
                description=description or "Manual settlement request",
                period_start=completed["first"],
                period_end=now,
            )
    except IntegrityError:
        raise Conflict("Settlement reference collision, please retry")
    logger.info(
        "request_settlement: merchant=%s ref=%s amount=%s fee=%s available_before=%s",
        merchant.pk, settlement.reference, amount, fee, available,
    )
    return settlement, estimated_completion(now)


def _locked(settlement_id) -> Settlement:
    settlement = Settlement.objects.select_for_update().filter(pk=settlement_id).first()
    if settlement is None:
        raise NotFound("Settlement not found")
    return settlement


def _transition(settlement_id, expected: str, new_status: str, **fields) -> Settlement:
    with transaction.atomic():
        settlement = _locked(settlement_id)
        if settlement.status != expected:
            raise ValidationError(f"Settlement is {settlement.status}, expected {expected}")
        settlement.status = new_status
        for name, value in fields.items():
            setattr(settlement, name, value)
        settlement.save(update_fields=["status", "updated_at", *fields.keys()])
    logger.info("settlement: %s %s -> %s", settlement.reference, expected, new_status)
    return settlement


def approve_settlement(settlement_id, now=None) -> Settlement:
    return _transition(settlement_id, "pending", "processing", processed_at=now or timezone.now())


def reject_settlement(settlement_id, reason: str = None) -> Settlement:
    return _transition(
        settlement_id, "pending", "failed",
        failure_reason=reason or "Settlement rejected by admin",
    )


def complete_settlement(settlement_id, bank_reference: str = None, now=None) -> Settlement:
    return _transition(
        settlement_id, "processing", "completed",
        bank_reference=bank_reference or "",
        completed_at=now or timezone.now(),
    )


def fail_settlement(settlement_id, reason: str) -> Settlement:
    return _transition(settlement_id, "processing", "failed", failure_reason=reason or "Bank transfer failed")


def serialize_settlement(settlement: Settlement) -> dict:
    return {
        "id": settlement.pk,
        "reference": settlement.reference,
        "amount": str(settlement.amount),
        "fee": str(settlement.fee),
        "net_amount": str(settlement.net_amount),
        "status": settlement.status,
        "bank_account": settlement.bank_account_display,
        "transaction_count": settlement.transaction_count,
        "initiated_at": settlement.created_at.isoformat() if settlement.created_at else None,
        "completed_at": settlement.completed_at.isoformat() if settlement.completed_at else None,
        "failure_reason": settlement.failure_reason or None,
    }


def merchant_settlement_stats(merchant, now=None) -> dict:
    now = now or timezone.now()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    txns = Transaction.objects.filter(user_id=merchant.user_id).aggregate(
        total=Count("id"),
        completed=Count("id", filter=Q(status="completed")),
        revenue=Sum("amount", filter=Q(status="completed")),
        pending_amount=Sum("amount", filter=Q(status="pending")),
    )
    history = Settlement.objects.filter(merchant_id=merchant.pk)[:10]
    return {
        "total_transactions": txns["total"],
        "completed_transactions": txns["completed"],
        "total_revenue": txns["revenue"] or ZERO,
        "pending_amount": txns["pending_amount"] or ZERO,
        "available_balance": compute_available_balance(merchant),
        "pending_settlement": _in_flight_total(merchant),
        "today_settlements": Settlement.objects.filter(
            merchant_id=merchant.pk, status="completed", completed_at__gte=start_of_day
        ).count(),
        "settlement_history": [serialize_settlement(s) for s in history],
    }

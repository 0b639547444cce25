"""
Payment request engine: pay-for-me and group split requests.

State machine: pending -> partially_paid -> completed, and pending|partially_paid -> expired.
Expiry is lazy: is_expired() is evaluated at every read and the row is flipped to
expired on first read past expires_at. completed and expired are terminal.

Charges started here stay pending until reconciliation confirms them
(billing.services.reconciliation_service), which calls recalculate_status().
"""
import logging
import math
import secrets
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from billing import config
from billing.models import Transaction
from billing.services.charge_service import start_charge
from billing.services.context import get_context
from common.errors import (
    AlreadyPaid,
    AmountMismatch,
    Conflict,
    Expired,
    NotFound,
    ValidationError,
)
from payments.models import Participant, PaymentRequest

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("pending", "partially_paid")


def is_expired(entity, now) -> bool:
    """True when entity (PaymentRequest or QRCode) has an expiry in the past and is not completed."""
    expires_at = getattr(entity, "expires_at", None)
    if expires_at is None:
        return False
    if getattr(entity, "status", None) == "completed":
        return False
    return now > expires_at


def expire_if_due(payment_request: PaymentRequest, now) -> PaymentRequest:
    if payment_request.status in OPEN_STATUSES and is_expired(payment_request, now):
        updated = PaymentRequest.objects.filter(
            pk=payment_request.pk, status__in=OPEN_STATUSES
        ).update(status="expired", updated_at=now)
        if updated:
            logger.info("payment_request: %s expired at %s", payment_request.pk, payment_request.expires_at)
        payment_request.refresh_from_db(fields=["status", "updated_at"])
    return payment_request


def _new_link_token() -> str:
    return secrets.token_hex(config.LINK_TOKEN_BYTES)


def _link(path: str, token: str) -> str:
    return f"{settings.PAYMENT_LINK_DOMAIN}/{path}/{token}"


def _expires_at(now, expires_in_hours):
    if expires_in_hours is None:
        return None
    try:
        hours = float(expires_in_hours)
    except (TypeError, ValueError):
        raise ValidationError("expires_in_hours must be a number")
    if not math.isfinite(hours) or hours <= 0:
        raise ValidationError("expires_in_hours must be greater than zero")
    return now + timedelta(hours=hours)


def _tip(tip_amount) -> Decimal:
    tip = config.quantize(tip_amount or 0)
    if tip < 0:
        raise ValidationError("Tip amount cannot be negative")
    return tip


def _send_notice(notifier, **kwargs) -> bool:
    try:
        return bool(notifier.send_payment_request_notice(**kwargs))
    except Exception as e:
        logger.warning("payment_request: notice to %s failed: %s", kwargs.get("recipient"), e)
        return False


# ---- creation ----

def create_single_payer_request(
    description: str,
    amount,
    currency: str = None,
    expires_in_hours=None,
    allow_tips: bool = True,
    user=None,
    qr_code=None,
    ctx=None,
) -> PaymentRequest:
    ctx = get_context(ctx)
    if not (description or "").strip():
        raise ValidationError("Description is required")
    amount = config.quantize(amount)
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    now = ctx.now()
    token = _new_link_token()
    link = _link("p", token)
    try:
        with transaction.atomic():
            payment_request = PaymentRequest.objects.create(
                user=user,
                type="pay_for_me",
                description=description.strip(),
                amount=amount,
                currency=currency or settings.DEFAULT_CURRENCY,
                expires_at=_expires_at(now, expires_in_hours),
                link_token=token,
                payment_link=link,
                qr_code_url=ctx.render_qr(link),
                qr_code=qr_code,
                allow_tips=allow_tips,
            )
    except IntegrityError:
        raise Conflict("Payment link token already in use")
    logger.info("create_single_payer_request: id=%s amount=%s %s", payment_request.pk, amount, payment_request.currency)
    return payment_request


def split_equally(total: Decimal, count: int) -> list:
    """count shares rounded down to the cent; the last share absorbs the remainder."""
    share = config.quantize_down(total / count)
    shares = [share] * (count - 1)
    shares.append(total - share * (count - 1))
    return shares


def _participant_amounts(total: Decimal, participants: list, split_type: str) -> list:
    if split_type == "equal":
        amounts = split_equally(total, len(participants))
        if sum(amounts) != total:
            raise ValidationError("Equal split does not add up to the total amount")
        return amounts
    if split_type != "custom":
        raise ValidationError("split_type must be 'equal' or 'custom'")
    amounts = []
    for p in participants:
        if p.get("amount") is None:
            raise ValidationError("Each participant needs an amount for a custom split")
        amount = config.quantize(p["amount"])
        if amount <= 0:
            raise ValidationError("Participant amounts must be greater than zero")
        amounts.append(amount)
    if not config.amounts_match(sum(amounts), total):
        raise AmountMismatch(f"Participant amounts add up to {sum(amounts)}, expected {total}")
    return amounts


def create_group_split_request(
    description: str,
    total_amount,
    currency: str,
    participants: list,
    split_type: str = "equal",
    expires_in_hours=None,
    allow_tips: bool = True,
    user=None,
    ctx=None,
) -> PaymentRequest:
    """
    participants: list of {"name", "email"?, "phone"?, "amount"?}; amount is required for custom splits.
    Nothing is written unless the split is valid. Participants with an email get a notice after commit.
    """
    ctx = get_context(ctx)
    if not (description or "").strip():
        raise ValidationError("Description is required")
    total = config.quantize(total_amount)
    if total <= 0:
        raise ValidationError("Total amount must be greater than zero")
    participants = list(participants or [])
    if len(participants) < 2:
        raise ValidationError("A group split needs at least 2 participants")
    for p in participants:
        if not (p.get("name") or "").strip():
            raise ValidationError("Each participant needs a name")
    amounts = _participant_amounts(total, participants, split_type)

    now = ctx.now()
    expires_at = _expires_at(now, expires_in_hours)
    currency = currency or settings.DEFAULT_CURRENCY
    token = _new_link_token()
    link = _link("p", token)
    try:
        with transaction.atomic():
            payment_request = PaymentRequest.objects.create(
                user=user,
                type="group_split",
                description=description.strip(),
                amount=total,
                total_amount=total,
                split_type=split_type,
                currency=currency,
                expires_at=expires_at,
                link_token=token,
                payment_link=link,
                qr_code_url=ctx.render_qr(link),
                allow_tips=allow_tips,
            )
            rows = []
            for p, amount in zip(participants, amounts):
                participant_token = _new_link_token()
                rows.append(Participant.objects.create(
                    payment_request=payment_request,
                    name=p["name"].strip(),
                    email=(p.get("email") or "").strip(),
                    phone=(p.get("phone") or "").strip(),
                    amount=amount,
                    link_token=participant_token,
                    participant_link=_link("split", participant_token),
                ))
    except IntegrityError:
        raise Conflict("Payment link token already in use")

    for participant in rows:
        if participant.email:
            transaction.on_commit(lambda p=participant: _send_notice(
                ctx.notifier,
                recipient=p.email,
                amount=p.amount,
                currency=currency,
                description=payment_request.description,
                pay_url=p.participant_link,
                expires_at=expires_at,
            ))
    logger.info(
        "create_group_split_request: id=%s total=%s participants=%s split=%s",
        payment_request.pk, total, len(rows), split_type,
    )
    return payment_request


# ---- reads ----

def resolve_by_link_token(token: str, now=None, ctx=None):
    """
    Find the request addressed by a parent or participant link token.
    Returns (payment_request, participant); participant is None for a parent token.
    """
    participant = None
    payment_request = PaymentRequest.objects.filter(link_token=token).first() if token else None
    if payment_request is None and token:
        participant = Participant.objects.select_related("payment_request").filter(link_token=token).first()
        if participant is not None:
            payment_request = participant.payment_request
    if payment_request is None:
        raise NotFound("Payment link not found", code="PAYMENT_REQUEST_NOT_FOUND")
    now = now or get_context(ctx).now()
    expire_if_due(payment_request, now)
    if payment_request.status == "expired":
        raise Expired()
    return payment_request, participant


def get_payment_request(payment_request_id, now=None, ctx=None) -> PaymentRequest:
    payment_request = PaymentRequest.objects.filter(pk=payment_request_id).first()
    if payment_request is None:
        raise NotFound("Payment request not found", code="PAYMENT_REQUEST_NOT_FOUND")
    return expire_if_due(payment_request, now or get_context(ctx).now())


def total_collected(payment_request) -> Decimal:
    total = Transaction.objects.filter(
        payment_request_id=getattr(payment_request, "pk", payment_request),
        status="completed",
    ).aggregate(total=Sum("amount"))["total"]
    return total or Decimal("0.00")


def payment_history(user, status: str = None, type: str = None):
    qs = PaymentRequest.objects.filter(user=user).prefetch_related("participants")
    if status:
        qs = qs.filter(status=status)
    if type:
        qs = qs.filter(type=type)
    return qs


# ---- payments ----

def record_participant_payment(
    payment_request_id,
    participant_id,
    amount,
    tip_amount=0,
    payment_method: str = None,
    ctx=None,
):
    """
    Start a participant's payment. Returns (transaction, redirect_url); the transaction
    stays pending until the gateway confirms it.
    """
    ctx = get_context(ctx)
    participant = Participant.objects.select_related("payment_request").filter(pk=participant_id).first()
    if participant is None:
        raise NotFound("Participant not found", code="PARTICIPANT_NOT_FOUND")
    payment_request = participant.payment_request
    if str(payment_request.pk) != str(payment_request_id):
        raise ValidationError("Participant does not belong to this payment request")
    if participant.has_paid:
        raise AlreadyPaid("This participant has already paid")
    expire_if_due(payment_request, ctx.now())
    if payment_request.status == "expired":
        raise Expired("This payment has expired")
    amount = config.quantize(amount)
    if not config.amounts_match(amount, participant.amount):
        raise AmountMismatch(f"Amount must be exactly {participant.amount} {payment_request.currency}")
    tip = _tip(tip_amount)
    if tip > 0 and not payment_request.allow_tips:
        raise ValidationError("Tips are not allowed for this payment request")

    return start_charge(
        ctx,
        amount=amount,
        tip_amount=tip,
        currency=payment_request.currency,
        description=payment_request.description,
        beneficiary=payment_request.user,
        payment_request=payment_request,
        participant=participant,
        payer_name=participant.name,
        payer_email=participant.email,
        payer_phone=participant.phone,
        payment_method=payment_method,
    )


def record_single_payer_payment(
    payment_request_id,
    amount,
    tip_amount=0,
    payer_name: str = None,
    payer_email: str = None,
    payer_phone: str = None,
    payment_method: str = None,
    ctx=None,
):
    """Start the payment of a pay-for-me request. Returns (transaction, redirect_url)."""
    ctx = get_context(ctx)
    payment_request = get_payment_request(payment_request_id, now=ctx.now())
    if payment_request.type != "pay_for_me":
        raise ValidationError("Group split payments must be made per participant")
    if payment_request.status == "completed":
        raise AlreadyPaid()
    if payment_request.status == "expired":
        raise Expired("This payment has expired")
    amount = config.quantize(amount)
    if not config.amounts_match(amount, payment_request.amount):
        raise AmountMismatch(f"Amount must be exactly {payment_request.amount} {payment_request.currency}")
    tip = _tip(tip_amount)
    if tip > 0 and not payment_request.allow_tips:
        raise ValidationError("Tips are not allowed for this payment request")

    return start_charge(
        ctx,
        amount=amount,
        tip_amount=tip,
        currency=payment_request.currency,
        description=payment_request.description,
        beneficiary=payment_request.user,
        payment_request=payment_request,
        qr_code=payment_request.qr_code,
        payer_name=payer_name or "",
        payer_email=payer_email or "",
        payer_phone=payer_phone or "",
        payment_method=payment_method,
    )


# ---- state machine ----

@transaction.atomic()
def recalculate_status(payment_request_id, now=None) -> PaymentRequest:
    """
    Recount paid participants from the database under the request row lock and move
    the request to pending / partially_paid / completed. Terminal states are kept, and
    a request past expires_at is expired before the recount.
    """
    payment_request = PaymentRequest.objects.select_for_update().get(pk=payment_request_id)
    expire_if_due(payment_request, now or timezone.now())
    if payment_request.is_terminal:
        return payment_request
    participants = Participant.objects.filter(payment_request_id=payment_request.pk)
    total = participants.count()
    paid = participants.filter(has_paid=True).count()
    if total and paid == total:
        new_status = "completed"
    elif paid:
        new_status = "partially_paid"
    else:
        new_status = "pending"
    if new_status != payment_request.status:
        payment_request.status = new_status
        payment_request.save(update_fields=["status", "updated_at"])
        logger.info("recalculate_status: request=%s %s/%s paid -> %s", payment_request.pk, paid, total, new_status)
    return payment_request


# ---- reminders ----

def send_reminders(payment_request_id, ctx=None) -> dict:
    """
    Re-send the payment notice to every unpaid participant with an email.
    Returns {"pending": unpaid participants, "sent": notices delivered}; failed sends are logged.
    """
    ctx = get_context(ctx)
    payment_request = get_payment_request(payment_request_id, now=ctx.now())
    if payment_request.type != "group_split":
        raise ValidationError("Reminders are only sent for group splits")
    if payment_request.status == "expired":
        raise Expired("This payment has expired")
    unpaid = list(payment_request.participants.filter(has_paid=False).order_by("id"))
    sent = 0
    for participant in unpaid:
        if not participant.email:
            continue
        if _send_notice(
            ctx.notifier,
            recipient=participant.email,
            amount=participant.amount,
            currency=payment_request.currency,
            description=payment_request.description,
            pay_url=participant.participant_link,
            expires_at=payment_request.expires_at,
        ):
            sent += 1
    logger.info("send_reminders: request=%s pending=%s sent=%s", payment_request.pk, len(unpaid), sent)
    return {"pending": len(unpaid), "sent": sent}

"""
Merchant QR codes: bounded-use, expirable payment links.

increment_usage() is the only writer of usage_count; it runs once per reconciled
payment and deactivates the code in the same update when the limit is reached.
"""
import logging
import secrets

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from billing import config
from billing.models import Transaction
from billing.services.charge_service import start_charge
from billing.services.context import get_context
from common.errors import (
    Conflict,
    NotFound,
    QrCodeExpired,
    QrCodeInactive,
    UsageLimitReached,
    ValidationError,
)
from payments.models import QRCode
from payments.services.payment_request_service import is_expired

logger = logging.getLogger(__name__)


def create_qr_code(
    merchant,
    name: str,
    type: str,
    amount=None,
    description: str = None,
    usage_limit: int = None,
    expires_at=None,
    currency: str = None,
    ctx=None,
) -> QRCode:
    ctx = get_context(ctx)
    if not (name or "").strip():
        raise ValidationError("Name is required")
    if type not in ("pay_for_me", "group_split"):
        raise ValidationError("type must be 'pay_for_me' or 'group_split'")
    if amount is not None:
        amount = config.quantize(amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")
    if usage_limit is not None and int(usage_limit) < 1:
        raise ValidationError("usage_limit must be at least 1")
    if expires_at is not None and timezone.is_naive(expires_at):
        expires_at = timezone.make_aware(expires_at)
    if expires_at is not None and expires_at <= ctx.now():
        raise ValidationError("expires_at must be in the future")

    token = secrets.token_hex(config.LINK_TOKEN_BYTES)
    link = f"{settings.PAYMENT_LINK_DOMAIN}/q/{token}"
    try:
        with transaction.atomic():
            qr = QRCode.objects.create(
                merchant=merchant,
                name=name.strip(),
                type=type,
                amount=amount,
                currency=currency or merchant.user.preferred_currency or settings.DEFAULT_CURRENCY,
                description=description or "",
                usage_limit=usage_limit,
                expires_at=expires_at,
                link_token=token,
                payment_link=link,
                qr_data=ctx.render_qr(link),
            )
    except IntegrityError:
        raise Conflict("QR link token already in use")
    logger.info("create_qr_code: qr=%s merchant=%s type=%s", qr.pk, merchant.pk, type)
    return qr


def validate_for_use(qr: QRCode, amount, now=None):
    """
    Checks in order: active, not expired, under usage limit, then the amount.
    Returns the quantized amount.
    """
    if not qr.is_active:
        raise QrCodeInactive()
    if is_expired(qr, now or get_context().now()):
        raise QrCodeExpired()
    if qr.usage_limit is not None and qr.usage_count >= qr.usage_limit:
        raise UsageLimitReached()

    if amount is None:
        if qr.amount is None:
            raise ValidationError("Amount is required")
        return qr.amount
    amount = config.quantize(amount)
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    if qr.amount is not None:
        if qr.type == "pay_for_me" and not config.amounts_match(amount, qr.amount):
            raise ValidationError(f"Amount must be {qr.amount} {qr.currency}")
        if qr.type == "group_split" and amount > qr.amount:
            raise ValidationError(f"Amount cannot exceed {qr.amount} {qr.currency}")
    return amount


def get_by_link_token(link_token: str) -> QRCode:
    qr = QRCode.objects.select_related("merchant__user").filter(link_token=link_token).first() if link_token else None
    if qr is None:
        raise NotFound("QR code not found", code="QR_CODE_NOT_FOUND")
    return qr


def start_qr_payment(
    link_token: str,
    amount=None,
    tip_amount=0,
    payer_name: str = None,
    payer_email: str = None,
    payer_phone: str = None,
    payment_method: str = None,
    ctx=None,
):
    """Validate the QR code and start a charge owned by it. Returns (transaction, redirect_url)."""
    ctx = get_context(ctx)
    qr = get_by_link_token(link_token)
    amount = validate_for_use(qr, amount, now=ctx.now())
    tip = config.quantize(tip_amount or 0)
    if tip < 0:
        raise ValidationError("Tip amount cannot be negative")
    return start_charge(
        ctx,
        amount=amount,
        tip_amount=tip,
        currency=qr.currency,
        description=qr.description or qr.name,
        beneficiary=qr.merchant.user,
        qr_code=qr,
        payer_name=payer_name or "",
        payer_email=payer_email or "",
        payer_phone=payer_phone or "",
        payment_method=payment_method,
    )


@transaction.atomic()
def increment_usage(qr_code_id) -> QRCode:
    qr = QRCode.objects.select_for_update().get(pk=qr_code_id)
    qr.usage_count += 1
    update_fields = ["usage_count", "updated_at"]
    if qr.usage_limit is not None and qr.usage_count >= qr.usage_limit and qr.is_active:
        qr.is_active = False
        update_fields.append("is_active")
        logger.info("increment_usage: qr=%s reached limit %s, deactivated", qr.pk, qr.usage_limit)
    qr.save(update_fields=update_fields)
    return qr


def deactivate_qr_code(qr: QRCode) -> QRCode:
    QRCode.objects.filter(pk=qr.pk).update(is_active=False)
    qr.is_active = False
    return qr


def qr_code_stats(merchant) -> dict:
    codes = QRCode.objects.filter(merchant=merchant).aggregate(
        total=Count("id"),
        active=Count("id", filter=Q(is_active=True)),
        total_scans=Sum("usage_count"),
    )
    revenue = Transaction.objects.filter(
        qr_code__merchant=merchant, status="completed"
    ).aggregate(total=Sum("amount"), count=Count("id"))
    return {
        "total_qr_codes": codes["total"],
        "active_qr_codes": codes["active"],
        "total_usage": codes["total_scans"] or 0,
        "completed_payments": revenue["count"],
        "total_revenue": revenue["total"] or config.quantize(0),
    }

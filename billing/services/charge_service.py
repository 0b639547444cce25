"""
Outgoing charges: ask the gateway to start a payment and record it as a pending Transaction.
A GatewayError leaves no local row behind.
"""
import logging
import secrets

from django.db import IntegrityError, transaction

from billing import config
from billing.models import Transaction
from common.errors import Conflict

logger = logging.getLogger(__name__)


def new_charge_reference() -> str:
    return f"{config.CHARGE_PREFIX}{secrets.token_hex(8).upper()}"


def start_charge(
    ctx,
    *,
    amount,
    tip_amount,
    currency: str,
    description: str,
    beneficiary=None,
    payment_request=None,
    participant=None,
    qr_code=None,
    payer_name: str = "",
    payer_email: str = "",
    payer_phone: str = "",
    payment_method: str = "",
):
    """
    Initialize the gateway charge for amount + tip and store the pending Transaction.
    Returns (transaction, redirect_url).
    """
    reference = new_charge_reference()
    owner_key = Transaction.owner_key_for(participant=participant, payment_request=payment_request, qr_code=qr_code)
    metadata = {
        "reference": reference,
        "description": (description or "")[:200],
        "payment_request_id": payment_request.pk if payment_request else None,
        "participant_id": participant.pk if participant else None,
        "qr_code_id": qr_code.pk if qr_code else None,
        "tip_amount": str(tip_amount),
        "customer_name": payer_name or None,
        "customer_phone": payer_phone or None,
    }
    result = ctx.gateway.initialize_charge(amount + tip_amount, currency, payer_email, reference, metadata)
    try:
        with transaction.atomic():
            txn = Transaction.objects.create(
                reference=reference,
                external_reference=result["external_reference"],
                owner_key=owner_key,
                payment_request=payment_request,
                participant=participant,
                qr_code=qr_code,
                user=beneficiary,
                customer_name=payer_name or "",
                customer_email=payer_email or "",
                customer_phone=payer_phone or "",
                amount=amount,
                tip_amount=tip_amount,
                currency=currency,
                payment_method=payment_method or "",
                payment_provider=getattr(ctx.gateway, "provider", "stripe"),
                status="pending",
                gateway_response=result,
            )
    except IntegrityError:
        raise Conflict("This charge has already been recorded")
    logger.info(
        "start_charge: ref=%s external=%s owner=%s amount=%s tip=%s",
        reference, txn.external_reference, owner_key, amount, tip_amount,
    )
    return txn, result.get("redirect_url")

"""
Reconciliation: turn a gateway confirmation into durable state exactly once.

Flow for a success confirmation:
  1. the Transaction for (external_reference, owner_key) is created or flipped to
     completed and committed on its own;
  2. the effects (wallet credit, request/participant state, QR usage) run in a second
     atomic block guarded by Transaction.effects_applied_at.

If step 2 fails the error is recorded on the Transaction and retried; whatever is still
pending afterwards is picked up by retry_pending_effects() (manage.py retry_reconciliations)
or by any replay of the same confirmation. The payer never sees those failures.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import F, Q

from billing import config
from billing.models import Transaction
from billing.services import wallet_service
from billing.services.context import get_context
from common.errors import InvalidStatus, NotFound, PaymentFailed, ValidationError
from payments.models import Participant, PaymentRequest, QRCode
from payments.services.payment_request_service import OPEN_STATUSES, expire_if_due, recalculate_status
from payments.services.qr_code_service import increment_usage

logger = logging.getLogger(__name__)


@dataclass
class Owner:
    payment_request: Optional[PaymentRequest] = None
    participant: Optional[Participant] = None
    qr_code: Optional[QRCode] = None
    beneficiary: object = None

    @property
    def key(self) -> str:
        return Transaction.owner_key_for(
            participant=self.participant,
            payment_request=self.payment_request,
            qr_code=self.qr_code,
        )

    def expected_amount(self):
        if self.participant is not None:
            return self.participant.amount
        if self.payment_request is not None:
            return self.payment_request.amount
        return self.qr_code.amount


def normalize_status(status) -> str:
    """Map a gateway status token to "completed"; failures raise PaymentFailed, unknown tokens InvalidStatus."""
    token = str(status or "").strip().lower()
    if token in config.FAILURE_TOKENS:
        raise PaymentFailed()
    if token in config.SUCCESS_TOKENS:
        return "completed"
    raise InvalidStatus(f"Unrecognized payment status: {status}")


def _payer_user(email):
    if not email:
        return None
    return get_user_model().objects.filter(email__iexact=email).first()


def resolve_owner(payment_request_id=None, participant_id=None, qr_code_id=None, payer_email=None) -> Owner:
    owner = Owner()
    if participant_id:
        participant = (
            Participant.objects.select_related("payment_request__user", "payment_request__qr_code__merchant__user")
            .filter(pk=participant_id)
            .first()
        )
        if participant is None:
            raise NotFound("Participant not found", code="PARTICIPANT_NOT_FOUND")
        if payment_request_id and str(participant.payment_request_id) != str(payment_request_id):
            raise ValidationError("Participant does not belong to this payment request")
        owner.participant = participant
        owner.payment_request = participant.payment_request
        owner.qr_code = owner.payment_request.qr_code
    elif payment_request_id:
        payment_request = (
            PaymentRequest.objects.select_related("user", "qr_code__merchant__user")
            .filter(pk=payment_request_id)
            .first()
        )
        if payment_request is None:
            raise NotFound("Payment request not found", code="PAYMENT_REQUEST_NOT_FOUND")
        owner.payment_request = payment_request
        owner.qr_code = payment_request.qr_code
    elif qr_code_id:
        qr = QRCode.objects.select_related("merchant__user").filter(pk=qr_code_id).first()
        if qr is None:
            raise NotFound("QR code not found", code="QR_CODE_NOT_FOUND")
        owner.qr_code = qr
    else:
        raise ValidationError("A payment request, participant or QR code is required")

    if owner.payment_request is not None and owner.payment_request.user_id:
        owner.beneficiary = owner.payment_request.user
    elif owner.qr_code is not None:
        owner.beneficiary = owner.qr_code.merchant.user
    else:
        owner.beneficiary = _payer_user(payer_email)
    return owner


def _record_completed(owner, external_reference, amount, tip_amount, payer, payment_method, provider, raw_payload):
    """Create or complete the Transaction row. Returns (txn, newly_completed)."""
    with transaction.atomic():
        txn = (
            Transaction.objects.select_for_update()
            .filter(external_reference=external_reference, owner_key=owner.key)
            .first()
        )
        if txn is None:
            if amount is None:
                amount = owner.expected_amount()
            if amount is None:
                raise ValidationError("Amount is required")
            try:
                with transaction.atomic():
                    txn = Transaction.objects.create(
                        external_reference=external_reference,
                        owner_key=owner.key,
                        payment_request=owner.payment_request,
                        participant=owner.participant,
                        qr_code=owner.qr_code,
                        user=owner.beneficiary,
                        customer_name=payer.get("name") or "",
                        customer_email=payer.get("email") or "",
                        customer_phone=payer.get("phone") or "",
                        amount=config.quantize(amount),
                        tip_amount=tip_amount,
                        currency=_currency(owner),
                        payment_method=payment_method or "",
                        payment_provider=provider,
                        status="completed",
                        gateway_response=raw_payload or {},
                    )
                logger.info("reconcile: created completed txn=%s ext=%s owner=%s", txn.pk, external_reference, owner.key)
                return txn, True
            except IntegrityError:
                # a concurrent confirmation inserted it first
                txn = Transaction.objects.select_for_update().get(
                    external_reference=external_reference, owner_key=owner.key
                )

        if txn.status == "completed" or txn.status == "refunded":
            return txn, False

        txn.status = "completed"
        if raw_payload:
            txn.gateway_response = raw_payload
        if txn.user_id is None and owner.beneficiary is not None:
            txn.user = owner.beneficiary
        txn.customer_email = txn.customer_email or payer.get("email") or ""
        txn.customer_name = txn.customer_name or payer.get("name") or ""
        txn.payment_method = txn.payment_method or payment_method or ""
        txn.save(update_fields=[
            "status", "gateway_response", "user", "customer_email", "customer_name", "payment_method", "updated_at",
        ])
        logger.info("reconcile: completed pending txn=%s ext=%s owner=%s", txn.pk, external_reference, owner.key)
        return txn, True


def _currency(owner) -> str:
    source = owner.payment_request or owner.qr_code
    return source.currency if source is not None else settings.DEFAULT_CURRENCY


def _apply_effects(txn_id, ctx) -> Transaction:
    with transaction.atomic():
        txn = Transaction.objects.select_for_update().get(pk=txn_id)
        if txn.status != "completed" or txn.effects_applied_at is not None:
            return txn
        now = ctx.now()

        if txn.user_id:
            wallet_service.credit(
                txn.user_id,
                txn.total_amount,
                currency=txn.currency,
                description=f"Payment received ({txn.owner_key})",
                linked_transaction=txn,
                reference=f"{config.CREDIT_PREFIX}TXN_{txn.pk}",
            )
        else:
            logger.info("reconcile: txn=%s has no beneficiary, wallet credit skipped", txn.pk)

        if txn.participant_id:
            participant = Participant.objects.select_for_update().get(pk=txn.participant_id)
            if participant.has_paid:
                logger.warning(
                    "reconcile: participant=%s already paid, duplicate payment txn=%s kept",
                    participant.pk, txn.pk,
                )
            else:
                participant.has_paid = True
                participant.paid_amount = txn.amount
                participant.paid_at = now
                participant.payment_method = txn.payment_method
                participant.save(update_fields=["has_paid", "paid_amount", "paid_at", "payment_method"])
            recalculate_status(participant.payment_request_id, now=now)
        elif txn.payment_request_id:
            payment_request = PaymentRequest.objects.select_for_update().get(pk=txn.payment_request_id)
            expire_if_due(payment_request, now)
            if payment_request.type == "pay_for_me" and payment_request.status in OPEN_STATUSES:
                payment_request.status = "completed"
                payment_request.save(update_fields=["status", "updated_at"])
            elif payment_request.status != "completed":
                logger.warning(
                    "reconcile: txn=%s paid request=%s in status %s, status kept",
                    txn.pk, payment_request.pk, payment_request.status,
                )

        if txn.qr_code_id:
            increment_usage(txn.qr_code_id)

        txn.effects_applied_at = now
        txn.last_error = ""
        txn.save(update_fields=["effects_applied_at", "last_error", "updated_at"])
        return txn


def apply_effects(txn, ctx=None, max_attempts: int = None) -> Transaction:
    """Run the post-completion effects, retrying up to max_attempts; errors are recorded, not raised."""
    ctx = get_context(ctx)
    max_attempts = max_attempts or settings.RECONCILIATION_MAX_ATTEMPTS
    for attempt in range(1, max_attempts + 1):
        try:
            return _apply_effects(txn.pk, ctx)
        except Exception as e:
            Transaction.objects.filter(pk=txn.pk).update(
                reconcile_attempts=F("reconcile_attempts") + 1,
                last_error=f"{type(e).__name__}: {e}"[:2000],
            )
            logger.exception("reconcile: effects failed txn=%s attempt %s/%s", txn.pk, attempt, max_attempts)
    txn.refresh_from_db()
    return txn


def _send_confirmation(notifier, txn, description):
    try:
        notifier.send_payment_confirmation(
            recipient=txn.customer_email,
            amount=txn.total_amount,
            currency=txn.currency,
            description=description,
            reference=txn.reference or txn.external_reference,
        )
    except Exception as e:
        logger.warning("reconcile: confirmation to %s failed: %s", txn.customer_email, e)


def reconcile(
    status,
    external_reference,
    *,
    payment_request_id=None,
    participant_id=None,
    qr_code_id=None,
    amount=None,
    tip_amount=0,
    payer: dict = None,
    payment_method: str = None,
    provider: str = "stripe",
    raw_payload: dict = None,
    ctx=None,
) -> Transaction:
    """
    Apply a success confirmation. Replays of the same (external_reference, owner) return
    the existing Transaction without crediting again.
    """
    ctx = get_context(ctx)
    normalize_status(status)
    if not external_reference:
        raise ValidationError("External reference is required")
    payer = payer or {}
    tip = config.quantize(tip_amount or 0)
    if tip < 0:
        raise ValidationError("Tip amount cannot be negative")

    owner = resolve_owner(payment_request_id, participant_id, qr_code_id, payer_email=payer.get("email"))
    txn, newly_completed = _record_completed(
        owner, external_reference, amount, tip, payer, payment_method, provider, raw_payload
    )
    if txn.effects_pending:
        txn = apply_effects(txn, ctx)

    if newly_completed and txn.customer_email:
        source = owner.payment_request or owner.qr_code
        description = getattr(source, "description", "") or getattr(source, "name", "")
        transaction.on_commit(lambda: _send_confirmation(ctx.notifier, txn, description))
    return txn


def mark_failed(external_reference, *, payment_request_id=None, participant_id=None, qr_code_id=None, raw_payload=None, reason: str = ""):
    """Flip a pending Transaction to failed. Returns it, or None when there is nothing pending."""
    filters = Q(external_reference=external_reference, status__in=("pending", "processing"))
    if participant_id or payment_request_id or qr_code_id:
        filters &= Q(owner_key=Transaction.owner_key_for(
            participant=participant_id or None,
            payment_request=payment_request_id or None,
            qr_code=qr_code_id or None,
        ))
    with transaction.atomic():
        txn = Transaction.objects.select_for_update().filter(filters).first()
        if txn is None:
            return None
        txn.status = "failed"
        if raw_payload:
            txn.gateway_response = raw_payload
        txn.last_error = reason or "Payment failed at gateway"
        txn.save(update_fields=["status", "gateway_response", "last_error", "updated_at"])
    logger.info("mark_failed: txn=%s ext=%s", txn.pk, external_reference)
    return txn


def verify_and_reconcile(reference, ctx=None):
    """
    Client-submitted verification. reference is our charge reference or the gateway's.
    Returns (transaction, verified); an unverified charge is left as it is.
    """
    ctx = get_context(ctx)
    txn = (
        Transaction.objects.filter(Q(external_reference=reference) | Q(reference=reference))
        .order_by("-created_at")
        .first()
    ) if reference else None
    if txn is None:
        raise NotFound("Transaction not found", code="TRANSACTION_NOT_FOUND")
    if txn.status == "completed":
        if txn.effects_pending:
            txn = apply_effects(txn, ctx)
        return txn, True

    result = ctx.gateway.verify_charge(txn.external_reference)
    if not result.get("verified"):
        logger.info("verify_and_reconcile: txn=%s not verified by gateway", txn.pk)
        return txn, False
    txn = reconcile(
        "success",
        txn.external_reference,
        payment_request_id=txn.payment_request_id,
        participant_id=txn.participant_id,
        qr_code_id=txn.qr_code_id,
        amount=txn.amount,
        tip_amount=txn.tip_amount,
        payer={"name": txn.customer_name, "email": txn.customer_email, "phone": txn.customer_phone},
        payment_method=txn.payment_method,
        provider=txn.payment_provider,
        raw_payload=result.get("raw_payload"),
        ctx=ctx,
    )
    return txn, True


def retry_pending_effects(ctx=None, limit: int = 100) -> dict:
    """Finish effects for completed transactions that are still pending them."""
    ctx = get_context(ctx)
    pending = Transaction.objects.filter(status="completed", effects_applied_at__isnull=True).order_by("created_at")[:limit]
    done = failed = 0
    for txn in pending:
        txn = apply_effects(txn, ctx)
        if txn.effects_applied_at is not None:
            done += 1
        else:
            failed += 1
    if done or failed:
        logger.info("retry_pending_effects: done=%s still_pending=%s", done, failed)
    return {"done": done, "still_pending": failed}

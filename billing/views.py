"""
Billing views: Stripe status, Stripe webhook, client-side payment verification, transaction listing, wallet.
"""
import logging

import stripe
from django.conf import settings
from django.contrib.admin.views.decorators import staff_member_required
from django.contrib.auth.decorators import login_required
from django.http import HttpResponse, JsonResponse
from django.utils.dateparse import parse_date
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from accounts.permissions import Permission, permission_required
from billing import config
from billing.models import WalletTransaction
from billing.services import reconciliation_service, transaction_service, wallet_service
from billing.services.gateway_service import check_api_ok, is_configured
from common.errors import PaymentError, PaymentFailed, ValidationError
from common.http import decimal_field, handles_payment_errors, json_body, success_response

logger = logging.getLogger(__name__)

SUCCESS_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")
FAILURE_EVENTS = ("checkout.session.async_payment_failed", "checkout.session.expired")


@staff_member_required
def stripe_status(request):
    """
    GET /api/billing/stripe-status/
    Staff-only. Returns JSON: stripe_configured, api_ok.
    """
    return JsonResponse({
        "stripe_configured": is_configured(),
        "api_ok": check_api_ok() if is_configured() else False,
    })


def _metadata_id(metadata, key):
    value = metadata.get(key)
    if value in (None, "", "None"):
        return None
    return value


def event_status(event_type: str, obj) -> str:
    """Map a Checkout Session event to a gateway status token; None for events we ignore."""
    if event_type == "checkout.session.completed":
        # delayed methods (bank transfer) complete later via async_payment_succeeded
        return "paid" if obj.get("payment_status") == "paid" else None
    if event_type == "checkout.session.async_payment_succeeded":
        return "succeeded"
    if event_type in FAILURE_EVENTS:
        return "failed"
    return None


def handle_checkout_event(event_type: str, obj, ctx=None):
    """
    Apply one Checkout Session event. Owner ids and tip come from the session metadata
    written by billing.services.charge_service.start_charge. Returns the Transaction or None.
    """
    status = event_status(event_type, obj)
    if status is None:
        return None
    session_id = obj.get("id")
    metadata = dict(obj.get("metadata") or {})
    owner_ids = {
        "payment_request_id": _metadata_id(metadata, "payment_request_id"),
        "participant_id": _metadata_id(metadata, "participant_id"),
        "qr_code_id": _metadata_id(metadata, "qr_code_id"),
    }
    if not session_id or not any(owner_ids.values()):
        logger.warning("stripe_webhook: %s without owner metadata session=%s", event_type, session_id)
        return None

    tip = config.quantize(metadata.get("tip_amount") or 0)
    amount = None
    if obj.get("amount_total") is not None:
        amount = config.from_minor_units(obj.get("amount_total")) - tip
    details = obj.get("customer_details") or {}
    payer = {
        "name": metadata.get("customer_name") or details.get("name") or "",
        "email": obj.get("customer_email") or details.get("email") or "",
        "phone": metadata.get("customer_phone") or details.get("phone") or "",
    }
    raw_payload = {
        "event": event_type,
        "id": session_id,
        "payment_status": obj.get("payment_status"),
        "amount_total": obj.get("amount_total"),
        "currency": obj.get("currency"),
        "payment_intent": obj.get("payment_intent"),
        "metadata": metadata,
    }
    try:
        return reconciliation_service.reconcile(
            status,
            session_id,
            amount=amount,
            tip_amount=tip,
            payer=payer,
            payment_method="card",
            provider="stripe",
            raw_payload=raw_payload,
            ctx=ctx,
            **owner_ids,
        )
    except PaymentFailed:
        txn = reconciliation_service.mark_failed(session_id, raw_payload=raw_payload, reason=event_type, **owner_ids)
        logger.info("stripe_webhook: %s session=%s marked_failed=%s", event_type, session_id, bool(txn))
        return txn


@csrf_exempt
@require_http_methods(["POST"])
def stripe_webhook(request):
    """
    POST /api/billing/stripe-webhook/
    Verifies the Stripe signature, then reconciles checkout.session.* events.
    Replays are safe: reconciliation is idempotent per (session id, owner).
    """
    payload = request.body
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")
    webhook_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "") or ""

    if not webhook_secret or not sig_header:
        logger.warning("stripe_webhook: missing STRIPE_WEBHOOK_SECRET or Stripe-Signature header")
        return HttpResponse(status=400)

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
    except ValueError as e:
        logger.warning("stripe_webhook: invalid payload %s", e)
        return HttpResponse(status=400)
    except stripe.error.SignatureVerificationError as e:
        logger.warning("stripe_webhook: signature verification failed %s", e)
        return HttpResponse(status=400)

    if event["type"] in SUCCESS_EVENTS or event["type"] in FAILURE_EVENTS:
        try:
            handle_checkout_event(event["type"], event["data"]["object"])
        except PaymentError as e:
            # unknown owners are not retried by Stripe; answer 200 and keep the log
            logger.warning("stripe_webhook: %s rejected: %s %s", event["type"], e.code, e.message)
    return HttpResponse(status=200)


def serialize_transaction(txn) -> dict:
    return {
        "id": txn.pk,
        "reference": txn.reference,
        "external_reference": txn.external_reference,
        "status": txn.status,
        "amount": str(txn.amount),
        "tip_amount": str(txn.tip_amount),
        "currency": txn.currency,
        "payment_request_id": txn.payment_request_id,
        "participant_id": txn.participant_id,
        "qr_code_id": txn.qr_code_id,
        "created_at": txn.created_at.isoformat() if txn.created_at else None,
    }


@csrf_exempt
@require_http_methods(["POST"])
@handles_payment_errors
def verify_payment(request):
    """POST /api/billing/verify/ {reference}: client-side confirmation after the gateway redirect."""
    data = json_body(request)
    txn, verified = reconciliation_service.verify_and_reconcile(str(data.get("reference") or ""))
    return success_response(
        {"verified": verified, "transaction": serialize_transaction(txn)},
        message="Payment verified" if verified else "Payment not yet confirmed",
    )


def _date_param(request, key):
    raw = request.GET.get(key)
    if not raw:
        return None
    try:
        value = parse_date(raw)
    except ValueError:
        value = None
    if value is None:
        raise ValidationError(f"{key} must be a YYYY-MM-DD date")
    return value


@login_required
@require_http_methods(["GET"])
@handles_payment_errors
def transactions(request):
    """
    GET /api/billing/transactions/?status=&search=&start_date=&end_date=&payment_request=&qr_code=&page=&limit=
    Staff with view-all access may pass user=<id>.
    """
    result = transaction_service.list_transactions(
        request.user,
        status=request.GET.get("status") or None,
        search=(request.GET.get("search") or "").strip() or None,
        start_date=_date_param(request, "start_date"),
        end_date=_date_param(request, "end_date"),
        payment_request_id=request.GET.get("payment_request") or None,
        qr_code_id=request.GET.get("qr_code") or None,
        beneficiary_id=request.GET.get("user") or None,
        page=request.GET.get("page"),
        limit=request.GET.get("limit"),
    )
    return success_response({
        "transactions": [serialize_transaction(t) for t in result["transactions"]],
        "pagination": result["pagination"],
    })


def _serialize_wallet_entry(entry: WalletTransaction) -> dict:
    return {
        "reference": entry.reference,
        "type": entry.type,
        "amount": str(entry.amount),
        "currency": entry.currency,
        "description": entry.description,
        "balance_after": str(entry.balance_after),
        "metadata": entry.metadata,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


@login_required
@require_http_methods(["GET"])
@handles_payment_errors
@permission_required(Permission.MANAGE_WALLET)
def wallet_balance(request):
    balance = wallet_service.get_balance(request.user)
    stats = wallet_service.wallet_stats(request.user)
    return success_response({
        "balance": str(balance["balance"]),
        "currency": balance["currency"] or request.user.preferred_currency,
        "last_transaction_at": balance["last_transaction_at"].isoformat() if balance["last_transaction_at"] else None,
        "total_credits": str(stats["total_credits"]),
        "total_debits": str(stats["total_debits"]),
    })


@login_required
@require_http_methods(["GET"])
@handles_payment_errors
@permission_required(Permission.MANAGE_WALLET)
def wallet_transactions(request):
    entries = WalletTransaction.objects.filter(user=request.user)
    entry_type = request.GET.get("type")
    if entry_type in ("credit", "debit"):
        entries = entries.filter(type=entry_type)
    return success_response([_serialize_wallet_entry(e) for e in entries[:100]])


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
@permission_required(Permission.MANAGE_WALLET)
def wallet_withdraw(request):
    """POST /api/billing/wallet/withdraw/ {amount, method, bank_details?}"""
    data = json_body(request)
    entry = wallet_service.withdraw(
        request.user,
        decimal_field(data, "amount"),
        data.get("method", ""),
        bank_details=data.get("bank_details"),
    )
    return success_response(_serialize_wallet_entry(entry), message="Withdrawal requested", status=201)

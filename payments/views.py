"""
Payment request and QR code endpoints. Public link endpoints need no login;
creating requests and QR codes does.
"""
import logging

from django.contrib.auth.decorators import login_required
from django.utils.dateparse import parse_datetime
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from accounts.permissions import Permission, permission_required
from billing.views import serialize_transaction
from common.errors import NotFound, ValidationError
from common.http import decimal_field, handles_payment_errors, json_body, success_response
from merchants.models import Merchant
from payments.models import QRCode
from payments.services import payment_request_service, qr_code_service

logger = logging.getLogger(__name__)


def serialize_participant(participant, include_link=False) -> dict:
    data = {
        "id": participant.pk,
        "name": participant.name,
        "amount": str(participant.amount),
        "has_paid": participant.has_paid,
        "paid_at": participant.paid_at.isoformat() if participant.paid_at else None,
    }
    if include_link:
        data["email"] = participant.email
        data["participant_link"] = participant.participant_link
    return data


def serialize_payment_request(payment_request, include_links=False) -> dict:
    data = {
        "id": payment_request.pk,
        "type": payment_request.type,
        "description": payment_request.description,
        "amount": str(payment_request.amount),
        "currency": payment_request.currency,
        "status": payment_request.status,
        "expires_at": payment_request.expires_at.isoformat() if payment_request.expires_at else None,
        "allow_tips": payment_request.allow_tips,
        "payment_link": payment_request.payment_link,
        "total_collected": str(payment_request_service.total_collected(payment_request)),
    }
    if payment_request.is_group_split:
        data["split_type"] = payment_request.split_type
        data["total_amount"] = str(payment_request.total_amount)
        data["participants"] = [
            serialize_participant(p, include_link=include_links) for p in payment_request.participants.all()
        ]
    if include_links:
        data["qr_code_url"] = payment_request.qr_code_url
    return data


def serialize_qr_code(qr: QRCode) -> dict:
    return {
        "id": qr.pk,
        "name": qr.name,
        "type": qr.type,
        "amount": str(qr.amount) if qr.amount is not None else None,
        "currency": qr.currency,
        "description": qr.description,
        "is_active": qr.is_active,
        "usage_limit": qr.usage_limit,
        "usage_count": qr.usage_count,
        "expires_at": qr.expires_at.isoformat() if qr.expires_at else None,
        "payment_link": qr.payment_link,
        "qr_data": qr.qr_data,
    }


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
@permission_required(Permission.CREATE_PAYMENT_REQUESTS)
def create_pay_for_me(request):
    """POST /api/payments/requests/pay-for-me/ {description, amount, currency?, expires_in_hours?, allow_tips?}"""
    data = json_body(request)
    payment_request = payment_request_service.create_single_payer_request(
        data.get("description", ""),
        decimal_field(data, "amount"),
        currency=data.get("currency") or request.user.preferred_currency,
        expires_in_hours=data.get("expires_in_hours"),
        allow_tips=bool(data.get("allow_tips", True)),
        user=request.user,
    )
    return success_response(serialize_payment_request(payment_request, include_links=True), status=201)


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
@permission_required(Permission.CREATE_PAYMENT_REQUESTS)
def create_group_split(request):
    """POST /api/payments/requests/group-split/ {description, total_amount, participants, split_type, ...}"""
    data = json_body(request)
    participants = data.get("participants")
    if not isinstance(participants, list) or not all(isinstance(p, dict) for p in participants):
        raise ValidationError("participants must be a list of objects")
    payment_request = payment_request_service.create_group_split_request(
        data.get("description", ""),
        decimal_field(data, "total_amount"),
        data.get("currency") or request.user.preferred_currency,
        participants,
        split_type=data.get("split_type", "equal"),
        expires_in_hours=data.get("expires_in_hours"),
        allow_tips=bool(data.get("allow_tips", True)),
        user=request.user,
    )
    return success_response(serialize_payment_request(payment_request, include_links=True), status=201)


@require_http_methods(["GET"])
@handles_payment_errors
def resolve_link(request, token):
    """GET /api/payments/link/<token>/: public view of a parent or participant link."""
    payment_request, participant = payment_request_service.resolve_by_link_token(token)
    data = serialize_payment_request(payment_request)
    if participant is not None:
        data["participant"] = serialize_participant(participant)
    return success_response(data)


@login_required
@require_http_methods(["GET"])
@handles_payment_errors
def payment_request_detail(request, payment_request_id):
    payment_request = payment_request_service.get_payment_request(payment_request_id)
    if payment_request.user_id != request.user.pk:
        raise NotFound("Payment request not found", code="PAYMENT_REQUEST_NOT_FOUND")
    return success_response(serialize_payment_request(payment_request, include_links=True))


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
def send_reminders(request, payment_request_id):
    """POST /api/payments/requests/<id>/remind/: owner-only."""
    payment_request = payment_request_service.get_payment_request(payment_request_id)
    if payment_request.user_id != request.user.pk:
        raise NotFound("Payment request not found", code="PAYMENT_REQUEST_NOT_FOUND")
    result = payment_request_service.send_reminders(payment_request.pk)
    return success_response(result, message=f"Reminders sent to {result['sent']} participants")


@login_required
@require_http_methods(["GET"])
@handles_payment_errors
def history(request):
    requests = payment_request_service.payment_history(
        request.user,
        status=request.GET.get("status") or None,
        type=request.GET.get("type") or None,
    )
    return success_response([serialize_payment_request(r) for r in requests[:100]])


@csrf_exempt
@require_http_methods(["POST"])
@handles_payment_errors
def pay(request, payment_request_id):
    """POST /api/payments/requests/<id>/pay/ {amount, tip_amount?, name?, email?, phone?, payment_method?}"""
    data = json_body(request)
    txn, redirect_url = payment_request_service.record_single_payer_payment(
        payment_request_id,
        decimal_field(data, "amount"),
        tip_amount=decimal_field(data, "tip_amount", required=False, default=0),
        payer_name=data.get("name"),
        payer_email=data.get("email"),
        payer_phone=data.get("phone"),
        payment_method=data.get("payment_method"),
    )
    return success_response(
        {"transaction": serialize_transaction(txn), "payment_url": redirect_url},
        message="Payment initialized successfully",
    )


@csrf_exempt
@require_http_methods(["POST"])
@handles_payment_errors
def pay_participant(request, payment_request_id, participant_id):
    """POST /api/payments/requests/<id>/participants/<pid>/pay/ {amount, tip_amount?, payment_method?}"""
    data = json_body(request)
    txn, redirect_url = payment_request_service.record_participant_payment(
        payment_request_id,
        participant_id,
        decimal_field(data, "amount"),
        tip_amount=decimal_field(data, "tip_amount", required=False, default=0),
        payment_method=data.get("payment_method"),
    )
    return success_response(
        {"transaction": serialize_transaction(txn), "payment_url": redirect_url},
        message="Payment initialized successfully",
    )


def _merchant_for(user) -> Merchant:
    try:
        return user.merchant
    except Merchant.DoesNotExist:
        raise NotFound("Merchant account not found")


@csrf_exempt
@login_required
@require_http_methods(["GET", "POST"])
@handles_payment_errors
@permission_required(Permission.MANAGE_QR_CODES)
def qr_codes(request):
    merchant = _merchant_for(request.user)
    if request.method == "GET":
        return success_response({
            "qr_codes": [serialize_qr_code(qr) for qr in merchant.qr_codes.all()[:100]],
            "stats": {k: str(v) for k, v in qr_code_service.qr_code_stats(merchant).items()},
        })
    data = json_body(request)
    expires_at = None
    if data.get("expires_at"):
        expires_at = parse_datetime(str(data["expires_at"]))
        if expires_at is None:
            raise ValidationError("expires_at must be an ISO 8601 datetime")
    usage_limit = data.get("usage_limit")
    if usage_limit is not None and not isinstance(usage_limit, int):
        raise ValidationError("usage_limit must be an integer")
    qr = qr_code_service.create_qr_code(
        merchant,
        data.get("name", ""),
        data.get("type", ""),
        amount=decimal_field(data, "amount", required=False),
        description=data.get("description"),
        usage_limit=usage_limit,
        expires_at=expires_at,
        currency=data.get("currency"),
    )
    return success_response(serialize_qr_code(qr), status=201)


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
@permission_required(Permission.MANAGE_QR_CODES)
def deactivate_qr(request, qr_code_id):
    qr = QRCode.objects.filter(pk=qr_code_id, merchant=_merchant_for(request.user)).first()
    if qr is None:
        raise NotFound("QR code not found", code="QR_CODE_NOT_FOUND")
    return success_response(serialize_qr_code(qr_code_service.deactivate_qr_code(qr)))


@csrf_exempt
@require_http_methods(["POST"])
@handles_payment_errors
def pay_qr(request, token):
    """POST /api/payments/qr/<token>/pay/ {amount?, tip_amount?, name?, email?, phone?}"""
    data = json_body(request)
    txn, redirect_url = qr_code_service.start_qr_payment(
        token,
        amount=decimal_field(data, "amount", required=False),
        tip_amount=decimal_field(data, "tip_amount", required=False, default=0),
        payer_name=data.get("name"),
        payer_email=data.get("email"),
        payer_phone=data.get("phone"),
        payment_method=data.get("payment_method"),
    )
    return success_response(
        {"transaction": serialize_transaction(txn), "payment_url": redirect_url},
        message="Payment initialized successfully",
    )

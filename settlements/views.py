"""
Settlement endpoints: merchant stats and requests, admin approval, bank status callback.
"""
import logging

from django.contrib.auth.decorators import login_required
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from accounts.permissions import Permission, permission_required
from common.errors import NotFound, ValidationError
from common.http import decimal_field, handles_payment_errors, json_body, success_response
from merchants.models import Merchant
from settlements.models import Settlement
from settlements.services import settlement_service

logger = logging.getLogger(__name__)


def _merchant_for(user) -> Merchant:
    try:
        return user.merchant
    except Merchant.DoesNotExist:
        raise NotFound("Merchant account not found")


def _money(stats: dict) -> dict:
    return {k: (str(v) if k in ("total_revenue", "pending_amount", "available_balance", "pending_settlement") else v)
            for k, v in stats.items()}


@login_required
@require_http_methods(["GET"])
@handles_payment_errors
@permission_required(Permission.REQUEST_SETTLEMENTS)
def merchant_stats(request):
    merchant = _merchant_for(request.user)
    return success_response(_money(settlement_service.merchant_settlement_stats(merchant)))


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
@permission_required(Permission.REQUEST_SETTLEMENTS)
def request_settlement(request):
    """POST /api/settlements/request/ {amount, description?}"""
    data = json_body(request)
    settlement, eta = settlement_service.request_settlement(
        _merchant_for(request.user),
        decimal_field(data, "amount"),
        description=data.get("description"),
    )
    body = settlement_service.serialize_settlement(settlement)
    body["estimated_completion"] = eta.isoformat()
    return success_response(body, message="Settlement request submitted successfully", status=201)


@login_required
@require_http_methods(["GET"])
@handles_payment_errors
@permission_required(Permission.REQUEST_SETTLEMENTS)
def settlement_detail(request, settlement_id):
    settlement = Settlement.objects.filter(pk=settlement_id, merchant=_merchant_for(request.user)).first()
    if settlement is None:
        raise NotFound("Settlement not found")
    return success_response(settlement_service.serialize_settlement(settlement))


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
@permission_required(Permission.MANAGE_SETTLEMENTS)
def approve(request, settlement_id):
    settlement = settlement_service.approve_settlement(settlement_id)
    return success_response(settlement_service.serialize_settlement(settlement), message="Settlement approved")


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
@permission_required(Permission.MANAGE_SETTLEMENTS)
def reject(request, settlement_id):
    data = json_body(request)
    settlement = settlement_service.reject_settlement(settlement_id, data.get("reason"))
    return success_response(settlement_service.serialize_settlement(settlement), message="Settlement rejected")


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
@permission_required(Permission.MANAGE_SETTLEMENTS)
def bank_status(request, settlement_id):
    """POST /api/settlements/<id>/bank-status/ {status: completed|failed, bank_reference?, reason?}"""
    data = json_body(request)
    status = data.get("status")
    if status == "completed":
        settlement = settlement_service.complete_settlement(settlement_id, data.get("bank_reference"))
    elif status == "failed":
        settlement = settlement_service.fail_settlement(settlement_id, data.get("reason"))
    else:
        raise ValidationError("status must be 'completed' or 'failed'")
    return success_response(settlement_service.serialize_settlement(settlement))

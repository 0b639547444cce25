"""
Merchant onboarding endpoints.
"""
import logging

from django.contrib.auth.decorators import login_required
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from accounts.permissions import Permission, permission_required
from common.errors import NotFound, ValidationError
from common.http import handles_payment_errors, json_body, success_response
from merchants.models import Merchant
from merchants.services import merchant_service

logger = logging.getLogger(__name__)


def _merchant_for(user) -> Merchant:
    try:
        return user.merchant
    except Merchant.DoesNotExist:
        raise NotFound("Merchant account not found")


def serialize_merchant(merchant: Merchant) -> dict:
    return {
        "id": str(merchant.id),
        "business_name": merchant.business_name,
        "business_email": merchant.business_email,
        "kyc_status": merchant.kyc_status,
        "settlement_account_name": merchant.settlement_account_name,
        "settlement_bank_code": merchant.settlement_bank_code,
        "has_settlement_account": merchant.has_settlement_account,
        "settlement_schedule": merchant.settlement_schedule,
        "has_api_key": bool(merchant.api_key),
    }


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
def register(request):
    """POST /api/merchants/register/ {business_name, business_email?, business_phone?, business_type?}"""
    data = json_body(request)
    merchant = merchant_service.register_merchant(
        request.user,
        data.get("business_name", ""),
        business_email=data.get("business_email", ""),
        business_phone=data.get("business_phone", ""),
        business_type=data.get("business_type", ""),
    )
    return success_response(serialize_merchant(merchant), status=201)


@login_required
@require_http_methods(["GET"])
@handles_payment_errors
def profile(request):
    return success_response(serialize_merchant(_merchant_for(request.user)))


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
def submit_kyc(request):
    merchant = merchant_service.submit_kyc(_merchant_for(request.user))
    return success_response(serialize_merchant(merchant), message="KYC submitted for review")


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
def settlement_account(request):
    """POST /api/merchants/settlement-account/ {account_name, account_number, bank_code}"""
    data = json_body(request)
    merchant = merchant_service.update_settlement_account(
        _merchant_for(request.user),
        data.get("account_name", ""),
        str(data.get("account_number", "")),
        str(data.get("bank_code", "")),
    )
    return success_response(serialize_merchant(merchant))


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
def api_key(request):
    key = merchant_service.generate_api_key(_merchant_for(request.user))
    return success_response({"api_key": key}, message="API key generated. Store it securely.")


@csrf_exempt
@login_required
@require_http_methods(["POST"])
@handles_payment_errors
@permission_required(Permission.REVIEW_KYC)
def review_kyc(request, merchant_id):
    """POST /api/merchants/<id>/review-kyc/ {approved: bool}"""
    data = json_body(request)
    if not isinstance(data.get("approved"), bool):
        raise ValidationError("approved must be true or false")
    merchant = Merchant.objects.filter(pk=merchant_id).first()
    if merchant is None:
        raise NotFound("Merchant not found")
    merchant = merchant_service.review_kyc(merchant, data["approved"])
    return success_response(serialize_merchant(merchant))

"""
Merchant onboarding: registration, KYC review, settlement account, API keys.
"""
import logging
import secrets

from django.db import transaction
from django.utils import timezone

from accounts.models import Role
from common.errors import Conflict, KycNotApproved, ValidationError
from merchants.models import Merchant

logger = logging.getLogger(__name__)

# Nigerian bank codes shown on settlement snapshots; unknown codes fall back to the code itself.
BANK_NAMES = {
    "044": "Access Bank",
    "058": "GTBank",
    "011": "First Bank",
    "033": "UBA",
    "057": "Zenith Bank",
    "232": "Sterling Bank",
    "035": "Wema Bank",
    "50211": "Kuda Bank",
}


def bank_name(bank_code: str) -> str:
    return BANK_NAMES.get(bank_code, bank_code or "")


@transaction.atomic()
def register_merchant(user, business_name: str, business_email: str = "", business_phone: str = "", business_type: str = "") -> Merchant:
    if not (business_name or "").strip():
        raise ValidationError("Business name is required")
    if Merchant.objects.filter(user=user).exists():
        raise Conflict("Merchant account already exists")
    merchant = Merchant.objects.create(
        user=user,
        business_name=business_name.strip(),
        business_email=business_email or user.email,
        business_phone=business_phone,
        business_type=business_type,
    )
    if user.role != Role.MERCHANT:
        user.role = Role.MERCHANT
        user.save(update_fields=["role"])
    logger.info("register_merchant: merchant=%s user=%s", merchant.id, user.pk)
    return merchant


def submit_kyc(merchant: Merchant, now=None) -> Merchant:
    if merchant.kyc_status == "approved":
        raise ValidationError("KYC is already approved")
    merchant.kyc_status = "submitted"
    merchant.kyc_submitted_at = now or timezone.now()
    merchant.save(update_fields=["kyc_status", "kyc_submitted_at", "updated_at"])
    return merchant


def review_kyc(merchant: Merchant, approved: bool, now=None) -> Merchant:
    merchant.kyc_status = "approved" if approved else "rejected"
    merchant.kyc_approved_at = (now or timezone.now()) if approved else None
    merchant.save(update_fields=["kyc_status", "kyc_approved_at", "updated_at"])
    logger.info("review_kyc: merchant=%s status=%s", merchant.id, merchant.kyc_status)
    return merchant


def update_settlement_account(merchant: Merchant, account_name: str, account_number: str, bank_code: str) -> Merchant:
    account_number = (account_number or "").strip()
    if not account_number.isdigit() or not (bank_code or "").strip():
        raise ValidationError("A numeric account number and a bank code are required")
    merchant.settlement_account_name = (account_name or "").strip()
    merchant.settlement_account_number = account_number
    merchant.settlement_bank_code = bank_code.strip()
    merchant.save(update_fields=[
        "settlement_account_name",
        "settlement_account_number",
        "settlement_bank_code",
        "updated_at",
    ])
    return merchant


def generate_api_key(merchant: Merchant) -> str:
    """Issue a new secret key; replaces any previous key."""
    if not merchant.is_kyc_approved:
        raise KycNotApproved("KYC must be approved to generate API key")
    merchant.api_key = f"sk_live_{secrets.token_hex(32)}"
    merchant.save(update_fields=["api_key", "updated_at"])
    return merchant.api_key

"""
Wallet ledger service. All balance changes go through here and append a WalletTransaction.
Never modify Wallet.balance outside this module.

Every mutation runs in one atomic block with the wallet row locked, so the balance and
its ledger entry are written together or not at all.
"""
import logging
import secrets
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from billing import config
from billing.models import Wallet, WalletTransaction
from common.errors import Conflict, InsufficientBalance, ValidationError, WalletNotFound

logger = logging.getLogger(__name__)


def _user_id(user):
    return getattr(user, "pk", user)


def _new_reference(prefix: str) -> str:
    return f"{prefix}{secrets.token_hex(config.WALLET_REFERENCE_BYTES).upper()}"


def _positive_amount(amount) -> Decimal:
    amount = config.quantize(amount)
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    return amount


def _lock_wallet(user, create: bool) -> Wallet:
    """Return the user's wallet locked for update; create it on first use when allowed."""
    user_id = _user_id(user)
    wallet = Wallet.objects.select_for_update().filter(user_id=user_id).first()
    if wallet is not None:
        return wallet
    owner = get_user_model().objects.filter(pk=user_id).first()
    if owner is None:
        raise WalletNotFound("User not found")
    if not create:
        raise WalletNotFound()
    try:
        with transaction.atomic():
            Wallet.objects.create(
                user=owner,
                currency=owner.preferred_currency or settings.DEFAULT_CURRENCY,
            )
    except IntegrityError:
        # another request created it first
        pass
    return Wallet.objects.select_for_update().get(user_id=user_id)


def _append_entry(wallet, entry_type, amount, currency, description, linked_transaction, reference, prefix, metadata):
    explicit = reference is not None
    for _ in range(config.REFERENCE_RETRIES):
        ref = reference if explicit else _new_reference(prefix)
        try:
            with transaction.atomic():
                return WalletTransaction.objects.create(
                    user_id=wallet.user_id,
                    transaction=linked_transaction,
                    type=entry_type,
                    amount=amount,
                    currency=currency or wallet.currency,
                    description=(description or "")[:255],
                    balance_after=wallet.balance,
                    reference=ref,
                    metadata=metadata or {},
                )
        except IntegrityError:
            if explicit:
                raise Conflict(f"Wallet reference {ref} already used")
            logger.warning("wallet: reference collision %s, retrying", ref)
    raise Conflict("Could not allocate a unique wallet reference")


@transaction.atomic()
def _apply(user, entry_type, amount, currency, description, linked_transaction, reference, prefix, metadata=None):
    amount = _positive_amount(amount)
    wallet = _lock_wallet(user, create=entry_type == "credit")
    if entry_type == "credit":
        wallet.balance = wallet.balance + amount
    else:
        if amount > wallet.balance:
            raise InsufficientBalance()
        wallet.balance = wallet.balance - amount
    wallet.last_transaction_at = timezone.now()
    wallet.save(update_fields=["balance", "last_transaction_at", "updated_at"])
    entry = _append_entry(
        wallet, entry_type, amount, currency, description, linked_transaction, reference, prefix, metadata
    )
    logger.info(
        "wallet: %s user=%s amount=%s balance=%s ref=%s",
        entry_type, wallet.user_id, amount, wallet.balance, entry.reference,
    )
    return entry


def credit(user, amount, currency=None, description="", linked_transaction=None, reference=None) -> Decimal:
    """
    Add funds to the user's wallet, creating the wallet on first credit.
    Returns the new balance. Raises WalletNotFound if the user does not exist.
    """
    entry = _apply(user, "credit", amount, currency, description, linked_transaction, reference, config.CREDIT_PREFIX)
    return entry.balance_after


def debit(user, amount, currency=None, description="", linked_transaction=None, reference=None) -> Decimal:
    """
    Remove funds from the user's wallet. Returns the new balance.
    Raises InsufficientBalance if amount exceeds the balance, WalletNotFound if there is no wallet.
    """
    entry = _apply(user, "debit", amount, currency, description, linked_transaction, reference, config.DEBIT_PREFIX)
    return entry.balance_after


def withdraw(user, amount, method: str, bank_details: dict = None) -> WalletTransaction:
    """Debit a withdrawal; payout is handled outside the ledger and tracked in metadata."""
    if not (method or "").strip():
        raise ValidationError("Withdrawal method is required")
    return _apply(
        user,
        "debit",
        amount,
        None,
        f"Withdrawal via {method}",
        None,
        None,
        config.WITHDRAWAL_PREFIX,
        metadata={
            "withdrawal_method": method,
            "bank_details": bank_details or {},
            "status": "pending",
        },
    )


def get_balance(user) -> dict:
    wallet = Wallet.objects.filter(user_id=_user_id(user)).first()
    if wallet is None:
        return {"balance": Decimal("0.00"), "currency": None, "is_active": False, "last_transaction_at": None}
    return {
        "balance": wallet.balance,
        "currency": wallet.currency,
        "is_active": wallet.is_active,
        "last_transaction_at": wallet.last_transaction_at,
    }


def wallet_stats(user) -> dict:
    totals = WalletTransaction.objects.filter(user_id=_user_id(user)).aggregate(
        total_credits=Sum("amount", filter=Q(type="credit")),
        total_debits=Sum("amount", filter=Q(type="debit")),
        credit_count=Count("id", filter=Q(type="credit")),
        debit_count=Count("id", filter=Q(type="debit")),
    )
    credits = totals["total_credits"] or Decimal("0.00")
    debits = totals["total_debits"] or Decimal("0.00")
    return {
        "total_credits": credits,
        "total_debits": debits,
        "credit_count": totals["credit_count"],
        "debit_count": totals["debit_count"],
        "net": credits - debits,
        "balance": get_balance(user)["balance"],
    }

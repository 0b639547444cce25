"""
Billing configuration: single source of truth for money handling and payment constants.

All monetary amounts are Decimal with two places; use quantize() before storing or comparing.
Deployment-specific values (fee rate, link domain, currency) live in settings.
"""
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP

from common.errors import ValidationError

CENT = Decimal("0.01")

# Largest difference between two amounts that still counts as equal (one minor unit)
AMOUNT_TOLERANCE = Decimal("0.01")

# Link tokens are secrets.token_hex(LINK_TOKEN_BYTES) -> 64 hex characters
LINK_TOKEN_BYTES = 32

# Wallet ledger references: prefix + secrets.token_hex(WALLET_REFERENCE_BYTES).upper()
WALLET_REFERENCE_BYTES = 8
CREDIT_PREFIX = "CREDIT_"
DEBIT_PREFIX = "DEBIT_"
WITHDRAWAL_PREFIX = "WDR_"
REFERENCE_RETRIES = 3

# Outgoing charge references handed to the gateway
CHARGE_PREFIX = "SPLT_"

# Settlement references: "STL" + 8 upper-hex characters
SETTLEMENT_PREFIX = "STL"
SETTLEMENT_REFERENCE_BYTES = 4
SETTLEMENT_CUTOFF_HOUR = 14

# Gateway status tokens accepted by reconciliation (compared lower-cased)
SUCCESS_TOKENS = frozenset({"success", "successful", "succeeded", "completed", "paid"})
FAILURE_TOKENS = frozenset({"failed", "failure", "error", "cancelled", "abandoned", "reversed"})

# Stripe amounts are in the currency's minor unit
MINOR_UNITS_PER_MAJOR = 100


def to_decimal(value) -> Decimal:
    """Parse value as a finite Decimal; raises ValidationError for anything else."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{value!r} is not a valid amount")
    if not amount.is_finite():
        raise ValidationError("Amounts must be finite numbers")
    return amount


def quantize(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_down(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_DOWN)


def amounts_match(a, b) -> bool:
    return abs(Decimal(str(a)) - Decimal(str(b))) <= AMOUNT_TOLERANCE


def to_minor_units(amount) -> int:
    return int(quantize(amount) * MINOR_UNITS_PER_MAJOR)


def from_minor_units(value) -> Decimal:
    return quantize(Decimal(int(value or 0)) / MINOR_UNITS_PER_MAJOR)

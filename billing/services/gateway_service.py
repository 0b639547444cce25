"""
Payment gateway client. Stripe Checkout Sessions back the default implementation.

Services only talk to the gateway through initialize_charge / verify_charge; all Stripe
logic lives in this module, never in views. SDK and network errors become GatewayError.
"""
import logging
from typing import Protocol

import stripe
from django.conf import settings

from billing import config
from common.errors import GatewayError

logger = logging.getLogger(__name__)


def is_configured() -> bool:
    """Return True if Stripe secret key is set and non-empty."""
    key = getattr(settings, "STRIPE_SECRET_KEY", None) or ""
    return bool(key.strip())


def get_client():
    """Return the Stripe SDK module with the API key set."""
    if not is_configured():
        raise GatewayError("Payment is not configured. Please try again later.")
    stripe.api_key = settings.STRIPE_SECRET_KEY
    return stripe


def check_api_ok() -> bool:
    """Minimal Stripe API call to verify the key works."""
    if not is_configured():
        return False
    try:
        get_client().Balance.retrieve()
        return True
    except stripe.error.StripeError:
        return False


class GatewayClient(Protocol):
    def initialize_charge(self, amount, currency: str, payer_email: str, reference: str, metadata: dict) -> dict:
        """Start a charge. Returns {"external_reference", "redirect_url"}."""

    def verify_charge(self, reference: str) -> dict:
        """Ask the provider about a charge. Returns {"verified": bool, "raw_payload": dict}."""


def _user_message(exc) -> str:
    err = getattr(exc, "error", exc)
    msg = getattr(err, "user_message", None) or ""
    if not msg or "api" in msg.lower():
        msg = GatewayError.default_message
    return msg


class StripeGateway:
    """GatewayClient backed by Stripe Checkout Sessions; the session id is the external reference."""

    provider = "stripe"

    def initialize_charge(self, amount, currency, payer_email, reference, metadata) -> dict:
        client = get_client()
        metadata = {key: str(value) for key, value in (metadata or {}).items() if value is not None}
        domain = settings.PAYMENT_LINK_DOMAIN
        create_kwargs = dict(
            mode="payment",
            line_items=[{
                "price_data": {
                    "currency": (currency or settings.DEFAULT_CURRENCY).lower(),
                    "unit_amount": config.to_minor_units(amount),
                    "product_data": {"name": metadata.get("description") or "SpleetPay payment"},
                },
                "quantity": 1,
            }],
            client_reference_id=reference,
            metadata=metadata,
            success_url=f"{domain}/payment/success?reference={reference}",
            cancel_url=f"{domain}/payment/cancelled?reference={reference}",
            idempotency_key=reference,
        )
        if payer_email:
            create_kwargs["customer_email"] = payer_email
        try:
            session = client.checkout.Session.create(**create_kwargs)
        except stripe.error.StripeError as e:
            logger.warning("initialize_charge: stripe error ref=%s %s", reference, e)
            raise GatewayError(_user_message(e))
        logger.info("initialize_charge: ref=%s session=%s", reference, session.id)
        return {"external_reference": session.id, "redirect_url": session.url}

    def verify_charge(self, reference) -> dict:
        client = get_client()
        try:
            session = client.checkout.Session.retrieve(reference)
        except stripe.error.StripeError as e:
            logger.warning("verify_charge: stripe error ref=%s %s", reference, e)
            raise GatewayError(_user_message(e))
        payload = {
            "id": session.get("id"),
            "status": session.get("status"),
            "payment_status": session.get("payment_status"),
            "amount_total": session.get("amount_total"),
            "currency": session.get("currency"),
            "payment_intent": session.get("payment_intent"),
            "metadata": dict(session.get("metadata") or {}),
        }
        return {"verified": payload["payment_status"] == "paid", "raw_payload": payload}

"""
Transactional email for payment requests and confirmations.
Sends HTML emails rendered from templates/emails/ with consistent branding.

Delivery never affects payment state: every send is fail_silently and failures are logged.
"""
import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils.html import strip_tags

logger = logging.getLogger(__name__)


class EmailService:
    """Notification dispatcher used by the payment services (see billing.services.context)."""

    @staticmethod
    def send_email(
        subject: str,
        recipient_email: str,
        template_name: str,
        context: Optional[Dict[str, Any]] = None,
        from_email: Optional[str] = None,
        fail_silently: bool = True,
    ) -> bool:
        """
        Send an HTML email using a template.

        Args:
            subject: Email subject line
            recipient_email: Recipient's email address
            template_name: Name of the email template (without .html extension)
            context: Dictionary of context variables for the template
            from_email: Sender email (defaults to DEFAULT_FROM_EMAIL)
            fail_silently: Log and return False instead of raising

        Returns:
            bool: True if email was sent successfully, False otherwise
        """
        if not recipient_email:
            return False
        context = dict(context or {})
        context.setdefault("site_domain", settings.PAYMENT_LINK_DOMAIN)
        context.setdefault("site_name", "SpleetPay")

        try:
            html_content = render_to_string(f"emails/{template_name}.html", context)
            msg = EmailMultiAlternatives(
                subject=subject,
                body=strip_tags(html_content),
                from_email=from_email or settings.DEFAULT_FROM_EMAIL,
                to=[recipient_email],
            )
            msg.attach_alternative(html_content, "text/html")
            msg.send()
            return True
        except Exception as e:
            if not fail_silently:
                raise
            logger.warning("send_email: %s to %s failed: %s", template_name, recipient_email, e)
            return False

    @staticmethod
    def send_payment_request_notice(recipient, amount, currency, description, pay_url, expires_at=None) -> bool:
        """Tell a participant what they owe and where to pay."""
        return EmailService.send_email(
            subject=f"Payment request: {currency} {amount}",
            recipient_email=recipient,
            template_name="payment_request",
            context={
                "amount": amount,
                "currency": currency,
                "description": description,
                "pay_url": pay_url,
                "expires_at": expires_at,
            },
        )

    @staticmethod
    def send_payment_confirmation(recipient, amount, currency, description, reference) -> bool:
        return EmailService.send_email(
            subject="Payment received",
            recipient_email=recipient,
            template_name="payment_confirmation",
            context={
                "amount": amount,
                "currency": currency,
                "description": description,
                "reference": reference,
            },
        )

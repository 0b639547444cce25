"""
Collaborators shared by the payment services: gateway, notifier, QR renderer and clock.

Services take an optional ``ctx``; tests pass a ServiceContext built from fakes instead
of patching module state.
"""
from dataclasses import dataclass
from typing import Any, Callable

from django.utils import timezone


@dataclass
class ServiceContext:
    gateway: Any
    notifier: Any
    render_qr: Callable[[str], str]
    clock: Callable = timezone.now

    def now(self):
        return self.clock()


def get_context(ctx: ServiceContext = None) -> ServiceContext:
    """Return ctx unchanged, or the default context wired to Stripe, email and qrcode."""
    if ctx is not None:
        return ctx
    from billing.services.gateway_service import StripeGateway
    from general.email_service import EmailService
    from payments.services.qr_render import render_qr

    return ServiceContext(gateway=StripeGateway(), notifier=EmailService, render_qr=render_qr)

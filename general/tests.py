from decimal import Decimal
from unittest.mock import patch

from django.core import mail
from django.test import TestCase

from general.email_service import EmailService


class EmailServiceTests(TestCase):
    def test_payment_request_notice(self):
        sent = EmailService.send_payment_request_notice(
            recipient="ada@example.com",
            amount=Decimal("33.33"),
            currency="NGN",
            description="Team dinner",
            pay_url="http://localhost:3000/split/abc",
        )

        self.assertTrue(sent)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["ada@example.com"])
        self.assertEqual(mail.outbox[0].subject, "Payment request: NGN 33.33")
        self.assertIn("http://localhost:3000/split/abc", mail.outbox[0].alternatives[0][0])

    def test_payment_confirmation(self):
        EmailService.send_payment_confirmation("payer@example.com", Decimal("5500.00"), "NGN", "Rent", "SPLT_ABC")
        self.assertIn("SPLT_ABC", mail.outbox[0].body)

    def test_missing_recipient_is_skipped(self):
        self.assertFalse(EmailService.send_payment_confirmation("", Decimal("1"), "NGN", "Rent", "SPLT_ABC"))
        self.assertEqual(len(mail.outbox), 0)

    @patch("general.email_service.EmailMultiAlternatives.send", side_effect=OSError("connection refused"))
    def test_delivery_failure_is_logged_not_raised(self, send):
        self.assertFalse(EmailService.send_payment_confirmation("payer@example.com", Decimal("1"), "NGN", "Rent", "SPLT_ABC"))

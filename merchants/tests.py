from django.test import TestCase
from django.urls import reverse

from accounts.models import CustomUser, Role
from common.errors import Conflict, KycNotApproved, ValidationError
from merchants.models import Merchant
from merchants.services import merchant_service


class MerchantServiceTests(TestCase):
    def setUp(self):
        self.user = CustomUser.objects.create_user("shop@example.com", password="pass12345")

    def test_register_promotes_user_to_merchant(self):
        merchant = merchant_service.register_merchant(self.user, "  Shop Ventures ")

        self.user.refresh_from_db()
        self.assertEqual(self.user.role, Role.MERCHANT)
        self.assertEqual(merchant.business_name, "Shop Ventures")
        self.assertEqual(merchant.business_email, "shop@example.com")
        self.assertEqual(merchant.kyc_status, "pending")

    def test_register_twice(self):
        merchant_service.register_merchant(self.user, "Shop")
        with self.assertRaises(Conflict):
            merchant_service.register_merchant(self.user, "Shop Again")

    def test_kyc_flow(self):
        merchant = merchant_service.register_merchant(self.user, "Shop")

        merchant_service.submit_kyc(merchant)
        self.assertEqual(merchant.kyc_status, "submitted")
        self.assertIsNotNone(merchant.kyc_submitted_at)

        merchant_service.review_kyc(merchant, approved=True)
        self.assertTrue(merchant.is_kyc_approved)
        with self.assertRaises(ValidationError):
            merchant_service.submit_kyc(merchant)

    def test_settlement_account_must_be_numeric(self):
        merchant = merchant_service.register_merchant(self.user, "Shop")

        with self.assertRaises(ValidationError):
            merchant_service.update_settlement_account(merchant, "Shop", "01234-567", "058")
        self.assertFalse(Merchant.objects.get(pk=merchant.pk).has_settlement_account)

        merchant_service.update_settlement_account(merchant, "Shop", " 0123456789 ", "058")
        self.assertTrue(Merchant.objects.get(pk=merchant.pk).has_settlement_account)

    def test_api_key_requires_kyc(self):
        merchant = merchant_service.register_merchant(self.user, "Shop")
        with self.assertRaises(KycNotApproved):
            merchant_service.generate_api_key(merchant)

        merchant_service.review_kyc(merchant, approved=True)
        key = merchant_service.generate_api_key(merchant)

        self.assertRegex(key, r"^sk_live_[0-9a-f]{64}$")
        self.assertNotEqual(merchant_service.generate_api_key(merchant), key)

    def test_bank_name_falls_back_to_code(self):
        self.assertEqual(merchant_service.bank_name("058"), "GTBank")
        self.assertEqual(merchant_service.bank_name("999"), "999")


class MerchantViewTests(TestCase):
    def setUp(self):
        self.user = CustomUser.objects.create_user("shop@example.com", password="pass12345")
        self.client.force_login(self.user)

    def test_register_and_profile(self):
        response = self.client.post(
            reverse("merchants:register"), data={"business_name": "Shop"}, content_type="application/json"
        )
        self.assertEqual(response.status_code, 201)

        response = self.client.get(reverse("merchants:profile"))
        self.assertEqual(response.json()["data"]["business_name"], "Shop")
        self.assertFalse(response.json()["data"]["has_api_key"])

    def test_profile_without_merchant(self):
        response = self.client.get(reverse("merchants:profile"))
        self.assertEqual(response.status_code, 404)

    def test_review_kyc_needs_reviewer(self):
        merchant = merchant_service.register_merchant(self.user, "Shop")
        url = reverse("merchants:review_kyc", args=[merchant.pk])

        response = self.client.post(url, data={"approved": True}, content_type="application/json")
        self.assertEqual(response.status_code, 403)

        reviewer = CustomUser.objects.create_user("kyc@example.com", password="pass12345", role=Role.ADMIN)
        self.client.force_login(reviewer)
        response = self.client.post(url, data={"approved": True}, content_type="application/json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["kyc_status"], "approved")

from types import SimpleNamespace
from unittest import TestCase as UnitTestCase

from django.test import TestCase

from accounts.models import CustomUser, Role
from accounts.permissions import Permission, has_permission, permissions_for, require_permission
from common.errors import PermissionDenied


class CustomUserManagerTests(TestCase):
    def test_create_user_normalizes_email_and_hashes_password(self):
        user = CustomUser.objects.create_user("  Ada@Example.COM ", password="pass12345")

        self.assertEqual(user.email, "ada@example.com")
        self.assertNotEqual(user.password, "pass12345")
        self.assertTrue(user.check_password("pass12345"))
        self.assertEqual(user.role, Role.USER)

    def test_create_user_without_password(self):
        user = CustomUser.objects.create_user("nopass@example.com")
        self.assertFalse(user.has_usable_password())

    def test_create_user_requires_email(self):
        with self.assertRaises(ValueError):
            CustomUser.objects.create_user("", password="pass12345")

    def test_create_superuser(self):
        user = CustomUser.objects.create_superuser("root@example.com", password="pass12345")
        self.assertTrue(user.is_staff)
        self.assertEqual(user.role, Role.SUPER_ADMIN)


class PermissionTests(UnitTestCase):
    def _user(self, role, **extra):
        return SimpleNamespace(is_authenticated=True, is_superuser=False, role=role, **extra)

    def test_merchant_can_request_but_not_manage_settlements(self):
        merchant = self._user(Role.MERCHANT)
        self.assertTrue(has_permission(merchant, Permission.REQUEST_SETTLEMENTS))
        self.assertFalse(has_permission(merchant, Permission.MANAGE_SETTLEMENTS))

    def test_admin_reviews_kyc(self):
        self.assertTrue(has_permission(self._user(Role.ADMIN), Permission.REVIEW_KYC))
        self.assertFalse(has_permission(self._user(Role.ADMIN), Permission.MANAGE_QR_CODES))

    def test_super_admin_and_superuser_have_everything(self):
        self.assertEqual(permissions_for(self._user(Role.SUPER_ADMIN)), frozenset(Permission))
        superuser = SimpleNamespace(is_authenticated=True, is_superuser=True, role=Role.USER)
        self.assertEqual(permissions_for(superuser), frozenset(Permission))

    def test_anonymous_and_unknown_role_have_nothing(self):
        self.assertEqual(permissions_for(SimpleNamespace(is_authenticated=False)), frozenset())
        self.assertEqual(permissions_for(self._user("auditor")), frozenset())

    def test_require_permission_raises(self):
        with self.assertRaises(PermissionDenied):
            require_permission(self._user(Role.USER), Permission.MANAGE_QR_CODES)

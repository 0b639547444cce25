"""
Closed set of permissions and the static role -> permissions mapping.

Permissions are never stored per user; a user's permissions are derived from their
role, so role definitions and granted permissions cannot drift apart.
"""
import enum
from functools import wraps

from accounts.models import Role
from common.errors import PermissionDenied


class Permission(enum.Enum):
    CREATE_PAYMENT_REQUESTS = "create_payment_requests"
    MANAGE_WALLET = "manage_wallet"
    MANAGE_QR_CODES = "manage_qr_codes"
    REQUEST_SETTLEMENTS = "request_settlements"
    MANAGE_SETTLEMENTS = "manage_settlements"
    REVIEW_KYC = "review_kyc"
    VIEW_ALL_TRANSACTIONS = "view_all_transactions"


ROLE_PERMISSIONS = {
    Role.USER: frozenset({
        Permission.CREATE_PAYMENT_REQUESTS,
        Permission.MANAGE_WALLET,
    }),
    Role.MERCHANT: frozenset({
        Permission.CREATE_PAYMENT_REQUESTS,
        Permission.MANAGE_WALLET,
        Permission.MANAGE_QR_CODES,
        Permission.REQUEST_SETTLEMENTS,
    }),
    Role.ADMIN: frozenset({
        Permission.MANAGE_SETTLEMENTS,
        Permission.REVIEW_KYC,
        Permission.VIEW_ALL_TRANSACTIONS,
    }),
    Role.SUPER_ADMIN: frozenset(Permission),
}


def permissions_for(user) -> frozenset:
    if user is None or not getattr(user, "is_authenticated", False):
        return frozenset()
    if getattr(user, "is_superuser", False):
        return frozenset(Permission)
    try:
        role = Role(user.role)
    except ValueError:
        return frozenset()
    return ROLE_PERMISSIONS[role]


def has_permission(user, permission: Permission) -> bool:
    return permission in permissions_for(user)


def require_permission(user, permission: Permission) -> None:
    if not has_permission(user, permission):
        raise PermissionDenied()


def permission_required(permission: Permission):
    """View decorator; raises PermissionDenied, rendered by handles_payment_errors."""
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            require_permission(request.user, permission)
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator

"""
Read side of the Transaction table: filtered, paginated listings for owners and staff.
"""
from django.core.paginator import EmptyPage, Paginator
from django.db.models import Q

from accounts.permissions import Permission, has_permission
from billing.models import Transaction
from common.errors import ValidationError

MAX_PAGE_SIZE = 100
STATUSES = {choice for choice, _ in Transaction.STATUS_CHOICES}


def _positive_int(value, name, default):
    if value in (None, ""):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
    if number < 1:
        raise ValidationError(f"{name} must be at least 1")
    return number


def list_transactions(
    user,
    status: str = None,
    search: str = None,
    start_date=None,
    end_date=None,
    payment_request_id=None,
    qr_code_id=None,
    beneficiary_id=None,
    page=1,
    limit=20,
) -> dict:
    """
    Transactions credited to user, newest first. Users allowed to view all transactions
    see everyone's, optionally narrowed to beneficiary_id.
    search matches reference, customer name or customer email (case-insensitive).
    """
    payment_request_id = _positive_int(payment_request_id, "payment_request", None)
    qr_code_id = _positive_int(qr_code_id, "qr_code", None)
    beneficiary_id = _positive_int(beneficiary_id, "user", None)

    if has_permission(user, Permission.VIEW_ALL_TRANSACTIONS):
        qs = Transaction.objects.all()
        if beneficiary_id:
            qs = qs.filter(user_id=beneficiary_id)
    else:
        qs = Transaction.objects.filter(user=user)

    if status:
        if status not in STATUSES:
            raise ValidationError(f"Unknown status '{status}'")
        qs = qs.filter(status=status)
    if payment_request_id:
        qs = qs.filter(payment_request_id=payment_request_id)
    if qr_code_id:
        qs = qs.filter(qr_code_id=qr_code_id)
    if start_date:
        qs = qs.filter(created_at__date__gte=start_date)
    if end_date:
        qs = qs.filter(created_at__date__lte=end_date)
    if search:
        qs = qs.filter(
            Q(reference__icontains=search)
            | Q(external_reference__icontains=search)
            | Q(customer_name__icontains=search)
            | Q(customer_email__icontains=search)
        )

    limit = min(_positive_int(limit, "limit", 20), MAX_PAGE_SIZE)
    page = _positive_int(page, "page", 1)
    paginator = Paginator(qs.order_by("-created_at", "-id"), limit)
    try:
        rows = list(paginator.page(page).object_list)
    except EmptyPage:
        rows = []
    return {
        "transactions": rows,
        "pagination": {
            "total": paginator.count,
            "page": page,
            "limit": limit,
            "total_pages": paginator.num_pages if paginator.count else 0,
        },
    }

"""
JSON helpers shared by the API views.
"""
import json
import logging
from decimal import Decimal, InvalidOperation
from functools import wraps

from django.http import JsonResponse

from common.errors import PaymentError, ValidationError

logger = logging.getLogger(__name__)


def error_response(exc: PaymentError) -> JsonResponse:
    return JsonResponse({"success": False, "error": exc.as_dict()}, status=exc.status_code)


def success_response(data, message: str = None, status: int = 200) -> JsonResponse:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return JsonResponse(body, status=status)


def json_body(request) -> dict:
    """Parse the request body as a JSON object; raises ValidationError otherwise."""
    try:
        data = json.loads(request.body or b"{}")
    except (ValueError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def decimal_field(data: dict, key: str, required: bool = True, default=None):
    raw = data.get(key, default)
    if raw is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{key} must be a number")
    if not value.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    return value


def handles_payment_errors(view_func):
    """Turn PaymentError raised by a view into the JSON error envelope."""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except PaymentError as exc:
            logger.info("%s: %s %s", view_func.__name__, exc.code, exc.message)
            return error_response(exc)
    return wrapper

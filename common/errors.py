"""
Error taxonomy shared by every service.

Each error carries a stable ``code`` and an HTTP-equivalent ``status_code`` so views
and tests can map the kind to a response without parsing the message. Messages are
safe to show to the end user.
"""


class PaymentError(Exception):
    """Base for all business-rule failures raised by the services."""

    code = "PAYMENT_ERROR"
    status_code = 400
    default_message = "The request could not be completed."

    def __init__(self, message: str = None, code: str = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(PaymentError):
    code = "VALIDATION_ERROR"
    default_message = "Invalid request."


class NotFound(PaymentError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found."


class AlreadyPaid(PaymentError):
    code = "ALREADY_PAID"
    default_message = "This payment has already been made."


class Expired(PaymentError):
    code = "PAYMENT_EXPIRED"
    status_code = 410
    default_message = "This payment link has expired."


class AmountMismatch(PaymentError):
    code = "AMOUNT_MISMATCH"
    default_message = "Amount does not match the expected amount."


class InsufficientBalance(PaymentError):
    code = "INSUFFICIENT_BALANCE"
    default_message = "Insufficient balance."


class KycNotApproved(PaymentError):
    code = "KYC_NOT_APPROVED"
    status_code = 403
    default_message = "KYC must be approved first."


class QrCodeInactive(PaymentError):
    code = "QR_CODE_INACTIVE"
    default_message = "This QR code is no longer active."


class QrCodeExpired(PaymentError):
    code = "QR_CODE_EXPIRED"
    status_code = 410
    default_message = "This QR code has expired."


class UsageLimitReached(PaymentError):
    code = "USAGE_LIMIT_REACHED"
    default_message = "This QR code has reached its usage limit."


class InvalidStatus(PaymentError):
    code = "INVALID_STATUS"
    default_message = "Unrecognized payment status."


class PaymentFailed(PaymentError):
    code = "PAYMENT_FAILED"
    default_message = "The payment was not successful."


class GatewayError(PaymentError):
    code = "GATEWAY_ERROR"
    status_code = 502
    default_message = "Payment could not be processed. Please try again."


class Conflict(PaymentError):
    code = "CONFLICT"
    status_code = 409
    default_message = "A conflicting record already exists."


class WalletNotFound(PaymentError):
    code = "WALLET_NOT_FOUND"
    status_code = 404
    default_message = "Wallet not found."


class PermissionDenied(PaymentError):
    code = "AUTHORIZATION_ERROR"
    status_code = 403
    default_message = "You do not have permission to perform this action."

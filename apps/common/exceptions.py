from django.utils.translation import gettext_lazy as _
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.views import exception_handler


class DomainError(APIException):
    """Base class for every business error raised by the service layer.

    ``facts`` carries the blocking data (available stock, used-at timestamp,
    current status...) so clients can build their own messaging.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = _("Request failed.")
    default_code = "error"

    def __init__(self, detail=None, facts=None):
        super().__init__(detail=detail, code=self.default_code)
        self.facts = facts or {}


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = _("Invalid input.")
    default_code = "validation_error"


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = _("Resource not found.")
    default_code = "not_found"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = _("The request conflicts with the current state.")
    default_code = "conflict"


class AuthorizationError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = _("You do not have rights over this resource.")
    default_code = "forbidden"


class AccountBlockedError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = _("Your account has been blocked. Please contact customer service.")
    default_code = "account_blocked"


class InternalError(DomainError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = _("Unexpected error.")
    default_code = "internal_error"


class TransientError(DomainError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = _("The service is busy. Please retry.")
    default_code = "retry_later"


class InsufficientStockError(ConflictError):
    default_detail = _("Insufficient stock.")
    default_code = "insufficient_stock"


class DeliverySlotFullError(ConflictError):
    default_detail = _("Delivery slot is full.")
    default_code = "delivery_slot_full"


class InsufficientPointsError(ConflictError):
    default_detail = _("Not enough loyalty points.")
    default_code = "insufficient_points"


class BarcodeAlreadyUsedError(ConflictError):
    default_detail = _("This barcode has already been used.")
    default_code = "barcode_used"


class BarcodeExpiredError(ConflictError):
    default_detail = _("This barcode has expired.")
    default_code = "barcode_expired"


class BarcodeCancelledError(ConflictError):
    default_detail = _("This barcode has been cancelled.")
    default_code = "barcode_cancelled"


class InvalidTransitionError(ConflictError):
    default_detail = _("This status change is not allowed.")
    default_code = "invalid_transition"


class ReturnWindowElapsedError(ConflictError):
    default_detail = _("Returns are only accepted within 7 days of delivery.")
    default_code = "return_window_elapsed"


class ReturnAlreadyResolvedError(ConflictError):
    default_detail = _("This return has already been resolved.")
    default_code = "return_resolved"


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(response.data, dict):
        detail = response.data.get("detail", "Request failed")
        fields = {k: v for k, v in response.data.items() if k != "detail"}
    else:
        detail = "Request failed"
        fields = {}

    response.data = {
        "code": "validation_error" if isinstance(exc, DRFValidationError) else getattr(exc, "default_code", "error"),
        "detail": detail,
        "fields": fields,
        "facts": getattr(exc, "facts", {}),
    }
    return response

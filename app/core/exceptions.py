"""
Voucher service error taxonomy and the FastAPI handler that renders it.

Every error carries the HTTP status it maps to, so endpoints can let them
propagate and the gateway sees a meaningful code (503 asks it to redeliver).
"""
import logging
from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class VoucherServiceError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Voucher service error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class VoucherNotFound(VoucherServiceError):
    """No voucher matches the given id, code or session reference."""
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Voucher not found"


class IntegrityFault(VoucherServiceError):
    """
    A reference that must be unique resolved to more than one voucher.

    Never resolved automatically: the operation is aborted and someone has
    to look at the data.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Voucher data integrity fault"


class TransientIO(VoucherServiceError):
    """Storage, gateway or transport failure that is safe to retry later."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Temporary failure, retry later"


class Unrepairable(VoucherServiceError):
    """A consistency violation with no safe automatic fix."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Voucher requires manual intervention"


class InvalidPaymentSignal(VoucherServiceError):
    """Unauthenticated or malformed gateway notification."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid payment notification"


class RenderError(VoucherServiceError):
    default_detail = "Voucher document could not be rendered"


class DeliveryError(VoucherServiceError):
    default_detail = "Message could not be delivered"


async def voucher_exception_handler(request: Request, exc: VoucherServiceError) -> JSONResponse:
    if isinstance(exc, IntegrityFault):
        logger.critical(f"Integrity fault on {request.method} {request.url.path}: {exc.detail}")
    elif exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "code": exc.status_code,
            "message": exc.detail,
            "type": type(exc).__name__,
        },
    )

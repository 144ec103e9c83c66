from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app import crud
from app.api.deps import get_payment_processor
from app.core.exceptions import TransientIO, VoucherNotFound
from app.db.database import get_db
from app.models.voucher import PaymentStatus
from app.schemas.voucher import VoucherPublic, VoucherSuccessResponse
from app.services.payment_event_processor import PaymentEventProcessor
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/success", response_model=VoucherSuccessResponse)
def voucher_purchase_success(
    session_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    processor: PaymentEventProcessor = Depends(get_payment_processor),
):
    """Checkout return page. Confirms the payment with Stripe if the webhook has not arrived yet."""
    voucher = crud.voucher.get_by_session_ref(db, session_ref=session_id)
    if voucher is None:
        raise VoucherNotFound(f"No voucher for checkout session {session_id}")

    if voucher.payment_status != PaymentStatus.COMPLETED:
        try:
            result = processor.confirm_with_gateway(db, session_id)
            logger.info(f"Success page fallback for {voucher.code}: {result.outcome.value}")
        except TransientIO as e:
            # Show what we have; the webhook will still complete the voucher
            logger.warning(f"Success page fallback unavailable for {voucher.code}: {e.detail}")
        db.refresh(voucher)

    return VoucherSuccessResponse(voucher=VoucherPublic.model_validate(voucher))

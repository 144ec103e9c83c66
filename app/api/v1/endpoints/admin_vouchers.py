from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.api.deps import get_fulfillment_pipeline, get_gateway, get_repair_service, require_admin
from app.db.database import get_db
from app.schemas.consistency import ConsistencyReport, VoucherHealthResponse
from app.schemas.fulfillment import FulfillmentReport, ReplayResponse
from app.services.payment_event_processor import PaymentEventProcessor
from app.services.payment_gateway import StripeGateway
from app.services.voucher_fulfillment import FulfillmentPipeline
from app.services.voucher_repair import VoucherRepairService
from app.services.voucher_validation import check_voucher_consistency
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/vouchers/{voucher_id}/replay", response_model=ReplayResponse)
def replay_voucher_payment(
    voucher_id: str,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
    pipeline: FulfillmentPipeline = Depends(get_fulfillment_pipeline),
    admin: Dict[str, Any] = Depends(require_admin),
):
    """Re-run payment confirmation and fulfillment for one voucher, waiting for the result."""
    logger.info(f"Manual replay of voucher {voucher_id} requested by {admin.get('sub')}")

    reports: List[FulfillmentReport] = []
    processor = PaymentEventProcessor(
        gateway=gateway,
        trigger_fulfillment=lambda vid: reports.append(pipeline.run(vid)),
    )
    result = processor.replay(db, voucher_id)

    return ReplayResponse(
        voucher_id=result.voucher_id,
        code=result.code,
        outcome=result.outcome.value,
        payment_status=result.payment_status,
        status=result.status,
        fulfillment=reports[0] if reports else None,
    )


@router.get("/vouchers/{voucher_id}/consistency", response_model=ConsistencyReport)
def get_voucher_consistency(
    voucher_id: str,
    db: Session = Depends(get_db),
    admin: Dict[str, Any] = Depends(require_admin),
):
    return check_voucher_consistency(db, voucher_id)


@router.get("/voucher-health", response_model=VoucherHealthResponse)
def voucher_health(
    voucher_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    fix: bool = False,
    db: Session = Depends(get_db),
    repair: VoucherRepairService = Depends(get_repair_service),
    admin: Dict[str, Any] = Depends(require_admin),
):
    """Consistency report for recent vouchers. Read-only unless fix=true."""
    summary = repair.scan(db, limit=limit, fix=fix, voucher_id=voucher_id)

    if not summary.inconsistent:
        return VoucherHealthResponse(
            status="healthy",
            message=f"All {summary.checked} vouchers are consistent",
            summary=summary,
        )

    if fix:
        logger.info(f"Voucher repair requested by {admin.get('sub')}: {summary.fixed} fixed")
        return VoucherHealthResponse(
            status="repaired",
            message=(
                f"Fixed {summary.fixed} voucher(s), {summary.failed} failed, "
                f"{summary.unrepairable} need manual intervention"
            ),
            summary=summary,
        )

    return VoucherHealthResponse(
        status="issues_found",
        message=f"Found {summary.inconsistent} inconsistent voucher(s)",
        summary=summary,
        fix_available="Call with ?fix=true to apply automatic repairs",
    )

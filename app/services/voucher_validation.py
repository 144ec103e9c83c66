"""
Voucher consistency checks.

check_voucher is pure: it looks at one snapshot and lists every way the
record disagrees with the payment state machine. Violations come back in a
fixed order and say whether the repair service may fix them automatically.
"""
from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from app import crud
from app.core.exceptions import VoucherNotFound
from app.models.voucher import PaymentStatus, VoucherStatus
from app.schemas.consistency import ConsistencyReport, Violation, ViolationCode
from app.schemas.voucher import VoucherSnapshot


def check_voucher(snapshot: VoucherSnapshot) -> List[Violation]:
    issues: List[Violation] = []
    paid = snapshot.payment_status == PaymentStatus.COMPLETED

    if not snapshot.external_session_ref:
        issues.append(Violation(
            code=ViolationCode.MISSING_SESSION_REF,
            message="No checkout session reference",
            repairable=False,
        ))

    if paid and not snapshot.external_payment_ref:
        issues.append(Violation(
            code=ViolationCode.MISSING_PAYMENT_REF,
            message="Payment completed but no payment reference",
            repairable=False,
        ))

    if paid and snapshot.status == VoucherStatus.PENDING:
        issues.append(Violation(
            code=ViolationCode.STATUS_PENDING_AFTER_PAYMENT,
            message="Payment completed but voucher status is still pending",
            repairable=True,
        ))

    if paid and snapshot.paid_at is None:
        issues.append(Violation(
            code=ViolationCode.MISSING_PAID_AT,
            message="Payment completed but paid_at is missing",
            repairable=True,
        ))

    if not paid and snapshot.status == VoucherStatus.ACTIVE:
        issues.append(Violation(
            code=ViolationCode.ACTIVE_WITHOUT_PAYMENT,
            message=f"Voucher is active but payment is {snapshot.payment_status.value}",
            repairable=False,
        ))

    if not (Decimal("0") <= snapshot.current_balance <= snapshot.original_amount):
        issues.append(Violation(
            code=ViolationCode.BALANCE_OUT_OF_RANGE,
            message=f"Balance {snapshot.current_balance} outside 0..{snapshot.original_amount}",
            repairable=False,
        ))

    return issues


def build_report(snapshot: VoucherSnapshot) -> ConsistencyReport:
    issues = check_voucher(snapshot)
    return ConsistencyReport(
        voucher_id=snapshot.id,
        code=snapshot.code,
        is_consistent=not issues,
        issues=issues,
    )


def check_voucher_consistency(db: Session, voucher_id: str) -> ConsistencyReport:
    voucher = crud.voucher.get(db, voucher_id)
    if voucher is None:
        raise VoucherNotFound(f"Voucher {voucher_id} not found")
    return build_report(VoucherSnapshot.model_validate(voucher))

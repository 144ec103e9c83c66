# File: app/services/voucher_repair.py
"""
Voucher Repair Service

Scans recent vouchers with the consistency checks and applies the only two
fixes that can be derived locally: activating a paid voucher stuck in
pending, and backfilling a missing paid_at. Anything else is reported for a
human. Those two fixes are still applied next to a manual issue, except
when the voucher has no session reference. Every voucher is repaired in its
own transaction so one bad row never stops the scan.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import crud
from app.core.exceptions import TransientIO, VoucherNotFound
from app.db.database import SessionLocal
from app.models.base import utcnow
from app.schemas.consistency import (
    RepairAction,
    RepairDetail,
    RepairSummary,
    Violation,
    ViolationCode,
)
from app.schemas.voucher import VoucherSnapshot
from app.services.voucher_validation import check_voucher

logger = logging.getLogger(__name__)


class VoucherRepairService:
    def __init__(self, now: Callable[[], datetime] = utcnow):
        self.now = now

    def scan(
        self,
        db: Session,
        *,
        limit: int = 50,
        fix: bool = False,
        voucher_id: Optional[str] = None,
    ) -> RepairSummary:
        """
        Check the ``limit`` most recent vouchers (or just ``voucher_id``).

        With fix=False nothing is written.
        """
        try:
            if voucher_id:
                voucher = crud.voucher.get(db, voucher_id)
                if voucher is None:
                    raise VoucherNotFound(f"Voucher {voucher_id} not found")
                rows = [voucher]
            else:
                rows = crud.voucher.get_recent(db, limit=limit)
            snapshots = [VoucherSnapshot.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Storage error loading vouchers for repair: {str(e)}")
            raise TransientIO("Voucher store unavailable")

        summary = RepairSummary()
        for snapshot in snapshots:
            detail = self._process(db, snapshot, fix)
            summary.checked += 1
            if detail.action != RepairAction.CONSISTENT:
                summary.inconsistent += 1
            if detail.action == RepairAction.FIXED:
                summary.fixed += 1
            elif detail.action == RepairAction.FAILED:
                summary.failed += 1
            elif detail.action == RepairAction.UNREPAIRABLE:
                summary.unrepairable += 1
            summary.details.append(detail)

        if summary.inconsistent:
            logger.warning(
                f"Voucher scan: {summary.checked} checked, {summary.inconsistent} inconsistent, "
                f"{summary.fixed} fixed, {summary.failed} failed, {summary.unrepairable} unrepairable"
            )
        else:
            logger.info(f"Voucher scan: {summary.checked} checked, all consistent")
        return summary

    def repair_voucher(self, db: Session, voucher_id: str) -> RepairDetail:
        return self.scan(db, fix=True, voucher_id=voucher_id).details[0]

    def _process(self, db: Session, snapshot: VoucherSnapshot, fix: bool) -> RepairDetail:
        issues = check_voucher(snapshot)
        detail = RepairDetail(voucher_id=snapshot.id, code=snapshot.code, action=RepairAction.CONSISTENT, issues=issues)
        if not issues:
            return detail

        manual = [issue.code.value for issue in issues if not issue.repairable]
        if manual:
            logger.warning(f"Voucher {snapshot.code} needs manual intervention: {', '.join(manual)}")

        # Without a session reference the voucher cannot be tied to a payment at all
        if any(issue.code == ViolationCode.MISSING_SESSION_REF for issue in issues):
            detail.action = RepairAction.UNREPAIRABLE
            return detail

        fixable = [issue for issue in issues if issue.repairable]
        if not fix or not fixable:
            detail.action = RepairAction.UNREPAIRABLE if manual else RepairAction.REPORTED
            return detail

        try:
            detail.applied = self._apply(db, snapshot.id, fixable)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to repair voucher {snapshot.code}: {str(e)}")
            detail.action = RepairAction.FAILED
            detail.error = str(e)
            return detail

        logger.info(f"🔧 Repaired voucher {snapshot.code}: {detail.applied}")
        detail.action = RepairAction.UNREPAIRABLE if manual else RepairAction.FIXED
        return detail

    def _apply(self, db: Session, voucher_id: str, issues: List[Violation]) -> List[str]:
        applied = []
        for issue in issues:
            if issue.code == ViolationCode.STATUS_PENDING_AFTER_PAYMENT:
                if crud.voucher.activate_paid(db, voucher_id=voucher_id):
                    applied.append("status=active")
            elif issue.code == ViolationCode.MISSING_PAID_AT:
                if crud.voucher.backfill_paid_at(db, voucher_id=voucher_id, paid_at=self.now()):
                    applied.append("paid_at=now")
        return applied


def run_scheduled_repair(limit: int = 50):
    """Periodic job: repair the most recent vouchers"""
    db = SessionLocal()
    try:
        summary = VoucherRepairService().scan(db, limit=limit, fix=True)
        if summary.unrepairable:
            logger.warning(f"{summary.unrepairable} voucher(s) need manual intervention")
    except Exception as e:
        logger.error(f"Error in voucher repair job: {e}")
    finally:
        db.close()

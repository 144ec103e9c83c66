# File: app/crud/voucher.py
"""
Voucher persistence.

Every state change here is a single conditional UPDATE keyed by voucher id.
The WHERE clause carries the expected pre-state, and the returned row count
tells the caller whether *this* call made the change. Two concurrent callers
can therefore never both observe the same transition.
"""
import secrets
import string
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from app.crud.base import CRUDBase
from app.core.exceptions import IntegrityFault
from app.models.voucher import Voucher, PaymentStatus, VoucherStatus

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_PREFIX = "GV"


def generate_voucher_code(length: int = 8) -> str:
    body = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
    return f"{CODE_PREFIX}-{body[:4]}-{body[4:]}"


class CRUDVoucher(CRUDBase[Voucher]):

    def get_by_code(self, db: Session, *, code: str) -> Optional[Voucher]:
        return db.query(Voucher).filter(Voucher.code == code).first()

    def generate_unique_code(self, db: Session) -> str:
        """New voucher code not used by any stored voucher."""
        code = generate_voucher_code()
        while self.get_by_code(db, code=code) is not None:
            code = generate_voucher_code()
        return code

    def get_by_session_ref(self, db: Session, *, session_ref: str) -> Optional[Voucher]:
        """Resolve a gateway session to its voucher; more than one match is fatal."""
        matches = (
            db.query(Voucher)
            .filter(Voucher.external_session_ref == session_ref)
            .limit(2)
            .all()
        )
        if len(matches) > 1:
            raise IntegrityFault(f"Session reference {session_ref} matches more than one voucher")
        return matches[0] if matches else None

    def get_recent(self, db: Session, *, limit: int = 50) -> List[Voucher]:
        return (
            db.query(Voucher)
            .order_by(Voucher.created_at.desc(), Voucher.id)
            .limit(limit)
            .all()
        )

    # ------------------------------------------------------------------
    # Conditional transitions
    # ------------------------------------------------------------------

    def mark_completed(self, db: Session, *, voucher_id: str, payment_ref: str, paid_at: datetime) -> bool:
        """pending/failed -> completed/active. True only for the caller that made the change."""
        updated = (
            db.query(Voucher)
            .filter(
                Voucher.id == voucher_id,
                Voucher.payment_status.in_([PaymentStatus.PENDING, PaymentStatus.FAILED]),
            )
            .update(
                {
                    Voucher.payment_status: PaymentStatus.COMPLETED,
                    Voucher.status: VoucherStatus.ACTIVE,
                    Voucher.paid_at: paid_at,
                    Voucher.external_payment_ref: payment_ref,
                },
                synchronize_session=False,
            )
        )
        db.commit()
        return updated == 1

    def mark_failed(self, db: Session, *, voucher_id: str) -> bool:
        updated = (
            db.query(Voucher)
            .filter(Voucher.id == voucher_id, Voucher.payment_status == PaymentStatus.PENDING)
            .update({Voucher.payment_status: PaymentStatus.FAILED}, synchronize_session=False)
        )
        db.commit()
        return updated == 1

    def mark_email_sent(self, db: Session, *, voucher_id: str, recipient: bool, sent_at: datetime) -> bool:
        flag = Voucher.recipient_email_sent if recipient else Voucher.purchaser_email_sent
        stamp = Voucher.recipient_email_sent_at if recipient else Voucher.purchaser_email_sent_at
        updated = (
            db.query(Voucher)
            .filter(Voucher.id == voucher_id, flag.is_(False))
            .update({flag: True, stamp: sent_at}, synchronize_session=False)
        )
        db.commit()
        return updated == 1

    # ------------------------------------------------------------------
    # Repairs (caller commits so all fixes for a voucher land together)
    # ------------------------------------------------------------------

    def activate_paid(self, db: Session, *, voucher_id: str) -> bool:
        updated = (
            db.query(Voucher)
            .filter(
                Voucher.id == voucher_id,
                Voucher.payment_status == PaymentStatus.COMPLETED,
                Voucher.status == VoucherStatus.PENDING,
            )
            .update({Voucher.status: VoucherStatus.ACTIVE}, synchronize_session=False)
        )
        return updated == 1

    def backfill_paid_at(self, db: Session, *, voucher_id: str, paid_at: datetime) -> bool:
        updated = (
            db.query(Voucher)
            .filter(
                Voucher.id == voucher_id,
                Voucher.payment_status == PaymentStatus.COMPLETED,
                Voucher.paid_at.is_(None),
            )
            .update({Voucher.paid_at: paid_at}, synchronize_session=False)
        )
        return updated == 1


voucher = CRUDVoucher(Voucher)

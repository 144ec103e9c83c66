# File: app/crud/payment_event.py
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.crud.base import CRUDBase
from app.models.payment_event import PaymentEventLog


class CRUDPaymentEventLog(CRUDBase[PaymentEventLog]):

    def get_by_event_id(self, db: Session, *, event_id: str) -> Optional[PaymentEventLog]:
        return db.query(PaymentEventLog).filter(PaymentEventLog.event_id == event_id).first()

    def record(
        self,
        db: Session,
        *,
        event_id: str,
        event_type: str,
        session_ref: Optional[str],
        outcome: str,
        error: Optional[str] = None,
    ) -> PaymentEventLog:
        """Insert the delivery, or bump the counter when the gateway redelivers it."""
        entry = self.get_by_event_id(db, event_id=event_id)
        if entry is None:
            entry = PaymentEventLog(
                event_id=event_id,
                event_type=event_type,
                session_ref=session_ref,
                outcome=outcome,
                last_error=error,
            )
            db.add(entry)
            try:
                db.commit()
            except IntegrityError:
                # A concurrent delivery of the same event won the insert
                db.rollback()
                entry = self.get_by_event_id(db, event_id=event_id)
            else:
                db.refresh(entry)
                return entry

        entry.delivery_count = (entry.delivery_count or 0) + 1
        entry.outcome = outcome
        entry.last_error = error
        db.commit()
        db.refresh(entry)
        return entry


payment_event = CRUDPaymentEventLog(PaymentEventLog)

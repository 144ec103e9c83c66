# File: app/crud/email_template.py
from typing import Optional
from sqlalchemy.orm import Session
from app.crud.base import CRUDBase
from app.models.email_template import EmailTemplate


class CRUDEmailTemplate(CRUDBase[EmailTemplate]):

    def get_active(self, db: Session, *, name: str) -> Optional[EmailTemplate]:
        return (
            db.query(EmailTemplate)
            .filter(EmailTemplate.name == name, EmailTemplate.active.is_(True))
            .first()
        )


email_template = CRUDEmailTemplate(EmailTemplate)

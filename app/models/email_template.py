from sqlalchemy import Column, String, Text, Boolean
from app.models.base import BaseModel


class EmailTemplate(BaseModel):
    __tablename__ = "email_templates"

    name = Column(String(100), unique=True, index=True, nullable=False)  # voucher_purchase, voucher_gift
    subject = Column(String(500), nullable=False)
    html_body = Column(Text, nullable=False)
    active = Column(Boolean, nullable=False, default=True)

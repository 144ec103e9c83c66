from sqlalchemy import Column, String, Integer, Text
from app.models.base import BaseModel


class PaymentEventLog(BaseModel):
    __tablename__ = "payment_event_logs"

    event_id = Column(String(255), unique=True, index=True, nullable=False)
    event_type = Column(String(100), nullable=False)
    session_ref = Column(String(255), nullable=True, index=True)
    outcome = Column(String(50), nullable=False)  # transitioned, already_completed, ignored, error...
    delivery_count = Column(Integer, nullable=False, default=1)
    last_error = Column(Text, nullable=True)

# File: app/api/deps.py
from functools import lru_cache
from typing import Any, Dict
from fastapi import BackgroundTasks, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.core.config import settings
from app.core.email_service import EmailService, email_service
from app.core.security import decode_token
from app.db.database import SessionLocal
from app.services.payment_event_processor import PaymentEventProcessor
from app.services.payment_gateway import StripeGateway
from app.services.voucher_fulfillment import FulfillmentPipeline
from app.services.voucher_renderer import VoucherRenderer
from app.services.voucher_repair import VoucherRepairService

security = HTTPBearer()


def require_admin(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict[str, Any]:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(credentials.credentials)
    if payload is None or payload.get("sub") is None:
        raise credentials_exception

    if payload.get("role") not in settings.admin_roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return payload


# Capabilities are built once per process and shared by every request

@lru_cache()
def get_gateway() -> StripeGateway:
    return StripeGateway(
        api_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
        timeout=settings.GATEWAY_TIMEOUT,
    )


@lru_cache()
def get_renderer() -> VoucherRenderer:
    return VoucherRenderer(app_url=settings.APP_URL, currency=settings.CURRENCY, brand_name=settings.FROM_NAME)


def get_email_service() -> EmailService:
    return email_service


@lru_cache()
def get_fulfillment_pipeline() -> FulfillmentPipeline:
    return FulfillmentPipeline(
        session_factory=SessionLocal,
        renderer=get_renderer(),
        channel=get_email_service(),
        render_timeout=settings.RENDER_TIMEOUT,
        transmit_timeout=settings.EMAIL_TIMEOUT,
    )


def get_repair_service() -> VoucherRepairService:
    return VoucherRepairService()


def get_payment_processor(
    background_tasks: BackgroundTasks,
    gateway: StripeGateway = Depends(get_gateway),
    pipeline: FulfillmentPipeline = Depends(get_fulfillment_pipeline),
) -> PaymentEventProcessor:
    """Processor whose fulfillment runs after the response has been sent."""
    return PaymentEventProcessor(
        gateway=gateway,
        trigger_fulfillment=lambda voucher_id: background_tasks.add_task(pipeline.run, voucher_id),
    )

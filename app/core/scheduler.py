# File: app/core/scheduler.py
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()

def start_scheduler():
    """Start all scheduled jobs"""
    from app.services.voucher_repair import run_scheduled_repair

    if settings.AUTO_REPAIR_INTERVAL_MINUTES <= 0:
        logger.info("Voucher auto-repair disabled (AUTO_REPAIR_INTERVAL_MINUTES=0)")
        return

    try:
        scheduler.add_job(
            run_scheduled_repair,
            trigger=IntervalTrigger(minutes=settings.AUTO_REPAIR_INTERVAL_MINUTES),
            kwargs={"limit": settings.REPAIR_SCAN_LIMIT},
            id='voucher_auto_repair',
            name='Repair inconsistent vouchers',
            replace_existing=True
        )

        scheduler.start()
        logger.info("✅ Scheduler started successfully")
        logger.info(f"Active jobs: {len(scheduler.get_jobs())}")
    except Exception as e:
        logger.error(f"Failed to start scheduler: {e}")

def stop_scheduler():
    """Stop scheduler gracefully"""
    if not scheduler.running:
        return
    try:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
    except Exception as e:
        logger.error(f"Error stopping scheduler: {e}")

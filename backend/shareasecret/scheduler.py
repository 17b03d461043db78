"""Background scheduler that expires secrets whose TTL has elapsed."""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from shareasecret.config import settings
from shareasecret.errors import LifecycleError
from shareasecret.logging_config import get_logger
from shareasecret.services.alert_service import send_error_alert_sync
from shareasecret.services.secret_service import SecretLifecycle
from shareasecret.services.secret_store import SecretStore

logger = get_logger(__name__)

scheduler = BackgroundScheduler()


def expiry_job(store: SecretStore) -> None:
    """Expire elapsed secrets. Errors are logged and alerted, never raised."""
    try:
        SecretLifecycle(store, settings).sweep()
    except LifecycleError as e:
        send_error_alert_sync(
            error_type="ExpirySweepFailed",
            message=str(e.__cause__ or e),
            context={"job": "expire_secrets"},
        )


def start_scheduler(store: SecretStore) -> None:
    """Start the background scheduler."""
    scheduler.add_job(
        expiry_job,
        trigger=IntervalTrigger(minutes=settings.cleanup_interval_minutes),
        args=[store],
        id="expire_secrets",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("scheduler_started", interval_minutes=settings.cleanup_interval_minutes)


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("scheduler_stopped")

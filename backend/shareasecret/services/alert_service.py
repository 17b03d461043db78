"""Discord webhook alerts for internal errors."""

import threading
from datetime import UTC, datetime, timedelta

import httpx
import structlog

from shareasecret.config import settings

logger = structlog.get_logger()

ALERT_COLOR = 15158332  # Red
MAX_MESSAGE_CHARS = 500
MAX_CONTEXT_CHARS = 200

# One alert per cooldown window so a failing database doesn't flood the channel
_last_alert_time: datetime | None = None
_alert_cooldown = timedelta(seconds=30)
_alert_lock = threading.Lock()


def _truncate(value: str, limit: int) -> str:
    return value[:limit] + "..." if len(value) > limit else value


def _should_send_alert() -> bool:
    global _last_alert_time
    with _alert_lock:
        now = datetime.now(UTC)
        if _last_alert_time and (now - _last_alert_time) < _alert_cooldown:
            return False
        _last_alert_time = now
        return True


def reset_alert_rate_limit() -> None:
    """Reset the rate limit state. Used in tests."""
    global _last_alert_time
    with _alert_lock:
        _last_alert_time = None


def build_alert_payload(
    error_type: str,
    message: str,
    *,
    path: str | None = None,
    correlation_id: str | None = None,
    status_code: int | None = None,
    context: dict | None = None,
) -> dict:
    fields = [{"name": "Error Type", "value": error_type, "inline": True}]
    if status_code:
        fields.append({"name": "Status", "value": str(status_code), "inline": True})
    if path:
        fields.append({"name": "Path", "value": path, "inline": True})
    if correlation_id:
        fields.append({"name": "Correlation ID", "value": correlation_id, "inline": True})
    if message:
        fields.append(
            {"name": "Message", "value": _truncate(message, MAX_MESSAGE_CHARS), "inline": False}
        )
    for key, value in (context or {}).items():
        fields.append(
            {"name": key, "value": _truncate(str(value), MAX_CONTEXT_CHARS), "inline": True}
        )

    return {
        "embeds": [
            {
                "title": "Server Error Alert",
                "color": ALERT_COLOR,
                "fields": fields,
                "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            }
        ]
    }


def _alert_webhook_url(error_type: str) -> str | None:
    webhook_url = settings.discord_alerts_webhook_url
    if not webhook_url:
        logger.debug("discord_alerts_webhook_not_configured")
        return None

    if not _should_send_alert():
        logger.info("discord_alert_rate_limited", error_type=error_type)
        return None

    return webhook_url


def _log_failure(error_type: str, error: httpx.HTTPError) -> None:
    if isinstance(error, httpx.HTTPStatusError):
        logger.error(
            "discord_alert_webhook_error",
            error_type=error_type,
            status_code=error.response.status_code,
        )
    else:
        logger.error("discord_alert_request_error", error_type=error_type, error=str(error))


async def send_error_alert(error_type: str, message: str, **details) -> bool:
    """
    Send an error alert to the Discord webhook.

    Returns True if the alert was delivered. Failures are logged, never
    raised. Rate-limited to one alert per 30 seconds.
    """
    webhook_url = _alert_webhook_url(error_type)
    if webhook_url is None:
        return False

    payload = build_alert_payload(error_type, message, **details)
    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(webhook_url, json=payload, timeout=10.0)
            response.raise_for_status()
    except httpx.HTTPError as e:
        _log_failure(error_type, e)
        return False

    logger.info("discord_error_alert_sent", error_type=error_type)
    return True


def send_error_alert_sync(error_type: str, message: str, **details) -> bool:
    """Synchronous variant for scheduler jobs and sync request handlers."""
    webhook_url = _alert_webhook_url(error_type)
    if webhook_url is None:
        return False

    payload = build_alert_payload(error_type, message, **details)
    try:
        with httpx.Client() as client:
            response = client.post(webhook_url, json=payload, timeout=10.0)
            response.raise_for_status()
    except httpx.HTTPError as e:
        _log_failure(error_type, e)
        return False

    logger.info("discord_error_alert_sent", error_type=error_type)
    return True

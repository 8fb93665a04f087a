"""Celery app and tasks for applicant notifications."""

import asyncio
import logging
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib
from celery import Celery

from reserve_api.core.config import settings

logger = logging.getLogger("reserve_api.tasks")

celery_app = Celery(
    "reserve_api",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    task_soft_time_limit=60,
    task_time_limit=120,
    broker_connection_retry_on_startup=False,
)


def _decision_message(name: str, status: str, reason: Optional[str]) -> str:
    if status == "approved":
        return (
            f"Dear {name},\n\n"
            "Your reservist account request has been approved. "
            f"You can now sign in at {settings.FRONTEND_URL}/login.\n"
        )
    return (
        f"Dear {name},\n\n"
        "Your reservist account request has been rejected.\n"
        f"Reason: {reason}\n"
    )


@celery_app.task(bind=True, name="notify_account_decision", max_retries=3, default_retry_delay=30)
def notify_account_decision(self, email: str, name: str, status: str, reason: Optional[str] = None) -> dict:
    """Email the applicant the outcome of their account request."""
    if not settings.SMTP_HOST:
        logger.info("SMTP not configured; skipping %s notice to %s", status, email)
        return {"sent": False, "reason": "smtp_not_configured"}

    message = MIMEText(_decision_message(name, status, reason), "plain")
    message["From"] = settings.EMAIL_FROM
    message["To"] = email
    message["Subject"] = f"Account request {status}"

    try:
        asyncio.run(aiosmtplib.send(
            message,
            hostname=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USER or None,
            password=settings.SMTP_PASSWORD or None,
            start_tls=True,
            timeout=30,
        ))
    except (aiosmtplib.SMTPException, OSError) as exc:
        logger.error("Failed to send %s notice to %s: %s", status, email, exc)
        raise self.retry(exc=exc)

    logger.info("Sent %s notice to %s", status, email)
    return {"sent": True}


def enqueue_account_decision(email: str, name: str, status: str, reason: Optional[str] = None) -> None:
    """Queue the applicant notice; broker failures are logged, not raised."""
    try:
        notify_account_decision.delay(email, name, status, reason)
    except Exception:
        logger.exception("Could not enqueue %s notice for %s", status, email)

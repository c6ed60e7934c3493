"""
Email-related Celery tasks for quota notifications.
"""
import asyncio
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Tuple

import aiosmtplib

from surveyflow.config import settings
from workers.celery_app import app

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async code in sync context."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def build_quota_alert(
    quota_name: str,
    survey_id: str,
    percentage: int,
    current_count: int,
    limit: int,
) -> Tuple[str, str, str]:
    """
    Build the subject, HTML body and plain-text body of a quota alert.
    """
    if percentage >= 100:
        subject = f'Quota "{quota_name}" is FULL'
        footer = (
            "This quota is now full. New matching responses will be handled "
            "according to the quota's action."
        )
    else:
        subject = f'Quota "{quota_name}" is {percentage}% full'
        footer = ""

    body_html = f"""
      <h2>Quota Alert</h2>
      <p>The quota "<strong>{quota_name}</strong>" for survey {survey_id} has reached
      <strong>{percentage}%</strong> of its limit.</p>
      <ul>
        <li>Current count: {current_count}</li>
        <li>Limit: {limit}</li>
      </ul>
      {f"<p><strong>{footer}</strong></p>" if footer else ""}
    """

    body_text = (
        f'The quota "{quota_name}" for survey {survey_id} has reached {percentage}% '
        f"of its limit.\nCurrent count: {current_count}\nLimit: {limit}\n"
    )
    if footer:
        body_text += f"\n{footer}\n"

    return subject, body_html, body_text


async def _send_via_smtp(recipient: str, subject: str, body_html: str, body_text: str) -> None:
    """Send one message through the configured SMTP server."""
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.smtp_from_name} <{settings.smtp_from_email}>"
    msg["To"] = recipient
    msg.attach(MIMEText(body_text, "plain"))
    msg.attach(MIMEText(body_html, "html"))

    smtp = aiosmtplib.SMTP(hostname=settings.smtp_host, port=settings.smtp_port)
    await smtp.connect()

    if settings.smtp_use_tls:
        await smtp.starttls()

    if settings.smtp_username and settings.smtp_password:
        await smtp.login(settings.smtp_username, settings.smtp_password)

    await smtp.send_message(msg)
    await smtp.quit()


@app.task(bind=True, name="workers.tasks.email_tasks.send_quota_alert")
def send_quota_alert(
    self,
    quota_id: str,
    quota_name: str,
    survey_id: str,
    percentage: int,
    current_count: int,
    limit: int,
    recipients: List[str],
):
    """
    Email a quota fill-level alert to each recipient.

    Args:
        quota_id: Quota that crossed a threshold
        quota_name: Quota display name
        survey_id: Owning survey
        percentage: Threshold crossed (50, 80, 100)
        current_count: Count after the increment
        limit: Quota limit
        recipients: Addresses from the quota's alert_emails
    """
    if not settings.smtp_enabled or not settings.smtp_host:
        logger.info(f"SMTP disabled; skipping {percentage}% alert for quota {quota_id}")
        return {"status": "skipped", "quota_id": quota_id}

    subject, body_html, body_text = build_quota_alert(
        quota_name, survey_id, percentage, current_count, limit
    )

    async def _send_all():
        sent = 0
        for recipient in recipients:
            try:
                await _send_via_smtp(recipient, subject, body_html, body_text)
                sent += 1
            except (aiosmtplib.SMTPException, OSError) as e:
                logger.error(f"Failed to send quota alert to {recipient}: {str(e)}")
        return sent

    sent = run_async(_send_all())
    logger.info(f"Quota {quota_id} {percentage}% alert sent to {sent}/{len(recipients)} recipients")
    return {"status": "completed", "quota_id": quota_id, "sent": sent}

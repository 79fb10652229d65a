"""
Notification tasks executed by the Celery worker.

One task delivers one e-mail. SMTP failures are retried with a delay; once
the retries are used up the failure is logged and the task gives up, so a
broken mailbox never blocks the queue.
"""

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    name="billing.send_notification",
    max_retries=3,
    default_retry_delay=60,
    ignore_result=True,
)
def send_notification(self, recipient: str, subject: str, body: str, event: str = "") -> bool:
    try:
        send_mail(
            subject=subject,
            message=body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient],
            fail_silently=False,
        )
    except OSError as exc:
        if self.request.retries >= self.max_retries:
            logger.error(
                "Notification %s to %s failed after %s attempt(s): %s",
                event or subject,
                recipient,
                self.request.retries + 1,
                exc,
            )
            return False
        logger.warning("Notification %s to %s failed, retrying: %s", event or subject, recipient, exc)
        raise self.retry(exc=exc)

    logger.debug("Notification %s sent to %s", event, recipient)
    return True

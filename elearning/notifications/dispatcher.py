"""
Billing Notification Dispatcher

Billing events (order completed, refund decided, payout requested,
subscription canceled) are turned into notifications and handed to the
Celery worker, one ``send_notification`` task per recipient. Tasks are
isolated from each other: a failing recipient is retried and logged by its
own task and never affects the others.

Tasks are enqueued through ``transaction.on_commit`` so nothing is sent for
a transaction that is rolled back.

Author: DSP Development Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from django.db import transaction
from kombu.exceptions import OperationalError

from .tasks import send_notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    recipient: str
    subject: str
    body: str
    event: str = ""
    context: Dict[str, str] = field(default_factory=dict)


def enqueue(notifications: List[Notification]) -> int:
    """
    Queue one delivery task per notification with a recipient.

    Returns the number of queued tasks. An unreachable broker is logged and
    leaves the remaining notifications unaffected.
    """
    queued = 0
    for notification in notifications:
        if not notification.recipient:
            continue
        try:
            send_notification.delay(
                notification.recipient, notification.subject, notification.body, notification.event
            )
        except OperationalError:
            logger.exception(
                "Could not queue notification %s to %s", notification.event, notification.recipient
            )
            continue
        queued += 1
    return queued


def enqueue_on_commit(notifications: List[Notification]) -> None:
    if not notifications:
        return
    transaction.on_commit(lambda: enqueue(notifications))


# ---------- billing events ----------


def notify_order_completed(order) -> None:
    email = order.customer_email or getattr(order.user, "email", "")
    enqueue_on_commit(
        [
            Notification(
                recipient=email,
                subject=f"Your order {order.order_number} is complete",
                body=f"Thank you for your purchase. Total paid: {order.total} {order.currency.upper()}.",
                event="order_completed",
                context={"order_number": order.order_number},
            )
        ]
    )


def notify_refund_decided(refund) -> None:
    enqueue_on_commit(
        [
            Notification(
                recipient=getattr(refund.user, "email", ""),
                subject=f"Refund for order {refund.order.order_number}: {refund.get_status_display()}",
                body=f"Your refund request of {refund.amount} is now {refund.status}.\n{refund.admin_notes}".strip(),
                event="refund_decided",
                context={"refund_id": str(refund.pk), "status": refund.status},
            )
        ]
    )


def notify_payout_requested(payout) -> None:
    enqueue_on_commit(
        [
            Notification(
                recipient=getattr(payout.instructor, "email", ""),
                subject="Payout requested",
                body=f"We received your payout request of {payout.amount} {payout.currency.upper()}.",
                event="payout_requested",
                context={"payout_id": str(payout.pk)},
            )
        ]
    )


def notify_subscription_canceled(subscription) -> None:
    enqueue_on_commit(
        [
            Notification(
                recipient=getattr(subscription.user, "email", ""),
                subject="Your subscription has been canceled",
                body=(
                    f"Your {subscription.plan.name} subscription stays active until "
                    f"{subscription.current_period_end:%Y-%m-%d}."
                ),
                event="subscription_canceled",
                context={"subscription_id": str(subscription.pk)},
            )
        ]
    )

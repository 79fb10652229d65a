"""
Billing Webhook Dispatcher
==========================

Routes already-verified Stripe events to the billing services. Signature
verification and persistence of the raw event are done by dj-stripe before
anything here runs.

Routing:
- checkout.session.completed / checkout.session.expired → orders and subscriptions
- payment_intent.succeeded / payment_intent.payment_failed → orders
- customer.subscription.updated / customer.subscription.deleted → subscriptions
- invoice.paid / invoice.payment_succeeded / invoice.payment_failed → subscriptions
- charge.refunded → refunds

Replays are skipped through ``ProcessedWebhookEvent``. The log row is only
written when every handler succeeded; a failing event rolls back completely
and stays retryable.

Author: DSP Development Team
Date: 2025-09-03
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from django.db import IntegrityError, transaction

from .models import ProcessedWebhookEvent

logger = logging.getLogger(__name__)

ORDER_EVENTS = {
    "checkout.session.completed",
    "checkout.session.expired",
    "payment_intent.succeeded",
    "payment_intent.payment_failed",
}
SUBSCRIPTION_EVENTS = {
    "checkout.session.completed",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "invoice.paid",
    "invoice.payment_succeeded",
    "invoice.payment_failed",
}
REFUND_EVENTS = {"charge.refunded"}


class WebhookRouter:
    """
    Holds the services events are routed to. Services are created lazily so
    importing this module never touches settings or the payment provider.
    """

    def __init__(self, checkout=None, subscriptions=None, refunds=None):
        self._checkout = checkout
        self._subscriptions = subscriptions
        self._refunds = refunds

    @property
    def checkout(self):
        if self._checkout is None:
            from elearning.orders.services import CheckoutService

            self._checkout = CheckoutService()
        return self._checkout

    @property
    def subscriptions(self):
        if self._subscriptions is None:
            from elearning.subscriptions.services import SubscriptionService

            self._subscriptions = SubscriptionService()
        return self._subscriptions

    @property
    def refunds(self):
        if self._refunds is None:
            from elearning.refunds.services import RefundService

            self._refunds = RefundService()
        return self._refunds

    def route(self, event_type: str, payload: Dict[str, Any], event_created: Optional[datetime] = None) -> bool:
        """Apply the event; returns True if at least one service is interested in it."""
        handled = False
        if event_type in ORDER_EVENTS:
            self.checkout.handle_webhook_event(event_type, payload)
            handled = True
        if event_type in SUBSCRIPTION_EVENTS:
            self.subscriptions.handle_webhook_event(event_type, payload, event_created=event_created)
            handled = True
        if event_type in REFUND_EVENTS:
            refunds = (payload.get("refunds") or {}).get("data") or []
            self.refunds.mark_processed_by_payment_intent(
                payload.get("payment_intent") or "",
                provider_refund_id=refunds[0].get("id", "") if refunds else "",
            )
            handled = True
        return handled


def dispatch_event(
    event_id: str,
    event_type: str,
    payload: Dict[str, Any],
    event_created: Optional[datetime] = None,
    router: Optional[WebhookRouter] = None,
) -> bool:
    """
    Apply a provider event exactly once.

    Returns:
        True if the event was applied now, False if it was a replay or
        nothing is interested in it.

    Raises:
        Whatever the services raise; nothing is recorded in that case.
    """
    if ProcessedWebhookEvent.objects.filter(event_id=event_id).exists():
        logger.info("[webhook] replay of %s (%s) skipped", event_type, event_id)
        return False

    router = router or WebhookRouter()
    try:
        with transaction.atomic():
            handled = router.route(event_type, payload, event_created)
            if not handled:
                logger.debug("[webhook] unhandled event type: %s", event_type)
                return False
            ProcessedWebhookEvent.objects.create(event_id=event_id, event_type=event_type)
    except IntegrityError:
        if not ProcessedWebhookEvent.objects.filter(event_id=event_id).exists():
            raise
        # a concurrent delivery of the same event committed first
        logger.info("[webhook] %s (%s) processed concurrently", event_type, event_id)
        return False

    logger.info("[webhook] %s (%s) applied", event_type, event_id)
    return True

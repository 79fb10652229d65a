"""
Stripe Webhook Signal Handlers for Billing (version-agnostic)
=============================================================

This module processes verified Stripe events that dj-stripe has already
validated and stored. We do not talk to Stripe directly from signals.
Instead, we react to persisted `djstripe.models.Event` rows using Django's
`post_save` signal, which is stable across dj-stripe versions, and hand the
event's `data.object` to the billing webhook dispatcher (see webhooks.py).

Safety:
- Never re-raise from signal handler (prevents webhook retry storms).
- Replays are skipped by the dispatcher's idempotency log.
- A failed event leaves no trace in the log and can be re-sent from the
  Stripe dashboard or re-processed with dj-stripe's tooling.

Author: DSP Development Team
Date: 2025-09-03
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from django.db.models.signals import post_save
from django.dispatch import receiver

from djstripe.models import Event

from .webhooks import dispatch_event

logger = logging.getLogger(__name__)


def _extract_data_object(event: Event) -> Dict[str, Any]:
    """
    Extract the Stripe event's `data.object` payload from a dj-stripe Event.

    dj-stripe stores the raw Stripe JSON in `event.data`. Depending on the
    Stripe event and dj-stripe version, the shape may vary. This function
    normalizes access to the inner object.

    Returns:
        A dict representing the `data.object` (or `{}` if not found).
    """
    data = event.data or {}
    if not isinstance(data, dict):
        return {}
    # Standard Stripe event shape: {"data": {"object": {...}}}
    inner = data.get("data")
    if isinstance(inner, dict) and isinstance(inner.get("object"), dict):
        return inner["object"]
    # Fallback: sometimes `object` is top-level
    if isinstance(data.get("object"), dict):
        return data["object"]
    return {}


@receiver(post_save, sender=Event)
def on_djstripe_event_created(sender, instance: Event, created: bool, **kwargs):
    """
    Post-save hook for dj-stripe Event.

    Runs once for each *new* event saved by dj-stripe (after signature
    verification and de-dup) and forwards it to the billing dispatcher.
    Never re-raises to avoid webhook retry storms.
    """
    if not created:
        return

    event_type = instance.type
    logger.info("[webhook] %s (event_id=%s)", event_type, instance.id)

    try:
        dispatch_event(
            event_id=instance.id,
            event_type=event_type,
            payload=_extract_data_object(instance),
            event_created=instance.created,
        )
    except Exception as exc:
        # Never re-raise: Stripe may retry. We just log.
        logger.exception("Error handling event %s: %s", event_type, exc)

"""
Stripe Integration Models
=========================

ProcessedWebhookEvent is the idempotency log of provider events that were
applied to billing state. A row is written in the same transaction as the
state change, so an event that failed half-way stays retryable and a
replayed event is skipped.

Author: DSP Development Team
Date: 2025-09-03
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class ProcessedWebhookEvent(models.Model):
    event_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=100)
    processed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Processed Webhook Event")
        verbose_name_plural = _("Processed Webhook Events")
        ordering = ["-processed_at", "-id"]
        db_table = "stripe_processed_webhook_event"

    def __str__(self) -> str:
        return f"{self.event_type} ({self.event_id})"

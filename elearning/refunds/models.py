"""
Refund Model

One refund record per order (one-to-one). Status lifecycle:
    pending → approved | rejected
    approved → processed (funds returned by the payment provider)

Approved and processed refunds are terminal for their order. Refund rows
are an audit trail and are never deleted.

Author: DSP Development Team
Version: 1.0.0
"""

from django.db import models
from django.conf import settings
from django.utils.translation import gettext_lazy as _

User = settings.AUTH_USER_MODEL

__all__ = ["Refund"]


class Refund(models.Model):
    class Reason(models.TextChoices):
        NOT_AS_DESCRIBED = "not_as_described", _("Not as described")
        DUPLICATE = "duplicate", _("Duplicate purchase")
        TECHNICAL_ISSUE = "technical_issue", _("Technical issue")
        NO_LONGER_NEEDED = "no_longer_needed", _("No longer needed")
        OTHER = "other", _("Other")

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        APPROVED = "approved", _("Approved")
        REJECTED = "rejected", _("Rejected")
        PROCESSED = "processed", _("Processed")

    order = models.OneToOneField("elearning.Order", on_delete=models.PROTECT, related_name="refund")
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="refunds")
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    reason = models.CharField(max_length=30, choices=Reason.choices, default=Reason.OTHER)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    admin_notes = models.TextField(blank=True)
    processed_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="processed_refunds"
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    provider_refund_id = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Refund")
        verbose_name_plural = _("Refunds")
        ordering = ["-created_at", "-id"]
        db_table = "elearning_refund"

    def __str__(self) -> str:
        return f"Refund {self.pk} for order {self.order_id} ({self.status})"

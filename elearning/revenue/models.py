"""
Instructor Revenue Models

Models:
- InstructorEarning: instructor share of one order item (created exactly once)
- Payout: withdrawal request of an instructor against available earnings

Earning lifecycle: pending → available (after the hold period) → paid
                   any of them → reversed (the order was refunded)
Payout lifecycle:  pending → paid | failed

Author: DSP Development Team
Version: 1.0.0
"""

from django.db import models
from django.conf import settings
from django.utils.translation import gettext_lazy as _

User = settings.AUTH_USER_MODEL

__all__ = ["InstructorEarning", "Payout"]


class Payout(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        PAID = "paid", _("Paid")
        FAILED = "failed", _("Failed")

    instructor = models.ForeignKey(User, on_delete=models.PROTECT, related_name="payouts")
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="usd")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    method = models.CharField(max_length=50, blank=True)
    transaction_id = models.CharField(max_length=255, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Payout")
        verbose_name_plural = _("Payouts")
        ordering = ["-created_at", "-id"]
        db_table = "elearning_payout"
        constraints = [
            models.CheckConstraint(condition=models.Q(amount__gt=0), name="payout_amount_positive"),
        ]

    def __str__(self) -> str:
        return f"Payout {self.pk} {self.amount} ({self.status})"


class InstructorEarning(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        AVAILABLE = "available", _("Available")
        PAID = "paid", _("Paid")
        REVERSED = "reversed", _("Reversed")

    instructor = models.ForeignKey(User, on_delete=models.PROTECT, related_name="earnings")
    order_item = models.OneToOneField(
        "elearning.OrderItem", on_delete=models.PROTECT, related_name="earning"
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    platform_fee = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    payout = models.ForeignKey(
        Payout, on_delete=models.SET_NULL, null=True, blank=True, related_name="earnings"
    )
    available_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    reversed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Instructor Earning")
        verbose_name_plural = _("Instructor Earnings")
        ordering = ["created_at", "id"]
        db_table = "elearning_instructor_earning"

    def __str__(self) -> str:
        return f"Earning {self.amount} for {self.instructor_id} ({self.status})"

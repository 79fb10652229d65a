"""
Order & Order Item Models

An Order is produced by checkout (cart or bundle) and settled by the
payment provider. Each OrderItem carries the price of one course and the
platform fee / instructor share split computed at checkout time.

Status lifecycle:
    pending → completed → refunded
    pending → failed → completed (late payment confirmation)

Author: DSP Development Team
Version: 1.0.0
"""

import uuid

from django.db import models
from django.conf import settings
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

User = settings.AUTH_USER_MODEL

__all__ = ["Order", "OrderItem", "generate_order_number"]


def generate_order_number() -> str:
    """Human readable order number: ORD-YYYYMMDD-XXXXXXXX."""
    return f"ORD-{timezone.now():%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


class Order(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        COMPLETED = "completed", _("Completed")
        REFUNDED = "refunded", _("Refunded")
        FAILED = "failed", _("Failed")

    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="orders")
    order_number = models.CharField(max_length=32, unique=True, default=generate_order_number)
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    discount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    currency = models.CharField(max_length=3, default="usd")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    bundle = models.ForeignKey(
        "elearning.Bundle",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
    )
    coupon = models.ForeignKey(
        "elearning.Coupon",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
    )
    customer_email = models.EmailField(blank=True)
    # Checkout session id (or another provider reference) used to collect payment
    payment_reference = models.CharField(max_length=255, blank=True, db_index=True)
    payment_intent_id = models.CharField(max_length=255, blank=True, db_index=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")
        ordering = ["-created_at", "-id"]
        db_table = "elearning_order"
        constraints = [
            models.CheckConstraint(condition=models.Q(total__gte=0), name="order_total_non_negative"),
            models.CheckConstraint(condition=models.Q(discount__gte=0), name="order_discount_non_negative"),
        ]

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"

    @property
    def is_free(self) -> bool:
        return self.total == 0


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    course = models.ForeignKey("elearning.Course", on_delete=models.PROTECT, related_name="order_items")
    price = models.DecimalField(max_digits=10, decimal_places=2)
    platform_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    instructor_share = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    class Meta:
        verbose_name = _("Order Item")
        verbose_name_plural = _("Order Items")
        ordering = ["id"]
        db_table = "elearning_order_item"
        constraints = [
            models.UniqueConstraint(fields=["order", "course"], name="uniq_order_item_course"),
        ]

    def __str__(self) -> str:
        return f"{self.order_id}:{self.course_id} @ {self.price}"

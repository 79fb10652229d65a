"""
Coupon Model

A coupon reduces the total of a cart checkout. Three kinds exist:
- percentage: ``value`` percent off the eligible subtotal
- fixed: ``value`` off the eligible subtotal
- free: the eligible subtotal is waived completely

A coupon is valid while active, inside its [starts_at, expires_at] window
and below its usage limit. ``used_count`` is incremented when an order that
used the coupon settles.

Author: DSP Development Team
Version: 1.0.0
"""

from django.db import models
from django.conf import settings
from django.utils.translation import gettext_lazy as _

User = settings.AUTH_USER_MODEL

__all__ = ["Coupon"]


class Coupon(models.Model):
    class Type(models.TextChoices):
        PERCENTAGE = "percentage", _("Percentage")
        FIXED = "fixed", _("Fixed amount")
        FREE = "free", _("Free")

    code = models.CharField(max_length=50, unique=True)
    coupon_type = models.CharField(max_length=20, choices=Type.choices)
    value = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    min_purchase = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    max_discount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)
    per_user_limit = models.PositiveIntegerField(default=1)
    # Empty means the coupon applies to every course
    applicable_courses = models.ManyToManyField("elearning.Course", blank=True, related_name="coupons")
    starts_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="created_coupons"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Coupon")
        verbose_name_plural = _("Coupons")
        ordering = ["-created_at", "-id"]
        db_table = "elearning_coupon"
        constraints = [
            models.CheckConstraint(condition=models.Q(value__gte=0), name="coupon_value_non_negative"),
            models.CheckConstraint(
                condition=~models.Q(coupon_type="percentage") | models.Q(value__lte=100),
                name="coupon_percentage_max_100",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.code} ({self.coupon_type})"

    def is_valid(self, now) -> bool:
        if not self.is_active:
            return False
        if self.starts_at and now < self.starts_at:
            return False
        if self.expires_at and now > self.expires_at:
            return False
        if self.usage_limit is not None and self.used_count >= self.usage_limit:
            return False
        return True

"""
Subscription Models

Models:
- SubscriptionPlan: recurring plan with monthly and yearly price
- Subscription: a user's subscription to a plan

State machine (see ``TRANSITIONS``):
    trialing → active | past_due | canceled | expired
    active   → past_due | canceled | expired
    past_due → active | canceled | expired
    canceled, expired: terminal

At most one subscription per user may be in a non-terminal state; this is
enforced by a conditional unique constraint so concurrent subscribe calls
cannot create two live subscriptions.

Author: DSP Development Team
Version: 1.0.0
"""

from django.db import models
from django.conf import settings
from django.utils.translation import gettext_lazy as _

User = settings.AUTH_USER_MODEL

__all__ = ["SubscriptionPlan", "Subscription", "TRANSITIONS", "LIVE_STATUSES"]


class SubscriptionPlan(models.Model):
    name = models.CharField(max_length=100)
    slug = models.SlugField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    price_monthly = models.DecimalField(max_digits=10, decimal_places=2)
    price_yearly = models.DecimalField(max_digits=10, decimal_places=2)
    features = models.JSONField(default=list, blank=True)
    max_courses = models.PositiveIntegerField(
        null=True, blank=True, help_text=_("Leave empty for unlimited courses")
    )
    is_active = models.BooleanField(default=True)
    stripe_price_monthly_id = models.CharField(max_length=255, blank=True)
    stripe_price_yearly_id = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Subscription Plan")
        verbose_name_plural = _("Subscription Plans")
        ordering = ["price_monthly", "id"]
        db_table = "elearning_subscription_plan"

    def __str__(self) -> str:
        return self.name

    def price_for(self, interval: str):
        return self.price_yearly if interval == Subscription.Interval.YEARLY else self.price_monthly

    def provider_price_for(self, interval: str) -> str:
        if interval == Subscription.Interval.YEARLY:
            return self.stripe_price_yearly_id
        return self.stripe_price_monthly_id


class Subscription(models.Model):
    class Status(models.TextChoices):
        TRIALING = "trialing", _("Trialing")
        ACTIVE = "active", _("Active")
        PAST_DUE = "past_due", _("Past Due")
        CANCELED = "canceled", _("Canceled")
        EXPIRED = "expired", _("Expired")

    class Interval(models.TextChoices):
        MONTHLY = "monthly", _("Monthly")
        YEARLY = "yearly", _("Yearly")

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="subscriptions")
    plan = models.ForeignKey(SubscriptionPlan, on_delete=models.PROTECT, related_name="subscriptions")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    interval = models.CharField(max_length=10, choices=Interval.choices, default=Interval.MONTHLY)
    current_period_start = models.DateTimeField()
    current_period_end = models.DateTimeField()
    cancel_at_period_end = models.BooleanField(default=False)
    canceled_at = models.DateTimeField(null=True, blank=True)
    trial_end = models.DateTimeField(null=True, blank=True)
    stripe_subscription_id = models.CharField(max_length=255, blank=True, db_index=True)
    stripe_customer_id = models.CharField(max_length=255, blank=True)
    # Idempotency markers for provider webhooks
    last_paid_invoice_id = models.CharField(max_length=255, blank=True)
    provider_event_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Subscription")
        verbose_name_plural = _("Subscriptions")
        ordering = ["-created_at", "-id"]
        db_table = "elearning_subscription"
        constraints = [
            models.UniqueConstraint(
                fields=["user"],
                condition=models.Q(status__in=["trialing", "active", "past_due"]),
                name="uniq_live_subscription_per_user",
            ),
            models.CheckConstraint(
                condition=models.Q(current_period_end__gt=models.F("current_period_start")),
                name="subscription_period_end_after_start",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user} – {self.plan} ({self.status})"

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES


# Keys and members are plain strings; lookups go through str(status).
LIVE_STATUSES = ("trialing", "active", "past_due")

TRANSITIONS = {
    "trialing": ("active", "past_due", "canceled", "expired"),
    "active": ("past_due", "canceled", "expired"),
    "past_due": ("active", "canceled", "expired"),
    "canceled": (),
    "expired": (),
}

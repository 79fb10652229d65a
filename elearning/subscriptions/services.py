"""
Subscription Manager

Owns the subscription state machine: plan administration, subscribe,
cancel/resume at period end, plan changes, reaping of ended cancellations
and reconciliation with the payment provider's webhook events.

Webhook handling is idempotent and tolerant of out-of-order delivery:
- ``customer.subscription.updated`` events older than the last applied one
  are dropped (``provider_event_at``)
- a paid invoice extends the period at most once (``last_paid_invoice_id``)
- transitions into a state the subscription is already in are no-ops

Author: DSP Development Team
Version: 1.0.0
"""

import calendar
import logging
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.text import slugify

from core.stripe_integration.gateway import get_gateway

from ..exceptions import (
    AlreadySubscribed,
    ConflictError,
    InvalidInputError,
    InvalidTransition,
    NoActiveSubscription,
    PlanNotFound,
    PlanUnavailable,
    SubscriptionNotCanceling,
)
from ..notifications.dispatcher import notify_subscription_canceled
from .models import LIVE_STATUSES, TRANSITIONS, Subscription, SubscriptionPlan

logger = logging.getLogger(__name__)

# Provider status → local status. Statuses missing here leave the local status untouched.
PROVIDER_STATUS_MAP = {
    "trialing": Subscription.Status.TRIALING,
    "active": Subscription.Status.ACTIVE,
    "past_due": Subscription.Status.PAST_DUE,
    "unpaid": Subscription.Status.PAST_DUE,
    "canceled": Subscription.Status.CANCELED,
    "incomplete_expired": Subscription.Status.EXPIRED,
}

PLAN_UPDATABLE_FIELDS = {
    "name",
    "description",
    "price_monthly",
    "price_yearly",
    "features",
    "max_courses",
    "is_active",
    "stripe_price_monthly_id",
    "stripe_price_yearly_id",
}


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the end of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def period_end_for(start: datetime, interval: str) -> datetime:
    if interval == Subscription.Interval.YEARLY:
        return add_months(start, 12)
    return add_months(start, 1)


def _from_timestamp(value) -> Optional[datetime]:
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _can_transition(current: str, target: str) -> bool:
    return str(target) in TRANSITIONS.get(str(current), ())


def transition(subscription: Subscription, target: str) -> Subscription:
    """
    Move a subscription to ``target`` following the state machine.

    Raises:
        InvalidTransition: the transition is not allowed
    """
    if not _can_transition(subscription.status, target):
        raise InvalidTransition(str(subscription.status), str(target))
    logger.info("Subscription %s: %s → %s", subscription.pk, subscription.status, target)
    subscription.status = target
    return subscription


class SubscriptionService:
    """
    Args:
        gateway: payment provider client used for provider-backed checkout
    """

    def __init__(self, gateway=None):
        self._gateway = gateway

    @property
    def gateway(self):
        if self._gateway is None:
            self._gateway = get_gateway()
        return self._gateway

    # ---------- plans ----------

    def create_plan(
        self,
        name: str,
        price_monthly,
        price_yearly,
        slug: Optional[str] = None,
        description: str = "",
        features=None,
        max_courses: Optional[int] = None,
        is_active: bool = True,
        stripe_price_monthly_id: str = "",
        stripe_price_yearly_id: str = "",
    ) -> SubscriptionPlan:
        price_monthly = Decimal(str(price_monthly))
        price_yearly = Decimal(str(price_yearly))
        if price_monthly < 0 or price_yearly < 0:
            raise InvalidInputError("Plan prices must not be negative")
        slug = slug or slugify(name)
        if not slug:
            raise InvalidInputError("Plan needs a name or slug")
        try:
            with transaction.atomic():
                plan = SubscriptionPlan.objects.create(
                    name=name,
                    slug=slug,
                    description=description,
                    price_monthly=price_monthly,
                    price_yearly=price_yearly,
                    features=list(features or []),
                    max_courses=max_courses,
                    is_active=is_active,
                    stripe_price_monthly_id=stripe_price_monthly_id,
                    stripe_price_yearly_id=stripe_price_yearly_id,
                )
        except IntegrityError:
            raise ConflictError(f"A plan with slug '{slug}' already exists") from None
        logger.info("Created subscription plan %s", plan.slug)
        return plan

    def update_plan(self, slug: str, **fields) -> SubscriptionPlan:
        """
        Update plan attributes. Existing subscriptions keep their period and
        are not re-priced.
        """
        unknown = set(fields) - PLAN_UPDATABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Unknown plan field(s): {', '.join(sorted(unknown))}")
        for price_field in ("price_monthly", "price_yearly"):
            if price_field in fields and Decimal(str(fields[price_field])) < 0:
                raise InvalidInputError("Plan prices must not be negative")
        plan = self.get_plan(slug)
        for key, value in fields.items():
            setattr(plan, key, value)
        plan.save()
        logger.info("Updated subscription plan %s (%s)", plan.slug, ", ".join(sorted(fields)))
        return plan

    def list_active_plans(self):
        return SubscriptionPlan.objects.filter(is_active=True)

    def get_plan(self, slug: str) -> SubscriptionPlan:
        try:
            return SubscriptionPlan.objects.get(slug=slug)
        except SubscriptionPlan.DoesNotExist:
            raise PlanNotFound(details={"slug": slug}) from None

    def _get_available_plan(self, slug: str) -> SubscriptionPlan:
        plan = self.get_plan(slug)
        if not plan.is_active:
            raise PlanUnavailable(details={"slug": slug})
        return plan

    # ---------- lookups ----------

    def get_user_subscription(self, user) -> Optional[Subscription]:
        """The user's live subscription, or the most recent one if none is live."""
        live = self._live_queryset(user).select_related("plan").first()
        if live is not None:
            return live
        return Subscription.objects.filter(user=user).select_related("plan").first()

    def _live_queryset(self, user):
        return Subscription.objects.filter(user=user, status__in=LIVE_STATUSES)

    def _get_live_for_update(self, user) -> Subscription:
        subscription = self._live_queryset(user).select_for_update().first()
        if subscription is None:
            raise NoActiveSubscription()
        return subscription

    # ---------- user operations ----------

    @staticmethod
    def _validate_interval(interval: str) -> str:
        if interval not in Subscription.Interval.values:
            raise InvalidInputError(
                f"Unknown billing interval '{interval}'",
                details={"allowed": list(Subscription.Interval.values)},
            )
        return interval

    def subscribe(
        self,
        user,
        plan_slug: str,
        interval: str = Subscription.Interval.MONTHLY,
        now=None,
        trial_days: int = 0,
        stripe_subscription_id: str = "",
        stripe_customer_id: str = "",
    ) -> Subscription:
        """
        Start a subscription for ``user``.

        Raises:
            InvalidInputError: unknown interval
            PlanNotFound / PlanUnavailable: plan missing or inactive
            AlreadySubscribed: the user already has a live subscription
        """
        self._validate_interval(interval)
        plan = self._get_available_plan(plan_slug)
        if self._live_queryset(user).exists():
            raise AlreadySubscribed()

        now = now or timezone.now()
        status = Subscription.Status.TRIALING if trial_days > 0 else Subscription.Status.ACTIVE
        try:
            with transaction.atomic():
                subscription = Subscription.objects.create(
                    user=user,
                    plan=plan,
                    status=status,
                    interval=interval,
                    current_period_start=now,
                    current_period_end=period_end_for(now, interval),
                    trial_end=now + timedelta(days=trial_days) if trial_days > 0 else None,
                    stripe_subscription_id=stripe_subscription_id,
                    stripe_customer_id=stripe_customer_id,
                )
        except IntegrityError:
            # concurrent subscribe won the race on the live-subscription constraint
            raise AlreadySubscribed() from None

        logger.info("User %s subscribed to %s (%s)", user.pk, plan.slug, interval)
        return subscription

    def start_checkout(self, user, plan_slug: str, interval: str, customer_email: Optional[str] = None):
        """
        Open a provider checkout session in subscription mode.

        The local subscription is created once the provider reports the
        completed checkout (see ``handle_webhook_event``).
        """
        self._validate_interval(interval)
        plan = self._get_available_plan(plan_slug)
        if self._live_queryset(user).exists():
            raise AlreadySubscribed()
        price_id = plan.provider_price_for(interval)
        if not price_id:
            raise InvalidInputError(f"Plan '{plan.slug}' has no provider price for {interval} billing")
        return self.gateway.create_subscription_checkout_session(
            price_id=price_id,
            customer_email=customer_email or getattr(user, "email", "") or None,
            metadata={"user_id": str(user.pk), "plan_slug": plan.slug, "interval": interval},
        )

    def cancel(self, user, now=None) -> Subscription:
        """Schedule cancellation at the end of the current period."""
        with transaction.atomic():
            subscription = self._get_live_for_update(user)
            if subscription.status not in (Subscription.Status.ACTIVE, Subscription.Status.TRIALING):
                raise InvalidTransition(str(subscription.status), Subscription.Status.CANCELED.value)
            if subscription.cancel_at_period_end:
                return subscription
            subscription.cancel_at_period_end = True
            subscription.canceled_at = now or timezone.now()
            subscription.save(update_fields=["cancel_at_period_end", "canceled_at", "updated_at"])
            notify_subscription_canceled(subscription)
        logger.info(
            "Subscription %s will cancel at %s", subscription.pk, subscription.current_period_end.isoformat()
        )
        return subscription

    def resume(self, user) -> Subscription:
        with transaction.atomic():
            subscription = self._get_live_for_update(user)
            if not subscription.cancel_at_period_end:
                raise SubscriptionNotCanceling()
            subscription.cancel_at_period_end = False
            subscription.canceled_at = None
            subscription.save(update_fields=["cancel_at_period_end", "canceled_at", "updated_at"])
        logger.info("Subscription %s resumed", subscription.pk)
        return subscription

    def change_plan(self, user, new_plan_slug: str) -> Subscription:
        """Swap the plan immediately. No proration is applied."""
        plan = self._get_available_plan(new_plan_slug)
        with transaction.atomic():
            subscription = self._get_live_for_update(user)
            if subscription.plan_id == plan.pk:
                return subscription
            old_plan_id = subscription.plan_id
            subscription.plan = plan
            subscription.save(update_fields=["plan", "updated_at"])
        logger.info("Subscription %s changed plan %s → %s", subscription.pk, old_plan_id, plan.slug)
        return subscription

    # ---------- scheduled jobs ----------

    def reap_expired_cancellations(self, now=None) -> int:
        """Cancel subscriptions whose scheduled cancellation has reached period end."""
        now = now or timezone.now()
        due = Subscription.objects.filter(
            cancel_at_period_end=True,
            status__in=[Subscription.Status.ACTIVE, Subscription.Status.TRIALING],
            current_period_end__lte=now,
        ).values_list("pk", flat=True)

        reaped = 0
        for pk in list(due):
            with transaction.atomic():
                subscription = Subscription.objects.select_for_update().get(pk=pk)
                if not subscription.cancel_at_period_end or not _can_transition(
                    subscription.status, Subscription.Status.CANCELED
                ):
                    continue
                transition(subscription, Subscription.Status.CANCELED)
                subscription.save(update_fields=["status", "updated_at"])
                reaped += 1
        if reaped:
            logger.info("Reaped %s subscription(s) at period end", reaped)
        return reaped

    # ---------- provider webhooks ----------

    def _find_subscription(self, provider_id: Optional[str], metadata: Dict[str, Any]) -> Optional[Subscription]:
        qs = Subscription.objects.select_for_update()
        if provider_id:
            subscription = qs.filter(stripe_subscription_id=provider_id).order_by("-created_at", "-id").first()
            if subscription is not None:
                return subscription
        local_id = (metadata or {}).get("subscription_id")
        if local_id:
            try:
                return qs.filter(pk=int(local_id)).first()
            except (TypeError, ValueError):
                logger.warning("Invalid subscription_id %r in webhook metadata", local_id)
        return None

    def handle_webhook_event(
        self, event_type: str, payload: Dict[str, Any], event_created: Optional[datetime] = None
    ) -> Optional[Subscription]:
        """
        Apply an already-verified provider event. Unknown event types are ignored.
        """
        handlers = {
            "checkout.session.completed": self._on_checkout_completed,
            "customer.subscription.updated": self._on_subscription_updated,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "invoice.payment_failed": self._on_invoice_failed,
            "invoice.paid": self._on_invoice_paid,
            "invoice.payment_succeeded": self._on_invoice_paid,
        }
        handler = handlers.get(event_type)
        if handler is None:
            return None
        with transaction.atomic():
            return handler(payload, event_created)

    def _on_checkout_completed(self, session: Dict[str, Any], event_created) -> Optional[Subscription]:
        if session.get("mode") != "subscription":
            return None
        provider_id = session.get("subscription") or ""
        metadata = session.get("metadata") or {}
        existing = self._find_subscription(provider_id, {})
        if existing is not None:
            return existing

        User = get_user_model()
        user = User.objects.filter(pk=metadata.get("user_id")).first() if metadata.get("user_id") else None
        if user is None or not metadata.get("plan_slug"):
            logger.warning("Subscription checkout %s without usable metadata", session.get("id"))
            return None
        try:
            return self.subscribe(
                user,
                metadata["plan_slug"],
                metadata.get("interval") or Subscription.Interval.MONTHLY,
                stripe_subscription_id=provider_id,
                stripe_customer_id=session.get("customer") or "",
            )
        except AlreadySubscribed:
            logger.warning(
                "User %s paid for subscription %s but already has a live subscription", user.pk, provider_id
            )
            return None

    def _on_subscription_updated(self, obj: Dict[str, Any], event_created) -> Optional[Subscription]:
        subscription = self._find_subscription(obj.get("id"), obj.get("metadata") or {})
        if subscription is None:
            logger.info("subscription.updated for unknown subscription %s", obj.get("id"))
            return None
        if event_created and subscription.provider_event_at and event_created < subscription.provider_event_at:
            logger.info("Ignoring stale subscription.updated for %s", subscription.pk)
            return subscription

        fields = {"updated_at"}
        target = PROVIDER_STATUS_MAP.get(obj.get("status") or "")
        if target is not None and str(target) != str(subscription.status):
            if _can_transition(subscription.status, target):
                transition(subscription, target)
                fields.add("status")
            else:
                logger.warning(
                    "Provider reports %s for subscription %s in status %s; ignoring status",
                    obj.get("status"),
                    subscription.pk,
                    subscription.status,
                )

        # Newer API versions carry the period on the subscription items.
        period_source = obj
        if obj.get("current_period_end") is None:
            items = (obj.get("items") or {}).get("data") or []
            if items:
                period_source = items[0]
        start = _from_timestamp(period_source.get("current_period_start"))
        end = _from_timestamp(period_source.get("current_period_end"))
        if start and end and end > start:
            subscription.current_period_start = start
            subscription.current_period_end = end
            fields.update({"current_period_start", "current_period_end"})

        if "cancel_at_period_end" in obj and subscription.is_live:
            subscription.cancel_at_period_end = bool(obj["cancel_at_period_end"])
            if subscription.cancel_at_period_end:
                subscription.canceled_at = (
                    subscription.canceled_at or _from_timestamp(obj.get("canceled_at")) or timezone.now()
                )
            else:
                subscription.canceled_at = None
            fields.update({"cancel_at_period_end", "canceled_at"})

        if obj.get("customer") and not subscription.stripe_customer_id:
            subscription.stripe_customer_id = obj["customer"]
            fields.add("stripe_customer_id")
        if event_created:
            subscription.provider_event_at = event_created
            fields.add("provider_event_at")
        subscription.save(update_fields=sorted(fields))
        return subscription

    def _on_subscription_deleted(self, obj: Dict[str, Any], event_created) -> Optional[Subscription]:
        subscription = self._find_subscription(obj.get("id"), obj.get("metadata") or {})
        if subscription is None:
            return None
        if not subscription.is_live:
            return subscription
        transition(subscription, Subscription.Status.EXPIRED)
        subscription.save(update_fields=["status", "updated_at"])
        return subscription

    @staticmethod
    def _invoice_subscription_ref(invoice: Dict[str, Any]):
        provider_id = invoice.get("subscription")
        metadata = invoice.get("metadata") or {}
        details = invoice.get("subscription_details") or (invoice.get("parent") or {}).get("subscription_details") or {}
        if not provider_id:
            provider_id = details.get("subscription")
        if not metadata.get("subscription_id"):
            metadata = details.get("metadata") or metadata
        return provider_id, metadata

    def _on_invoice_failed(self, invoice: Dict[str, Any], event_created) -> Optional[Subscription]:
        subscription = self._find_subscription(*self._invoice_subscription_ref(invoice))
        if subscription is None:
            return None
        if subscription.status == Subscription.Status.PAST_DUE:
            return subscription
        if not _can_transition(subscription.status, Subscription.Status.PAST_DUE):
            logger.info("Ignoring failed invoice for subscription %s in status %s", subscription.pk, subscription.status)
            return subscription
        transition(subscription, Subscription.Status.PAST_DUE)
        subscription.save(update_fields=["status", "updated_at"])
        return subscription

    def _on_invoice_paid(self, invoice: Dict[str, Any], event_created) -> Optional[Subscription]:
        subscription = self._find_subscription(*self._invoice_subscription_ref(invoice))
        if subscription is None:
            return None
        invoice_id = invoice.get("id") or ""
        if invoice_id and subscription.last_paid_invoice_id == invoice_id:
            logger.info("Invoice %s already applied to subscription %s", invoice_id, subscription.pk)
            return subscription
        if not subscription.is_live:
            logger.info("Ignoring paid invoice for subscription %s in status %s", subscription.pk, subscription.status)
            return subscription

        fields = {"last_paid_invoice_id", "updated_at"}
        lines = (invoice.get("lines") or {}).get("data") or []
        invoice_period_end = _from_timestamp(((lines[0].get("period") or {}) if lines else {}).get("end"))
        if invoice_period_end is not None:
            if invoice_period_end > subscription.current_period_end:
                subscription.current_period_start = subscription.current_period_end
                subscription.current_period_end = invoice_period_end
                fields.update({"current_period_start", "current_period_end"})
        elif invoice.get("billing_reason") != "subscription_create":
            subscription.current_period_start = subscription.current_period_end
            subscription.current_period_end = period_end_for(subscription.current_period_end, subscription.interval)
            fields.update({"current_period_start", "current_period_end"})

        if subscription.status == Subscription.Status.PAST_DUE:
            transition(subscription, Subscription.Status.ACTIVE)
            fields.add("status")
        subscription.last_paid_invoice_id = invoice_id
        subscription.save(update_fields=sorted(fields))
        logger.info(
            "Invoice %s paid; subscription %s runs until %s",
            invoice_id,
            subscription.pk,
            subscription.current_period_end.isoformat(),
        )
        return subscription

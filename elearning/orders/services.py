"""
Order / Checkout Service

Converts a cart (or a bundle purchase) into an Order with line items,
delegates payment collection to the payment provider and settles the order
when the provider confirms the payment.

Settlement (``on_payment_confirmed``) is idempotent: it runs under a row
lock on the order and returns early for orders that are already completed
or refunded, so duplicate webhook deliveries never enroll or credit twice.

Provider calls are made outside of database transactions. A provider
failure during checkout leaves the order ``pending`` so it can be retried
or reconciled later.

Author: DSP Development Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.stripe_integration.gateway import get_gateway

from ..bundles.models import Bundle, BundlePurchase
from ..cart.models import CartItem
from ..conf import default_currency, platform_fee_percent
from ..coupons.services import CouponService
from ..courses.models import Enrollment
from ..courses.services import enroll, enrolled_course_ids
from ..exceptions import (
    AlreadyEnrolled,
    CourseNotPublished,
    EmptyCart,
    ExternalProviderError,
    InvalidTransition,
    NotFoundError,
    UnauthorizedError,
)
from ..notifications.dispatcher import notify_order_completed
from ..pricing import ZERO, allocate, effective_price, quantize, split_platform_fee, to_minor_units
from ..revenue.services import RevenueService
from .models import Order, OrderItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutHandle:
    """Result of a checkout: the order plus where the buyer has to pay (if anywhere)."""

    order: Order
    checkout_url: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def requires_payment(self) -> bool:
        return self.order.status == Order.Status.PENDING


class CheckoutService:
    """
    Args:
        gateway: payment provider client; defaults to the process-wide gateway
        revenue: earnings ledger used at settlement
        fee_percent: platform fee applied to every order item
        coupons: coupon evaluation used at checkout
    """

    def __init__(
        self,
        gateway=None,
        revenue: Optional[RevenueService] = None,
        fee_percent=None,
        coupons: Optional[CouponService] = None,
    ):
        self._gateway = gateway
        self.revenue = revenue or RevenueService()
        self.coupons = coupons or CouponService()
        self.fee_percent = fee_percent if fee_percent is not None else platform_fee_percent()

    @property
    def gateway(self):
        if self._gateway is None:
            self._gateway = get_gateway()
        return self._gateway

    # ---------- order creation ----------

    def checkout(
        self, cart, customer_email: Optional[str] = None, coupon_code: Optional[str] = None
    ) -> CheckoutHandle:
        """
        Turn the cart into a pending order and start payment collection.

        The whole checkout is rejected when any item is not purchasable;
        items are never dropped silently. A coupon discount is spread over
        the items it applies to, so every item keeps the price actually paid
        for it.

        Raises:
            UnauthorizedError: guest carts cannot check out
            EmptyCart: nothing to buy
            CourseNotPublished: an item is no longer for sale
            AlreadyEnrolled: the user already owns an item
            CouponInvalid, CouponNotApplicable: the coupon cannot be used
            ExternalProviderError: the provider rejected the checkout session
        """
        if not cart.user_id:
            raise UnauthorizedError("Login required to check out")

        items = list(cart.items.select_related("course"))
        if not items:
            raise EmptyCart()

        courses = [item.course for item in items]
        unpublished = [c.pk for c in courses if not c.is_published]
        if unpublished:
            raise CourseNotPublished(details={"course_ids": unpublished})
        owned = enrolled_course_ids(cart.user, [c.pk for c in courses])
        if owned:
            raise AlreadyEnrolled(
                "Cart contains courses the user is already enrolled in",
                details={"course_ids": sorted(owned)},
            )

        prices = [(course, effective_price(course)) for course in courses]
        subtotal = quantize(sum((price for _, price in prices), ZERO))
        coupon, discount = None, ZERO
        if coupon_code:
            quote = self.coupons.quote(coupon_code, prices, user=cart.user)
            coupon, discount = quote.coupon, quote.discount
            prices = self.apply_discount(prices, discount, quote.eligible_course_ids)

        with transaction.atomic():
            order = Order.objects.create(
                user_id=cart.user_id,
                subtotal=subtotal,
                discount=discount,
                total=subtotal - discount,
                coupon=coupon,
                currency=default_currency(),
                customer_email=customer_email or getattr(cart.user, "email", "") or "",
            )
            self.create_items(order, prices)

        logger.info(
            "Created order %s for user %s (%s item(s), total=%s, coupon=%s)",
            order.order_number,
            cart.user_id,
            len(prices),
            order.total,
            coupon.code if coupon else None,
        )
        return self.collect_payment(order)

    @staticmethod
    def apply_discount(priced_courses, discount, eligible_course_ids):
        """Lower the prices of eligible lines so they sum to ``discount`` less."""
        if discount <= 0:
            return list(priced_courses)
        eligible = [
            i
            for i, (course, price) in enumerate(priced_courses)
            if price > 0 and course.pk in eligible_course_ids
        ]
        shares = allocate(discount, [priced_courses[i][1] for i in eligible])
        result = list(priced_courses)
        for i, share in zip(eligible, shares):
            course, price = result[i]
            result[i] = (course, price - share)
        return result

    def create_items(self, order: Order, priced_courses) -> List[OrderItem]:
        items = []
        for course, price in priced_courses:
            fee, share = split_platform_fee(price, self.fee_percent)
            items.append(
                OrderItem(order=order, course=course, price=price, platform_fee=fee, instructor_share=share)
            )
        return OrderItem.objects.bulk_create(items)

    def collect_payment(self, order: Order) -> CheckoutHandle:
        """
        Settle free orders immediately, otherwise open a provider checkout session.

        Raises:
            ExternalProviderError: order stays pending and can be retried
        """
        if order.total == 0:
            order = self.on_payment_confirmed(order.pk, payment_reference="free")
            return CheckoutHandle(order=order)

        line_items = [
            {"name": item.course.title, "amount": to_minor_units(item.price)}
            for item in order.items.select_related("course")
            if item.price > 0
        ]
        metadata = {
            "order_id": str(order.pk),
            "order_number": order.order_number,
            "user_id": str(order.user_id),
        }
        try:
            session = self.gateway.create_checkout_session(
                amount=to_minor_units(order.total),
                currency=order.currency,
                line_items=line_items,
                customer_email=order.customer_email or None,
                metadata=metadata,
            )
        except ExternalProviderError:
            logger.warning("Payment collection for order %s failed; order stays pending", order.order_number)
            raise

        order.payment_reference = session.id
        order.payment_intent_id = session.payment_intent or order.payment_intent_id
        order.save(update_fields=["payment_reference", "payment_intent_id", "updated_at"])
        return CheckoutHandle(order=order, checkout_url=session.url, session_id=session.id)

    def retry_payment(self, user, order_id: int) -> CheckoutHandle:
        """Open a new checkout session for an unpaid (pending or failed) order."""
        order = self.get_order_for_user(user, order_id)
        if order.status not in (Order.Status.PENDING, Order.Status.FAILED):
            raise InvalidTransition(order.status, Order.Status.PENDING)
        if order.status == Order.Status.FAILED:
            order.status = Order.Status.PENDING
            order.save(update_fields=["status", "updated_at"])
        return self.collect_payment(order)

    # ---------- settlement ----------

    def on_payment_confirmed(
        self,
        order_id: int,
        payment_reference: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
        now=None,
    ) -> Order:
        """
        Settle an order: complete it, grant enrollments, credit earnings.

        Safe to call any number of times for the same order.
        """
        now = now or timezone.now()
        with transaction.atomic():
            try:
                order = Order.objects.select_for_update().get(pk=order_id)
            except Order.DoesNotExist:
                raise NotFoundError(f"Order {order_id} not found") from None

            if order.status in (Order.Status.COMPLETED, Order.Status.REFUNDED):
                logger.info("Order %s already settled (%s); skipping", order.order_number, order.status)
                return order

            order.status = Order.Status.COMPLETED
            order.paid_at = now
            if payment_reference:
                order.payment_reference = payment_reference
            if payment_intent_id:
                order.payment_intent_id = payment_intent_id
            order.save(update_fields=["status", "paid_at", "payment_reference", "payment_intent_id", "updated_at"])

            items = list(order.items.select_related("course"))
            if order.bundle_id:
                source = Enrollment.Source.BUNDLE
            elif order.total == 0:
                source = Enrollment.Source.FREE
            else:
                source = Enrollment.Source.PURCHASE
            for item in items:
                enroll(order.user, item.course, source=source, order=order)

            self.revenue.create_earnings_for_order(order)

            if order.bundle_id:
                _, created = BundlePurchase.objects.get_or_create(
                    order=order,
                    defaults={"bundle_id": order.bundle_id, "user_id": order.user_id, "price": order.total},
                )
                if created:
                    Bundle.objects.filter(pk=order.bundle_id).update(purchase_count=F("purchase_count") + 1)
            if order.coupon_id:
                self.coupons.record_usage(order.coupon_id)

            CartItem.objects.filter(
                cart__user_id=order.user_id, course_id__in=[item.course_id for item in items]
            ).delete()
            notify_order_completed(order)

        logger.info("Order %s completed (%s enrollment(s))", order.order_number, len(items))
        return order

    def on_payment_failed(self, order_id: int) -> Order:
        with transaction.atomic():
            try:
                order = Order.objects.select_for_update().get(pk=order_id)
            except Order.DoesNotExist:
                raise NotFoundError(f"Order {order_id} not found") from None
            if order.status != Order.Status.PENDING:
                logger.info("Ignoring payment failure for order %s in status %s", order.order_number, order.status)
                return order
            order.status = Order.Status.FAILED
            order.save(update_fields=["status", "updated_at"])
        logger.warning("Payment failed for order %s", order.order_number)
        return order

    # ---------- webhook events ----------

    def _resolve_order_id(self, event_type: str, payload: Dict[str, Any]) -> Optional[int]:
        metadata = payload.get("metadata") or {}
        order_id = metadata.get("order_id")
        if order_id:
            try:
                return int(order_id)
            except (TypeError, ValueError):
                logger.warning("Invalid order_id %r in %s metadata", order_id, event_type)
                return None

        object_id = payload.get("id")
        if not object_id:
            return None
        if event_type.startswith("payment_intent."):
            lookup = {"payment_intent_id": object_id}
        else:
            lookup = {"payment_reference": object_id}
        return Order.objects.filter(**lookup).values_list("pk", flat=True).first()

    def handle_webhook_event(self, event_type: str, payload: Dict[str, Any]) -> Optional[Order]:
        """
        Apply an already-verified provider event to the matching order.

        Unknown event types and events that cannot be correlated to an order
        are ignored.
        """
        if event_type not in {
            "checkout.session.completed",
            "checkout.session.expired",
            "payment_intent.succeeded",
            "payment_intent.payment_failed",
        }:
            return None
        if payload.get("mode") == "subscription":
            return None

        order_id = self._resolve_order_id(event_type, payload)
        if order_id is None:
            logger.debug("%s %s does not belong to an order", event_type, payload.get("id"))
            return None

        if event_type == "checkout.session.completed":
            if payload.get("payment_status") not in (None, "paid", "no_payment_required"):
                logger.info("Checkout session %s completed but not paid yet", payload.get("id"))
                return None
            return self.on_payment_confirmed(
                order_id, payment_reference=payload.get("id"), payment_intent_id=payload.get("payment_intent")
            )
        if event_type == "payment_intent.succeeded":
            return self.on_payment_confirmed(order_id, payment_intent_id=payload.get("id"))
        return self.on_payment_failed(order_id)

    # ---------- read side ----------

    def get_user_orders(self, user):
        return Order.objects.filter(user=user).prefetch_related("items__course")

    def get_order_for_user(self, user, order_id: int) -> Order:
        try:
            order = Order.objects.get(pk=order_id)
        except Order.DoesNotExist:
            raise NotFoundError(f"Order {order_id} not found") from None
        if order.user_id != user.pk:
            raise UnauthorizedError("Order belongs to another user")
        return order

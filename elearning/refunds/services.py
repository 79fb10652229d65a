"""
Refund Workflow

Request / approve / reject / process pipeline for refunds, gated by a
configurable ``RefundPolicy`` (time window, auto-approval threshold,
manual approval flag).

Approving a refund and refunding the order happen in a single transaction
with the order row locked: either both succeed or neither does. Refunding
the order also revokes its enrollments and reverses the instructor earnings. Moving the
money (``process``) is a separate step that talks to the payment provider
outside of any transaction.

Author: DSP Development Team
Version: 1.0.0
"""

import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.stripe_integration.gateway import get_gateway

from ..conf import RefundPolicy
from ..courses.services import revoke_for_order
from ..exceptions import (
    AlreadyRefunded,
    DuplicateRefund,
    InvalidInputError,
    NotFoundError,
    NotProcessable,
    OrderNotRefundable,
    OutOfWindow,
    UnauthorizedError,
)
from ..notifications.dispatcher import notify_refund_decided
from ..orders.models import Order
from ..pricing import to_minor_units
from ..revenue.services import RevenueService
from .models import Refund

logger = logging.getLogger(__name__)


class RefundService:
    """
    Args:
        policy: refund policy; defaults to the one configured in settings
        gateway: payment provider client used by ``process``
        revenue: earnings ledger whose entries are reversed on refund
    """

    def __init__(
        self, policy: Optional[RefundPolicy] = None, gateway=None, revenue: Optional[RevenueService] = None
    ):
        self.policy = policy or RefundPolicy.from_settings()
        self._gateway = gateway
        self.revenue = revenue or RevenueService()

    @property
    def gateway(self):
        if self._gateway is None:
            self._gateway = get_gateway()
        return self._gateway

    # ---------- helpers ----------

    def _refund_order(self, order: Order, now) -> None:
        order.status = Order.Status.REFUNDED
        order.refunded_at = now
        order.save(update_fields=["status", "refunded_at", "updated_at"])
        revoke_for_order(order)
        self.revenue.reverse_earnings_for_order(order, now)
        logger.info("Order %s refunded", order.order_number)

    @staticmethod
    def _refund_exists(order: Order) -> bool:
        return Refund.objects.filter(order=order).exists()

    @staticmethod
    def _get_refund_for_update(refund_id: int) -> Refund:
        try:
            return Refund.objects.select_for_update().select_related("order").get(pk=refund_id)
        except Refund.DoesNotExist:
            raise NotFoundError(f"Refund {refund_id} not found") from None

    # ---------- requests ----------

    def request_refund(self, user, order_id: int, reason: str, description: str = "", now=None) -> Refund:
        """
        Create a refund request for one of the user's orders.

        Raises:
            InvalidInputError: unknown reason
            NotFoundError: order does not exist
            UnauthorizedError: order belongs to someone else
            DuplicateRefund: a refund already exists for the order
            OutOfWindow: refund window has passed
            AlreadyRefunded: order already refunded
            OrderNotRefundable: order is not completed
        """
        if reason not in Refund.Reason.values:
            raise InvalidInputError(
                f"Unknown refund reason '{reason}'", details={"allowed": list(Refund.Reason.values)}
            )
        now = now or timezone.now()

        with transaction.atomic():
            try:
                order = Order.objects.select_for_update().get(pk=order_id)
            except Order.DoesNotExist:
                raise NotFoundError(f"Order {order_id} not found") from None

            if order.user_id != user.pk:
                raise UnauthorizedError("Order belongs to another user")
            if self._refund_exists(order):
                raise DuplicateRefund(details={"order_id": order.pk})
            days_since_purchase = (now - order.created_at).days
            if days_since_purchase > self.policy.max_days_after_purchase:
                raise OutOfWindow(
                    details={
                        "days_since_purchase": days_since_purchase,
                        "max_days": self.policy.max_days_after_purchase,
                    }
                )
            if order.status == Order.Status.REFUNDED:
                raise AlreadyRefunded()
            if order.status != Order.Status.COMPLETED:
                raise OrderNotRefundable(details={"status": order.status})

            auto_approve = (
                not self.policy.requires_approval and order.total <= self.policy.auto_approve_under
            )
            try:
                with transaction.atomic():
                    refund = Refund.objects.create(
                        order=order,
                        user=user,
                        amount=order.total,
                        reason=reason,
                        description=description,
                        status=Refund.Status.APPROVED if auto_approve else Refund.Status.PENDING,
                        processed_at=now if auto_approve else None,
                    )
            except IntegrityError:
                raise DuplicateRefund(details={"order_id": order.pk}) from None

            if auto_approve:
                self._refund_order(order, now)
                notify_refund_decided(refund)

        logger.info(
            "Refund %s requested for order %s (%s)", refund.pk, order.order_number, refund.status
        )
        return refund

    # ---------- admin decisions ----------

    def approve(self, refund_id: int, admin, notes: str = "", now=None) -> Refund:
        """Approve a pending refund and refund its order atomically."""
        now = now or timezone.now()
        with transaction.atomic():
            refund = self._get_refund_for_update(refund_id)
            if refund.status != Refund.Status.PENDING:
                raise NotProcessable(details={"status": refund.status})
            order = Order.objects.select_for_update().get(pk=refund.order_id)

            refund.status = Refund.Status.APPROVED
            refund.processed_by = admin
            refund.processed_at = now
            refund.admin_notes = notes
            refund.save(update_fields=["status", "processed_by", "processed_at", "admin_notes", "updated_at"])
            self._refund_order(order, now)
            refund.order = order
            notify_refund_decided(refund)

        logger.info("Refund %s approved by %s", refund.pk, getattr(admin, "pk", None))
        return refund

    def reject(self, refund_id: int, admin, notes: str = "", now=None) -> Refund:
        with transaction.atomic():
            refund = self._get_refund_for_update(refund_id)
            if refund.status != Refund.Status.PENDING:
                raise NotProcessable(details={"status": refund.status})
            refund.status = Refund.Status.REJECTED
            refund.processed_by = admin
            refund.processed_at = now or timezone.now()
            refund.admin_notes = notes
            refund.save(update_fields=["status", "processed_by", "processed_at", "admin_notes", "updated_at"])
            notify_refund_decided(refund)

        logger.info("Refund %s rejected by %s", refund.pk, getattr(admin, "pk", None))
        return refund

    # ---------- money movement ----------

    def process(self, refund_id: int) -> Refund:
        """
        Return the funds of an approved refund through the payment provider.

        Raises:
            NotProcessable: refund is not approved, or the order has no payment to refund
            ExternalProviderError: provider call failed; the refund stays approved
        """
        try:
            refund = Refund.objects.select_related("order").get(pk=refund_id)
        except Refund.DoesNotExist:
            raise NotFoundError(f"Refund {refund_id} not found") from None
        if refund.status == Refund.Status.PROCESSED:
            return refund
        if refund.status != Refund.Status.APPROVED:
            raise NotProcessable(details={"status": refund.status})

        provider_refund_id = ""
        if refund.amount > 0:
            payment_intent_id = refund.order.payment_intent_id
            if not payment_intent_id:
                raise NotProcessable(
                    "Order has no payment to refund", details={"order_id": refund.order_id}
                )
            result = self.gateway.create_refund(
                payment_intent_id=payment_intent_id,
                amount=to_minor_units(refund.amount),
                metadata={"refund_id": str(refund.pk), "order_id": str(refund.order_id)},
            )
            provider_refund_id = result.id

        with transaction.atomic():
            refund = self._get_refund_for_update(refund_id)
            if refund.status == Refund.Status.APPROVED:
                refund.status = Refund.Status.PROCESSED
                refund.provider_refund_id = provider_refund_id or refund.provider_refund_id
                refund.save(update_fields=["status", "provider_refund_id", "updated_at"])
        logger.info("Refund %s processed (provider id=%s)", refund.pk, provider_refund_id or "-")
        return refund

    def mark_processed_by_payment_intent(self, payment_intent_id: str, provider_refund_id: str = "") -> Optional[Refund]:
        """Provider confirmed a refund (``charge.refunded``). Idempotent."""
        if not payment_intent_id:
            return None
        with transaction.atomic():
            refund = (
                Refund.objects.select_for_update()
                .filter(order__payment_intent_id=payment_intent_id)
                .first()
            )
            if refund is None:
                logger.info("No local refund for payment intent %s", payment_intent_id)
                return None
            if refund.status != Refund.Status.APPROVED:
                return refund
            refund.status = Refund.Status.PROCESSED
            if provider_refund_id:
                refund.provider_refund_id = provider_refund_id
            refund.save(update_fields=["status", "provider_refund_id", "updated_at"])
        logger.info("Refund %s marked processed by provider", refund.pk)
        return refund

    # ---------- read side ----------

    def get_user_refunds(self, user):
        return Refund.objects.filter(user=user).select_related("order")

    def list_refunds(self, status: Optional[str] = None):
        qs = Refund.objects.select_related("order", "user")
        if status:
            qs = qs.filter(status=status)
        return qs

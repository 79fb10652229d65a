"""
Revenue / Earnings Ledger

Derives instructor earnings from settled order items and processes payout
requests against the instructor's available balance.

Balance model:
    available_balance = Σ earnings(available, paid) − Σ payouts(pending, paid)

Pending payout requests therefore reserve balance until they are confirmed
(earnings move to ``paid``) or failed (the reservation is released).

Refunding an order reverses its earnings. A reversed earning that was
already paid out stays linked to its payout; since it no longer counts as
earned, the instructor owes that amount against future earnings.

Author: DSP Development Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from ..conf import PayoutPolicy, default_currency
from ..exceptions import (
    BelowMinimum,
    InsufficientFunds,
    InvalidInputError,
    InvalidTransition,
    NotFoundError,
)
from ..notifications.dispatcher import notify_payout_requested
from ..pricing import ZERO, quantize
from .models import InstructorEarning, Payout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstructorStats:
    lifetime_earnings: Decimal
    pending_earnings: Decimal
    available_earnings: Decimal
    paid_earnings: Decimal
    reversed_earnings: Decimal
    withdrawn: Decimal
    payouts_in_flight: Decimal
    available_balance: Decimal
    sales_count: int


def _sum(qs, field: str = "amount") -> Decimal:
    return quantize(qs.aggregate(total=Sum(field))["total"] or ZERO)


class RevenueService:
    """
    Earnings and payouts of instructors.

    Args:
        policy: fee / minimum payout / hold period; defaults to settings
    """

    def __init__(self, policy: Optional[PayoutPolicy] = None):
        self.policy = policy or PayoutPolicy.from_settings()

    # ---------- earnings ----------

    def create_earnings_for_order(self, order) -> List[InstructorEarning]:
        """
        Create one pending earning per order item.

        Items that already carry an earning are skipped, so calling this twice
        for the same order credits nothing the second time. Callers hold the
        order row lock; the one-to-one constraint on ``order_item`` is the
        backstop.
        """
        created = []
        with transaction.atomic():
            items = order.items.select_related("course").filter(earning__isnull=True)
            for item in items:
                created.append(
                    InstructorEarning.objects.create(
                        instructor_id=item.course.instructor_id,
                        order_item=item,
                        amount=item.instructor_share,
                        platform_fee=item.platform_fee,
                    )
                )
        if created:
            logger.info("Created %s earning(s) for order %s", len(created), order.order_number)
        return created

    def release_earnings(self, now=None) -> int:
        """Make pending earnings of completed orders past the hold period available."""
        now = now or timezone.now()
        cutoff = now - timedelta(days=self.policy.hold_days)
        count = InstructorEarning.objects.filter(
            status=InstructorEarning.Status.PENDING,
            order_item__order__status="completed",
            order_item__order__paid_at__lte=cutoff,
        ).update(status=InstructorEarning.Status.AVAILABLE, available_at=now)
        if count:
            logger.info("Released %s earning(s) (cutoff=%s)", count, cutoff.isoformat())
        return count

    def reverse_earnings_for_order(self, order, now=None) -> int:
        """
        Take back the instructor share of a refunded order.

        Callers hold the order row lock. Calling this again for the same order
        reverses nothing.
        """
        now = now or timezone.now()
        with transaction.atomic():
            earnings = list(
                InstructorEarning.objects.select_for_update()
                .filter(order_item__order=order)
                .exclude(status=InstructorEarning.Status.REVERSED)
            )
            clawed_back = ZERO
            for earning in earnings:
                if earning.status == InstructorEarning.Status.PAID:
                    clawed_back += earning.amount
                earning.status = InstructorEarning.Status.REVERSED
                earning.reversed_at = now
                earning.save(update_fields=["status", "reversed_at"])
        if earnings:
            logger.info(
                "Reversed %s earning(s) of order %s (already paid out: %s)",
                len(earnings),
                order.order_number,
                clawed_back,
            )
        return len(earnings)

    def available_balance(self, instructor) -> Decimal:
        earned = _sum(
            InstructorEarning.objects.filter(
                instructor=instructor,
                status__in=[InstructorEarning.Status.AVAILABLE, InstructorEarning.Status.PAID],
            )
        )
        reserved = _sum(
            Payout.objects.filter(
                instructor=instructor, status__in=[Payout.Status.PENDING, Payout.Status.PAID]
            )
        )
        return quantize(earned - reserved)

    # ---------- payouts ----------

    def request_payout(self, instructor, amount, method: str = "") -> Payout:
        """
        Create a pending payout for the instructor.

        Raises:
            InvalidInputError: amount is not positive
            InsufficientFunds: amount exceeds the available balance
            BelowMinimum: amount is below the minimum payout
        """
        try:
            amount = quantize(amount)
        except ArithmeticError:
            raise InvalidInputError("amount must be a number") from None
        if amount <= 0:
            raise InvalidInputError("amount must be positive", details={"amount": str(amount)})

        User = get_user_model()
        with transaction.atomic():
            # serialise concurrent requests of the same instructor
            User.objects.select_for_update().filter(pk=instructor.pk).first()

            balance = self.available_balance(instructor)
            if amount > balance:
                raise InsufficientFunds(
                    details={"requested": str(amount), "available": str(balance)}
                )
            if amount < self.policy.minimum_payout:
                raise BelowMinimum(
                    details={"requested": str(amount), "minimum": str(self.policy.minimum_payout)}
                )
            payout = Payout.objects.create(
                instructor=instructor, amount=amount, currency=default_currency(), method=method
            )
            notify_payout_requested(payout)

        logger.info("Payout %s requested by instructor %s: %s", payout.pk, instructor.pk, amount)
        return payout

    def _get_pending_payout(self, payout_id: int) -> Payout:
        try:
            payout = Payout.objects.select_for_update().get(pk=payout_id)
        except Payout.DoesNotExist:
            raise NotFoundError(f"Payout {payout_id} not found") from None
        return payout

    def confirm_payout(self, payout_id: int, transaction_id: str = "", now=None) -> Payout:
        """
        Reconcile a payout that was executed externally.

        Available earnings are marked paid oldest first, as long as they fit
        into the payout amount.
        """
        now = now or timezone.now()
        with transaction.atomic():
            payout = self._get_pending_payout(payout_id)
            if payout.status != Payout.Status.PENDING:
                raise InvalidTransition(payout.status, Payout.Status.PAID)

            remaining = payout.amount
            earnings = InstructorEarning.objects.select_for_update().filter(
                instructor_id=payout.instructor_id, status=InstructorEarning.Status.AVAILABLE
            ).order_by("created_at", "id")
            marked = 0
            for earning in earnings:
                if remaining <= 0:
                    break
                if earning.amount > remaining:
                    continue
                earning.status = InstructorEarning.Status.PAID
                earning.payout = payout
                earning.paid_at = now
                earning.save(update_fields=["status", "payout", "paid_at"])
                remaining -= earning.amount
                marked += 1

            payout.status = Payout.Status.PAID
            payout.transaction_id = transaction_id
            payout.processed_at = now
            payout.save(update_fields=["status", "transaction_id", "processed_at"])

        logger.info("Payout %s confirmed (%s earning(s) marked paid)", payout.pk, marked)
        return payout

    def fail_payout(self, payout_id: int, now=None) -> Payout:
        with transaction.atomic():
            payout = self._get_pending_payout(payout_id)
            if payout.status != Payout.Status.PENDING:
                raise InvalidTransition(payout.status, Payout.Status.FAILED)
            payout.status = Payout.Status.FAILED
            payout.processed_at = now or timezone.now()
            payout.save(update_fields=["status", "processed_at"])
        logger.warning("Payout %s failed; reservation released", payout.pk)
        return payout

    # ---------- read side ----------

    def get_instructor_stats(self, instructor) -> InstructorStats:
        all_earnings = InstructorEarning.objects.filter(instructor=instructor)
        earnings = all_earnings.exclude(status=InstructorEarning.Status.REVERSED)
        payouts = Payout.objects.filter(instructor=instructor)
        return InstructorStats(
            lifetime_earnings=_sum(earnings),
            pending_earnings=_sum(earnings.filter(status=InstructorEarning.Status.PENDING)),
            available_earnings=_sum(earnings.filter(status=InstructorEarning.Status.AVAILABLE)),
            paid_earnings=_sum(earnings.filter(status=InstructorEarning.Status.PAID)),
            reversed_earnings=_sum(all_earnings.filter(status=InstructorEarning.Status.REVERSED)),
            withdrawn=_sum(payouts.filter(status=Payout.Status.PAID)),
            payouts_in_flight=_sum(payouts.filter(status=Payout.Status.PENDING)),
            available_balance=self.available_balance(instructor),
            sales_count=earnings.count(),
        )

    def get_earnings(self, instructor, status: Optional[str] = None):
        qs = InstructorEarning.objects.filter(instructor=instructor).select_related(
            "order_item__order", "order_item__course"
        )
        if status:
            qs = qs.filter(status=status)
        return qs.order_by("-created_at", "-id")

    def get_payouts(self, instructor):
        return Payout.objects.filter(instructor=instructor)

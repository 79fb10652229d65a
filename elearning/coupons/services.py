"""
Coupon Service

Administration of discount coupons and their evaluation at checkout.

A coupon is quoted against the priced lines of a checkout: only lines of
applicable courses count towards the eligible subtotal, and the discount is
computed on that subtotal by the Pricing Engine. Usage is counted when the
order settles, so the usage limit is checked at checkout and may be
exceeded by orders that are still awaiting payment.

Author: DSP Development Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from ..courses.models import Course
from ..exceptions import (
    ConflictError,
    CouponInvalid,
    CouponNotApplicable,
    DuplicateCoupon,
    InvalidInputError,
    NotFoundError,
)
from ..orders.models import Order
from ..pricing import HUNDRED, ZERO, coupon_discount, quantize
from .models import Coupon

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponQuote:
    """Discount a coupon grants on a set of priced courses."""

    coupon: Coupon
    subtotal: Decimal
    eligible_subtotal: Decimal
    discount: Decimal
    eligible_course_ids: Tuple[int, ...]

    @property
    def total(self) -> Decimal:
        return self.subtotal - self.discount


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class CouponService:
    # ---------- administration ----------

    def create_coupon(
        self,
        code: str,
        coupon_type: str,
        value=ZERO,
        min_purchase=ZERO,
        max_discount=None,
        usage_limit: Optional[int] = None,
        per_user_limit: int = 1,
        course_ids: Iterable[int] = (),
        starts_at=None,
        expires_at=None,
        is_active: bool = True,
        created_by=None,
    ) -> Coupon:
        """
        Raises:
            InvalidInputError: malformed code, type, value or window
            NotFoundError: unknown applicable course ids
            DuplicateCoupon: the code is taken
        """
        code = normalize_code(code)
        if not 3 <= len(code) <= 50:
            raise InvalidInputError("Coupon code must have 3 to 50 characters")
        if coupon_type not in Coupon.Type.values:
            raise InvalidInputError(
                f"Unknown coupon type '{coupon_type}'", details={"allowed": list(Coupon.Type.values)}
            )
        value = quantize(value)
        if value < 0 or (coupon_type == Coupon.Type.PERCENTAGE and value > HUNDRED):
            raise InvalidInputError("Coupon value out of range", details={"value": str(value)})
        if per_user_limit < 1:
            raise InvalidInputError("per_user_limit must be at least 1")
        if starts_at and expires_at and expires_at <= starts_at:
            raise InvalidInputError("expires_at must be after starts_at")

        ids = list(dict.fromkeys(int(cid) for cid in course_ids))
        courses = Course.objects.in_bulk(ids)
        missing = [cid for cid in ids if cid not in courses]
        if missing:
            raise NotFoundError("Unknown course(s) for coupon", details={"course_ids": missing})

        try:
            with transaction.atomic():
                coupon = Coupon.objects.create(
                    code=code,
                    coupon_type=coupon_type,
                    value=value,
                    min_purchase=quantize(min_purchase),
                    max_discount=quantize(max_discount) if max_discount is not None else None,
                    usage_limit=usage_limit,
                    per_user_limit=per_user_limit,
                    starts_at=starts_at,
                    expires_at=expires_at,
                    is_active=is_active,
                    created_by=created_by,
                )
                if ids:
                    coupon.applicable_courses.set(ids)
        except IntegrityError:
            raise DuplicateCoupon(details={"code": code}) from None

        logger.info("Created coupon %s (%s %s)", coupon.code, coupon.coupon_type, coupon.value)
        return coupon

    def _get(self, coupon_id: int) -> Coupon:
        try:
            return Coupon.objects.get(pk=coupon_id)
        except Coupon.DoesNotExist:
            raise NotFoundError(f"Coupon {coupon_id} not found") from None

    def set_active(self, coupon_id: int, is_active: bool) -> Coupon:
        coupon = self._get(coupon_id)
        if coupon.is_active != is_active:
            coupon.is_active = is_active
            coupon.save(update_fields=["is_active"])
            logger.info("Coupon %s %s", coupon.code, "enabled" if is_active else "disabled")
        return coupon

    def toggle_active(self, coupon_id: int) -> Coupon:
        coupon = self._get(coupon_id)
        return self.set_active(coupon_id, not coupon.is_active)

    def delete_coupon(self, coupon_id: int) -> None:
        """Delete an unused coupon. Coupons referenced by orders can only be disabled."""
        coupon = self._get(coupon_id)
        if Order.objects.filter(coupon=coupon).exists():
            raise ConflictError(
                "Coupon is referenced by orders; disable it instead", details={"code": coupon.code}
            )
        coupon.delete()
        logger.info("Deleted coupon %s", coupon.code)

    def list_coupons(self, is_active: Optional[bool] = None):
        qs = Coupon.objects.prefetch_related("applicable_courses")
        if is_active is not None:
            qs = qs.filter(is_active=is_active)
        return qs

    # ---------- checkout ----------

    def quote(self, code: str, priced_courses: Sequence, user=None, now=None) -> CouponQuote:
        """
        Evaluate a coupon for ``priced_courses`` (pairs of course and price).

        Raises:
            CouponInvalid: unknown, disabled, outside its window or used up
            CouponNotApplicable: no applicable course, minimum purchase not
                reached, or the user's own usage limit is reached
        """
        now = now or timezone.now()
        try:
            coupon = Coupon.objects.get(code=normalize_code(code))
        except Coupon.DoesNotExist:
            raise CouponInvalid(details={"code": normalize_code(code)}) from None
        if not coupon.is_valid(now):
            raise CouponInvalid(details={"code": coupon.code})

        applicable = set(coupon.applicable_courses.values_list("pk", flat=True))
        eligible: List[Tuple[Course, Decimal]] = [
            (course, price) for course, price in priced_courses if not applicable or course.pk in applicable
        ]
        if not eligible:
            raise CouponNotApplicable(details={"code": coupon.code})

        subtotal = quantize(sum((price for _, price in priced_courses), ZERO))
        eligible_subtotal = quantize(sum((price for _, price in eligible), ZERO))
        if eligible_subtotal < coupon.min_purchase:
            raise CouponNotApplicable(
                "Minimum purchase for this coupon not reached",
                details={"code": coupon.code, "min_purchase": str(coupon.min_purchase)},
            )
        if user is not None and getattr(user, "is_authenticated", False):
            used_by_user = Order.objects.filter(
                user=user, coupon=coupon, status__in=[Order.Status.COMPLETED, Order.Status.REFUNDED]
            ).count()
            if used_by_user >= coupon.per_user_limit:
                raise CouponNotApplicable(
                    "Coupon already used", details={"code": coupon.code, "per_user_limit": coupon.per_user_limit}
                )

        discount = coupon_discount(eligible_subtotal, coupon.coupon_type, coupon.value, coupon.max_discount)
        return CouponQuote(
            coupon=coupon,
            subtotal=subtotal,
            eligible_subtotal=eligible_subtotal,
            discount=discount,
            eligible_course_ids=tuple(course.pk for course, _ in eligible),
        )

    def record_usage(self, coupon_id: int) -> None:
        Coupon.objects.filter(pk=coupon_id).update(used_count=F("used_count") + 1)

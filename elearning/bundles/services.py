"""
Bundle Engine

Fixed-course bundles with computed pricing, an availability window and an
optional purchase cap. Purchasing a bundle fans out into one Order with one
OrderItem per bundled course; the bundle price is allocated across the
courses so that instructor shares add up per course.

Payment for a bundle is collected like any other order. Enrollments, the
BundlePurchase log row and the purchase counter are written when the order
settles.

Author: DSP Development Team
Version: 1.0.0
"""

import logging
from typing import Iterable, List, Optional

from django.db import transaction
from django.db.models import F, Max, Q
from django.utils import timezone
from django.utils.text import slugify

from ..conf import default_currency
from ..courses.models import Course
from ..courses.services import enrolled_course_ids
from ..exceptions import (
    AlreadyEnrolled,
    BundleUnavailable,
    EmptyBundle,
    InvalidInputError,
    NotFoundError,
)
from ..orders.models import Order
from ..orders.services import CheckoutHandle, CheckoutService
from ..pricing import ZERO, allocate, bundle_price, discounted_price, effective_price, quantize, savings
from .models import Bundle, BundleCourse, BundlePurchase

logger = logging.getLogger(__name__)

BUNDLE_UPDATABLE_FIELDS = {
    "title",
    "description",
    "discount_percent",
    "is_active",
    "start_date",
    "end_date",
    "max_purchases",
}


def _unique_slug(title: str) -> str:
    base = slugify(title)[:240] or "bundle"
    slug, suffix = base, 2
    while Bundle.objects.filter(slug=slug).exists():
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug


def _validate_window(start_date, end_date) -> None:
    if start_date and end_date and end_date <= start_date:
        raise InvalidInputError("end_date must be after start_date")


def is_available(bundle: Bundle, now=None) -> bool:
    """Active, under the purchase cap and inside [start_date, end_date] when set."""
    now = now or timezone.now()
    if not bundle.is_active:
        return False
    if bundle.max_purchases is not None and bundle.purchase_count >= bundle.max_purchases:
        return False
    if bundle.start_date and now < bundle.start_date:
        return False
    if bundle.end_date and now > bundle.end_date:
        return False
    return True


class BundleService:
    """
    Args:
        checkout: checkout service used to create and settle bundle orders
    """

    def __init__(self, checkout: Optional[CheckoutService] = None):
        self.checkout = checkout or CheckoutService()

    # ---------- administration ----------

    def create_bundle(
        self,
        title: str,
        course_ids: Iterable[int],
        discount_percent,
        description: str = "",
        created_by=None,
        is_active: bool = True,
        start_date=None,
        end_date=None,
        max_purchases: Optional[int] = None,
    ) -> Bundle:
        """
        Raises:
            EmptyBundle: no courses given
            NotFoundError: unknown course ids
            InvalidInputError: discount outside [0, 100] or inverted date window
        """
        ids = list(dict.fromkeys(int(cid) for cid in course_ids))
        if not ids:
            raise EmptyBundle()
        found = Course.objects.in_bulk(ids)
        missing = [cid for cid in ids if cid not in found]
        if missing:
            raise NotFoundError("Unknown course(s) in bundle", details={"course_ids": missing})
        _validate_window(start_date, end_date)

        courses = [found[cid] for cid in ids]
        original, discounted = bundle_price(courses, discount_percent)

        with transaction.atomic():
            bundle = Bundle.objects.create(
                title=title,
                slug=_unique_slug(title),
                description=description,
                original_price=original,
                bundle_price=discounted,
                discount_percent=quantize(discount_percent),
                is_active=is_active,
                start_date=start_date,
                end_date=end_date,
                max_purchases=max_purchases,
                created_by=created_by,
            )
            BundleCourse.objects.bulk_create(
                [BundleCourse(bundle=bundle, course=course, position=i) for i, course in enumerate(courses)]
            )
        logger.info("Created bundle %s (%s courses, %s → %s)", bundle.slug, len(courses), original, discounted)
        return bundle

    def update_bundle(self, bundle: Bundle, **fields) -> Bundle:
        unknown = set(fields) - BUNDLE_UPDATABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Unknown bundle field(s): {', '.join(sorted(unknown))}")
        _validate_window(fields.get("start_date", bundle.start_date), fields.get("end_date", bundle.end_date))
        if "discount_percent" in fields:
            fields["bundle_price"] = discounted_price(bundle.original_price, fields["discount_percent"])
            fields["discount_percent"] = quantize(fields["discount_percent"])
        for key, value in fields.items():
            setattr(bundle, key, value)
        bundle.save()
        return bundle

    def add_course(self, bundle: Bundle, course_id: int) -> Bundle:
        try:
            course = Course.objects.get(pk=course_id)
        except Course.DoesNotExist:
            raise NotFoundError(f"Course {course_id} not found") from None

        with transaction.atomic():
            bundle = Bundle.objects.select_for_update().get(pk=bundle.pk)
            if bundle.bundle_courses.filter(course=course).exists():
                return bundle
            last = bundle.bundle_courses.aggregate(last=Max("position"))["last"]
            BundleCourse.objects.create(bundle=bundle, course=course, position=0 if last is None else last + 1)
            bundle.original_price = quantize(bundle.original_price + effective_price(course))
            bundle.bundle_price = discounted_price(bundle.original_price, bundle.discount_percent)
            bundle.save(update_fields=["original_price", "bundle_price", "updated_at"])
        return bundle

    def remove_course(self, bundle: Bundle, course_id: int) -> Bundle:
        with transaction.atomic():
            bundle = Bundle.objects.select_for_update().get(pk=bundle.pk)
            membership = bundle.bundle_courses.select_related("course").filter(course_id=course_id).first()
            if membership is None:
                raise NotFoundError(f"Course {course_id} is not part of this bundle")
            course = membership.course
            membership.delete()
            bundle.original_price = max(quantize(bundle.original_price - effective_price(course)), ZERO)
            bundle.bundle_price = discounted_price(bundle.original_price, bundle.discount_percent)
            bundle.save(update_fields=["original_price", "bundle_price", "updated_at"])
        return bundle

    def recalculate(self, bundle: Bundle) -> Bundle:
        """Re-derive both prices from the courses' current effective prices."""
        courses = bundle.ordered_courses()
        if not courses:
            bundle.original_price = ZERO
            bundle.bundle_price = ZERO
        else:
            bundle.original_price, bundle.bundle_price = bundle_price(courses, bundle.discount_percent)
        bundle.save(update_fields=["original_price", "bundle_price", "updated_at"])
        return bundle

    # ---------- purchasing ----------

    def purchase_bundle(self, user, bundle_id: int, customer_email: Optional[str] = None, now=None) -> CheckoutHandle:
        """
        Create a bundle order and start payment collection.

        Raises:
            NotFoundError: unknown bundle
            BundleUnavailable: inactive, sold out or outside its sale window
            EmptyBundle: bundle has no courses
            AlreadyEnrolled: the user already owns every bundled course
            ExternalProviderError: provider rejected the checkout; order stays pending
        """
        try:
            bundle = Bundle.objects.get(pk=bundle_id)
        except Bundle.DoesNotExist:
            raise NotFoundError(f"Bundle {bundle_id} not found") from None
        if not is_available(bundle, now):
            raise BundleUnavailable(details={"bundle_id": bundle.pk})

        courses = bundle.ordered_courses()
        if not courses:
            raise EmptyBundle()
        owned = enrolled_course_ids(user, [c.pk for c in courses])
        if len(owned) == len(courses):
            raise AlreadyEnrolled("User already owns every course in this bundle")

        weights = [effective_price(c) for c in courses]
        line_prices = allocate(bundle.bundle_price, weights)

        with transaction.atomic():
            order = Order.objects.create(
                user=user,
                subtotal=bundle.original_price,
                discount=savings(bundle),
                total=bundle.bundle_price,
                currency=default_currency(),
                bundle=bundle,
                customer_email=customer_email or getattr(user, "email", "") or "",
            )
            self.checkout.create_items(order, list(zip(courses, line_prices)))

        logger.info("Created bundle order %s for bundle %s (user %s)", order.order_number, bundle.slug, user.pk)
        return self.checkout.collect_payment(order)

    # ---------- read side ----------

    def list_active_bundles(self, now=None):
        now = now or timezone.now()
        return (
            Bundle.objects.filter(is_active=True)
            .filter(Q(start_date__isnull=True) | Q(start_date__lte=now))
            .filter(Q(end_date__isnull=True) | Q(end_date__gte=now))
            .filter(Q(max_purchases__isnull=True) | Q(purchase_count__lt=F("max_purchases")))
            .prefetch_related("bundle_courses__course")
        )

    def get_user_bundles(self, user) -> List[BundlePurchase]:
        return list(BundlePurchase.objects.filter(user=user).select_related("bundle", "order"))

"""
Cart Service

Holds candidate purchases for users and anonymous sessions and merges a
guest cart into the user's cart on login. Prices are never stored on the
cart; the summary always reflects the current effective price.

Author: DSP Development Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from django.db import transaction

from ..courses.models import Course
from ..courses.services import enrolled_course_ids, is_enrolled
from ..exceptions import AlreadyEnrolled, CourseNotPublished, InvalidInputError, NotFoundError
from ..pricing import ZERO, effective_price, quantize
from .models import Cart, CartItem

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    course_id: int
    title: str
    price: Decimal
    original_price: Decimal


@dataclass
class CartSummary:
    cart_id: int
    items: List[CartLine] = field(default_factory=list)
    subtotal: Decimal = ZERO

    @property
    def item_count(self) -> int:
        return len(self.items)


def get_or_create_cart(user=None, session_key: Optional[str] = None) -> Cart:
    """
    Return the cart of the user (preferred) or of the anonymous session.

    Raises:
        InvalidInputError: neither an authenticated user nor a session key given
    """
    if user is not None and getattr(user, "is_authenticated", False):
        cart, created = Cart.objects.get_or_create(user=user)
    elif session_key:
        cart, created = Cart.objects.get_or_create(session_key=session_key, user=None)
    else:
        raise InvalidInputError("A user or a session key is required for a cart")
    if created:
        logger.debug("Created cart %s", cart.pk)
    return cart


def _get_course(course_id: int) -> Course:
    try:
        return Course.objects.get(pk=course_id)
    except Course.DoesNotExist:
        raise NotFoundError(f"Course {course_id} not found") from None


def add_course(cart: Cart, course_id: int) -> CartItem:
    """
    Add a course to the cart. Adding the same course twice is a no-op.

    Raises:
        NotFoundError: unknown course
        CourseNotPublished: course is not for sale
        AlreadyEnrolled: the cart owner already has access
    """
    course = _get_course(course_id)
    if not course.is_published:
        raise CourseNotPublished(details={"course_id": course.pk})
    if cart.user_id and is_enrolled(cart.user, course.pk):
        raise AlreadyEnrolled(details={"course_id": course.pk})

    item, created = CartItem.objects.get_or_create(cart=cart, course=course)
    if created:
        logger.info("Added course %s to cart %s", course.pk, cart.pk)
    return item


def remove_course(cart: Cart, course_id: int) -> bool:
    deleted, _ = CartItem.objects.filter(cart=cart, course_id=course_id).delete()
    return deleted > 0


def clear(cart: Cart) -> None:
    CartItem.objects.filter(cart=cart).delete()


def summary(cart: Cart) -> CartSummary:
    result = CartSummary(cart_id=cart.pk)
    for item in cart.items.select_related("course"):
        course = item.course
        price = effective_price(course)
        result.items.append(
            CartLine(
                course_id=course.pk,
                title=course.title,
                price=price,
                original_price=quantize(course.price),
            )
        )
        result.subtotal += price
    result.subtotal = quantize(result.subtotal)
    return result


def merge_guest_cart(session_key: str, user) -> Cart:
    """
    Move the items of an anonymous cart into the user's cart.

    Courses already in the user's cart or already owned by the user are
    skipped. The guest cart is deleted afterwards.
    """
    user_cart = get_or_create_cart(user=user)
    if not session_key:
        return user_cart

    with transaction.atomic():
        guest_cart = Cart.objects.filter(session_key=session_key, user__isnull=True).first()
        if guest_cart is None:
            return user_cart

        guest_course_ids = list(guest_cart.items.values_list("course_id", flat=True))
        present = set(user_cart.items.values_list("course_id", flat=True))
        owned = enrolled_course_ids(user, guest_course_ids)
        to_add = [cid for cid in guest_course_ids if cid not in present and cid not in owned]
        CartItem.objects.bulk_create([CartItem(cart=user_cart, course_id=cid) for cid in to_add])
        guest_cart.delete()

    logger.info(
        "Merged guest cart %s into cart %s (%s item(s) moved)", session_key, user_cart.pk, len(to_add)
    )
    return user_cart

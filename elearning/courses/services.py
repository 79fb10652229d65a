"""
Enrollment collaborator used by checkout, bundles and refunds.

Granting access is idempotent ("create if not exists"); revoking keeps the
row so the audit trail survives a refund.
"""

import logging
from typing import Iterable, Optional, Set

from django.db import transaction
from django.utils import timezone

from .models import Course, Enrollment

logger = logging.getLogger(__name__)


def enroll(user, course: Course, *, source: str = Enrollment.Source.PURCHASE, order=None) -> bool:
    """
    Idempotently enroll a user into a course.

    Returns:
        True if access was granted by this call (new or re-activated row),
        False if the user already had an active enrollment.
    """
    with transaction.atomic():
        enrollment, created = Enrollment.objects.select_for_update().get_or_create(
            user=user,
            course=course,
            defaults={"source": source, "order": order},
        )
        if created:
            logger.info("Enrolled user %s into course %s (source=%s).", user.pk, course.pk, source)
            return True

        if enrollment.status == Enrollment.Status.REVOKED:
            enrollment.status = Enrollment.Status.ACTIVE
            enrollment.source = source
            enrollment.order = order
            enrollment.revoked_at = None
            enrollment.save(update_fields=["status", "source", "order", "revoked_at"])
            logger.info("Re-activated enrollment of user %s in course %s.", user.pk, course.pk)
            return True

    logger.debug("Enrollment already exists for user %s and course %s.", user.pk, course.pk)
    return False


def revoke_for_order(order) -> int:
    """Revoke every active enrollment granted by the given order."""
    count = Enrollment.objects.filter(order=order, status=Enrollment.Status.ACTIVE).update(
        status=Enrollment.Status.REVOKED,
        revoked_at=timezone.now(),
    )
    if count:
        logger.info("Revoked %s enrollment(s) for order %s.", count, order.order_number)
    return count


def is_enrolled(user, course_id: int) -> bool:
    if user is None or not getattr(user, "is_authenticated", False):
        return False
    return Enrollment.objects.filter(
        user=user, course_id=course_id, status=Enrollment.Status.ACTIVE
    ).exists()


def enrolled_course_ids(user, course_ids: Optional[Iterable[int]] = None) -> Set[int]:
    """Ids of the courses the user is actively enrolled in (optionally restricted)."""
    if user is None or not getattr(user, "is_authenticated", False):
        return set()
    qs = Enrollment.objects.filter(user=user, status=Enrollment.Status.ACTIVE)
    if course_ids is not None:
        qs = qs.filter(course_id__in=list(course_ids))
    return set(qs.values_list("course_id", flat=True))

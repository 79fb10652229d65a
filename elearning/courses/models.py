"""
Catalog & Entitlement Models

Billing only needs a thin view of the catalog: a course has an owner
(instructor), a list price, an optional discount price and a publication
status. Entitlements are stored as Enrollment rows, one per (user, course).

Models:
- Course: Purchasable course with pricing and publication status
- Enrollment: A user's right to access a course

Author: DSP Development Team
Version: 1.0.0
"""

from django.db import models
from django.conf import settings
from django.utils.translation import gettext_lazy as _

User = settings.AUTH_USER_MODEL

__all__ = ["Course", "Enrollment"]


class Course(models.Model):
    """
    Purchasable course as seen by the billing core.

    Content, chapters and media live elsewhere; billing reads the price
    fields and ``status`` only.
    """

    class Status(models.TextChoices):
        DRAFT = "draft", _("Draft")
        PUBLISHED = "published", _("Published")
        ARCHIVED = "archived", _("Archived")

    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True)
    instructor = models.ForeignKey(User, on_delete=models.PROTECT, related_name="taught_courses")
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    discount_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Course")
        verbose_name_plural = _("Courses")
        ordering = ["title"]
        db_table = "elearning_course"

    def __str__(self) -> str:
        return self.title

    @property
    def is_published(self) -> bool:
        return self.status == self.Status.PUBLISHED


class Enrollment(models.Model):
    """
    Entitlement of a user to a course.

    Exactly one row exists per (user, course). Refunds revoke the row instead
    of deleting it; buying the course again re-activates it.
    """

    class Source(models.TextChoices):
        PURCHASE = "purchase", _("Purchase")
        BUNDLE = "bundle", _("Bundle")
        FREE = "free", _("Free")
        ADMIN = "admin", _("Admin")

    class Status(models.TextChoices):
        ACTIVE = "active", _("Active")
        REVOKED = "revoked", _("Revoked")

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="enrollments")
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name="enrollments")
    order = models.ForeignKey(
        "elearning.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="enrollments",
    )
    source = models.CharField(max_length=20, choices=Source.choices, default=Source.PURCHASE)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    enrolled_at = models.DateTimeField(auto_now_add=True)
    revoked_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = _("Enrollment")
        verbose_name_plural = _("Enrollments")
        db_table = "elearning_enrollment"
        constraints = [
            models.UniqueConstraint(fields=["user", "course"], name="uniq_enrollment_user_course"),
        ]

    def __str__(self) -> str:
        return f"{self.user} → {self.course} ({self.status})"

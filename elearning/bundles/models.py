"""
Course Bundle Models

A bundle sells a fixed, ordered set of courses for a discounted price.
``original_price`` is the sum of the courses' effective prices and
``bundle_price`` is always recomputed from it and ``discount_percent``.

Models:
- Bundle: priced package with availability window and purchase cap
- BundleCourse: ordered membership of a course in a bundle
- BundlePurchase: append-only purchase log

Author: DSP Development Team
Version: 1.0.0
"""

from django.db import models
from django.conf import settings
from django.utils.translation import gettext_lazy as _

User = settings.AUTH_USER_MODEL

__all__ = ["Bundle", "BundleCourse", "BundlePurchase"]


class Bundle(models.Model):
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True)
    description = models.TextField(blank=True)
    original_price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    bundle_price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    discount_percent = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    is_active = models.BooleanField(default=True)
    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)
    max_purchases = models.PositiveIntegerField(null=True, blank=True)
    purchase_count = models.PositiveIntegerField(default=0)
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="created_bundles"
    )
    courses = models.ManyToManyField(
        "elearning.Course", through="BundleCourse", related_name="bundles"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Bundle")
        verbose_name_plural = _("Bundles")
        ordering = ["-created_at", "-id"]
        db_table = "elearning_bundle"

    def __str__(self) -> str:
        return self.title

    def ordered_courses(self):
        return [bc.course for bc in self.bundle_courses.select_related("course").order_by("position", "id")]


class BundleCourse(models.Model):
    bundle = models.ForeignKey(Bundle, on_delete=models.CASCADE, related_name="bundle_courses")
    course = models.ForeignKey("elearning.Course", on_delete=models.PROTECT, related_name="+")
    position = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name = _("Bundle Course")
        verbose_name_plural = _("Bundle Courses")
        ordering = ["position", "id"]
        db_table = "elearning_bundle_course"
        constraints = [
            models.UniqueConstraint(fields=["bundle", "course"], name="uniq_bundle_course"),
        ]

    def __str__(self) -> str:
        return f"{self.bundle_id}#{self.position}: {self.course_id}"


class BundlePurchase(models.Model):
    bundle = models.ForeignKey(Bundle, on_delete=models.PROTECT, related_name="purchases")
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="bundle_purchases")
    order = models.OneToOneField(
        "elearning.Order", on_delete=models.PROTECT, related_name="bundle_purchase"
    )
    price = models.DecimalField(max_digits=10, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Bundle Purchase")
        verbose_name_plural = _("Bundle Purchases")
        ordering = ["-created_at", "-id"]
        db_table = "elearning_bundle_purchase"

    def __str__(self) -> str:
        return f"{self.user_id} bought {self.bundle_id} for {self.price}"

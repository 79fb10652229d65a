"""
E-Learning Billing Django Admin Configuration

Admin registrations for the billing models, rendered through Jazzmin.

The admin interface is organized into logical sections:
- Catalog & Entitlements: courses and enrollments
- Commerce: carts, orders, bundles and coupons
- Subscriptions: plans and user subscriptions
- Refunds & Revenue: refund requests, instructor earnings and payouts

Money-moving records (orders, earnings, payouts, refunds) are read-mostly:
state changes go through the service layer so that the ledger invariants
hold. The admin actions below call those services.

Author: DSP Development Team
Version: 1.0.0
"""

from django.contrib import admin, messages
from django.db.models import QuerySet
from django.http import HttpRequest
from django.utils.translation import gettext_lazy as _

# Import all models from the central models registry
from .models import (
    Course,
    Enrollment,
    Cart,
    CartItem,
    Order,
    OrderItem,
    SubscriptionPlan,
    Subscription,
    Refund,
    Payout,
    InstructorEarning,
    Bundle,
    BundleCourse,
    BundlePurchase,
    Coupon,
)
from .exceptions import BillingError
from .refunds.services import RefundService
from .revenue.services import RevenueService

# --- Catalog & Entitlements ---


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ("title", "instructor", "price", "discount_price", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("title", "slug", "instructor__username")
    prepopulated_fields = {"slug": ("title",)}
    list_select_related = ("instructor",)


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = ("user", "course", "source", "status", "enrolled_at", "revoked_at")
    list_filter = ("source", "status")
    search_fields = ("user__username", "course__title")
    readonly_fields = ("enrolled_at", "revoked_at", "order")
    list_select_related = ("user", "course")


# --- Commerce ---


class CartItemInline(admin.TabularInline):
    """Inline admin for cart contents."""

    model = CartItem
    extra = 0
    readonly_fields = ("course", "added_at")
    can_delete = False


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "session_key", "updated_at")
    search_fields = ("user__username", "session_key")
    inlines = [CartItemInline]


class OrderItemInline(admin.TabularInline):
    """Inline admin for order lines; prices are frozen at checkout."""

    model = OrderItem
    extra = 0
    readonly_fields = ("course", "price", "platform_fee", "instructor_share")
    can_delete = False

    def has_add_permission(self, request: HttpRequest, obj=None) -> bool:
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "user", "status", "total", "currency", "bundle", "paid_at", "created_at")
    list_filter = ("status", "currency")
    search_fields = ("order_number", "user__username", "customer_email", "payment_reference", "payment_intent_id")
    date_hierarchy = "created_at"
    inlines = [OrderItemInline]
    readonly_fields = (
        "order_number",
        "user",
        "subtotal",
        "discount",
        "total",
        "currency",
        "status",
        "bundle",
        "coupon",
        "payment_reference",
        "payment_intent_id",
        "paid_at",
        "refunded_at",
        "created_at",
        "updated_at",
    )

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False

    def get_queryset(self, request: HttpRequest) -> QuerySet:
        return super().get_queryset(request).select_related("user", "bundle", "coupon")


class BundleCourseInline(admin.TabularInline):
    model = BundleCourse
    extra = 0
    fields = ("course", "position")
    ordering = ("position",)


@admin.register(Bundle)
class BundleAdmin(admin.ModelAdmin):
    list_display = (
        "title",
        "original_price",
        "bundle_price",
        "discount_percent",
        "is_active",
        "purchase_count",
        "max_purchases",
    )
    list_filter = ("is_active",)
    search_fields = ("title", "slug")
    readonly_fields = ("original_price", "bundle_price", "purchase_count", "created_at", "updated_at")
    inlines = [BundleCourseInline]

    fieldsets = (
        (_("Basic Information"), {"fields": ("title", "slug", "description", "created_by")}),
        (_("Pricing"), {"fields": ("discount_percent", "original_price", "bundle_price")}),
        (
            _("Availability"),
            {
                "fields": ("is_active", "start_date", "end_date", "max_purchases", "purchase_count"),
                "description": _("A bundle is on sale while active, inside its window and below its cap"),
            },
        ),
    )


@admin.register(BundlePurchase)
class BundlePurchaseAdmin(admin.ModelAdmin):
    list_display = ("bundle", "user", "order", "price", "created_at")
    search_fields = ("bundle__title", "user__username", "order__order_number")
    readonly_fields = ("bundle", "user", "order", "price", "created_at")

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("code", "coupon_type", "value", "used_count", "usage_limit", "is_active", "expires_at")
    list_filter = ("coupon_type", "is_active")
    search_fields = ("code",)
    readonly_fields = ("used_count", "created_by", "created_at")
    filter_horizontal = ("applicable_courses",)
    actions = ["enable_coupons", "disable_coupons"]

    fieldsets = (
        (_("Discount"), {"fields": ("code", "coupon_type", "value", "max_discount", "min_purchase")}),
        (_("Scope"), {"fields": ("applicable_courses",)}),
        (
            _("Availability"),
            {
                "fields": ("is_active", "starts_at", "expires_at", "usage_limit", "per_user_limit", "used_count"),
                "description": _("A coupon is usable while active, inside its window and below its usage limit"),
            },
        ),
        (_("Audit"), {"fields": ("created_by", "created_at")}),
    )

    def save_model(self, request: HttpRequest, obj: Coupon, form, change: bool) -> None:
        obj.code = obj.code.strip().upper()
        if not change:
            obj.created_by = request.user
        super().save_model(request, obj, form, change)

    @admin.action(description=_("Enable selected coupons"))
    def enable_coupons(self, request: HttpRequest, queryset: QuerySet) -> None:
        updated = queryset.update(is_active=True)
        self.message_user(request, f"{updated} coupon(s) enabled", level=messages.SUCCESS)

    @admin.action(description=_("Disable selected coupons"))
    def disable_coupons(self, request: HttpRequest, queryset: QuerySet) -> None:
        updated = queryset.update(is_active=False)
        self.message_user(request, f"{updated} coupon(s) disabled", level=messages.SUCCESS)

# --- Subscriptions ---


@admin.register(SubscriptionPlan)
class SubscriptionPlanAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "price_monthly", "price_yearly", "max_courses", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = (
        "user",
        "plan",
        "status",
        "interval",
        "current_period_end",
        "cancel_at_period_end",
    )
    list_filter = ("status", "interval", "plan", "cancel_at_period_end")
    search_fields = ("user__username", "stripe_subscription_id", "stripe_customer_id")
    readonly_fields = (
        "status",
        "current_period_start",
        "current_period_end",
        "canceled_at",
        "stripe_subscription_id",
        "stripe_customer_id",
        "last_paid_invoice_id",
        "provider_event_at",
        "created_at",
        "updated_at",
    )
    list_select_related = ("user", "plan")


# --- Refunds & Revenue ---


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "user", "amount", "reason", "status", "processed_by", "created_at")
    list_filter = ("status", "reason")
    search_fields = ("order__order_number", "user__username")
    readonly_fields = (
        "order",
        "user",
        "amount",
        "reason",
        "description",
        "status",
        "processed_by",
        "processed_at",
        "provider_refund_id",
        "created_at",
        "updated_at",
    )
    actions = ["approve_refunds", "reject_refunds"]

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False

    def _decide(self, request: HttpRequest, queryset: QuerySet, action: str) -> None:
        service = RefundService()
        done = 0
        for refund in queryset:
            try:
                getattr(service, action)(refund.pk, request.user)
                done += 1
            except BillingError as exc:
                self.message_user(request, f"Refund {refund.pk}: {exc.message}", level=messages.WARNING)
        if done:
            self.message_user(request, f"{done} refund(s) updated", level=messages.SUCCESS)

    @admin.action(description=_("Approve selected refunds"))
    def approve_refunds(self, request: HttpRequest, queryset: QuerySet) -> None:
        self._decide(request, queryset, "approve")

    @admin.action(description=_("Reject selected refunds"))
    def reject_refunds(self, request: HttpRequest, queryset: QuerySet) -> None:
        self._decide(request, queryset, "reject")


@admin.register(InstructorEarning)
class InstructorEarningAdmin(admin.ModelAdmin):
    list_display = ("instructor", "order_item", "amount", "platform_fee", "status", "available_at", "paid_at")
    list_filter = ("status",)
    search_fields = ("instructor__username", "order_item__order__order_number")
    readonly_fields = (
        "instructor",
        "order_item",
        "amount",
        "platform_fee",
        "status",
        "payout",
        "available_at",
        "paid_at",
        "reversed_at",
        "created_at",
    )

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    list_display = ("id", "instructor", "amount", "currency", "status", "method", "processed_at", "created_at")
    list_filter = ("status", "method")
    search_fields = ("instructor__username", "transaction_id")
    readonly_fields = ("instructor", "amount", "currency", "status", "processed_at", "created_at")
    actions = ["confirm_payouts", "fail_payouts"]

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False

    def _apply(self, request: HttpRequest, queryset: QuerySet, action: str) -> None:
        service = RevenueService()
        done = 0
        for payout in queryset:
            try:
                getattr(service, action)(payout.pk)
                done += 1
            except BillingError as exc:
                self.message_user(request, f"Payout {payout.pk}: {exc.message}", level=messages.WARNING)
        if done:
            self.message_user(request, f"{done} payout(s) updated", level=messages.SUCCESS)

    @admin.action(description=_("Mark selected payouts as paid"))
    def confirm_payouts(self, request: HttpRequest, queryset: QuerySet) -> None:
        self._apply(request, queryset, "confirm_payout")

    @admin.action(description=_("Mark selected payouts as failed"))
    def fail_payouts(self, request: HttpRequest, queryset: QuerySet) -> None:
        self._apply(request, queryset, "fail_payout")

"""
Coupon tests: administration, validation at checkout, allocation of the
discount over order items, usage counting at settlement and the coupon API.
"""

from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from elearning.cart import services as cart_services
from elearning.coupons.models import Coupon
from elearning.coupons.services import CouponService
from elearning.courses.models import Enrollment
from elearning.exceptions import (
    ConflictError,
    CouponInvalid,
    CouponNotApplicable,
    DuplicateCoupon,
    InvalidInputError,
    NotFoundError,
)
from elearning.orders.models import Order
from elearning.orders.services import CheckoutService
from elearning.revenue.models import InstructorEarning
from elearning.tests.fakes import FakeGateway, make_course, make_user


class CouponTestMixin:
    @classmethod
    def setUpTestData(cls):
        cls.instructor = make_user("instructor")
        cls.student = make_user("student")
        cls.other = make_user("other")
        cls.admin = make_user("admin", is_staff=True)
        cls.python = make_course(cls.instructor, "Python", "49.99", "29.99")
        cls.django = make_course(cls.instructor, "Django", "59.00")
        cls.intro = make_course(cls.instructor, "Intro", "0")

    def setUp(self):
        self.coupons = CouponService()
        self.checkout = CheckoutService(gateway=FakeGateway(), fee_percent=Decimal("30"))

    def _cart(self, *courses, user=None):
        cart = cart_services.get_or_create_cart(user=user or self.student)
        for course in courses:
            cart_services.add_course(cart, course.pk)
        return cart


class CouponAdministrationTests(CouponTestMixin, TestCase):
    def testCodeIsNormalized(self):
        coupon = self.coupons.create_coupon(" save10 ", Coupon.Type.PERCENTAGE, Decimal("10"), created_by=self.admin)
        self.assertEqual(coupon.code, "SAVE10")
        self.assertEqual(coupon.created_by, self.admin)
        self.assertTrue(coupon.is_active)

    def testDuplicateCode(self):
        self.coupons.create_coupon("SAVE10", Coupon.Type.PERCENTAGE, Decimal("10"))
        with self.assertRaises(DuplicateCoupon):
            self.coupons.create_coupon("save10", Coupon.Type.FIXED, Decimal("5"))
        self.assertEqual(Coupon.objects.count(), 1)

    def testInvalidInput(self):
        with self.assertRaises(InvalidInputError):
            self.coupons.create_coupon("TOO-MUCH", Coupon.Type.PERCENTAGE, Decimal("120"))
        with self.assertRaises(InvalidInputError):
            self.coupons.create_coupon("NEGATIVE", Coupon.Type.FIXED, Decimal("-5"))
        with self.assertRaises(InvalidInputError):
            self.coupons.create_coupon("X", Coupon.Type.FIXED, Decimal("5"))
        with self.assertRaises(InvalidInputError):
            self.coupons.create_coupon("BOGO", "bogo", Decimal("5"))
        now = timezone.now()
        with self.assertRaises(InvalidInputError):
            self.coupons.create_coupon("WINDOW", Coupon.Type.FIXED, Decimal("5"), starts_at=now, expires_at=now)
        self.assertFalse(Coupon.objects.exists())

    def testUnknownApplicableCourse(self):
        with self.assertRaises(NotFoundError):
            self.coupons.create_coupon("ONLY", Coupon.Type.FIXED, Decimal("5"), course_ids=[self.python.pk, 987654])

    def testToggle(self):
        coupon = self.coupons.create_coupon("SAVE10", Coupon.Type.PERCENTAGE, Decimal("10"))
        self.assertFalse(self.coupons.toggle_active(coupon.pk).is_active)
        self.assertTrue(self.coupons.toggle_active(coupon.pk).is_active)

    def testUsedCouponCannotBeDeleted(self):
        coupon = self.coupons.create_coupon("SAVE10", Coupon.Type.PERCENTAGE, Decimal("10"))
        self.checkout.checkout(self._cart(self.django), coupon_code="SAVE10")
        with self.assertRaises(ConflictError):
            self.coupons.delete_coupon(coupon.pk)

        unused = self.coupons.create_coupon("UNUSED", Coupon.Type.FIXED, Decimal("5"))
        self.coupons.delete_coupon(unused.pk)
        self.assertFalse(Coupon.objects.filter(pk=unused.pk).exists())
        with self.assertRaises(NotFoundError):
            self.coupons.delete_coupon(unused.pk)


class CouponCheckoutTests(CouponTestMixin, TestCase):
    def testPercentageCouponOnWholeCart(self):
        self.coupons.create_coupon("SAVE10", Coupon.Type.PERCENTAGE, Decimal("10"))
        order = self.checkout.checkout(self._cart(self.python, self.django), coupon_code="save10").order

        self.assertEqual(order.subtotal, Decimal("88.99"))
        self.assertEqual(order.discount, Decimal("8.90"))
        self.assertEqual(order.total, Decimal("80.09"))
        self.assertEqual(order.coupon.code, "SAVE10")
        self.assertEqual(sum(item.price for item in order.items.all()), order.total)
        self.assertEqual(self.checkout.gateway.checkout_sessions[0]["amount"], 8009)

    def testRestrictedCouponOnlyDiscountsApplicableCourses(self):
        self.coupons.create_coupon("DJANGO20", Coupon.Type.FIXED, Decimal("20"), course_ids=[self.django.pk])
        order = self.checkout.checkout(self._cart(self.python, self.django), coupon_code="DJANGO20").order

        self.assertEqual(order.discount, Decimal("20.00"))
        self.assertEqual(order.total, Decimal("68.99"))
        python_item = order.items.get(course=self.python)
        django_item = order.items.get(course=self.django)
        self.assertEqual(python_item.price, Decimal("29.99"))
        self.assertEqual(django_item.price, Decimal("39.00"))
        self.assertEqual(django_item.platform_fee, Decimal("11.70"))
        self.assertEqual(django_item.instructor_share, Decimal("27.30"))

    def testUnknownDisabledOrExpiredCoupon(self):
        self.coupons.create_coupon("OFF", Coupon.Type.FIXED, Decimal("5"), is_active=False)
        self.coupons.create_coupon(
            "OLD",
            Coupon.Type.FIXED,
            Decimal("5"),
            starts_at=timezone.now() - timedelta(days=10),
            expires_at=timezone.now() - timedelta(days=1),
        )
        cart = self._cart(self.django)
        for code in ("MISSING", "OFF", "OLD"):
            with self.subTest(code=code):
                with self.assertRaises(CouponInvalid):
                    self.checkout.checkout(cart, coupon_code=code)
        self.assertFalse(Order.objects.exists())

    def testCouponNotApplicable(self):
        self.coupons.create_coupon("INTRO", Coupon.Type.FIXED, Decimal("5"), course_ids=[self.intro.pk])
        self.coupons.create_coupon("BIGSPENDER", Coupon.Type.FIXED, Decimal("5"), min_purchase=Decimal("100"))
        cart = self._cart(self.python, self.django)
        for code in ("INTRO", "BIGSPENDER"):
            with self.subTest(code=code):
                with self.assertRaises(CouponNotApplicable):
                    self.checkout.checkout(cart, coupon_code=code)
        self.assertFalse(Order.objects.exists())

    def testUsageIsCountedOnceAtSettlement(self):
        coupon = self.coupons.create_coupon("SAVE10", Coupon.Type.PERCENTAGE, Decimal("10"))
        order = self.checkout.checkout(self._cart(self.django), coupon_code="SAVE10").order
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 0)

        self.checkout.on_payment_confirmed(order.pk)
        self.checkout.on_payment_confirmed(order.pk)
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 1)
        self.assertEqual(InstructorEarning.objects.get(order_item__order=order).amount, Decimal("37.17"))

    def testUsageLimit(self):
        self.coupons.create_coupon("ONCE", Coupon.Type.FIXED, Decimal("5"), usage_limit=1)
        order = self.checkout.checkout(self._cart(self.django), coupon_code="ONCE").order
        self.checkout.on_payment_confirmed(order.pk)

        with self.assertRaises(CouponInvalid):
            self.checkout.checkout(self._cart(self.django, user=self.other), coupon_code="ONCE")

    def testPerUserLimit(self):
        self.coupons.create_coupon("WELCOME", Coupon.Type.FIXED, Decimal("5"))
        order = self.checkout.checkout(self._cart(self.django), coupon_code="WELCOME").order
        self.checkout.on_payment_confirmed(order.pk)

        with self.assertRaises(CouponNotApplicable):
            self.checkout.checkout(self._cart(self.python), coupon_code="WELCOME")
        other_order = self.checkout.checkout(self._cart(self.python, user=self.other), coupon_code="WELCOME").order
        self.assertEqual(other_order.discount, Decimal("5.00"))

    def testFreeCouponSettlesImmediately(self):
        coupon = self.coupons.create_coupon("GIFT", Coupon.Type.FREE)
        handle = self.checkout.checkout(self._cart(self.django), coupon_code="GIFT")

        self.assertFalse(handle.requires_payment)
        self.assertEqual(handle.order.status, Order.Status.COMPLETED)
        self.assertEqual(handle.order.total, Decimal("0.00"))
        self.assertEqual(self.checkout.gateway.checkout_sessions, [])
        enrollment = Enrollment.objects.get(user=self.student, course=self.django)
        self.assertEqual(enrollment.source, Enrollment.Source.FREE)
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 1)


class CouponApiTests(CouponTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(user=self.student)

    def testValidateAgainstCart(self):
        self.coupons.create_coupon("SAVE10", Coupon.Type.PERCENTAGE, Decimal("10"))
        self.client.post("/api/billing/cart/items/", {"course_id": self.django.pk}, format="json")

        response = self.client.post("/api/billing/coupons/validate/", {"code": "save10"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["code"], "SAVE10")
        self.assertEqual(response.json()["discount"], "5.90")
        self.assertEqual(response.json()["total"], "53.10")

        invalid = self.client.post("/api/billing/coupons/validate/", {"code": "NOPE"}, format="json")
        self.assertEqual(invalid.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(invalid.json()["error_code"], "coupon_invalid")

    def testCheckoutWithCoupon(self):
        self.coupons.create_coupon("SAVE10", Coupon.Type.PERCENTAGE, Decimal("10"))
        self.client.post("/api/billing/cart/items/", {"course_id": self.django.pk}, format="json")
        with mock.patch("elearning.orders.services.get_gateway", return_value=FakeGateway()):
            response = self.client.post("/api/billing/checkout/", {"coupon_code": "SAVE10"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.json()["order"]["coupon_code"], "SAVE10")
        self.assertEqual(response.json()["order"]["discount"], "5.90")
        self.assertEqual(response.json()["order"]["total"], "53.10")

    def testAdministrationNeedsStaff(self):
        response = self.client.post(
            "/api/billing/coupons/", {"code": "SAVE10", "coupon_type": "percentage", "value": "10"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def testAdminCreateListAndToggle(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post(
            "/api/billing/coupons/",
            {"code": "launch", "coupon_type": "fixed", "value": "15.00", "course_ids": [self.django.pk]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.json()["code"], "LAUNCH")
        self.assertEqual(response.json()["course_ids"], [self.django.pk])
        coupon_id = response.json()["id"]

        duplicate = self.client.post(
            "/api/billing/coupons/", {"code": "LAUNCH", "coupon_type": "fixed", "value": "5"}, format="json"
        )
        self.assertEqual(duplicate.status_code, status.HTTP_409_CONFLICT)

        toggled = self.client.post(f"/api/billing/coupons/{coupon_id}/toggle/")
        self.assertEqual(toggled.status_code, status.HTTP_200_OK)
        self.assertFalse(toggled.json()["is_active"])

        listed = self.client.get("/api/billing/coupons/", {"is_active": "false"})
        self.assertEqual([c["code"] for c in listed.json()], ["LAUNCH"])

        deleted = self.client.delete(f"/api/billing/coupons/{coupon_id}/")
        self.assertEqual(deleted.status_code, status.HTTP_204_NO_CONTENT)

"""
Cart tests: guest and user carts, idempotent adds and merging a guest cart
into the user's cart on login.
"""

from decimal import Decimal

from django.test import TestCase

from elearning.cart import services
from elearning.cart.models import Cart, CartItem
from elearning.courses.models import Course, Enrollment
from elearning.exceptions import AlreadyEnrolled, CourseNotPublished, InvalidInputError, NotFoundError
from elearning.tests.fakes import make_course, make_user


class CartServiceTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.instructor = make_user("instructor")
        cls.student = make_user("student")
        cls.python = make_course(cls.instructor, "Python", "49.99", "29.99")
        cls.django = make_course(cls.instructor, "Django", "59.00")
        cls.draft = make_course(cls.instructor, "Draft", "10.00", status=Course.Status.DRAFT)

    def testCartNeedsUserOrSession(self):
        with self.assertRaises(InvalidInputError):
            services.get_or_create_cart()

    def testUserCartIsReused(self):
        first = services.get_or_create_cart(user=self.student)
        second = services.get_or_create_cart(user=self.student)
        self.assertEqual(first.pk, second.pk)

    def testAddIsIdempotent(self):
        cart = services.get_or_create_cart(user=self.student)
        services.add_course(cart, self.python.pk)
        services.add_course(cart, self.python.pk)
        self.assertEqual(cart.items.count(), 1)

    def testSummaryUsesEffectivePrices(self):
        cart = services.get_or_create_cart(user=self.student)
        services.add_course(cart, self.python.pk)
        services.add_course(cart, self.django.pk)
        summary = services.summary(cart)
        self.assertEqual(summary.item_count, 2)
        self.assertEqual(summary.subtotal, Decimal("88.99"))

    def testUnknownCourse(self):
        cart = services.get_or_create_cart(user=self.student)
        with self.assertRaises(NotFoundError):
            services.add_course(cart, 999999)

    def testDraftCourseCannotBeAdded(self):
        cart = services.get_or_create_cart(user=self.student)
        with self.assertRaises(CourseNotPublished):
            services.add_course(cart, self.draft.pk)

    def testOwnedCourseCannotBeAdded(self):
        Enrollment.objects.create(user=self.student, course=self.python)
        cart = services.get_or_create_cart(user=self.student)
        with self.assertRaises(AlreadyEnrolled):
            services.add_course(cart, self.python.pk)

    def testRemoveAndClear(self):
        cart = services.get_or_create_cart(user=self.student)
        services.add_course(cart, self.python.pk)
        services.add_course(cart, self.django.pk)
        self.assertTrue(services.remove_course(cart, self.python.pk))
        self.assertFalse(services.remove_course(cart, self.python.pk))
        services.clear(cart)
        self.assertEqual(cart.items.count(), 0)


class MergeGuestCartTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.instructor = make_user("instructor")
        cls.student = make_user("student")
        cls.python = make_course(cls.instructor, "Python", "49.99")
        cls.django = make_course(cls.instructor, "Django", "59.00")
        cls.react = make_course(cls.instructor, "React", "39.00")

    def testMergeSkipsDuplicatesAndOwnedCourses(self):
        guest = services.get_or_create_cart(session_key="guest-123")
        services.add_course(guest, self.python.pk)
        services.add_course(guest, self.django.pk)
        services.add_course(guest, self.react.pk)

        user_cart = services.get_or_create_cart(user=self.student)
        services.add_course(user_cart, self.python.pk)
        Enrollment.objects.create(user=self.student, course=self.react)

        merged = services.merge_guest_cart("guest-123", self.student)

        self.assertEqual(merged.pk, user_cart.pk)
        self.assertEqual(
            set(merged.items.values_list("course_id", flat=True)), {self.python.pk, self.django.pk}
        )
        self.assertFalse(Cart.objects.filter(session_key="guest-123").exists())

    def testMergeWithoutGuestCart(self):
        merged = services.merge_guest_cart("missing", self.student)
        self.assertEqual(merged.user_id, self.student.pk)
        self.assertEqual(CartItem.objects.filter(cart=merged).count(), 0)

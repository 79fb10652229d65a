"""
Revenue ledger tests: earnings from settled orders, the hold period,
payout requests against the available balance, payout reconciliation and
the reversal of refunded earnings.
"""

from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from elearning.cart import services as cart_services
from elearning.conf import PayoutPolicy, RefundPolicy
from elearning.exceptions import BelowMinimum, InsufficientFunds, InvalidInputError, InvalidTransition
from elearning.orders.models import Order
from elearning.orders.services import CheckoutService
from elearning.refunds.services import RefundService
from elearning.revenue.models import InstructorEarning, Payout
from elearning.revenue.services import RevenueService
from elearning.tests.fakes import FakeGateway, make_course, make_user

POLICY = PayoutPolicy(platform_fee_percent=Decimal("30"), minimum_payout=Decimal("50.00"), hold_days=30)


class RevenueTestMixin:
    @classmethod
    def setUpTestData(cls):
        cls.instructor = make_user("instructor")
        cls.course = make_course(cls.instructor, "Masterclass", "100.00")
        cls.buyers = [make_user(f"buyer{i}") for i in range(3)]

    def _sell(self, buyer, paid_at):
        checkout = CheckoutService(gateway=FakeGateway(), revenue=RevenueService(policy=POLICY), fee_percent=30)
        cart = cart_services.get_or_create_cart(user=buyer)
        cart_services.add_course(cart, self.course.pk)
        order = checkout.checkout(cart).order
        return checkout.on_payment_confirmed(order.pk, now=paid_at)


class EarningReleaseTests(RevenueTestMixin, TestCase):
    def setUp(self):
        self.service = RevenueService(policy=POLICY)
        self.now = timezone.now()

    def testSaleCreatesPendingEarning(self):
        order = self._sell(self.buyers[0], self.now)
        earning = InstructorEarning.objects.get(order_item__order=order)
        self.assertEqual(earning.instructor_id, self.instructor.pk)
        self.assertEqual(earning.amount, Decimal("70.00"))
        self.assertEqual(earning.platform_fee, Decimal("30.00"))
        self.assertEqual(earning.status, InstructorEarning.Status.PENDING)
        self.assertEqual(self.service.available_balance(self.instructor), Decimal("0.00"))

    def testEarningsOnlyCreatedOnce(self):
        order = self._sell(self.buyers[0], self.now)
        self.assertEqual(self.service.create_earnings_for_order(order), [])
        self.assertEqual(InstructorEarning.objects.count(), 1)

    def testHoldPeriod(self):
        self._sell(self.buyers[0], self.now - timedelta(days=31))
        self._sell(self.buyers[1], self.now - timedelta(days=5))

        self.assertEqual(self.service.release_earnings(now=self.now), 1)
        self.assertEqual(self.service.available_balance(self.instructor), Decimal("70.00"))
        self.assertEqual(self.service.release_earnings(now=self.now), 0)

    def testRefundedOrderEarningsStayPending(self):
        order = self._sell(self.buyers[0], self.now - timedelta(days=40))
        Order.objects.filter(pk=order.pk).update(status=Order.Status.REFUNDED)
        self.assertEqual(self.service.release_earnings(now=self.now), 0)


class PayoutTests(RevenueTestMixin, TestCase):
    def setUp(self):
        self.service = RevenueService(policy=POLICY)
        old = timezone.now() - timedelta(days=45)
        self._sell(self.buyers[0], old)
        self._sell(self.buyers[1], old + timedelta(days=1))
        self.service.release_earnings()

    def testBalance(self):
        self.assertEqual(self.service.available_balance(self.instructor), Decimal("140.00"))

    def testAmountAboveBalance(self):
        with self.assertRaises(InsufficientFunds):
            self.service.request_payout(self.instructor, Decimal("140.01"))
        self.assertFalse(Payout.objects.exists())

    def testAmountBelowMinimum(self):
        with self.assertRaises(BelowMinimum):
            self.service.request_payout(self.instructor, Decimal("49.99"))

    def testInsufficientFundsIsReportedFirst(self):
        nobody = make_user("new-instructor")
        with self.assertRaises(InsufficientFunds):
            self.service.request_payout(nobody, Decimal("10.00"))

    def testNonPositiveAmount(self):
        with self.assertRaises(InvalidInputError):
            self.service.request_payout(self.instructor, Decimal("0"))

    def testPendingPayoutReservesBalance(self):
        payout = self.service.request_payout(self.instructor, Decimal("100.00"), method="bank_transfer")
        self.assertEqual(payout.status, Payout.Status.PENDING)
        self.assertEqual(self.service.available_balance(self.instructor), Decimal("40.00"))
        with self.assertRaises(InsufficientFunds):
            self.service.request_payout(self.instructor, Decimal("50.00"))

    def testConfirmPayoutMarksEarningsPaidOldestFirst(self):
        payout = self.service.request_payout(self.instructor, Decimal("100.00"))
        payout = self.service.confirm_payout(payout.pk, transaction_id="tr_1")

        self.assertEqual(payout.status, Payout.Status.PAID)
        self.assertEqual(payout.transaction_id, "tr_1")
        first, second = InstructorEarning.objects.order_by("created_at", "id")
        self.assertEqual(first.status, InstructorEarning.Status.PAID)
        self.assertEqual(first.payout_id, payout.pk)
        self.assertEqual(second.status, InstructorEarning.Status.AVAILABLE)
        self.assertEqual(self.service.available_balance(self.instructor), Decimal("40.00"))

        with self.assertRaises(InvalidTransition):
            self.service.confirm_payout(payout.pk)

    def testFailedPayoutReleasesReservation(self):
        payout = self.service.request_payout(self.instructor, Decimal("100.00"))
        payout = self.service.fail_payout(payout.pk)
        self.assertEqual(payout.status, Payout.Status.FAILED)
        self.assertEqual(self.service.available_balance(self.instructor), Decimal("140.00"))

    def testStats(self):
        payout = self.service.request_payout(self.instructor, Decimal("70.00"))
        self.service.confirm_payout(payout.pk)
        self._sell(self.buyers[2], timezone.now())

        stats = self.service.get_instructor_stats(self.instructor)
        self.assertEqual(stats.lifetime_earnings, Decimal("210.00"))
        self.assertEqual(stats.pending_earnings, Decimal("70.00"))
        self.assertEqual(stats.available_earnings, Decimal("70.00"))
        self.assertEqual(stats.paid_earnings, Decimal("70.00"))
        self.assertEqual(stats.withdrawn, Decimal("70.00"))
        self.assertEqual(stats.payouts_in_flight, Decimal("0.00"))
        self.assertEqual(stats.available_balance, Decimal("70.00"))
        self.assertEqual(stats.sales_count, 3)


class RefundReversalTests(RevenueTestMixin, TestCase):
    def setUp(self):
        self.service = RevenueService(policy=POLICY)
        self.refunds = RefundService(
            policy=RefundPolicy(
                max_days_after_purchase=30, auto_approve_under=Decimal("500.00"), requires_approval=False
            ),
            revenue=self.service,
        )
        self.old = timezone.now() - timedelta(days=45)

    def testRefundAfterReleaseReversesTheEarning(self):
        order = self._sell(self.buyers[0], self.old)
        self.service.release_earnings()
        self.assertEqual(self.service.available_balance(self.instructor), Decimal("70.00"))

        self.refunds.request_refund(self.buyers[0], order.pk, "other")

        earning = InstructorEarning.objects.get(order_item__order=order)
        self.assertEqual(earning.status, InstructorEarning.Status.REVERSED)
        self.assertIsNotNone(earning.reversed_at)
        self.assertEqual(self.service.available_balance(self.instructor), Decimal("0.00"))
        with self.assertRaises(InsufficientFunds):
            self.service.request_payout(self.instructor, Decimal("70.00"))
        self.assertFalse(Payout.objects.exists())

    def testRefundBeforeReleaseReversesThePendingEarning(self):
        order = self._sell(self.buyers[0], timezone.now())
        self.refunds.request_refund(self.buyers[0], order.pk, "other")

        self.assertEqual(self.service.release_earnings(), 0)
        earning = InstructorEarning.objects.get(order_item__order=order)
        self.assertEqual(earning.status, InstructorEarning.Status.REVERSED)
        self.assertEqual(self.service.get_instructor_stats(self.instructor).pending_earnings, Decimal("0.00"))

    def testRefundAfterPayoutLeavesANegativeBalance(self):
        refunded = self._sell(self.buyers[0], self.old)
        self._sell(self.buyers[1], self.old)
        self.service.release_earnings()
        payout = self.service.request_payout(self.instructor, Decimal("140.00"))
        self.service.confirm_payout(payout.pk)

        self.refunds.request_refund(self.buyers[0], refunded.pk, "other")

        self.assertEqual(self.service.available_balance(self.instructor), Decimal("-70.00"))
        stats = self.service.get_instructor_stats(self.instructor)
        self.assertEqual(stats.lifetime_earnings, Decimal("70.00"))
        self.assertEqual(stats.paid_earnings, Decimal("70.00"))
        self.assertEqual(stats.reversed_earnings, Decimal("70.00"))
        self.assertEqual(stats.withdrawn, Decimal("140.00"))
        self.assertEqual(stats.sales_count, 1)

        # the next sale first pays back the reversed share
        self._sell(self.buyers[2], self.old)
        self.service.release_earnings()
        self.assertEqual(self.service.available_balance(self.instructor), Decimal("0.00"))

    def testReversalIsIdempotent(self):
        order = self._sell(self.buyers[0], self.old)
        self.refunds.request_refund(self.buyers[0], order.pk, "other")
        self.assertEqual(self.service.reverse_earnings_for_order(order), 0)

"""
Subscription manager tests: plan administration, the subscription state
machine, the period-end reaper and provider webhook reconciliation.
"""

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest import mock

from django.test import TestCase

from elearning.exceptions import (
    AlreadySubscribed,
    ConflictError,
    InvalidInputError,
    InvalidTransition,
    NoActiveSubscription,
    PlanNotFound,
    PlanUnavailable,
    SubscriptionNotCanceling,
)
from elearning.subscriptions.models import Subscription
from elearning.subscriptions.services import SubscriptionService, add_months
from elearning.tests.fakes import FakeGateway, make_user


def utc(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


class MonthArithmeticTests(TestCase):
    def testEndOfMonthIsClamped(self):
        self.assertEqual(add_months(utc(2025, 1, 31, 10), 1), utc(2025, 2, 28, 10))
        self.assertEqual(add_months(utc(2024, 1, 31), 1), utc(2024, 2, 29))

    def testYearRollover(self):
        self.assertEqual(add_months(utc(2025, 11, 15), 2), utc(2026, 1, 15))
        self.assertEqual(add_months(utc(2025, 3, 15), 12), utc(2026, 3, 15))


class PlanTests(TestCase):
    def setUp(self):
        self.service = SubscriptionService(gateway=FakeGateway())

    def testCreatePlanDerivesSlug(self):
        plan = self.service.create_plan("Pro Plan", Decimal("19.99"), Decimal("199.00"), features=["Certificates"])
        self.assertEqual(plan.slug, "pro-plan")
        self.assertEqual(plan.features, ["Certificates"])

    def testDuplicateSlugConflicts(self):
        self.service.create_plan("Pro", "19.99", "199.00")
        with self.assertRaises(ConflictError):
            self.service.create_plan("Pro", "29.99", "299.00")

    def testNegativePriceIsRejected(self):
        with self.assertRaises(InvalidInputError):
            self.service.create_plan("Broken", "-1", "10")

    def testUpdatePlanAndListActive(self):
        self.service.create_plan("Basic", "9.99", "99.00")
        self.service.create_plan("Pro", "19.99", "199.00")
        self.service.update_plan("basic", is_active=False, description="Legacy")

        self.assertEqual([p.slug for p in self.service.list_active_plans()], ["pro"])
        with self.assertRaises(InvalidInputError):
            self.service.update_plan("pro", slug="other")
        with self.assertRaises(PlanNotFound):
            self.service.update_plan("missing", name="x")


class SubscriptionLifecycleTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.user = make_user("subscriber")
        service = SubscriptionService(gateway=FakeGateway())
        cls.basic = service.create_plan("Basic", "9.99", "99.00")
        cls.pro = service.create_plan("Pro", "19.99", "199.00")
        cls.legacy = service.create_plan("Legacy", "4.99", "49.00", is_active=False)

    def setUp(self):
        self.service = SubscriptionService(gateway=FakeGateway())

    def testMonthlyPeriodEndsOneMonthLater(self):
        sub = self.service.subscribe(self.user, "basic", "monthly", now=utc(2025, 3, 15, 12))
        self.assertEqual(sub.status, Subscription.Status.ACTIVE)
        self.assertEqual(sub.current_period_start, utc(2025, 3, 15, 12))
        self.assertEqual(sub.current_period_end, utc(2025, 4, 15, 12))

    def testYearlyPeriod(self):
        sub = self.service.subscribe(self.user, "pro", "yearly", now=utc(2025, 3, 15))
        self.assertEqual(sub.current_period_end, utc(2026, 3, 15))

    def testTrial(self):
        sub = self.service.subscribe(self.user, "pro", "monthly", now=utc(2025, 3, 1), trial_days=14)
        self.assertEqual(sub.status, Subscription.Status.TRIALING)
        self.assertEqual(sub.trial_end, utc(2025, 3, 15))

    def testSecondLiveSubscriptionIsRejected(self):
        self.service.subscribe(self.user, "basic", "monthly")
        with self.assertRaises(AlreadySubscribed):
            self.service.subscribe(self.user, "pro", "monthly")
        self.assertEqual(Subscription.objects.filter(user=self.user).count(), 1)

    def testConcurrentSubscribeLosesOnTheConstraint(self):
        self.service.subscribe(self.user, "basic", "monthly")
        # the losing request saw no live subscription before inserting
        with mock.patch.object(SubscriptionService, "_live_queryset", return_value=Subscription.objects.none()):
            with self.assertRaises(AlreadySubscribed):
                self.service.subscribe(self.user, "pro", "monthly")
        self.assertEqual(Subscription.objects.filter(user=self.user).count(), 1)

    def testUnknownOrInactivePlan(self):
        with self.assertRaises(PlanNotFound):
            self.service.subscribe(self.user, "missing", "monthly")
        with self.assertRaises(PlanUnavailable):
            self.service.subscribe(self.user, "legacy", "monthly")
        with self.assertRaises(InvalidInputError):
            self.service.subscribe(self.user, "basic", "weekly")

    def testCancelAndResume(self):
        self.service.subscribe(self.user, "basic", "monthly")

        sub = self.service.cancel(self.user)
        self.assertTrue(sub.cancel_at_period_end)
        self.assertIsNotNone(sub.canceled_at)
        self.assertEqual(sub.status, Subscription.Status.ACTIVE)

        again = self.service.cancel(self.user)
        self.assertEqual(again.canceled_at, sub.canceled_at)

        sub = self.service.resume(self.user)
        self.assertFalse(sub.cancel_at_period_end)
        self.assertIsNone(sub.canceled_at)

        with self.assertRaises(SubscriptionNotCanceling):
            self.service.resume(self.user)

    def testCancelWithoutSubscription(self):
        with self.assertRaises(NoActiveSubscription):
            self.service.cancel(self.user)

    def testPastDueCannotBeCanceledByUser(self):
        sub = self.service.subscribe(self.user, "basic", "monthly")
        Subscription.objects.filter(pk=sub.pk).update(status=Subscription.Status.PAST_DUE)
        with self.assertRaises(InvalidTransition):
            self.service.cancel(self.user)

    def testChangePlan(self):
        self.service.subscribe(self.user, "basic", "monthly")
        sub = self.service.change_plan(self.user, "pro")
        self.assertEqual(sub.plan_id, self.pro.pk)

    def testReaperCancelsAtPeriodEnd(self):
        start = utc(2025, 1, 10)
        self.service.subscribe(self.user, "basic", "monthly", now=start)
        self.service.cancel(self.user)

        self.assertEqual(self.service.reap_expired_cancellations(now=utc(2025, 2, 9)), 0)
        self.assertEqual(self.service.reap_expired_cancellations(now=utc(2025, 2, 10)), 1)

        sub = Subscription.objects.get(user=self.user)
        self.assertEqual(sub.status, Subscription.Status.CANCELED)
        self.assertEqual(self.service.reap_expired_cancellations(now=utc(2025, 3, 1)), 0)

        # a canceled subscription no longer blocks a new one
        self.service.subscribe(self.user, "pro", "monthly")
        self.assertEqual(Subscription.objects.filter(user=self.user).count(), 2)

    def testStartCheckoutUsesProviderPrice(self):
        self.service.update_plan("pro", stripe_price_monthly_id="price_pro_monthly")
        session = self.service.start_checkout(self.user, "pro", "monthly")
        self.assertTrue(session.url.startswith("https://checkout.test/sub/"))
        sent = self.service.gateway.subscription_sessions[0]
        self.assertEqual(sent["price_id"], "price_pro_monthly")
        self.assertEqual(sent["metadata"]["plan_slug"], "pro")

    def testStartCheckoutWithoutProviderPrice(self):
        with self.assertRaises(InvalidInputError):
            self.service.start_checkout(self.user, "basic", "yearly")


class SubscriptionWebhookTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.user = make_user("subscriber")
        SubscriptionService().create_plan("Basic", "9.99", "99.00")

    def setUp(self):
        self.service = SubscriptionService(gateway=FakeGateway())
        self.sub = self.service.subscribe(
            self.user, "basic", "monthly", now=utc(2025, 1, 10), stripe_subscription_id="sub_1"
        )

    def _reload(self):
        return Subscription.objects.get(pk=self.sub.pk)

    def testCheckoutCompletedCreatesSubscription(self):
        other = make_user("newcomer")
        sub = self.service.handle_webhook_event(
            "checkout.session.completed",
            {
                "id": "cs_1",
                "mode": "subscription",
                "subscription": "sub_2",
                "customer": "cus_2",
                "metadata": {"user_id": str(other.pk), "plan_slug": "basic", "interval": "yearly"},
            },
        )
        self.assertEqual(sub.user_id, other.pk)
        self.assertEqual(sub.stripe_subscription_id, "sub_2")
        self.assertEqual(sub.interval, Subscription.Interval.YEARLY)

        replay = self.service.handle_webhook_event(
            "checkout.session.completed",
            {"id": "cs_1", "mode": "subscription", "subscription": "sub_2", "metadata": {}},
        )
        self.assertEqual(replay.pk, sub.pk)

    def testOutOfOrderUpdatesKeepNewestState(self):
        newer = utc(2025, 1, 20)
        older = utc(2025, 1, 15)
        self.service.handle_webhook_event(
            "customer.subscription.updated", {"id": "sub_1", "status": "past_due"}, event_created=newer
        )
        self.service.handle_webhook_event(
            "customer.subscription.updated", {"id": "sub_1", "status": "active"}, event_created=older
        )
        sub = self._reload()
        self.assertEqual(sub.status, Subscription.Status.PAST_DUE)
        self.assertEqual(sub.provider_event_at, newer)

    def testUpdateSyncsPeriodAndCancelFlag(self):
        start, end = utc(2025, 2, 10), utc(2025, 3, 10)
        self.service.handle_webhook_event(
            "customer.subscription.updated",
            {
                "id": "sub_1",
                "status": "active",
                "cancel_at_period_end": True,
                "items": {
                    "data": [
                        {
                            "current_period_start": int(start.timestamp()),
                            "current_period_end": int(end.timestamp()),
                        }
                    ]
                },
            },
            event_created=utc(2025, 2, 10),
        )
        sub = self._reload()
        self.assertEqual(sub.current_period_start, start)
        self.assertEqual(sub.current_period_end, end)
        self.assertTrue(sub.cancel_at_period_end)
        self.assertIsNotNone(sub.canceled_at)

    def testFailedThenPaidInvoice(self):
        self.service.handle_webhook_event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_1"})
        self.assertEqual(self._reload().status, Subscription.Status.PAST_DUE)

        self.service.handle_webhook_event(
            "invoice.paid", {"id": "in_1", "subscription": "sub_1", "billing_reason": "subscription_cycle"}
        )
        sub = self._reload()
        self.assertEqual(sub.status, Subscription.Status.ACTIVE)
        self.assertEqual(sub.current_period_start, utc(2025, 2, 10))
        self.assertEqual(sub.current_period_end, utc(2025, 3, 10))

    def testPaidInvoiceIsAppliedOnce(self):
        payload = {"id": "in_2", "subscription": "sub_1", "billing_reason": "subscription_cycle"}
        self.service.handle_webhook_event("invoice.paid", payload)
        self.service.handle_webhook_event("invoice.payment_succeeded", payload)
        self.assertEqual(self._reload().current_period_end, utc(2025, 3, 10))

    def testFirstInvoiceDoesNotExtendPeriod(self):
        self.service.handle_webhook_event(
            "invoice.paid", {"id": "in_0", "subscription": "sub_1", "billing_reason": "subscription_create"}
        )
        sub = self._reload()
        self.assertEqual(sub.current_period_end, utc(2025, 2, 10))
        self.assertEqual(sub.last_paid_invoice_id, "in_0")

    def testInvoiceLinePeriodWins(self):
        line_end = utc(2025, 2, 12)
        self.service.handle_webhook_event(
            "invoice.paid",
            {
                "id": "in_3",
                "subscription": "sub_1",
                "lines": {"data": [{"period": {"end": int(line_end.timestamp())}}]},
            },
        )
        self.assertEqual(self._reload().current_period_end, line_end)

    def testDeletedSubscriptionExpires(self):
        self.service.handle_webhook_event("customer.subscription.deleted", {"id": "sub_1"})
        self.assertEqual(self._reload().status, Subscription.Status.EXPIRED)
        # replay is harmless
        self.service.handle_webhook_event("customer.subscription.deleted", {"id": "sub_1"})
        self.assertEqual(self._reload().status, Subscription.Status.EXPIRED)

    def testUnknownSubscriptionIsIgnored(self):
        self.assertIsNone(
            self.service.handle_webhook_event("invoice.paid", {"id": "in_9", "subscription": "sub_unknown"})
        )

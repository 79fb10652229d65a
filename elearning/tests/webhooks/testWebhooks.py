"""
Webhook dispatch tests: routing of provider events to the billing services
and exactly-once application through the processed-event log.
"""

from decimal import Decimal

from django.test import TestCase

from core.stripe_integration.models import ProcessedWebhookEvent
from core.stripe_integration.webhooks import WebhookRouter, dispatch_event
from elearning.cart import services as cart_services
from elearning.conf import RefundPolicy
from elearning.courses.models import Enrollment
from elearning.orders.models import Order
from elearning.orders.services import CheckoutService
from elearning.refunds.models import Refund
from elearning.refunds.services import RefundService
from elearning.revenue.models import InstructorEarning
from elearning.subscriptions.models import Subscription
from elearning.subscriptions.services import SubscriptionService
from elearning.tests.fakes import FakeGateway, make_course, make_user


class WebhookDispatchTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.instructor = make_user("instructor")
        cls.student = make_user("student")
        cls.admin = make_user("admin", is_staff=True)
        cls.course = make_course(cls.instructor, "Python", "80.00")
        SubscriptionService().create_plan("Basic", "9.99", "99.00")

    def setUp(self):
        gateway = FakeGateway()
        self.checkout = CheckoutService(gateway=gateway)
        self.refunds = RefundService(policy=RefundPolicy(requires_approval=True), gateway=gateway)
        self.router = WebhookRouter(
            checkout=self.checkout, subscriptions=SubscriptionService(gateway=gateway), refunds=self.refunds
        )
        cart = cart_services.get_or_create_cart(user=self.student)
        cart_services.add_course(cart, self.course.pk)
        self.handle = self.checkout.checkout(cart)

    def _session_completed(self):
        return {
            "id": self.handle.session_id,
            "mode": "payment",
            "payment_status": "paid",
            "payment_intent": "pi_webhook",
            "metadata": {"order_id": str(self.handle.order.pk)},
        }

    def testReplayIsAppliedOnce(self):
        payload = self._session_completed()

        self.assertTrue(dispatch_event("evt_1", "checkout.session.completed", payload, router=self.router))
        self.assertFalse(dispatch_event("evt_1", "checkout.session.completed", payload, router=self.router))

        order = Order.objects.get(pk=self.handle.order.pk)
        self.assertEqual(order.status, Order.Status.COMPLETED)
        self.assertEqual(Enrollment.objects.filter(user=self.student).count(), 1)
        self.assertEqual(InstructorEarning.objects.count(), 1)
        self.assertEqual(ProcessedWebhookEvent.objects.filter(event_id="evt_1").count(), 1)

    def testDuplicateDeliveryUnderNewEventId(self):
        payload = self._session_completed()
        dispatch_event("evt_a", "checkout.session.completed", payload, router=self.router)
        dispatch_event("evt_b", "payment_intent.succeeded", {"id": "pi_webhook"}, router=self.router)
        self.assertEqual(InstructorEarning.objects.count(), 1)

    def testUnhandledEventIsNotLogged(self):
        self.assertFalse(dispatch_event("evt_2", "customer.created", {"id": "cus_1"}, router=self.router))
        self.assertFalse(ProcessedWebhookEvent.objects.exists())

    def testSubscriptionEventsAreRouted(self):
        payload = {
            "id": "cs_sub_1",
            "mode": "subscription",
            "subscription": "sub_hook",
            "metadata": {"user_id": str(self.student.pk), "plan_slug": "basic", "interval": "monthly"},
        }
        self.assertTrue(dispatch_event("evt_3", "checkout.session.completed", payload, router=self.router))
        subscription = Subscription.objects.get(user=self.student)
        self.assertEqual(subscription.stripe_subscription_id, "sub_hook")
        # the payment order was not touched by the subscription checkout
        self.assertEqual(Order.objects.get(pk=self.handle.order.pk).status, Order.Status.PENDING)

    def testChargeRefundedMarksRefundProcessed(self):
        dispatch_event("evt_4", "checkout.session.completed", self._session_completed(), router=self.router)
        refund = self.refunds.request_refund(self.student, self.handle.order.pk, "other")
        self.refunds.approve(refund.pk, self.admin)

        payload = {"id": "ch_1", "payment_intent": "pi_webhook", "refunds": {"data": [{"id": "re_hook"}]}}
        self.assertTrue(dispatch_event("evt_5", "charge.refunded", payload, router=self.router))

        refund.refresh_from_db()
        self.assertEqual(refund.status, Refund.Status.PROCESSED)
        self.assertEqual(refund.provider_refund_id, "re_hook")

    def testFailingHandlerLeavesNoTrace(self):
        class ExplodingCheckout:
            def handle_webhook_event(self, event_type, payload):
                raise RuntimeError("database unavailable")

        router = WebhookRouter(checkout=ExplodingCheckout(), subscriptions=SubscriptionService())
        with self.assertRaises(RuntimeError):
            dispatch_event("evt_6", "payment_intent.succeeded", {"id": "pi_x"}, router=router)
        self.assertFalse(ProcessedWebhookEvent.objects.filter(event_id="evt_6").exists())

        self.assertTrue(dispatch_event("evt_6", "payment_intent.succeeded", {"id": "pi_x"}, router=self.router))

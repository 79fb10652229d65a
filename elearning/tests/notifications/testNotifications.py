"""
Notification tests: per-recipient task queueing, retry of failed
deliveries and commit-bound enqueueing.
"""

from decimal import Decimal
from unittest import mock

from django.core import mail
from django.test import TestCase
from kombu.exceptions import OperationalError

from elearning.notifications.dispatcher import Notification, enqueue, notify_order_completed
from elearning.notifications.tasks import send_notification
from elearning.orders.models import Order
from elearning.tests.fakes import make_user

DELAY = "elearning.notifications.dispatcher.send_notification.delay"
SEND_MAIL = "elearning.notifications.tasks.send_mail"


class EnqueueTests(TestCase):
    def testOneTaskPerRecipient(self):
        notifications = [
            Notification(recipient=r, subject="Hi", body="...", event="test")
            for r in ("a@test.com", "b@test.com", "c@test.com")
        ]
        with mock.patch(DELAY) as delay:
            queued = enqueue(notifications)

        self.assertEqual(queued, 3)
        self.assertEqual(
            [c.args for c in delay.call_args_list],
            [(r, "Hi", "...", "test") for r in ("a@test.com", "b@test.com", "c@test.com")],
        )

    def testEmptyRecipientsAreSkipped(self):
        with mock.patch(DELAY) as delay:
            queued = enqueue([Notification(recipient="", subject="x", body="y")])
        self.assertEqual(queued, 0)
        delay.assert_not_called()

    def testUnreachableBrokerDoesNotStopTheOthers(self):
        notifications = [
            Notification(recipient=r, subject="Hi", body="...") for r in ("a@test.com", "b@test.com")
        ]
        with mock.patch(DELAY, side_effect=[OperationalError("broker down"), None]) as delay:
            with self.assertLogs("elearning.notifications.dispatcher", level="ERROR"):
                queued = enqueue(notifications)

        self.assertEqual(queued, 1)
        self.assertEqual(delay.call_count, 2)


class SendNotificationTaskTests(TestCase):
    def testSendsEmail(self):
        result = send_notification.apply(args=("a@test.com", "Receipt", "Thanks", "order_completed"))

        self.assertTrue(result.get())
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["a@test.com"])
        self.assertEqual(mail.outbox[0].subject, "Receipt")

    def testTransientFailureIsRetried(self):
        with mock.patch(SEND_MAIL, side_effect=[OSError("SMTP unavailable"), 1]) as send_mail:
            result = send_notification.apply(args=("a@test.com", "Receipt", "Thanks"))

        self.assertTrue(result.get())
        self.assertEqual(send_mail.call_count, 2)

    def testGivesUpAfterMaxRetries(self):
        with mock.patch(SEND_MAIL, side_effect=OSError("SMTP unavailable")) as send_mail:
            with self.assertLogs("elearning.notifications.tasks", level="ERROR"):
                result = send_notification.apply(args=("a@test.com", "Receipt", "Thanks"))

        self.assertFalse(result.get())
        self.assertEqual(send_mail.call_count, send_notification.max_retries + 1)


class CommitBoundNotificationTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.user = make_user("buyer")

    def testQueuedOnlyAfterCommit(self):
        order = Order.objects.create(user=self.user, total=Decimal("10.00"), customer_email="buyer@test.com")

        with mock.patch(DELAY) as delay:
            with self.captureOnCommitCallbacks(execute=False) as callbacks:
                notify_order_completed(order)
            self.assertEqual(len(callbacks), 1)
            delay.assert_not_called()

            callbacks[0]()

        delay.assert_called_once()
        self.assertEqual(delay.call_args.args[0], "buyer@test.com")
        self.assertEqual(delay.call_args.args[3], "order_completed")

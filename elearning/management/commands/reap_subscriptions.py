from django.core.management.base import BaseCommand

from elearning.subscriptions.services import SubscriptionService


class Command(BaseCommand):
    help = 'Cancel subscriptions whose scheduled cancellation has reached the end of the billing period'

    def handle(self, *args, **options):
        self.stdout.write('Reaping subscriptions at period end...')
        reaped = SubscriptionService().reap_expired_cancellations()
        self.stdout.write(self.style.SUCCESS(f'Canceled {reaped} subscription(s)'))

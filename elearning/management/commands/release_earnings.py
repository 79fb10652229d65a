from django.core.management.base import BaseCommand

from elearning.revenue.services import RevenueService


class Command(BaseCommand):
    help = 'Make instructor earnings available once the hold period after payment has passed'

    def handle(self, *args, **options):
        service = RevenueService()
        self.stdout.write(f'Releasing earnings older than {service.policy.hold_days} day(s)...')
        released = service.release_earnings()
        self.stdout.write(self.style.SUCCESS(f'Released {released} earning(s)'))

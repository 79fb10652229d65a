import logging
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils.text import slugify

from elearning.bundles.services import BundleService
from elearning.courses.models import Course
from elearning.subscriptions.models import SubscriptionPlan
from elearning.subscriptions.services import SubscriptionService

logger = logging.getLogger(__name__)

User = get_user_model()

# title -> (price, discount_price)
DEMO_COURSES = {
    "Python Grundlagen": (Decimal("49.99"), Decimal("29.99")),
    "Django REST Framework Basics": (Decimal("59.00"), None),
    "React Grundlagen": (Decimal("39.00"), None),
    "Testing in Python (unittest, pytest)": (Decimal("30.00"), None),
    "Git Einführung": (Decimal("0.00"), None),
}

DEMO_PLANS = [
    {
        "name": "Basic",
        "slug": "basic",
        "price_monthly": Decimal("9.99"),
        "price_yearly": Decimal("99.00"),
        "features": ["5 courses per month", "Community support"],
        "max_courses": 5,
    },
    {
        "name": "Pro",
        "slug": "pro",
        "price_monthly": Decimal("19.99"),
        "price_yearly": Decimal("199.00"),
        "features": ["Unlimited courses", "Certificates", "Priority support"],
        "max_courses": None,
    },
]


class Command(BaseCommand):
    help = 'Seed demo instructors, courses, subscription plans and a bundle for local development'

    def add_arguments(self, parser):
        parser.add_argument(
            '--instructor',
            default='instructor',
            help='Username of the demo instructor (created if missing)',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        instructor, created = User.objects.get_or_create(
            username=options['instructor'],
            defaults={'email': f"{options['instructor']}@example.com"},
        )
        if created:
            instructor.set_unusable_password()
            instructor.save()
            self.stdout.write(f'Created instructor "{instructor.username}"')

        courses = []
        for title, (price, discount_price) in DEMO_COURSES.items():
            course, _ = Course.objects.get_or_create(
                slug=slugify(title),
                defaults={
                    'title': title,
                    'instructor': instructor,
                    'price': price,
                    'discount_price': discount_price,
                    'status': Course.Status.PUBLISHED,
                },
            )
            courses.append(course)
        self.stdout.write(f'{len(courses)} courses ready')

        subscriptions = SubscriptionService()
        for plan in DEMO_PLANS:
            if not SubscriptionPlan.objects.filter(slug=plan['slug']).exists():
                subscriptions.create_plan(**plan)
                self.stdout.write(f'Created plan "{plan["slug"]}"')

        if not instructor.created_bundles.exists():
            bundle = BundleService().create_bundle(
                title='Full-Stack Starter',
                course_ids=[c.pk for c in courses[:3]],
                discount_percent=Decimal('20'),
                description='Python, Django and React at a bundle price',
                created_by=instructor,
            )
            self.stdout.write(f'Created bundle "{bundle.slug}" ({bundle.original_price} → {bundle.bundle_price})')

        logger.info("Seeded billing demo data for instructor %s", instructor.pk)
        self.stdout.write(self.style.SUCCESS('Billing demo data seeded'))

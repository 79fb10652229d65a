"""
Stripe Integration AppConfig
============================

Registers `core.stripe_integration` with Django and connects the dj-stripe
`Event` receiver that feeds the billing webhook dispatcher.

Receivers are connected in `ready()` once the app registry is loaded, so
each process (runserver, gunicorn worker, management command) wires them
exactly once. No database or network access happens here.

Author: DSP Development Team
Date: 2025-09-03
"""

from django.apps import AppConfig


class StripeIntegrationConfig(AppConfig):
    """
    App configuration for the payment provider boundary.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "core.stripe_integration"
    label = "stripe_integration"
    verbose_name = "Stripe Integration"

    def ready(self):
        # Connect the post_save receiver for dj-stripe Event
        from . import signals  # noqa: F401

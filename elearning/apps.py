"""
E-Learning Application Configuration

This module contains the Django application configuration for the E-Learning
billing & entitlement system: carts, checkout and orders, subscriptions,
refunds, instructor revenue and course bundles.

Author: DSP Development Team
Version: 1.0.0
"""

from django.apps import AppConfig


class ElearningConfig(AppConfig):
    """
    Configuration class for the E-Learning Django application.

    Attributes:
        default_auto_field: Default primary key field type for models
        name: Application name for Django registration
        verbose_name: Human-readable application name for admin interface
    """

    default_auto_field: str = "django.db.models.BigAutoField"
    name: str = "elearning"
    verbose_name: str = "E-Learning Billing"

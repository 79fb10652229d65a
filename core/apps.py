"""
Core App Configuration - TutorFlow Billing

The core app is the home of cross-cutting integrations that are not tied to
a single product domain. Today it hosts the payment provider boundary
(`core.stripe_integration`), which is installed as its own Django app.

Author: DSP Development Team
Created: 10.07.2025
Version: 1.0.0
"""

from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'core'
    verbose_name = 'Core Integrations'

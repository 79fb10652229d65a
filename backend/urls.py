"""
URL configuration for the TutorFlow billing backend.

- /admin/          Django admin (Jazzmin)
- /api/billing/    Billing & entitlement API (elearning.urls)
- /api/payments/   Stripe config endpoint (core.stripe_integration.urls)
- /stripe/         dj-stripe webhook endpoint
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/billing/", include("elearning.urls")),
    path("api/payments/", include("core.stripe_integration.urls")),
    path("stripe/", include("djstripe.urls", namespace="djstripe")),
]

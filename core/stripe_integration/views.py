"""
Stripe Integration Views (core.stripe_integration)
==================================================

Endpoints
---------

1. GetStripeConfigView
   - URL: /api/payments/stripe/config/
   - Method: GET
   - Auth: None
   - Purpose:
       Returns the correct publishable key and currency so the frontend can
       initialize Stripe.js safely.

Checkout sessions are created by the billing endpoints (cart checkout,
bundle purchase, subscription checkout) through the payment gateway, and
webhooks arrive through dj-stripe's own endpoint (see backend/urls.py).

Author: DSP Development Team
Date: 2025-08-21
"""

from django.conf import settings
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView


class GetStripeConfigView(APIView):
    """
    endpoint so the frontend can initialize Stripe.js
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        publishable_key = (
            settings.STRIPE_LIVE_PUBLISHABLE_KEY
            if settings.STRIPE_LIVE_MODE
            else settings.STRIPE_TEST_PUBLISHABLE_KEY
        )
        return Response(
            {"publishableKey": publishable_key, "currency": settings.DEFAULT_CURRENCY},
            status=200,
        )

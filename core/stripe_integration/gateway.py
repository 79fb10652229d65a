"""
Stripe Payment Gateway
======================

Thin client object around the official ``stripe`` SDK. The billing services
receive a gateway instance at construction time instead of relying on the
module-level ``stripe.api_key``; the secret key is passed with every request.

Every ``stripe.StripeError`` is converted into
``elearning.exceptions.ExternalProviderError`` so callers only deal with the
billing error hierarchy.

Operations
----------
- create_checkout_session               → one-off payment (orders, bundles)
- create_subscription_checkout_session  → recurring plan checkout
- create_payment_intent / retrieve_payment_intent
- create_refund                         → refunds a payment intent (fully or partially)

Author: DSP Development Team
Date: 2025-09-03
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import stripe
from django.conf import settings

from elearning.exceptions import provider_error_from

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: Optional[str]
    payment_intent: Optional[str] = None


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    status: str
    amount: int
    client_secret: Optional[str] = None


@dataclass(frozen=True)
class RefundResult:
    id: str
    status: str


class StripeGateway:
    """
    Payment provider client.

    Args:
        secret_key: Stripe secret key (test or live)
        currency: default ISO currency code, lower case
        success_url: redirect after a successful checkout
        cancel_url: redirect after an aborted checkout
    """

    def __init__(self, secret_key: str, currency: str = "usd", success_url: str = "", cancel_url: str = ""):
        self.secret_key = secret_key
        self.currency = currency
        self.success_url = success_url
        self.cancel_url = cancel_url

    def _call(self, operation: str, func, **params):
        try:
            return func(api_key=self.secret_key, **params)
        except stripe.StripeError as exc:
            logger.error("Stripe %s failed: %s", operation, exc)
            raise provider_error_from(exc) from exc

    # ---------- one-off payments ----------

    def create_checkout_session(
        self,
        *,
        amount: int,
        line_items: List[Dict[str, Any]],
        metadata: Dict[str, str],
        customer_email: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Create a Checkout Session in ``payment`` mode.

        ``line_items`` are ``{"name": str, "amount": int}`` dicts (minor units);
        their amounts must add up to ``amount``.
        """
        currency = currency or self.currency
        params = dict(
            mode="payment",
            line_items=[
                {
                    "price_data": {
                        "currency": currency,
                        "unit_amount": item["amount"],
                        "product_data": {"name": item["name"]},
                    },
                    "quantity": 1,
                }
                for item in line_items
            ],
            success_url=f"{self.success_url}?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=self.cancel_url,
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
        )
        if customer_email:
            params["customer_email"] = customer_email

        session = self._call("checkout.Session.create", stripe.checkout.Session.create, **params)
        logger.info(
            "Created checkout session %s (amount=%s %s, metadata=%s)", session.id, amount, currency, metadata
        )
        return CheckoutSession(id=session.id, url=session.url, payment_intent=session.get("payment_intent"))

    def create_subscription_checkout_session(
        self,
        *,
        price_id: str,
        metadata: Dict[str, str],
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        params = dict(
            mode="subscription",
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=f"{self.success_url}?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=self.cancel_url,
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
        if customer_email:
            params["customer_email"] = customer_email

        session = self._call("checkout.Session.create", stripe.checkout.Session.create, **params)
        logger.info("Created subscription checkout session %s (price=%s)", session.id, price_id)
        return CheckoutSession(id=session.id, url=session.url)

    def create_payment_intent(
        self,
        *,
        amount: int,
        metadata: Dict[str, str],
        customer_email: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> PaymentIntent:
        params = dict(
            amount=amount,
            currency=currency or self.currency,
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
        )
        if customer_email:
            params["receipt_email"] = customer_email
        intent = self._call("PaymentIntent.create", stripe.PaymentIntent.create, **params)
        return PaymentIntent(
            id=intent.id, status=intent.status, amount=intent.amount, client_secret=intent.client_secret
        )

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        intent = self._call("PaymentIntent.retrieve", stripe.PaymentIntent.retrieve, id=payment_intent_id)
        return PaymentIntent(id=intent.id, status=intent.status, amount=intent.amount)

    # ---------- refunds ----------

    def create_refund(
        self,
        *,
        payment_intent_id: str,
        amount: Optional[int] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> RefundResult:
        params: Dict[str, Any] = {"payment_intent": payment_intent_id, "metadata": metadata or {}}
        if amount is not None:
            params["amount"] = amount
        refund = self._call("Refund.create", stripe.Refund.create, **params)
        logger.info("Created refund %s for payment intent %s", refund.id, payment_intent_id)
        return RefundResult(id=refund.id, status=refund.status)


_gateway: Optional[StripeGateway] = None


def get_gateway() -> StripeGateway:
    """Process-wide gateway configured once from Django settings."""
    global _gateway
    if _gateway is None:
        frontend = settings.FRONTEND_URL.rstrip("/")
        _gateway = StripeGateway(
            secret_key=settings.STRIPE_SECRET_KEY,
            currency=getattr(settings, "DEFAULT_CURRENCY", "usd"),
            success_url=f"{frontend}/payments/checkout/success",
            cancel_url=f"{frontend}/payments/cancel",
        )
    return _gateway

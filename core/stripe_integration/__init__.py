"""
Stripe Integration Package - TutorFlow Billing
=============================================================

This package is the payment provider boundary of the billing backend.
Billing services in `elearning` never import the `stripe` SDK directly;
they receive a `StripeGateway` and consume provider events through the
webhook dispatcher defined here.

Current Scope
--------------------
- `StripeGateway` (gateway.py): checkout sessions (one-off and subscription),
  payment intents and refunds. Stripe errors are wrapped into the billing
  `ExternalProviderError`.
- Webhook intake (signals.py + webhooks.py): dj-stripe verifies and stores
  each event; our `post_save` receiver forwards it to the dispatcher, which
  routes it to orders, subscriptions and refunds exactly once.
- Config endpoint (views.py) returning the publishable key.

Design Rationale
----------------
- Core placement: Located in `core/stripe_integration` so that billing
  is not tied to one product domain.
- dj-stripe bridge: We let dj-stripe persist Stripe objects locally,
  while our handlers act on project-specific models (Order, Subscription,
  Refund).
- No module-level API key: the secret key is handed to the gateway once at
  process start.

Structure
---------
- apps.py         → App configuration (`StripeIntegrationConfig`)
- gateway.py      → Payment provider client
- models.py       → Idempotency log of processed webhook events
- webhooks.py     → Event routing into the billing services
- signals.py      → dj-stripe Event post_save receiver
- views.py/urls.py→ Stripe config endpoint
- admin.py        → Read-only admin for the webhook log

Author: DSP Development Team
Date: 2025-09-03
"""

"""
E-Learning Package - TutorFlow Billing

This package holds the billing & entitlement core of the e-learning platform:
who may access which course, and how money moves between students,
instructors and the platform.

Features:
- Shopping cart for guests and authenticated users
- Checkout into immutable orders with frozen prices and platform fee split
- Subscription plans with monthly and yearly billing periods
- Refund requests with a review workflow and enrollment revocation
- Instructor earnings with a holding period and payouts
- Course bundles with a percentage discount and availability window

Structure:
- courses/: catalog and enrollment collaborators
- cart/, orders/, subscriptions/, refunds/, revenue/, bundles/: one area each
  (models, services, serializers, views)
- notifications/: fire-and-forget user notifications
- management/: Django management commands for periodic jobs and demo data

Author: DSP Development Team
Version: 1.0.0
"""

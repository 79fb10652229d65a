"""
Billing & Entitlement Custom Exceptions

This module provides the exception hierarchy raised by the billing services
(cart, checkout, subscriptions, refunds, revenue, bundles). Every concrete
error belongs to exactly one *kind* class, and each kind carries the HTTP
status code used when the error is rendered by the REST layer.

Kinds:
- NotFoundError (404): entity absent
- ConflictError (409): duplicate subscription/refund, race on unique constraints
- PolicyViolationError (422): refund window, payout minimum, bundle unavailable, ...
- UnauthorizedError (403): acting on another user's resource
- ExternalProviderError (502): payment provider call failed
- InvalidInputError (400): malformed input

Author: DSP Development Team
Version: 1.0.0
"""

from typing import Optional, Dict, Any


class BillingError(Exception):
    """
    Base exception class for all billing related errors.

    Attributes:
        message (str): Human-readable error message
        status_code (int): HTTP status code used by the API layer
        error_code (str): Stable machine-readable error identifier
        details (Dict[str, Any]): Additional error details

    Example:
        >>> try:
        ...     refund_service.request_refund(user, order_id, "other")
        ... except BillingError as e:
        ...     logger.warning("Refund rejected: %s (%s)", e.message, e.error_code)
    """

    default_message = "Billing operation failed"
    default_status_code = 400
    default_error_code = "billing_error"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.status_code = status_code or self.default_status_code
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for serialization.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "message": self.message,
            "status_code": self.status_code,
            "error_code": self.error_code,
            "details": self.details,
            "exception_type": self.__class__.__name__,
        }


# ---------- kinds ----------


class NotFoundError(BillingError):
    default_message = "Resource not found"
    default_status_code = 404
    default_error_code = "not_found"


class ConflictError(BillingError):
    default_message = "Conflicting state"
    default_status_code = 409
    default_error_code = "conflict"


class PolicyViolationError(BillingError):
    default_message = "Operation not allowed by billing policy"
    default_status_code = 422
    default_error_code = "policy_violation"


class UnauthorizedError(BillingError):
    default_message = "Not allowed to act on this resource"
    default_status_code = 403
    default_error_code = "unauthorized"


class ExternalProviderError(BillingError):
    """
    Raised when a call to the payment provider fails.

    Money-moving operations never swallow this error; the caller decides
    whether to retry. Orders stay ``pending`` when checkout hits it.
    """

    default_message = "Payment provider request failed"
    default_status_code = 502
    default_error_code = "provider_error"


class InvalidInputError(BillingError):
    default_message = "Invalid input"
    default_status_code = 400
    default_error_code = "invalid_input"


# ---------- not found ----------


class PlanNotFound(NotFoundError):
    default_message = "Subscription plan not found"
    default_error_code = "plan_not_found"


class NoActiveSubscription(NotFoundError):
    default_message = "No active subscription"
    default_error_code = "no_active_subscription"


# ---------- conflicts ----------


class AlreadySubscribed(ConflictError):
    default_message = "User already has an active subscription"
    default_error_code = "already_subscribed"


class AlreadyEnrolled(ConflictError):
    default_message = "User is already enrolled in this course"
    default_error_code = "already_enrolled"


class DuplicateRefund(ConflictError):
    default_message = "A refund already exists for this order"
    default_error_code = "duplicate_refund"


class AlreadyRefunded(ConflictError):
    default_message = "Order has already been refunded"
    default_error_code = "already_refunded"


class InvalidTransition(ConflictError):
    """Raised when a state machine is asked for a transition it does not allow."""

    default_message = "Invalid state transition"
    default_error_code = "invalid_transition"

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            message=f"Cannot transition from '{current}' to '{target}'",
            details={"from": current, "to": target},
        )
        self.current = current
        self.target = target


class NotProcessable(ConflictError):
    default_message = "Refund cannot be processed in its current status"
    default_error_code = "not_processable"


class SubscriptionNotCanceling(ConflictError):
    default_message = "Subscription is not scheduled for cancellation"
    default_error_code = "subscription_not_canceling"


class DuplicateCoupon(ConflictError):
    default_message = "A coupon with this code already exists"
    default_error_code = "duplicate_coupon"


# ---------- policy violations ----------


class PlanUnavailable(PolicyViolationError):
    default_message = "Subscription plan is not available"
    default_error_code = "plan_unavailable"


class CourseNotPublished(PolicyViolationError):
    default_message = "Course is not available for purchase"
    default_error_code = "course_not_published"


class EmptyCart(PolicyViolationError):
    default_message = "Cart is empty"
    default_error_code = "empty_cart"


class OutOfWindow(PolicyViolationError):
    default_message = "Refund window has expired"
    default_error_code = "out_of_window"


class OrderNotRefundable(PolicyViolationError):
    default_message = "Only completed orders can be refunded"
    default_error_code = "order_not_refundable"


class InsufficientFunds(PolicyViolationError):
    default_message = "Requested amount exceeds available balance"
    default_error_code = "insufficient_funds"


class BelowMinimum(PolicyViolationError):
    default_message = "Requested amount is below the minimum payout"
    default_error_code = "below_minimum"


class EmptyBundle(PolicyViolationError):
    default_message = "A bundle needs at least one course"
    default_error_code = "empty_bundle"


class BundleUnavailable(PolicyViolationError):
    default_message = "Bundle is not available"
    default_error_code = "bundle_unavailable"


class CouponInvalid(PolicyViolationError):
    default_message = "Coupon is invalid or expired"
    default_error_code = "coupon_invalid"


class CouponNotApplicable(PolicyViolationError):
    default_message = "Coupon is not applicable to this order"
    default_error_code = "coupon_not_applicable"


# Error code mapping for provider failures surfaced by the gateway
PROVIDER_ERROR_MAPPING = {
    "CardError": "card_declined",
    "RateLimitError": "provider_rate_limited",
    "InvalidRequestError": "provider_invalid_request",
    "AuthenticationError": "provider_authentication",
    "APIConnectionError": "provider_unreachable",
}


def provider_error_from(exc: Exception) -> ExternalProviderError:
    """
    Wrap a payment provider SDK exception into an ExternalProviderError.

    Args:
        exc: The original exception raised by the SDK

    Returns:
        ExternalProviderError carrying the provider's user-facing message
    """
    name = exc.__class__.__name__
    message = getattr(exc, "user_message", None) or str(exc) or ExternalProviderError.default_message
    return ExternalProviderError(
        message=message,
        error_code=PROVIDER_ERROR_MAPPING.get(name, ExternalProviderError.default_error_code),
        details={"provider_exception": name},
    )

"""
Billing policy objects materialised from Django settings.

Services take a policy at construction time; when none is given the
defaults below are read from ``settings`` once per call to ``from_settings``.
"""

from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings


@dataclass(frozen=True)
class RefundPolicy:
    max_days_after_purchase: int = 30
    auto_approve_under: Decimal = Decimal("10.00")
    requires_approval: bool = True

    @classmethod
    def from_settings(cls) -> "RefundPolicy":
        return cls(
            max_days_after_purchase=int(getattr(settings, "REFUND_MAX_DAYS_AFTER_PURCHASE", 30)),
            auto_approve_under=Decimal(str(getattr(settings, "REFUND_AUTO_APPROVE_UNDER", "10.00"))),
            requires_approval=bool(getattr(settings, "REFUND_REQUIRES_APPROVAL", True)),
        )


@dataclass(frozen=True)
class PayoutPolicy:
    platform_fee_percent: Decimal = Decimal("30")
    minimum_payout: Decimal = Decimal("50.00")
    hold_days: int = 30

    @classmethod
    def from_settings(cls) -> "PayoutPolicy":
        return cls(
            platform_fee_percent=Decimal(str(getattr(settings, "PLATFORM_FEE_PERCENT", "30"))),
            minimum_payout=Decimal(str(getattr(settings, "MIN_PAYOUT_AMOUNT", "50.00"))),
            hold_days=int(getattr(settings, "EARNINGS_HOLD_DAYS", 30)),
        )


def platform_fee_percent() -> Decimal:
    return Decimal(str(getattr(settings, "PLATFORM_FEE_PERCENT", "30")))


def default_currency() -> str:
    return getattr(settings, "DEFAULT_CURRENCY", "usd")

"""
Billing Engine

Pure money calculations for a rental booking. Nothing here touches the
booking record; callers commit the returned values together with the
status change that needs them.

Rounding: every price is rounded once, half-up, to the currency's minimum
unit. The owner's share is derived by subtraction and never rounded on its
own, so commission + owner amount always equals the settled amount.
"""

from dataclasses import dataclass
from decimal import Decimal

from shared.domain.base import ValueObject
from shared.domain.value_objects import Money, TimeWindow, round_currency

from apps.rentals.domain.exceptions import ValidationError
from apps.rentals.domain.policy import DEFAULT_POLICY, RentalPolicy

MINUTES_PER_HOUR = Decimal(60)


@dataclass(frozen=True)
class CommissionSplit(ValueObject):
    settled_amount: Money
    commission_amount: Money
    owner_amount: Money


@dataclass(frozen=True)
class Settlement(ValueObject):
    """All money fields fixed at settlement, computed before any is written"""
    settled_amount: Money
    final_price: Money | None
    refund_amount: Money
    overage_amount: Money
    commission_amount: Money
    owner_amount: Money


class BillingEngine:

    def __init__(self, policy: RentalPolicy = DEFAULT_POLICY):
        self.policy = policy

    def booked_minutes(self, window: TimeWindow) -> int:
        """Reserved length in minutes, rounded up, never below the billing floor"""
        return self.chargeable_minutes(window.minutes)

    def chargeable_minutes(self, minutes: int) -> int:
        if minutes < 0:
            raise ValidationError(f"Minutes cannot be negative: {minutes}")
        return max(minutes, self.policy.min_booking_minutes)

    def price_for(self, minutes: int, hourly_rate: Money) -> Money:
        chargeable = Decimal(self.chargeable_minutes(minutes))
        amount = chargeable * hourly_rate.amount / MINUTES_PER_HOUR
        return Money(round_currency(amount), hourly_rate.currency)

    def initial_price(self, booked_minutes: int, hourly_rate: Money) -> Money:
        return self.price_for(booked_minutes, hourly_rate)

    def final_price(self, actual_usage_minutes: int, hourly_rate: Money) -> Money:
        return self.price_for(actual_usage_minutes, hourly_rate)

    def refund_amount(self, initial_price: Money, final_price: Money) -> Money:
        """Overpayment returned to the customer when usage fell short"""
        return initial_price.difference_or_zero(final_price)

    def overage_amount(self, initial_price: Money, final_price: Money) -> Money:
        """Usage beyond the prepaid amount; recorded, not charged separately"""
        return final_price.difference_or_zero(initial_price)

    def split_commission(self, settled_amount: Money) -> CommissionSplit:
        commission = Money(
            round_currency(settled_amount.amount * self.policy.commission_rate),
            settled_amount.currency,
        )
        return CommissionSplit(
            settled_amount=settled_amount,
            commission_amount=commission,
            owner_amount=settled_amount - commission,
        )

    def refund_after_fee(self, paid_amount: Money) -> tuple[Money, Money]:
        """(refund, fee) for an approved refund request"""
        fee = Money(
            round_currency(paid_amount.amount * self.policy.refund_fee_rate),
            paid_amount.currency,
        )
        return paid_amount - fee, fee

    def settle(
        self,
        initial_price: Money,
        hourly_rate: Money,
        actual_usage_minutes: int | None,
    ) -> Settlement:
        """
        Compute every settlement field at once

        Without metered usage the initial price is the settled amount and
        there is no final price.
        """
        if actual_usage_minutes is None:
            final = None
            settled = initial_price
            refund = Money.zero(initial_price.currency)
            overage = Money.zero(initial_price.currency)
        else:
            final = self.final_price(actual_usage_minutes, hourly_rate)
            settled = final
            refund = self.refund_amount(initial_price, final)
            overage = self.overage_amount(initial_price, final)

        split = self.split_commission(settled)
        return Settlement(
            settled_amount=settled,
            final_price=final,
            refund_amount=refund,
            overage_amount=overage,
            commission_amount=split.commission_amount,
            owner_amount=split.owner_amount,
        )

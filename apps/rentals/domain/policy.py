"""Rental pricing and operating policy."""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from shared.domain.base import ValueObject


@dataclass(frozen=True)
class RentalPolicy(ValueObject):
    currency: str = 'NPR'
    min_booking_minutes: int = 30
    commission_rate: Decimal = Decimal('0.15')
    refund_fee_rate: Decimal = Decimal('0.03')
    average_delivery_speed_kph: float = 25.0
    tracking_poll_interval_seconds: int = 10
    retrieval_reminder_minutes: int = 30
    cash_cancellation_minutes: int = 30

    def __post_init__(self):
        if self.min_booking_minutes < 1:
            raise ValueError("Minimum booking length must be at least one minute")
        for name in ('commission_rate', 'refund_fee_rate'):
            rate = Decimal(str(getattr(self, name)))
            if not Decimal('0') <= rate < Decimal('1'):
                raise ValueError(f"{name} must be in [0, 1), got {rate}")
            object.__setattr__(self, name, rate)
        if self.average_delivery_speed_kph <= 0:
            raise ValueError("Average delivery speed must be positive")

    @property
    def cash_cancellation_window(self) -> timedelta:
        return timedelta(minutes=self.cash_cancellation_minutes)

    @property
    def retrieval_reminder_lead(self) -> timedelta:
        return timedelta(minutes=self.retrieval_reminder_minutes)


DEFAULT_POLICY = RentalPolicy()

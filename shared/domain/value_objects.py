"""
Common Value Objects

Value objects used across the rental domain:
- Money: Non-negative monetary amount in the platform currency
- TimeWindow: A reserved [start_at, end_at) period measured in minutes
- GeoPoint: A latitude/longitude pair with an optional address
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from shared.domain.base import ValueObject

CENT = Decimal('0.01')
ONE_MINUTE = timedelta(minutes=1)
EARTH_RADIUS_KM = 6371.0


def round_currency(amount: Decimal) -> Decimal:
    """Round half-up to the currency's minimum unit"""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money(ValueObject):
    """
    Money value object

    Represents a monetary amount with currency.
    Immutable and supports arithmetic operations. Amounts are kept exact
    (Decimal); rounding happens only through `rounded()`.
    """
    amount: Decimal
    currency: str = 'NPR'

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))
        if self.amount < 0:
            raise ValueError("Amount cannot be negative")
        if not self.currency:
            raise ValueError("Currency is required")

    @classmethod
    def zero(cls, currency: str = 'NPR') -> 'Money':
        return cls(Decimal('0.00'), currency)

    def _check_currency(self, other: 'Money', operation: str):
        if not isinstance(other, Money):
            raise TypeError(f"Can only {operation} Money and Money")
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot {operation} different currencies: {self.currency} and {other.currency}"
            )

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other, 'add')
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other, 'subtract')
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, factor) -> 'Money':
        if not isinstance(factor, (int, Decimal)):
            raise TypeError("Can only multiply Money by int or Decimal")
        return Money(self.amount * Decimal(factor), self.currency)

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, 'compare')
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, 'compare')
        return self.amount <= other.amount

    def difference_or_zero(self, other: 'Money') -> 'Money':
        """self - other, floored at zero"""
        self._check_currency(other, 'subtract')
        return Money(max(self.amount - other.amount, Decimal('0')), self.currency)

    def rounded(self) -> 'Money':
        return Money(round_currency(self.amount), self.currency)

    def __str__(self):
        return f"{self.amount:,.2f} {self.currency}"

    def __repr__(self):
        return f"Money({self.amount}, '{self.currency}')"


@dataclass(frozen=True)
class TimeWindow(ValueObject):
    """
    Reserved time window

    start_at is inclusive, end_at exclusive. Both must be timezone-aware
    or both naive; mixing them fails on comparison.
    """
    start_at: datetime
    end_at: datetime

    def __post_init__(self):
        if self.start_at >= self.end_at:
            raise ValueError(
                f"Start ({self.start_at.isoformat()}) must be before end ({self.end_at.isoformat()})"
            )

    @property
    def duration(self) -> timedelta:
        return self.end_at - self.start_at

    @property
    def minutes(self) -> int:
        """Length in whole minutes, rounded up"""
        return -((-self.duration) // ONE_MINUTE)

    def contains(self, moment: datetime) -> bool:
        return self.start_at <= moment < self.end_at

    def ends_within(self, moment: datetime, lead: timedelta) -> bool:
        """True if the window ends in (moment, moment + lead]"""
        return moment < self.end_at <= moment + lead

    def __str__(self):
        return f"{self.start_at.isoformat()} - {self.end_at.isoformat()}"


@dataclass(frozen=True)
class GeoPoint(ValueObject):
    """Geographic coordinate with optional human-readable address"""
    lat: float
    lng: float
    address: str = ''

    def __post_init__(self):
        if not -90 <= self.lat <= 90:
            raise ValueError(f"Latitude out of range: {self.lat}")
        if not -180 <= self.lng <= 180:
            raise ValueError(f"Longitude out of range: {self.lng}")

    def distance_km_to(self, other: 'GeoPoint') -> float:
        """Great-circle (haversine) distance in kilometres"""
        d_lat = math.radians(other.lat - self.lat)
        d_lng = math.radians(other.lng - self.lng)
        a = (
            math.sin(d_lat / 2) ** 2
            + math.cos(math.radians(self.lat))
            * math.cos(math.radians(other.lat))
            * math.sin(d_lng / 2) ** 2
        )
        return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    def to_dict(self) -> dict:
        data = {'lat': self.lat, 'lng': self.lng}
        if self.address:
            data['address'] = self.address
        return data

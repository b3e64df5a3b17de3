"""Shared pytest fixtures for the rentals test-suite."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from shared.application.message_bus import MessageBus
from shared.domain.base import DomainEvent
from shared.domain.value_objects import GeoPoint, Money, TimeWindow

from apps.rentals.domain.billing import BillingEngine
from apps.rentals.domain.delivery import DeliveryTracker
from apps.rentals.domain.entities import DeliveryStatus, PaymentMethod, reserve_booking
from apps.rentals.domain.policy import DEFAULT_POLICY
from apps.rentals.domain.usage import UsageMeter

T0 = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)

KATHMANDU = GeoPoint(27.7172, 85.3240, 'Kathmandu')
BHAKTAPUR = GeoPoint(27.6710, 85.4298, 'Bhaktapur')


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def policy():
    return DEFAULT_POLICY


@pytest.fixture
def billing(policy):
    return BillingEngine(policy)


@pytest.fixture
def tracker(policy):
    return DeliveryTracker(policy)


@pytest.fixture
def meter(billing):
    return UsageMeter(billing)


@pytest.fixture
def make_booking(billing, clock):
    """A 45 minute booking at 100 NPR/hour (initial price 75.00)"""

    def _make(
        minutes: int = 45,
        hourly_rate: str = '100',
        payment_method: PaymentMethod = PaymentMethod.ONLINE,
        starts_in: timedelta = timedelta(hours=1),
        **kwargs,
    ):
        start_at = clock() + starts_in
        booking = reserve_booking(
            customer_id=kwargs.pop('customer_id', 1),
            owner_id=kwargs.pop('owner_id', 2),
            tractor_id=kwargs.pop('tractor_id', 'TR-100'),
            window=TimeWindow(start_at, start_at + timedelta(minutes=minutes)),
            hourly_rate=Money(Decimal(hourly_rate)),
            billing=billing,
            payment_method=payment_method,
            delivery_address=kwargs.pop('delivery_address', 'Bhaktapur'),
            delivery_location=kwargs.pop('delivery_location', BHAKTAPUR),
            now=clock(),
            **kwargs,
        )
        booking.clear_events()
        return booking

    return _make


@pytest.fixture
def deliver(tracker, clock):
    """Move a paid (or approved cash-on-delivery) booking to DELIVERED"""

    def _deliver(booking):
        for step in (DeliveryStatus.ORDERED, DeliveryStatus.DELIVERING, DeliveryStatus.DELIVERED):
            tracker.advance(booking, step, clock())
        return booking

    return _deliver


@pytest.fixture
def delivered_booking(make_booking, deliver, clock):
    booking = make_booking()
    booking.confirm_payment(clock())
    deliver(booking)
    booking.clear_events()
    return booking


@pytest.fixture
def collecting_bus():
    """Message bus that records every published event"""
    bus = MessageBus()
    bus.published = []
    bus.register_event_handler(DomainEvent, bus.published.append)
    return bus

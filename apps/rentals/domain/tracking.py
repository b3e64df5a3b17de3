"""
Read-only booking projections

Derived on every poll, never persisted. Consumers poll at the advertised
interval; nothing here keeps state between calls.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from shared.domain.base import ValueObject
from shared.domain.value_objects import GeoPoint, Money

from apps.rentals.domain.delivery import DeliveryTracker
from apps.rentals.domain.entities import Booking
from apps.rentals.domain.usage import UsageMeter


def _money(value: Money | None) -> str | None:
    return str(value.amount) if value is not None else None


def _point(value: GeoPoint | None) -> dict | None:
    return value.to_dict() if value is not None else None


def _moment(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class TrackingView(ValueObject):
    booking_id: UUID
    booking_status: str
    delivery_status: str | None
    visible: bool
    eta_minutes: int | None
    distance_km: float | None
    current_location: GeoPoint | None
    destination: GeoPoint | None
    original_location: GeoPoint | None
    delivery_address: str
    poll_interval_seconds: int

    def to_dict(self) -> dict:
        return {
            'booking_id': str(self.booking_id),
            'booking_status': self.booking_status,
            'delivery_status': self.delivery_status,
            'visible': self.visible,
            'eta_minutes': self.eta_minutes,
            'distance_km': self.distance_km,
            'current_location': _point(self.current_location),
            'destination': _point(self.destination),
            'original_location': _point(self.original_location),
            'delivery_address': self.delivery_address,
            'poll_interval_seconds': self.poll_interval_seconds,
        }


@dataclass(frozen=True)
class UsageDetails(ValueObject):
    booking_id: UUID
    is_running: bool
    current_usage_minutes: int | None
    actual_usage_minutes: int | None
    started_at: datetime | None
    stopped_at: datetime | None
    initial_price: Money
    final_price: Money | None
    refund_amount: Money | None

    def to_dict(self) -> dict:
        return {
            'booking_id': str(self.booking_id),
            'is_running': self.is_running,
            'current_usage_minutes': self.current_usage_minutes,
            'actual_usage_minutes': self.actual_usage_minutes,
            'started_at': _moment(self.started_at),
            'stopped_at': _moment(self.stopped_at),
            'initial_price': _money(self.initial_price),
            'final_price': _money(self.final_price),
            'refund_amount': _money(self.refund_amount),
        }


def tracking_view(
    booking: Booking,
    tracker: DeliveryTracker,
    current_location: GeoPoint | None = None,
    *,
    for_customer: bool = True,
) -> TrackingView:
    """
    Tracking projection

    Customers only see the delivery status once the booking is visible to
    them; owners and admins always do. ETA and distance are present only
    while the tractor is on its way.
    """
    visible = tracker.is_visible_to_customer(booking) or not for_customer
    estimate = tracker.route_estimate(booking, current_location) if visible else None

    return TrackingView(
        booking_id=booking.id,
        booking_status=booking.status.value,
        delivery_status=booking.delivery_status.value if visible else None,
        visible=visible,
        eta_minutes=estimate.eta_minutes if estimate else None,
        distance_km=estimate.distance_km if estimate else None,
        current_location=current_location if visible else None,
        destination=booking.delivery_location,
        original_location=booking.original_location if visible else None,
        delivery_address=booking.delivery_address,
        poll_interval_seconds=tracker.policy.tracking_poll_interval_seconds,
    )


def usage_details(booking: Booking, meter: UsageMeter, now: datetime) -> UsageDetails:
    return UsageDetails(
        booking_id=booking.id,
        is_running=booking.is_usage_running,
        current_usage_minutes=meter.current_elapsed(booking, now),
        actual_usage_minutes=booking.actual_usage_minutes,
        started_at=booking.actual_usage_start_at,
        stopped_at=booking.actual_usage_stop_at,
        initial_price=booking.initial_price,
        final_price=booking.final_price,
        refund_amount=booking.refund_amount,
    )

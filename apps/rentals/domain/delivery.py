"""
Delivery Tracker

Owns the per-booking delivery sub-status. The owner moves it strictly
forward NONE -> ORDERED -> DELIVERING -> DELIVERED -> RETURNED; an admin
may override it. Reaching DELIVERED moves the booking to DELIVERED.

ETA and distance come from a route estimator and only exist while the
tractor is on its way; after arrival they are reported as absent.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from shared.domain.base import ValueObject
from shared.domain.value_objects import GeoPoint

from apps.rentals.domain import events
from apps.rentals.domain.entities import (
    Booking,
    BookingStatus,
    DeliveryStatus,
)
from apps.rentals.domain.exceptions import InvalidTransition
from apps.rentals.domain.policy import DEFAULT_POLICY, RentalPolicy

logger = logging.getLogger(__name__)

CUSTOMER_VISIBLE_STATUSES = (
    BookingStatus.PAID,
    BookingStatus.DELIVERED,
    BookingStatus.COMPLETED,
)


@dataclass(frozen=True)
class RouteEstimate(ValueObject):
    distance_km: float
    eta_minutes: int


class RouteEstimator(Protocol):
    """Geolocation collaborator"""

    def estimate(self, origin: GeoPoint, destination: GeoPoint) -> RouteEstimate | None:
        ...


class StraightLineEstimator:
    """
    Great-circle distance at a constant average speed

    Used when no road-routing service is configured.
    """

    def __init__(self, average_speed_kph: float = DEFAULT_POLICY.average_delivery_speed_kph):
        self.average_speed_kph = average_speed_kph

    def estimate(self, origin: GeoPoint, destination: GeoPoint) -> RouteEstimate:
        distance_km = origin.distance_km_to(destination)
        return RouteEstimate(
            distance_km=round(distance_km, 3),
            eta_minutes=self.eta_minutes(distance_km),
        )

    def eta_minutes(self, distance_km: float) -> int:
        if distance_km <= 0:
            return 0
        return max(1, round(distance_km / self.average_speed_kph * 60))


class DeliveryTracker:

    def __init__(
        self,
        policy: RentalPolicy = DEFAULT_POLICY,
        estimator: RouteEstimator | None = None,
    ):
        self.policy = policy
        self.estimator = estimator or StraightLineEstimator(policy.average_delivery_speed_kph)

    # ----- visibility -----

    def is_visible_to_customer(self, booking: Booking) -> bool:
        """
        Customers see delivery progress once money has changed hands, or
        for approved cash-on-delivery bookings before it does.
        """
        if booking.status in CUSTOMER_VISIBLE_STATUSES:
            return True
        return booking.is_deferred_payment and booking.is_approved

    def can_start_delivery(self, booking: Booking) -> bool:
        if booking.status is BookingStatus.PAID:
            return True
        return (
            booking.status is BookingStatus.PENDING
            and booking.is_deferred_payment
            and booking.is_approved
        )

    # ----- transitions -----

    def _check_open(self, booking: Booking):
        if booking.status is BookingStatus.CANCELLED:
            raise InvalidTransition(
                f"Booking {booking.id} is cancelled; delivery can no longer change",
                booking_id=booking.id,
            )
        if booking.status is BookingStatus.REFUND_REQUESTED:
            raise InvalidTransition(
                f"Booking {booking.id} has a pending refund request",
                booking_id=booking.id,
            )

    def advance(
        self,
        booking: Booking,
        next_status: DeliveryStatus,
        now: datetime,
        tractor_location: GeoPoint | None = None,
    ):
        """
        Owner reports the next delivery step

        tractor_location is where the tractor was dispatched from; on arrival
        it becomes the booking's original location unless one is known.
        """
        self._check_open(booking)
        current = booking.delivery_status
        expected = current.next

        if expected is None:
            raise InvalidTransition(
                f"Delivery for booking {booking.id} is already {current.value}",
                booking_id=booking.id,
            )
        if next_status is not expected:
            raise InvalidTransition(
                f"Invalid delivery transition {current.value} -> {next_status.value}; "
                f"next valid status is {expected.value}",
                booking_id=booking.id,
            )
        if current is DeliveryStatus.NONE and not self.can_start_delivery(booking):
            raise InvalidTransition(
                f"Booking {booking.id} must be paid, or an approved cash-on-delivery "
                f"booking, before delivery starts",
                booking_id=booking.id,
            )

        self._apply(booking, next_status, now, overridden=False, tractor_location=tractor_location)

    def override(self, booking: Booking, status: DeliveryStatus, now: datetime):
        """Administrative correction; may move backwards"""
        if booking.status.is_terminal:
            raise InvalidTransition(
                f"Booking {booking.id} is {booking.status.value}; delivery can no longer change",
                booking_id=booking.id,
            )
        self._check_open(booking)
        if booking.usage_started:
            raise InvalidTransition(
                f"Usage already recorded for booking {booking.id}; delivery cannot be overridden",
                booking_id=booking.id,
            )
        if status is DeliveryStatus.DELIVERED and not (
            booking.status is BookingStatus.DELIVERED or self.can_start_delivery(booking)
        ):
            raise InvalidTransition(
                f"Booking {booking.id} is not eligible for delivery",
                booking_id=booking.id,
            )

        logger.warning(
            f"Delivery override for booking {booking.id}: "
            f"{booking.delivery_status.value} -> {status.value}"
        )
        self._apply(booking, status, now, overridden=True)

    def order_approved_cash_booking(self, booking: Booking, now: datetime) -> bool:
        """Approving a cash-on-delivery booking places the delivery order"""
        if not (
            booking.is_deferred_payment
            and booking.is_approved
            and booking.delivery_status is DeliveryStatus.NONE
        ):
            return False
        self._apply(booking, DeliveryStatus.ORDERED, now, overridden=False)
        return True

    def _apply(
        self,
        booking: Booking,
        status: DeliveryStatus,
        now: datetime,
        *,
        overridden: bool,
        tractor_location: GeoPoint | None = None,
    ):
        previous = booking.delivery_status

        # booking-level side effect first: it is the only step that can fail
        if status is DeliveryStatus.DELIVERED:
            booking.mark_delivered(now)
            if booking.original_location is None and tractor_location is not None:
                booking.original_location = tractor_location
        if status is DeliveryStatus.RETURNED:
            booking.returned_at = now

        booking.delivery_status = status
        booking.updated_at = now
        booking.add_event(events.DeliveryStatusChanged(
            aggregate_id=booking.id,
            booking_id=booking.id,
            previous_status=previous.value,
            new_status=status.value,
            overridden=overridden,
        ))

    # ----- derived tracking data -----

    def route_estimate(
        self,
        booking: Booking,
        current_location: GeoPoint | None,
    ) -> RouteEstimate | None:
        """ETA/distance while DELIVERING; None in every other state"""
        if booking.delivery_status is not DeliveryStatus.DELIVERING:
            return None
        if current_location is None or booking.delivery_location is None:
            return None
        return self.estimator.estimate(current_location, booking.delivery_location)

    # ----- retrieval -----

    def needs_retrieval_reminder(self, booking: Booking, now: datetime) -> bool:
        return (
            booking.status is BookingStatus.DELIVERED
            and booking.delivery_status is DeliveryStatus.DELIVERED
            and not booking.retrieval_reminder_sent
            and booking.window.ends_within(now, self.policy.retrieval_reminder_lead)
        )

    def flag_retrieval_reminder(self, booking: Booking, now: datetime) -> bool:
        """Mark the reminder as due once per booking; False if not due"""
        if not self.needs_retrieval_reminder(booking, now):
            return False
        booking.retrieval_reminder_sent = True
        booking.updated_at = now
        booking.add_event(events.RetrievalReminderDue(
            aggregate_id=booking.id,
            booking_id=booking.id,
            owner_id=booking.owner_id,
            ends_at=booking.window.end_at,
        ))
        return True

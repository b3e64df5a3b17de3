"""
Usage Meter

Customer-controlled timer measuring actual operating minutes. The meter is
authoritative only through the booking record: elapsed time is always
recomputed from the recorded start (or the stored minutes after stop),
never accumulated from ticks.
"""

import logging
from datetime import datetime

from shared.domain.value_objects import ONE_MINUTE

from apps.rentals.domain import events
from apps.rentals.domain.billing import BillingEngine
from apps.rentals.domain.entities import Booking, BookingStatus, DeliveryStatus
from apps.rentals.domain.exceptions import PreconditionFailed

logger = logging.getLogger(__name__)


def ceil_minutes(start_at: datetime, stop_at: datetime) -> int:
    return -((start_at - stop_at) // ONE_MINUTE)


def floor_minutes(start_at: datetime, now: datetime) -> int:
    return max((now - start_at) // ONE_MINUTE, 0)


class UsageMeter:

    def __init__(self, billing: BillingEngine):
        self.billing = billing

    def start(self, booking: Booking, now: datetime):
        """
        Start metering on a delivered tractor

        A second start while the meter is running is rejected and leaves the
        recorded start untouched.
        """
        if booking.status in (BookingStatus.COMPLETED, BookingStatus.CANCELLED):
            raise PreconditionFailed(
                f"Booking {booking.id} is {booking.status.value}; usage cannot start",
                booking_id=booking.id,
            )
        if booking.delivery_status is DeliveryStatus.RETURNED:
            raise PreconditionFailed(
                f"Tractor for booking {booking.id} was already returned",
                booking_id=booking.id,
            )
        if booking.delivery_status is not DeliveryStatus.DELIVERED:
            raise PreconditionFailed(
                f"Tractor for booking {booking.id} is not delivered "
                f"(delivery {booking.delivery_status.value})",
                booking_id=booking.id,
            )
        if booking.status is not BookingStatus.DELIVERED:
            raise PreconditionFailed(
                f"Booking {booking.id} is {booking.status.value}, expected DELIVERED",
                booking_id=booking.id,
            )
        if booking.is_usage_running:
            raise PreconditionFailed(
                f"Usage is already running for booking {booking.id}",
                booking_id=booking.id,
            )
        if booking.usage_started:
            raise PreconditionFailed(
                f"Usage was already recorded for booking {booking.id}",
                booking_id=booking.id,
            )

        booking.actual_usage_start_at = now
        booking.updated_at = now
        booking.add_event(events.UsageStarted(
            aggregate_id=booking.id, booking_id=booking.id, started_at=now,
        ))
        logger.info(f"Usage started for booking {booking.id} at {now.isoformat()}")

    def stop(self, booking: Booking, now: datetime):
        """
        Stop metering, settle and complete the booking

        Minutes are rounded up. The settlement is computed in full before
        anything is written to the booking.
        """
        if not booking.usage_started:
            raise PreconditionFailed(
                f"Usage was never started for booking {booking.id}",
                booking_id=booking.id,
            )
        if booking.actual_usage_stop_at is not None:
            raise PreconditionFailed(
                f"Usage already stopped for booking {booking.id}",
                booking_id=booking.id,
            )
        if now <= booking.actual_usage_start_at:
            raise PreconditionFailed(
                f"Stop time must be after start time for booking {booking.id}",
                booking_id=booking.id,
            )
        if booking.status is not BookingStatus.DELIVERED:
            raise PreconditionFailed(
                f"Booking {booking.id} is {booking.status.value}; usage cannot stop",
                booking_id=booking.id,
            )

        minutes = ceil_minutes(booking.actual_usage_start_at, now)
        settlement = self.billing.settle(booking.initial_price, booking.hourly_rate, minutes)

        booking.actual_usage_stop_at = now
        booking.actual_usage_minutes = minutes
        booking.complete(now, settlement)
        logger.info(
            f"Usage stopped for booking {booking.id}: {minutes} min, "
            f"final price {settlement.final_price}"
        )
        return settlement

    def complete_unmetered(self, booking: Booking, now: datetime):
        """
        Close a returned booking whose meter was never started

        The initial price becomes the settled amount.
        """
        if booking.delivery_status is not DeliveryStatus.RETURNED:
            raise PreconditionFailed(
                f"Tractor for booking {booking.id} has not been returned",
                booking_id=booking.id,
            )
        if booking.usage_started:
            raise PreconditionFailed(
                f"Usage was recorded for booking {booking.id}; stop the meter instead",
                booking_id=booking.id,
            )
        if booking.status is not BookingStatus.DELIVERED:
            raise PreconditionFailed(
                f"Booking {booking.id} is {booking.status.value}, expected DELIVERED",
                booking_id=booking.id,
            )

        settlement = self.billing.settle(booking.initial_price, booking.hourly_rate, None)
        booking.complete(now, settlement)
        logger.info(f"Booking {booking.id} completed without metered usage")
        return settlement

    def current_elapsed(self, booking: Booking, now: datetime) -> int | None:
        """Whole minutes while running; the recorded minutes after stop; else None"""
        if booking.is_usage_running:
            return floor_minutes(booking.actual_usage_start_at, now)
        return booking.actual_usage_minutes

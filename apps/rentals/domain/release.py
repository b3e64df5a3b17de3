"""
Payment Release Gate

Exactly-once release of the owner's payout after settlement. Callers serialise
release per booking; the gate itself only checks and flips the flag.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from shared.domain.base import ValueObject
from shared.domain.value_objects import Money

from apps.rentals.domain import events
from apps.rentals.domain.billing import BillingEngine
from apps.rentals.domain.entities import Booking, BookingStatus, PaymentStatus
from apps.rentals.domain.exceptions import AlreadyReleased, NotSettled

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReleaseResult(ValueObject):
    booking_id: UUID
    settled_amount: Money
    commission_amount: Money
    owner_amount: Money
    released_at: datetime

    def to_dict(self) -> dict:
        return {
            'booking_id': str(self.booking_id),
            'settled_amount': str(self.settled_amount.amount),
            'commission_amount': str(self.commission_amount.amount),
            'owner_amount': str(self.owner_amount.amount),
            'currency': self.settled_amount.currency,
            'released_at': self.released_at.isoformat(),
        }


class PaymentReleaseGate:

    def __init__(self, billing: BillingEngine):
        self.billing = billing

    def release(self, booking: Booking, now: datetime) -> ReleaseResult:
        if booking.payment_released:
            raise AlreadyReleased(
                f"Payout for booking {booking.id} was already released",
                booking_id=booking.id,
            )
        if booking.status is not BookingStatus.COMPLETED:
            raise NotSettled(
                f"Booking {booking.id} is {booking.status.value}; payout needs COMPLETED",
                booking_id=booking.id,
            )
        if booking.payment_status is not PaymentStatus.PAID:
            raise NotSettled(
                f"Payment for booking {booking.id} is {booking.payment_status.value}; nothing to pay out",
                booking_id=booking.id,
            )

        split = self.billing.split_commission(booking.settled_amount)

        booking.commission_amount = split.commission_amount
        booking.owner_amount = split.owner_amount
        booking.payment_released = True
        booking.released_at = now
        booking.updated_at = now
        booking.add_event(events.PayoutReleased(
            aggregate_id=booking.id,
            booking_id=booking.id,
            owner_id=booking.owner_id,
            commission_amount=split.commission_amount,
            owner_amount=split.owner_amount,
        ))
        logger.info(
            f"Payout released for booking {booking.id}: "
            f"owner {split.owner_amount}, commission {split.commission_amount}"
        )
        return ReleaseResult(
            booking_id=booking.id,
            settled_amount=split.settled_amount,
            commission_amount=split.commission_amount,
            owner_amount=split.owner_amount,
            released_at=now,
        )

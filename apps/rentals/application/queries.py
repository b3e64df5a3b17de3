"""
Read-side queries

Nothing here writes. Projections are recomputed on every call so callers
may poll at any cadence.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable
from uuid import UUID

from shared.domain.base import ValueObject
from shared.domain.value_objects import GeoPoint, Money

from apps.rentals.domain.billing import BillingEngine
from apps.rentals.domain.delivery import DeliveryTracker
from apps.rentals.domain.entities import Booking, BookingStatus
from apps.rentals.domain.exceptions import BookingNotFound
from apps.rentals.domain.policy import DEFAULT_POLICY, RentalPolicy
from apps.rentals.domain.tracking import TrackingView, UsageDetails, tracking_view, usage_details
from apps.rentals.domain.usage import UsageMeter


@dataclass(frozen=True)
class SettlementSummary(ValueObject):
    """Totals over completed bookings"""
    completed_count: int
    revenue: Money
    commission: Money
    owner_payouts: Money
    released_count: int
    released_payouts: Money
    pending_count: int
    pending_payouts: Money

    def to_dict(self) -> dict:
        return {
            'completed_count': self.completed_count,
            'revenue': str(self.revenue.amount),
            'commission': str(self.commission.amount),
            'owner_payouts': str(self.owner_payouts.amount),
            'released_count': self.released_count,
            'released_payouts': str(self.released_payouts.amount),
            'pending_count': self.pending_count,
            'pending_payouts': str(self.pending_payouts.amount),
            'currency': self.revenue.currency,
        }


def summarize_settlements(
    bookings: Iterable[Booking],
    policy: RentalPolicy = DEFAULT_POLICY,
) -> SettlementSummary:
    zero = Money.zero(policy.currency)
    billing = BillingEngine(policy)
    revenue = commission = owner_payouts = released = pending = zero
    completed_count = released_count = pending_count = 0

    for booking in bookings:
        if booking.status is not BookingStatus.COMPLETED:
            continue
        completed_count += 1
        if booking.commission_amount is not None and booking.owner_amount is not None:
            booking_commission = booking.commission_amount
            booking_owner = booking.owner_amount
        else:
            split = billing.split_commission(booking.settled_amount)
            booking_commission = split.commission_amount
            booking_owner = split.owner_amount

        revenue += booking.settled_amount
        commission += booking_commission
        owner_payouts += booking_owner
        if booking.payment_released:
            released_count += 1
            released += booking_owner
        else:
            pending_count += 1
            pending += booking_owner

    return SettlementSummary(
        completed_count=completed_count,
        revenue=revenue,
        commission=commission,
        owner_payouts=owner_payouts,
        released_count=released_count,
        released_payouts=released,
        pending_count=pending_count,
        pending_payouts=pending,
    )


class RentalQueries:

    def __init__(self, booking_repo, policy: RentalPolicy = DEFAULT_POLICY, tracker: DeliveryTracker | None = None):
        self.booking_repo = booking_repo
        self.policy = policy
        self.tracker = tracker or DeliveryTracker(policy)
        self.meter = UsageMeter(BillingEngine(policy))

    def _get(self, booking_id: UUID) -> Booking:
        booking = self.booking_repo.get_by_id(booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found", booking_id=booking_id)
        return booking

    def tracking(
        self,
        booking_id: UUID,
        current_location: GeoPoint | None = None,
        for_customer: bool = True,
    ) -> TrackingView:
        return tracking_view(
            self._get(booking_id), self.tracker, current_location, for_customer=for_customer
        )

    def usage(self, booking_id: UUID, now: datetime) -> UsageDetails:
        return usage_details(self._get(booking_id), self.meter, now)

    def current_elapsed(self, booking_id: UUID, now: datetime) -> int | None:
        return self.meter.current_elapsed(self._get(booking_id), now)

    def settlement_summary(self, owner_id: int | None = None) -> SettlementSummary:
        return summarize_settlements(self.booking_repo.list_completed(owner_id=owner_id), self.policy)

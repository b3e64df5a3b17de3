"""
Booking Repositories

The booking record is the only shared mutable resource. Both
implementations save with a compare-and-set on ``version``: a save whose
version no longer matches the stored one raises ConcurrentModification and
writes nothing.
"""

from abc import ABC, abstractmethod
from copy import deepcopy
from datetime import datetime, timedelta
from decimal import Decimal
from threading import Lock
from typing import Dict, Iterable, List
from uuid import UUID
import logging

from django.db.models import Q

from shared.domain.value_objects import GeoPoint, Money, TimeWindow

from apps.rentals.domain.entities import (
    ApprovalStatus,
    Booking,
    BookingStatus,
    DeliveryStatus,
    PaymentMethod,
    PaymentStatus,
)
from apps.rentals.domain.exceptions import ConcurrentModification
from apps.rentals.models import RentalBooking

logger = logging.getLogger(__name__)


class AbstractBookingRepository(ABC):

    @abstractmethod
    def add(self, booking: Booking):
        """Persist a new booking"""

    @abstractmethod
    def get_by_id(self, booking_id: UUID, lock: bool = False) -> Booking | None:
        """Load a booking; lock=True takes the row lock for the current transaction"""

    @abstractmethod
    def save(self, booking: Booking):
        """Write the booking back if nobody saved it since it was loaded"""

    @abstractmethod
    def list_for_user(self, user_id: int | None = None) -> List[Booking]:
        """Bookings where the user is customer or owner; every booking for None"""

    @abstractmethod
    def list_completed(self, owner_id: int | None = None) -> List[Booking]:
        ...

    @abstractmethod
    def ids_due_for_retrieval_reminder(self, now: datetime, lead: timedelta) -> List[UUID]:
        """Delivered, unreturned, not yet reminded, window ending within lead"""


# ===== Django ORM =====

def _amount(money: Money | None) -> Decimal | None:
    return money.amount if money is not None else None


def _money(amount: Decimal | None, currency: str) -> Money | None:
    return Money(amount, currency) if amount is not None else None


def _point(lat, lng, address: str = '') -> GeoPoint | None:
    if lat is None or lng is None:
        return None
    return GeoPoint(lat, lng, address)


def booking_to_fields(booking: Booking) -> dict:
    delivery = booking.delivery_location
    original = booking.original_location
    return {
        'customer_id': booking.customer_id,
        'owner_id': booking.owner_id,
        'tractor_id': booking.tractor_id,
        'start_at': booking.window.start_at,
        'end_at': booking.window.end_at,
        'hourly_rate': booking.hourly_rate.amount,
        'currency': booking.hourly_rate.currency,
        'booked_minutes': booking.booked_minutes,
        'initial_price': booking.initial_price.amount,
        'payment_method': booking.payment_method.value,
        'status': booking.status.value,
        'payment_status': booking.payment_status.value,
        'approval_status': booking.approval_status.value,
        'delivery_status': booking.delivery_status.value,
        'actual_usage_start_at': booking.actual_usage_start_at,
        'actual_usage_stop_at': booking.actual_usage_stop_at,
        'actual_usage_minutes': booking.actual_usage_minutes,
        'final_price': _amount(booking.final_price),
        'refund_amount': _amount(booking.refund_amount),
        'overage_amount': _amount(booking.overage_amount),
        'commission_amount': _amount(booking.commission_amount),
        'owner_amount': _amount(booking.owner_amount),
        'refund_fee': _amount(booking.refund_fee),
        'payment_released': booking.payment_released,
        'released_at': booking.released_at,
        'delivery_address': booking.delivery_address,
        'delivery_lat': delivery.lat if delivery else None,
        'delivery_lng': delivery.lng if delivery else None,
        'original_lat': original.lat if original else None,
        'original_lng': original.lng if original else None,
        'cancellation_reason': booking.cancellation_reason,
        'payment_status_at_cancellation': (
            booking.payment_status_at_cancellation.value
            if booking.payment_status_at_cancellation else ''
        ),
        'status_before_refund_request': (
            booking.status_before_refund_request.value
            if booking.status_before_refund_request else ''
        ),
        'paid_at': booking.paid_at,
        'approved_at': booking.approved_at,
        'delivered_at': booking.delivered_at,
        'returned_at': booking.returned_at,
        'completed_at': booking.completed_at,
        'cancelled_at': booking.cancelled_at,
        'retrieval_reminder_sent': booking.retrieval_reminder_sent,
        'created_at': booking.created_at,
        'updated_at': booking.updated_at,
    }


def row_to_booking(row: RentalBooking) -> Booking:
    currency = row.currency
    return Booking(
        id=row.id,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
        customer_id=row.customer_id,
        owner_id=row.owner_id,
        tractor_id=row.tractor_id,
        window=TimeWindow(row.start_at, row.end_at),
        hourly_rate=Money(row.hourly_rate, currency),
        booked_minutes=row.booked_minutes,
        initial_price=Money(row.initial_price, currency),
        payment_method=PaymentMethod(row.payment_method),
        status=BookingStatus(row.status),
        payment_status=PaymentStatus(row.payment_status),
        approval_status=ApprovalStatus(row.approval_status),
        delivery_status=DeliveryStatus(row.delivery_status),
        actual_usage_start_at=row.actual_usage_start_at,
        actual_usage_stop_at=row.actual_usage_stop_at,
        actual_usage_minutes=row.actual_usage_minutes,
        final_price=_money(row.final_price, currency),
        refund_amount=_money(row.refund_amount, currency),
        overage_amount=_money(row.overage_amount, currency),
        commission_amount=_money(row.commission_amount, currency),
        owner_amount=_money(row.owner_amount, currency),
        refund_fee=_money(row.refund_fee, currency),
        payment_released=row.payment_released,
        released_at=row.released_at,
        delivery_address=row.delivery_address,
        delivery_location=_point(row.delivery_lat, row.delivery_lng, row.delivery_address),
        original_location=_point(row.original_lat, row.original_lng),
        cancellation_reason=row.cancellation_reason,
        payment_status_at_cancellation=(
            PaymentStatus(row.payment_status_at_cancellation)
            if row.payment_status_at_cancellation else None
        ),
        status_before_refund_request=(
            BookingStatus(row.status_before_refund_request)
            if row.status_before_refund_request else None
        ),
        paid_at=row.paid_at,
        approved_at=row.approved_at,
        delivered_at=row.delivered_at,
        returned_at=row.returned_at,
        completed_at=row.completed_at,
        cancelled_at=row.cancelled_at,
        retrieval_reminder_sent=row.retrieval_reminder_sent,
    )


class DjangoBookingRepository(AbstractBookingRepository):
    """
    ORM-backed repository

    get_by_id(lock=True) must run inside transaction.atomic (the unit of
    work opens it); the row stays locked until the transaction ends.
    """

    def add(self, booking: Booking):
        RentalBooking.objects.create(id=booking.id, version=booking.version, **booking_to_fields(booking))
        logger.debug(f"Inserted booking {booking.id}")

    def get_by_id(self, booking_id: UUID, lock: bool = False) -> Booking | None:
        queryset = RentalBooking.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        row = queryset.filter(id=booking_id).first()
        return row_to_booking(row) if row else None

    def save(self, booking: Booking):
        updated = RentalBooking.objects.filter(id=booking.id, version=booking.version).update(
            version=booking.version + 1,
            **booking_to_fields(booking),
        )
        if not updated:
            raise ConcurrentModification(
                f"Booking {booking.id} was modified concurrently (expected version {booking.version})",
                booking_id=booking.id,
            )
        booking.version += 1

    def _to_list(self, queryset) -> List[Booking]:
        return [row_to_booking(row) for row in queryset]

    def list_for_user(self, user_id: int | None = None) -> List[Booking]:
        queryset = RentalBooking.objects.all()
        if user_id is not None:
            queryset = queryset.filter(Q(customer_id=user_id) | Q(owner_id=user_id))
        return self._to_list(queryset)

    def list_completed(self, owner_id: int | None = None) -> List[Booking]:
        queryset = RentalBooking.objects.filter(status=RentalBooking.Status.COMPLETED)
        if owner_id is not None:
            queryset = queryset.filter(owner_id=owner_id)
        return self._to_list(queryset)

    def ids_due_for_retrieval_reminder(self, now: datetime, lead: timedelta) -> List[UUID]:
        return list(
            RentalBooking.objects.filter(
                status=RentalBooking.Status.DELIVERED,
                delivery_status=RentalBooking.DeliveryStatus.DELIVERED,
                retrieval_reminder_sent=False,
                end_at__gt=now,
                end_at__lte=now + lead,
            ).values_list('id', flat=True)
        )


# ===== In memory =====

class InMemoryBookingRepository(AbstractBookingRepository):
    """
    Dictionary-backed repository for tests and tooling

    Stores and hands out copies, so a booking mutated by a failed
    operation never reaches the store.
    """

    def __init__(self, bookings: Iterable[Booking] = ()):
        self._guard = Lock()
        self._bookings: Dict[UUID, Booking] = {}
        for booking in bookings:
            self.add(booking)

    def _copy(self, booking: Booking) -> Booking:
        copied = deepcopy(booking)
        copied.clear_events()
        return copied

    def add(self, booking: Booking):
        with self._guard:
            self._bookings[booking.id] = self._copy(booking)

    def get_by_id(self, booking_id: UUID, lock: bool = False) -> Booking | None:
        with self._guard:
            booking = self._bookings.get(booking_id)
            return self._copy(booking) if booking else None

    def save(self, booking: Booking):
        with self._guard:
            stored = self._bookings.get(booking.id)
            if stored is None or stored.version != booking.version:
                raise ConcurrentModification(
                    f"Booking {booking.id} was modified concurrently (expected version {booking.version})",
                    booking_id=booking.id,
                )
            booking.version += 1
            self._bookings[booking.id] = self._copy(booking)

    def _all(self) -> List[Booking]:
        with self._guard:
            return [self._copy(b) for b in self._bookings.values()]

    def list_for_user(self, user_id: int | None = None) -> List[Booking]:
        return [
            b for b in self._all()
            if user_id is None or user_id in (b.customer_id, b.owner_id)
        ]

    def list_completed(self, owner_id: int | None = None) -> List[Booking]:
        return [
            b for b in self._all()
            if b.status is BookingStatus.COMPLETED and (owner_id is None or b.owner_id == owner_id)
        ]

    def ids_due_for_retrieval_reminder(self, now: datetime, lead: timedelta) -> List[UUID]:
        return [
            b.id for b in self._all()
            if b.status is BookingStatus.DELIVERED
            and b.delivery_status is DeliveryStatus.DELIVERED
            and not b.retrieval_reminder_sent
            and b.window.ends_within(now, lead)
        ]

    def __len__(self) -> int:
        return len(self._bookings)

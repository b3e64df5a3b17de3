"""
Rental Domain Events

Published after the transaction that produced them commits.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from shared.domain.base import DomainEvent
from shared.domain.value_objects import Money


# ===== Booking lifecycle =====

@dataclass(kw_only=True)
class BookingReserved(DomainEvent):
    """
    Event: A reservation collaborator created a booking (PENDING)

    Triggers:
    - Owner approval queue
    """
    booking_id: UUID
    customer_id: int
    owner_id: int
    initial_price: Money


@dataclass(kw_only=True)
class BookingApproved(DomainEvent):
    booking_id: UUID
    approved_by: int | None


@dataclass(kw_only=True)
class BookingDenied(DomainEvent):
    booking_id: UUID
    reason: str


@dataclass(kw_only=True)
class PaymentConfirmed(DomainEvent):
    """
    Event: Payment collaborator confirmed the payment

    status_changed is False for deferred-payment bookings paid after delivery.
    """
    booking_id: UUID
    amount: Money
    status_changed: bool


@dataclass(kw_only=True)
class BookingCancelled(DomainEvent):
    """
    Event: Booking cancelled

    Triggers:
    - Refund workflow when refund_required (payment was already taken)
    """
    booking_id: UUID
    reason: str
    previous_status: str
    payment_status_at_cancellation: str
    refund_required: bool


@dataclass(kw_only=True)
class RefundRequested(DomainEvent):
    booking_id: UUID
    previous_status: str


@dataclass(kw_only=True)
class RefundApproved(DomainEvent):
    booking_id: UUID
    refund_amount: Money
    fee: Money


@dataclass(kw_only=True)
class RefundRejected(DomainEvent):
    booking_id: UUID
    restored_status: str


# ===== Delivery =====

@dataclass(kw_only=True)
class DeliveryStatusChanged(DomainEvent):
    booking_id: UUID
    previous_status: str
    new_status: str
    overridden: bool = False


@dataclass(kw_only=True)
class RetrievalReminderDue(DomainEvent):
    """
    Event: Tractor must be picked up soon

    Triggers:
    - Owner/admin reminder through the notification collaborator
    """
    booking_id: UUID
    owner_id: int
    ends_at: datetime


# ===== Usage & settlement =====

@dataclass(kw_only=True)
class UsageStarted(DomainEvent):
    booking_id: UUID
    started_at: datetime


@dataclass(kw_only=True)
class BookingSettled(DomainEvent):
    """
    Event: Final charge known, booking COMPLETED

    actual_usage_minutes is None when the booking closed without metering.
    """
    booking_id: UUID
    actual_usage_minutes: int | None
    settled_amount: Money
    refund_amount: Money
    commission_amount: Money
    owner_amount: Money


@dataclass(kw_only=True)
class PayoutReleased(DomainEvent):
    booking_id: UUID
    owner_id: int
    commission_amount: Money
    owner_amount: Money

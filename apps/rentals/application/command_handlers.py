"""
Rental Command Handlers

These are the use cases of the booking lifecycle. Each one loads a single
booking, applies one domain operation and saves it inside a unit of work.

Commands:
- ReserveBookingCommand: Reservation collaborator creates a PENDING booking
- ConfirmPaymentCommand: Payment collaborator confirms payment
- ApproveBookingCommand / DenyBookingCommand: Owner/admin decision
- CancelBookingCommand: Customer cancellation
- RequestRefundCommand / ApproveRefundCommand / RejectRefundCommand
- AdvanceDeliveryCommand: Owner reports delivery progress
- OverrideDeliveryCommand: Admin corrects delivery status
- StartUsageCommand / StopUsageCommand: Customer usage meter
- CompleteUnmeteredCommand: Owner closes a returned, never-metered booking
- ReleasePaymentCommand: Admin releases the owner payout
- FlagRetrievalReminderCommand: Periodic task marks a pickup reminder as due

Strategy (per booking):
1. Hold the in-process lock for the booking id
2. Start the unit of work (transaction.atomic for Django)
3. Load the booking with SELECT FOR UPDATE
4. Apply the domain operation (raises on any violated rule)
5. Collect events, save with a version compare-and-set
6. Commit, then publish events
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable
from uuid import UUID
import logging

from shared.application.locks import KeyedLock, booking_locks
from shared.application.uow import AbstractUnitOfWork, DjangoUnitOfWork
from shared.domain.base import utcnow
from shared.domain.value_objects import GeoPoint, Money, TimeWindow

from apps.rentals.domain.billing import BillingEngine
from apps.rentals.domain.delivery import DeliveryTracker
from apps.rentals.domain.entities import (
    Booking,
    DeliveryStatus,
    PaymentMethod,
    reserve_booking,
)
from apps.rentals.domain.exceptions import BookingNotFound, ValidationError
from apps.rentals.domain.policy import DEFAULT_POLICY, RentalPolicy
from apps.rentals.domain.release import PaymentReleaseGate, ReleaseResult
from apps.rentals.domain.usage import UsageMeter

logger = logging.getLogger(__name__)


# ===== Commands =====

@dataclass
class ReserveBookingCommand:
    """
    Command to create a booking

    Sent by the reservation collaborator once the customer picked a tractor
    and a window. The initial price is fixed here.
    """
    customer_id: int
    owner_id: int
    tractor_id: str
    start_at: datetime
    end_at: datetime
    hourly_rate: Decimal
    payment_method: str = PaymentMethod.ONLINE.value
    delivery_address: str = ''
    delivery_lat: float | None = None
    delivery_lng: float | None = None
    base_lat: float | None = None
    base_lng: float | None = None
    booking_id: UUID | None = None


@dataclass
class ConfirmPaymentCommand:
    booking_id: UUID


@dataclass
class ApproveBookingCommand:
    booking_id: UUID
    approved_by: int | None = None


@dataclass
class DenyBookingCommand:
    booking_id: UUID
    reason: str = ''


@dataclass
class CancelBookingCommand:
    """Customer cancellation; a paid booking is flagged for the refund workflow"""
    booking_id: UUID
    reason: str = ''


@dataclass
class RequestRefundCommand:
    booking_id: UUID


@dataclass
class ApproveRefundCommand:
    booking_id: UUID


@dataclass
class RejectRefundCommand:
    booking_id: UUID


@dataclass
class AdvanceDeliveryCommand:
    """Owner reports the next delivery step; optional tractor position"""
    booking_id: UUID
    next_status: str
    tractor_lat: float | None = None
    tractor_lng: float | None = None


@dataclass
class OverrideDeliveryCommand:
    booking_id: UUID
    status: str


@dataclass
class StartUsageCommand:
    booking_id: UUID


@dataclass
class StopUsageCommand:
    booking_id: UUID


@dataclass
class CompleteUnmeteredCommand:
    booking_id: UUID


@dataclass
class ReleasePaymentCommand:
    booking_id: UUID
    released_by: int | None = None


@dataclass
class FlagRetrievalReminderCommand:
    booking_id: UUID


# ===== Input parsing =====

def parse_delivery_status(value) -> DeliveryStatus:
    if isinstance(value, DeliveryStatus):
        return value
    try:
        return DeliveryStatus(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown delivery status: {value}")


def parse_payment_method(value) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown payment method: {value}")


def parse_point(lat, lng, address: str = '') -> GeoPoint | None:
    """Both coordinates or neither"""
    if lat is None and lng is None:
        return None
    if lat is None or lng is None:
        raise ValidationError("Both latitude and longitude are required")
    try:
        return GeoPoint(float(lat), float(lng), address)
    except (TypeError, ValueError) as e:
        raise ValidationError(str(e))


def parse_hourly_rate(value, currency: str) -> Money:
    try:
        return Money(Decimal(str(value)), currency)
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid hourly rate {value}: {e}")


def parse_window(start_at: datetime, end_at: datetime) -> TimeWindow:
    try:
        return TimeWindow(start_at, end_at)
    except (TypeError, ValueError) as e:
        raise ValidationError(str(e))


# ===== Command Handlers =====

class BookingCommandHandler:
    """
    Base for handlers that mutate one existing booking

    uow_factory builds a fresh unit of work per call (DjangoUnitOfWork in
    production, InMemoryUnitOfWork with the in-memory repository).
    """

    def __init__(
        self,
        booking_repo,
        policy: RentalPolicy = DEFAULT_POLICY,
        uow_factory: Callable[[], AbstractUnitOfWork] = DjangoUnitOfWork,
        clock: Callable[[], datetime] = utcnow,
        locks: KeyedLock = booking_locks,
    ):
        self.booking_repo = booking_repo
        self.policy = policy
        self.uow_factory = uow_factory
        self.clock = clock
        self.locks = locks
        self.billing = BillingEngine(policy)

    def _apply(self, booking_id: UUID, operation: Callable[[Booking, datetime], object]):
        """Run operation on the locked booking; returns (booking, operation result)"""
        with self.locks.hold(booking_id):
            with self.uow_factory() as uow:
                booking = self.booking_repo.get_by_id(booking_id, lock=True)
                if booking is None:
                    raise BookingNotFound(f"Booking {booking_id} not found", booking_id=booking_id)

                result = operation(booking, self.clock())

                uow.collect_events(booking)
                self.booking_repo.save(booking)
        return booking, result


class ReserveBookingHandler(BookingCommandHandler):

    def handle(self, command: ReserveBookingCommand) -> Booking:
        logger.info(
            f"Reserving tractor {command.tractor_id} for customer {command.customer_id}, "
            f"{command.start_at} - {command.end_at}"
        )
        window = parse_window(command.start_at, command.end_at)
        hourly_rate = parse_hourly_rate(command.hourly_rate, self.policy.currency)
        payment_method = parse_payment_method(command.payment_method)
        delivery_location = parse_point(
            command.delivery_lat, command.delivery_lng, command.delivery_address
        )
        original_location = parse_point(command.base_lat, command.base_lng)

        with self.uow_factory() as uow:
            booking = reserve_booking(
                booking_id=command.booking_id,
                customer_id=command.customer_id,
                owner_id=command.owner_id,
                tractor_id=command.tractor_id,
                window=window,
                hourly_rate=hourly_rate,
                billing=self.billing,
                payment_method=payment_method,
                delivery_address=command.delivery_address,
                delivery_location=delivery_location,
                original_location=original_location,
                now=self.clock(),
            )
            uow.collect_events(booking)
            self.booking_repo.add(booking)

        logger.info(
            f"Booking {booking.id} reserved: {booking.booked_minutes} min, "
            f"initial price {booking.initial_price}"
        )
        return booking


class ConfirmPaymentHandler(BookingCommandHandler):

    def handle(self, command: ConfirmPaymentCommand) -> Booking:
        logger.info(f"Confirming payment for booking {command.booking_id}")
        booking, _ = self._apply(
            command.booking_id, lambda booking, now: booking.confirm_payment(now)
        )
        logger.info(f"Payment confirmed for booking {booking.id}")
        return booking


class ApproveBookingHandler(BookingCommandHandler):

    def handle(self, command: ApproveBookingCommand) -> Booking:
        logger.info(f"Approving booking {command.booking_id}")
        tracker = DeliveryTracker(self.policy)

        def approve(booking: Booking, now: datetime):
            booking.approve(now, command.approved_by)
            return tracker.order_approved_cash_booking(booking, now)

        booking, ordered = self._apply(command.booking_id, approve)
        if ordered:
            logger.info(f"Delivery ordered for cash-on-delivery booking {booking.id}")
        return booking


class DenyBookingHandler(BookingCommandHandler):

    def handle(self, command: DenyBookingCommand) -> Booking:
        logger.info(f"Denying booking {command.booking_id}, reason: {command.reason}")
        booking, _ = self._apply(
            command.booking_id, lambda booking, now: booking.deny(now, command.reason)
        )
        return booking


class CancelBookingHandler(BookingCommandHandler):

    def handle(self, command: CancelBookingCommand) -> Booking:
        logger.info(f"Cancelling booking {command.booking_id}, reason: {command.reason}")
        booking, refund_required = self._apply(
            command.booking_id,
            lambda booking, now: booking.request_cancellation(
                now, command.reason, self.policy.cash_cancellation_window,
            ),
        )
        if refund_required:
            logger.info(f"Booking {booking.id} cancelled after payment; refund workflow required")
        else:
            logger.info(f"Booking {booking.id} cancelled")
        return booking


class RequestRefundHandler(BookingCommandHandler):

    def handle(self, command: RequestRefundCommand) -> Booking:
        logger.info(f"Refund requested for booking {command.booking_id}")
        booking, _ = self._apply(
            command.booking_id, lambda booking, now: booking.request_refund(now)
        )
        return booking


class ApproveRefundHandler(BookingCommandHandler):

    def handle(self, command: ApproveRefundCommand) -> Booking:
        logger.info(f"Approving refund for booking {command.booking_id}")

        def approve(booking: Booking, now: datetime):
            refund, fee = self.billing.refund_after_fee(booking.settled_amount)
            booking.approve_refund(now, refund, fee)

        booking, _ = self._apply(command.booking_id, approve)
        logger.info(f"Refund approved for booking {booking.id}: {booking.refund_amount}")
        return booking


class RejectRefundHandler(BookingCommandHandler):

    def handle(self, command: RejectRefundCommand) -> Booking:
        logger.info(f"Rejecting refund for booking {command.booking_id}")
        booking, _ = self._apply(
            command.booking_id, lambda booking, now: booking.reject_refund(now)
        )
        return booking


class AdvanceDeliveryHandler(BookingCommandHandler):

    def handle(self, command: AdvanceDeliveryCommand) -> Booking:
        next_status = parse_delivery_status(command.next_status)
        tractor_location = parse_point(command.tractor_lat, command.tractor_lng)
        logger.info(f"Advancing delivery of booking {command.booking_id} to {next_status.value}")

        tracker = DeliveryTracker(self.policy)
        booking, _ = self._apply(
            command.booking_id,
            lambda booking, now: tracker.advance(booking, next_status, now, tractor_location),
        )
        return booking


class OverrideDeliveryHandler(BookingCommandHandler):

    def handle(self, command: OverrideDeliveryCommand) -> Booking:
        status = parse_delivery_status(command.status)
        tracker = DeliveryTracker(self.policy)
        booking, _ = self._apply(
            command.booking_id,
            lambda booking, now: tracker.override(booking, status, now),
        )
        return booking


class StartUsageHandler(BookingCommandHandler):

    def handle(self, command: StartUsageCommand) -> Booking:
        logger.info(f"Starting usage for booking {command.booking_id}")
        meter = UsageMeter(self.billing)
        booking, _ = self._apply(command.booking_id, meter.start)
        return booking


class StopUsageHandler(BookingCommandHandler):

    def handle(self, command: StopUsageCommand) -> Booking:
        logger.info(f"Stopping usage for booking {command.booking_id}")
        meter = UsageMeter(self.billing)
        booking, _ = self._apply(command.booking_id, meter.stop)
        logger.info(
            f"Booking {booking.id} settled at {booking.settled_amount}, "
            f"refund {booking.refund_amount}"
        )
        return booking


class CompleteUnmeteredHandler(BookingCommandHandler):

    def handle(self, command: CompleteUnmeteredCommand) -> Booking:
        logger.info(f"Completing unmetered booking {command.booking_id}")
        meter = UsageMeter(self.billing)
        booking, _ = self._apply(command.booking_id, meter.complete_unmetered)
        return booking


class ReleasePaymentHandler(BookingCommandHandler):
    """
    Admin payout release

    Runs under the per-booking lock and row lock, and the gate refuses a
    second release, so a retried call gets AlreadyReleased.
    """

    def handle(self, command: ReleasePaymentCommand) -> ReleaseResult:
        logger.info(f"Releasing payout for booking {command.booking_id} (by {command.released_by})")
        gate = PaymentReleaseGate(self.billing)
        _, result = self._apply(command.booking_id, gate.release)
        return result


class FlagRetrievalReminderHandler(BookingCommandHandler):

    def handle(self, command: FlagRetrievalReminderCommand) -> bool:
        tracker = DeliveryTracker(self.policy)
        _, flagged = self._apply(command.booking_id, tracker.flag_retrieval_reminder)
        if flagged:
            logger.info(f"Retrieval reminder due for booking {command.booking_id}")
        return flagged

"""
Rental Booking Aggregate

Core business entity of the tractor-rental marketplace:
- Booking: aggregate root tying reservation, payment, delivery, usage
  metering and settlement together
- BookingStatus: booking-level finite state machine
- DeliveryStatus, PaymentStatus, PaymentMethod, ApprovalStatus
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID

from shared.domain.base import Aggregate
from shared.domain.value_objects import GeoPoint, Money, TimeWindow

from apps.rentals.domain import events
from apps.rentals.domain.exceptions import InvalidTransition, ValidationError
from apps.rentals.domain.policy import DEFAULT_POLICY


class BookingStatus(Enum):
    """
    Booking Status Finite State Machine

    State transitions:
    - PENDING -> PAID (payment collaborator confirmed payment)
    - PENDING | PAID -> CANCELLED (customer cancellation)
    - PAID -> DELIVERED (delivery reached DELIVERED)
    - PENDING -> DELIVERED (approved cash-on-delivery booking delivered)
    - DELIVERED -> COMPLETED (usage stopped, or returned without metering)
    - PENDING | PAID | DELIVERED -> REFUND_REQUESTED (customer)
    - REFUND_REQUESTED -> CANCELLED (admin approved refund)
    - REFUND_REQUESTED -> previous status (admin rejected refund)
    """
    PENDING = 'PENDING'
    PAID = 'PAID'
    DELIVERED = 'DELIVERED'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    REFUND_REQUESTED = 'REFUND_REQUESTED'

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStatus.COMPLETED, BookingStatus.CANCELLED)


class DeliveryStatus(Enum):
    """Owner-reported position of the tractor, strictly forward"""
    NONE = 'NONE'
    ORDERED = 'ORDERED'
    DELIVERING = 'DELIVERING'
    DELIVERED = 'DELIVERED'
    RETURNED = 'RETURNED'

    @property
    def next(self) -> 'DeliveryStatus | None':
        order = list(DeliveryStatus)
        index = order.index(self)
        return order[index + 1] if index + 1 < len(order) else None


class PaymentStatus(Enum):
    PENDING = 'PENDING'
    PAID = 'PAID'
    REFUNDED = 'REFUNDED'


class PaymentMethod(Enum):
    ONLINE = 'ONLINE'
    CASH_ON_DELIVERY = 'CASH_ON_DELIVERY'

    @property
    def is_deferred(self) -> bool:
        return self is PaymentMethod.CASH_ON_DELIVERY


class ApprovalStatus(Enum):
    PENDING_APPROVAL = 'PENDING_APPROVAL'
    APPROVED = 'APPROVED'
    DENIED = 'DENIED'


@dataclass(kw_only=True, eq=False)
class Booking(Aggregate):
    """
    Booking Aggregate Root

    Key invariants:
    - usage stop recorded => usage start recorded and stop > start
    - final price recorded => usage stop recorded
    - commission + owner amount == settled amount
    - payment released => COMPLETED
    - delivery status only moves forward (administrative override aside)
    - CANCELLED accepts no further delivery or usage transitions
    """

    # References
    customer_id: int
    owner_id: int
    tractor_id: str

    # Reservation
    window: TimeWindow
    hourly_rate: Money
    booked_minutes: int
    initial_price: Money
    payment_method: PaymentMethod = PaymentMethod.ONLINE

    # Status tracking
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    approval_status: ApprovalStatus = ApprovalStatus.PENDING_APPROVAL
    delivery_status: DeliveryStatus = DeliveryStatus.NONE

    # Usage metering
    actual_usage_start_at: datetime | None = None
    actual_usage_stop_at: datetime | None = None
    actual_usage_minutes: int | None = None

    # Settlement
    final_price: Money | None = None
    refund_amount: Money | None = None
    overage_amount: Money | None = None
    commission_amount: Money | None = None
    owner_amount: Money | None = None
    payment_released: bool = False
    released_at: datetime | None = None

    # Locations
    delivery_address: str = ''
    delivery_location: GeoPoint | None = None
    original_location: GeoPoint | None = None

    # Cancellation / refund
    cancellation_reason: str = ''
    payment_status_at_cancellation: PaymentStatus | None = None
    status_before_refund_request: BookingStatus | None = None
    refund_fee: Money | None = None

    # Timestamps
    paid_at: datetime | None = None
    approved_at: datetime | None = None
    delivered_at: datetime | None = None
    returned_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    retrieval_reminder_sent: bool = False

    # ----- derived -----

    @property
    def settled_amount(self) -> Money:
        return self.final_price if self.final_price is not None else self.initial_price

    @property
    def is_deferred_payment(self) -> bool:
        return self.payment_method.is_deferred

    @property
    def is_approved(self) -> bool:
        return self.approval_status is ApprovalStatus.APPROVED

    @property
    def usage_started(self) -> bool:
        return self.actual_usage_start_at is not None

    @property
    def is_usage_running(self) -> bool:
        return self.actual_usage_start_at is not None and self.actual_usage_stop_at is None

    # ----- booking state machine -----

    def _reject(self, action: str, detail: str = '') -> InvalidTransition:
        message = f"Cannot {action} booking {self.id} in status {self.status.value}"
        if detail:
            message = f"{message}: {detail}"
        return InvalidTransition(message, booking_id=self.id)

    def _require_status(self, action: str, *allowed: BookingStatus):
        if self.status not in allowed:
            raise self._reject(action)

    def _touch(self, now: datetime):
        self.updated_at = now

    def confirm_payment(self, now: datetime):
        """
        Record a successful payment

        PENDING -> PAID. Cash collected from a delivered cash-on-delivery
        booking keeps its status and only records the payment; completion
        records it otherwise.
        """
        if self.payment_status is not PaymentStatus.PENDING:
            raise self._reject('confirm payment for', f"payment is {self.payment_status.value}")
        settled_later = self.is_deferred_payment and self.status is BookingStatus.DELIVERED
        if not settled_later:
            self._require_status('confirm payment for', BookingStatus.PENDING)

        self.payment_status = PaymentStatus.PAID
        self.paid_at = now
        if not settled_later:
            self.status = BookingStatus.PAID
        self._touch(now)

        self.add_event(events.PaymentConfirmed(
            aggregate_id=self.id,
            booking_id=self.id,
            amount=self.settled_amount,
            status_changed=not settled_later,
        ))

    def approve(self, now: datetime, approved_by: int | None = None):
        """Owner/admin accepts the reservation (required before deferred-payment delivery)"""
        if self.approval_status is not ApprovalStatus.PENDING_APPROVAL:
            raise self._reject('approve', f"approval is {self.approval_status.value}")
        if self.status.is_terminal or self.status is BookingStatus.REFUND_REQUESTED:
            raise self._reject('approve')

        self.approval_status = ApprovalStatus.APPROVED
        self.approved_at = now
        self._touch(now)
        self.add_event(events.BookingApproved(
            aggregate_id=self.id, booking_id=self.id, approved_by=approved_by,
        ))

    def deny(self, now: datetime, reason: str = ''):
        """Owner/admin turns the reservation down; only unpaid PENDING bookings"""
        if self.approval_status is not ApprovalStatus.PENDING_APPROVAL:
            raise self._reject('deny', f"approval is {self.approval_status.value}")
        self._require_status('deny', BookingStatus.PENDING)

        self.approval_status = ApprovalStatus.DENIED
        self.status = BookingStatus.CANCELLED
        self.cancellation_reason = reason or 'Denied by owner'
        self.payment_status_at_cancellation = self.payment_status
        self.cancelled_at = now
        self._touch(now)
        self.add_event(events.BookingDenied(
            aggregate_id=self.id, booking_id=self.id, reason=self.cancellation_reason,
        ))

    def request_cancellation(
        self,
        now: datetime,
        reason: str = '',
        cash_cancellation_window: timedelta = DEFAULT_POLICY.cash_cancellation_window,
    ) -> bool:
        """
        Customer cancellation (PENDING | PAID -> CANCELLED)

        Unpaid bookings are cancelled for free. For paid bookings the prior
        payment state is recorded so the external refund collaborator can act.
        Cash-on-delivery bookings can only be cancelled before approval and
        within cash_cancellation_window of being reserved.
        Returns True when a refund workflow is required.
        """
        self._require_status('cancel', BookingStatus.PENDING, BookingStatus.PAID)
        if self.is_deferred_payment and self.is_approved:
            raise self._reject(
                'cancel', 'approved cash-on-delivery bookings cannot be cancelled by the customer'
            )
        if self.is_deferred_payment and now - self.created_at > cash_cancellation_window:
            raise self._reject(
                'cancel',
                f"cash-on-delivery bookings can only be cancelled within "
                f"{int(cash_cancellation_window.total_seconds() // 60)} minutes of reservation",
            )

        previous_status = self.status
        refund_required = self.payment_status is PaymentStatus.PAID

        self.status = BookingStatus.CANCELLED
        self.payment_status_at_cancellation = self.payment_status
        self.cancellation_reason = reason
        self.cancelled_at = now
        self._touch(now)

        self.add_event(events.BookingCancelled(
            aggregate_id=self.id,
            booking_id=self.id,
            reason=reason,
            previous_status=previous_status.value,
            payment_status_at_cancellation=self.payment_status.value,
            refund_required=refund_required,
        ))
        return refund_required

    def request_refund(self, now: datetime):
        """Customer asks for money back; an admin decides later"""
        self._require_status(
            'request refund for',
            BookingStatus.PENDING, BookingStatus.PAID, BookingStatus.DELIVERED,
        )
        if self.is_usage_running:
            raise self._reject('request refund for', 'usage meter is running')

        previous_status = self.status
        self.status_before_refund_request = previous_status
        self.status = BookingStatus.REFUND_REQUESTED
        self._touch(now)
        self.add_event(events.RefundRequested(
            aggregate_id=self.id, booking_id=self.id, previous_status=previous_status.value,
        ))

    def approve_refund(self, now: datetime, refund: Money, fee: Money):
        """REFUND_REQUESTED -> CANCELLED; paid bookings become REFUNDED"""
        self._require_status('approve refund for', BookingStatus.REFUND_REQUESTED)

        was_paid = self.payment_status is PaymentStatus.PAID
        self.payment_status_at_cancellation = self.payment_status
        self.status = BookingStatus.CANCELLED
        self.cancellation_reason = self.cancellation_reason or 'Refund approved'
        self.cancelled_at = now
        if was_paid:
            self.payment_status = PaymentStatus.REFUNDED
            self.refund_amount = refund
            self.refund_fee = fee
        else:
            refund = Money.zero(refund.currency)
            fee = Money.zero(fee.currency)
        self.status_before_refund_request = None
        self._touch(now)
        self.add_event(events.RefundApproved(
            aggregate_id=self.id, booking_id=self.id, refund_amount=refund, fee=fee,
        ))

    def reject_refund(self, now: datetime):
        """REFUND_REQUESTED -> the status held before the request"""
        self._require_status('reject refund for', BookingStatus.REFUND_REQUESTED)

        restored = self.status_before_refund_request or BookingStatus.PAID
        self.status = restored
        self.status_before_refund_request = None
        self._touch(now)
        self.add_event(events.RefundRejected(
            aggregate_id=self.id, booking_id=self.id, restored_status=restored.value,
        ))

    def mark_delivered(self, now: datetime):
        """Side effect of delivery reaching DELIVERED"""
        if self.status is BookingStatus.DELIVERED:
            return
        deferred_ready = (
            self.status is BookingStatus.PENDING
            and self.is_deferred_payment
            and self.is_approved
        )
        if self.status is not BookingStatus.PAID and not deferred_ready:
            raise self._reject('mark delivered')
        self.status = BookingStatus.DELIVERED
        self.delivered_at = now
        self._touch(now)

    def complete(self, now: datetime, settlement):
        """
        DELIVERED -> COMPLETED with every settlement field written together

        Cash on delivery is collected by the time the tractor is handed back,
        so an unpaid cash booking is recorded as PAID here.
        """
        self._require_status('complete', BookingStatus.DELIVERED)

        if self.is_deferred_payment and self.payment_status is PaymentStatus.PENDING:
            self.payment_status = PaymentStatus.PAID
            self.paid_at = now
            self.add_event(events.PaymentConfirmed(
                aggregate_id=self.id,
                booking_id=self.id,
                amount=settlement.settled_amount,
                status_changed=False,
            ))

        self.final_price = settlement.final_price
        self.refund_amount = settlement.refund_amount
        self.overage_amount = settlement.overage_amount
        self.commission_amount = settlement.commission_amount
        self.owner_amount = settlement.owner_amount
        self.status = BookingStatus.COMPLETED
        self.completed_at = now
        self._touch(now)

        self.add_event(events.BookingSettled(
            aggregate_id=self.id,
            booking_id=self.id,
            actual_usage_minutes=self.actual_usage_minutes,
            settled_amount=settlement.settled_amount,
            refund_amount=settlement.refund_amount,
            commission_amount=settlement.commission_amount,
            owner_amount=settlement.owner_amount,
        ))

    def __str__(self):
        return f"Booking {self.id} ({self.status.value}/{self.delivery_status.value})"


def reserve_booking(
    *,
    booking_id: UUID | None = None,
    customer_id: int,
    owner_id: int,
    tractor_id: str,
    window: TimeWindow,
    hourly_rate: Money,
    billing,
    payment_method: PaymentMethod = PaymentMethod.ONLINE,
    delivery_address: str = '',
    delivery_location: GeoPoint | None = None,
    original_location: GeoPoint | None = None,
    now: datetime,
) -> Booking:
    """
    Build a PENDING booking with its initial price fixed

    The provisional commission split is taken on the initial price so the
    commission invariant holds from the start.
    """
    if hourly_rate.currency != billing.policy.currency:
        raise ValidationError(
            f"Hourly rate must be in {billing.policy.currency}, got {hourly_rate.currency}"
        )

    booked_minutes = billing.booked_minutes(window)
    initial_price = billing.initial_price(booked_minutes, hourly_rate)
    split = billing.split_commission(initial_price)

    extra = {'id': booking_id} if booking_id else {}
    booking = Booking(
        **extra,
        created_at=now,
        updated_at=now,
        customer_id=customer_id,
        owner_id=owner_id,
        tractor_id=tractor_id,
        window=window,
        hourly_rate=hourly_rate,
        booked_minutes=booked_minutes,
        initial_price=initial_price,
        payment_method=payment_method,
        commission_amount=split.commission_amount,
        owner_amount=split.owner_amount,
        delivery_address=delivery_address,
        delivery_location=delivery_location,
        original_location=original_location,
    )
    booking.add_event(events.BookingReserved(
        aggregate_id=booking.id,
        booking_id=booking.id,
        customer_id=customer_id,
        owner_id=owner_id,
        initial_price=initial_price,
    ))
    return booking

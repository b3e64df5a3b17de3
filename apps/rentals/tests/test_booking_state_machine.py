"""Booking-level transitions: payment, approval, cancellation and refunds."""

from datetime import timedelta
from decimal import Decimal

import pytest

from shared.domain.value_objects import Money

from apps.rentals.domain import events
from apps.rentals.domain.entities import (
    ApprovalStatus,
    BookingStatus,
    DeliveryStatus,
    PaymentMethod,
    PaymentStatus,
)
from apps.rentals.domain.exceptions import InvalidTransition, ValidationError


def npr(amount: str) -> Money:
    return Money(Decimal(amount))


def test_reservation_fixes_initial_price_and_provisional_split(make_booking):
    booking = make_booking()

    assert booking.status is BookingStatus.PENDING
    assert booking.payment_status is PaymentStatus.PENDING
    assert booking.delivery_status is DeliveryStatus.NONE
    assert booking.booked_minutes == 45
    assert booking.initial_price == npr('75.00')
    assert booking.commission_amount + booking.owner_amount == booking.settled_amount


def test_reservation_rejects_foreign_currency(make_booking, billing, clock):
    from apps.rentals.domain.entities import reserve_booking

    booking = make_booking()
    with pytest.raises(ValidationError):
        reserve_booking(
            customer_id=1,
            owner_id=2,
            tractor_id='TR-1',
            window=booking.window,
            hourly_rate=Money(Decimal('10'), 'USD'),
            billing=billing,
            now=clock(),
        )


def test_confirm_payment_moves_pending_to_paid(make_booking, clock):
    booking = make_booking()

    booking.confirm_payment(clock())

    assert booking.status is BookingStatus.PAID
    assert booking.payment_status is PaymentStatus.PAID
    assert booking.paid_at == clock()
    assert isinstance(booking.events[-1], events.PaymentConfirmed)


def test_confirm_payment_twice_is_rejected(make_booking, clock):
    booking = make_booking()
    booking.confirm_payment(clock())

    with pytest.raises(InvalidTransition):
        booking.confirm_payment(clock())


def test_cancel_unpaid_pending_booking_is_free(make_booking, clock):
    booking = make_booking()

    refund_required = booking.request_cancellation(clock(), 'changed plans')

    assert refund_required is False
    assert booking.status is BookingStatus.CANCELLED
    assert booking.payment_status_at_cancellation is PaymentStatus.PENDING
    cancelled = booking.events[-1]
    assert isinstance(cancelled, events.BookingCancelled)
    assert cancelled.refund_required is False


def test_cancel_paid_booking_flags_refund_workflow(make_booking, clock):
    booking = make_booking()
    booking.confirm_payment(clock())

    refund_required = booking.request_cancellation(clock(), 'rain')

    assert refund_required is True
    assert booking.status is BookingStatus.CANCELLED
    assert booking.payment_status_at_cancellation is PaymentStatus.PAID
    assert booking.payment_status is PaymentStatus.PAID


def test_cancel_is_rejected_once_cancelled(make_booking, clock):
    booking = make_booking()
    booking.request_cancellation(clock())

    with pytest.raises(InvalidTransition):
        booking.request_cancellation(clock())


def test_cancel_is_rejected_after_completion(delivered_booking, meter, clock):
    meter.start(delivered_booking, clock())
    meter.stop(delivered_booking, clock.advance(minutes=40))

    with pytest.raises(InvalidTransition):
        delivered_booking.request_cancellation(clock())


def test_cancelled_booking_cannot_be_paid(make_booking, clock):
    booking = make_booking()
    booking.request_cancellation(clock())

    with pytest.raises(InvalidTransition):
        booking.confirm_payment(clock())


def test_deny_cancels_pending_booking(make_booking, clock):
    booking = make_booking()

    booking.deny(clock(), 'tractor under repair')

    assert booking.approval_status is ApprovalStatus.DENIED
    assert booking.status is BookingStatus.CANCELLED
    assert booking.cancellation_reason == 'tractor under repair'


def test_deny_is_rejected_after_payment(make_booking, clock):
    booking = make_booking()
    booking.confirm_payment(clock())

    with pytest.raises(InvalidTransition):
        booking.deny(clock())


def test_approve_only_once(make_booking, clock):
    booking = make_booking()
    booking.approve(clock(), approved_by=2)

    with pytest.raises(InvalidTransition):
        booking.approve(clock())


def test_approved_cash_on_delivery_booking_cannot_be_cancelled(make_booking, clock):
    booking = make_booking(payment_method=PaymentMethod.CASH_ON_DELIVERY)
    booking.approve(clock())

    with pytest.raises(InvalidTransition):
        booking.request_cancellation(clock())
    assert booking.status is BookingStatus.PENDING


def test_cash_on_delivery_booking_is_paid_after_delivery(make_booking, deliver, clock):
    booking = make_booking(payment_method=PaymentMethod.CASH_ON_DELIVERY)
    booking.approve(clock())
    deliver(booking)
    assert booking.status is BookingStatus.DELIVERED

    booking.confirm_payment(clock())

    assert booking.status is BookingStatus.DELIVERED
    assert booking.payment_status is PaymentStatus.PAID
    assert booking.events[-1].status_changed is False


def test_refund_request_then_rejection_restores_status(make_booking, clock):
    booking = make_booking()
    booking.confirm_payment(clock())

    booking.request_refund(clock())
    assert booking.status is BookingStatus.REFUND_REQUESTED

    booking.reject_refund(clock())
    assert booking.status is BookingStatus.PAID
    assert booking.status_before_refund_request is None


def test_refund_approval_cancels_and_refunds_minus_fee(make_booking, billing, clock):
    booking = make_booking()
    booking.confirm_payment(clock())
    booking.request_refund(clock())

    refund, fee = billing.refund_after_fee(booking.settled_amount)
    booking.approve_refund(clock(), refund, fee)

    assert booking.status is BookingStatus.CANCELLED
    assert booking.payment_status is PaymentStatus.REFUNDED
    assert booking.refund_amount == npr('72.75')
    assert booking.refund_fee == npr('2.25')


def test_refund_approval_for_unpaid_booking_refunds_nothing(make_booking, billing, clock):
    booking = make_booking()
    booking.request_refund(clock())

    refund, fee = billing.refund_after_fee(booking.settled_amount)
    booking.approve_refund(clock(), refund, fee)

    assert booking.status is BookingStatus.CANCELLED
    assert booking.payment_status is PaymentStatus.PENDING
    assert booking.refund_amount is None
    assert booking.events[-1].refund_amount == npr('0')


def test_refund_cannot_be_requested_while_meter_runs(delivered_booking, meter, clock):
    meter.start(delivered_booking, clock())

    with pytest.raises(InvalidTransition):
        delivered_booking.request_refund(clock())


def test_refund_cannot_be_requested_after_completion(delivered_booking, meter, clock):
    meter.start(delivered_booking, clock())
    meter.stop(delivered_booking, clock.advance(minutes=30))

    with pytest.raises(InvalidTransition):
        delivered_booking.request_refund(clock())


def test_reject_refund_requires_pending_request(make_booking, clock):
    with pytest.raises(InvalidTransition):
        make_booking().reject_refund(clock())


def test_cash_on_delivery_booking_cancellable_within_window(make_booking, clock):
    booking = make_booking(payment_method=PaymentMethod.CASH_ON_DELIVERY)

    refund_required = booking.request_cancellation(clock.advance(minutes=30), 'changed plans')

    assert refund_required is False
    assert booking.status is BookingStatus.CANCELLED


def test_cash_on_delivery_booking_not_cancellable_after_window(make_booking, clock):
    booking = make_booking(payment_method=PaymentMethod.CASH_ON_DELIVERY)

    with pytest.raises(InvalidTransition):
        booking.request_cancellation(clock.advance(minutes=31))
    assert booking.status is BookingStatus.PENDING


def test_cancellation_window_does_not_apply_to_online_bookings(make_booking, clock):
    booking = make_booking()

    booking.request_cancellation(clock.advance(hours=2))

    assert booking.status is BookingStatus.CANCELLED


def test_cancellation_window_follows_policy(make_booking, clock):
    booking = make_booking(payment_method=PaymentMethod.CASH_ON_DELIVERY)

    booking.request_cancellation(clock.advance(minutes=45), cash_cancellation_window=timedelta(hours=1))

    assert booking.status is BookingStatus.CANCELLED

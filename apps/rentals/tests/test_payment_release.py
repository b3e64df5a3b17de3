"""Payout release: settlement precondition and exactly-once semantics."""

import threading
from decimal import Decimal

import pytest

from shared.application.locks import KeyedLock
from shared.application.uow import InMemoryUnitOfWork
from shared.domain.value_objects import Money

from apps.rentals.application.command_handlers import ReleasePaymentCommand, ReleasePaymentHandler
from apps.rentals.domain import events
from apps.rentals.domain.entities import PaymentMethod, PaymentStatus
from apps.rentals.domain.exceptions import AlreadyReleased, ConcurrentModification, NotSettled
from apps.rentals.domain.release import PaymentReleaseGate
from apps.rentals.repositories import InMemoryBookingRepository


def npr(amount: str) -> Money:
    return Money(Decimal(amount))


@pytest.fixture
def gate(billing):
    return PaymentReleaseGate(billing)


@pytest.fixture
def completed_booking(delivered_booking, meter, clock):
    meter.start(delivered_booking, clock())
    meter.stop(delivered_booking, clock.advance(minutes=20))
    delivered_booking.clear_events()
    return delivered_booking


def test_release_before_completion_is_not_settled(delivered_booking, gate, clock):
    with pytest.raises(NotSettled):
        gate.release(delivered_booking, clock())
    assert delivered_booking.payment_released is False


def test_release_splits_settled_amount(completed_booking, gate, clock):
    result = gate.release(completed_booking, clock())

    assert result.settled_amount == npr('50.00')
    assert result.commission_amount == npr('7.50')
    assert result.owner_amount == npr('42.50')
    assert completed_booking.payment_released is True
    assert completed_booking.released_at == clock()
    assert isinstance(completed_booking.events[-1], events.PayoutReleased)


def test_second_release_is_rejected_and_changes_nothing(completed_booking, gate, clock):
    gate.release(completed_booking, clock())
    commission = completed_booking.commission_amount
    released_at = completed_booking.released_at

    with pytest.raises(AlreadyReleased):
        gate.release(completed_booking, clock.advance(minutes=1))

    assert completed_booking.commission_amount == commission
    assert completed_booking.released_at == released_at
    assert len([e for e in completed_booking.events if isinstance(e, events.PayoutReleased)]) == 1


def test_release_result_serialises_amounts(completed_booking, gate, clock):
    data = gate.release(completed_booking, clock()).to_dict()

    assert data['owner_amount'] == '42.50'
    assert data['commission_amount'] == '7.50'
    assert data['currency'] == 'NPR'


def _race(handler_factory, booking_id, threads=8):
    barrier = threading.Barrier(threads)
    outcomes = []
    outcomes_lock = threading.Lock()

    def worker():
        handler = handler_factory()
        barrier.wait()
        try:
            handler.handle(ReleasePaymentCommand(booking_id=booking_id))
            outcome = 'released'
        except (AlreadyReleased, ConcurrentModification) as e:
            outcome = type(e).__name__
        with outcomes_lock:
            outcomes.append(outcome)

    workers = [threading.Thread(target=worker) for _ in range(threads)]
    for w in workers:
        w.start()
    for w in workers:
        w.join(timeout=10)
    return outcomes


def test_concurrent_releases_pay_out_exactly_once(completed_booking, policy, clock, collecting_bus):
    repo = InMemoryBookingRepository([completed_booking])
    locks = KeyedLock()

    def factory():
        return ReleasePaymentHandler(
            repo, policy=policy, uow_factory=lambda: InMemoryUnitOfWork(collecting_bus),
            clock=clock, locks=locks,
        )

    outcomes = _race(factory, completed_booking.id)

    assert outcomes.count('released') == 1
    assert outcomes.count('AlreadyReleased') == 7
    assert repo.get_by_id(completed_booking.id).payment_released is True
    payouts = [e for e in collecting_bus.published if isinstance(e, events.PayoutReleased)]
    assert len(payouts) == 1
    assert len(locks) == 0


def test_version_check_alone_prevents_double_release(completed_booking, policy, clock, collecting_bus):
    repo = InMemoryBookingRepository([completed_booking])

    def factory():
        # a fresh lock per handler: only the repository's compare-and-set protects the row
        return ReleasePaymentHandler(
            repo, policy=policy, uow_factory=lambda: InMemoryUnitOfWork(collecting_bus),
            clock=clock, locks=KeyedLock(),
        )

    outcomes = _race(factory, completed_booking.id)

    assert outcomes.count('released') == 1
    assert len(outcomes) == 8
    payouts = [e for e in collecting_bus.published if isinstance(e, events.PayoutReleased)]
    assert len(payouts) == 1


def test_release_requires_collected_payment(completed_booking, gate, clock):
    completed_booking.payment_status = PaymentStatus.PENDING

    with pytest.raises(NotSettled):
        gate.release(completed_booking, clock())
    assert completed_booking.payment_released is False


def test_cash_on_delivery_payout_released_after_metered_use(make_booking, deliver, meter, gate, clock):
    booking = make_booking(payment_method=PaymentMethod.CASH_ON_DELIVERY)
    booking.approve(clock())
    deliver(booking)
    meter.start(booking, clock())
    meter.stop(booking, clock.advance(minutes=40))

    result = gate.release(booking, clock())

    assert booking.payment_status is PaymentStatus.PAID
    assert result.owner_amount == npr('56.67')
    assert result.commission_amount == npr('10.00')

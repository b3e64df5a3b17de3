"""Celery task: retrieval reminders."""

from datetime import timedelta

import pytest

from shared.domain.base import utcnow

from apps.rentals.domain.entities import DeliveryStatus
from apps.rentals.repositories import DjangoBookingRepository
from apps.rentals.tasks import flag_retrieval_reminders

pytestmark = pytest.mark.django_db


@pytest.fixture
def saved_delivered(make_booking, deliver, clock):
    """Delivered booking whose window ends `ends_in` from the real clock"""

    def _save(ends_in: timedelta):
        clock.now = utcnow() - timedelta(hours=2)
        booking = make_booking(minutes=int((timedelta(hours=1) + ends_in).total_seconds() // 60))
        booking.confirm_payment(clock())
        deliver(booking)
        booking.clear_events()
        DjangoBookingRepository().add(booking)
        return booking

    return _save


def test_flags_each_due_booking_once(saved_delivered):
    booking = saved_delivered(timedelta(minutes=20))

    assert flag_retrieval_reminders() == {"flagged": 1}
    assert DjangoBookingRepository().get_by_id(booking.id).retrieval_reminder_sent is True

    assert flag_retrieval_reminders() == {"flagged": 0}


def test_ignores_bookings_ending_later(saved_delivered):
    booking = saved_delivered(timedelta(hours=2))

    assert flag_retrieval_reminders() == {"flagged": 0}
    assert DjangoBookingRepository().get_by_id(booking.id).retrieval_reminder_sent is False


def test_ignores_returned_tractors(saved_delivered, tracker, clock):
    booking = saved_delivered(timedelta(minutes=10))
    repo = DjangoBookingRepository()
    stored = repo.get_by_id(booking.id)
    tracker.advance(stored, DeliveryStatus.RETURNED, clock())
    repo.save(stored)

    assert flag_retrieval_reminders() == {"flagged": 0}

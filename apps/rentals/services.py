"""Process-wide rental bus and queries backed by the Django repository."""

from __future__ import annotations

from functools import lru_cache

from shared.application.message_bus import MessageBus, message_bus

from apps.rentals.application.bootstrap import bootstrap
from apps.rentals.application.queries import RentalQueries
from apps.rentals.conf import rental_policy
from apps.rentals.repositories import DjangoBookingRepository


@lru_cache(maxsize=None)
def get_booking_repository() -> DjangoBookingRepository:
    return DjangoBookingRepository()


@lru_cache(maxsize=None)
def get_message_bus() -> MessageBus:
    return bootstrap(get_booking_repository(), rental_policy(), bus=message_bus)


@lru_cache(maxsize=None)
def get_queries() -> RentalQueries:
    return RentalQueries(get_booking_repository(), rental_policy())

"""
Unit of Work Pattern

Wraps one booking mutation: either everything commits and the collected
domain events are published, or nothing does.
"""

from abc import ABC, abstractmethod
from typing import List
import logging

from django.db import transaction

from shared.application.message_bus import MessageBus, message_bus as default_bus
from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    """Abstract Unit of Work pattern"""

    def __init__(self, bus: MessageBus | None = None):
        self._events: List[DomainEvent] = []
        self._bus = bus or default_bus

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    @abstractmethod
    def commit(self):
        """Commit the transaction"""

    def rollback(self):
        """Rollback changes and discard events"""
        if self._events:
            logger.warning(f"Rolling back, discarding {len(self._events)} events")
        self._events.clear()

    def collect_events(self, aggregate):
        """
        Collect events from aggregate root

        Extracts all domain events from the aggregate and
        clears them from the aggregate.
        """
        new_events = aggregate.events
        if new_events:
            self._events.extend(new_events)
            aggregate.clear_events()
            logger.debug(
                f"Collected {len(new_events)} events from "
                f"{aggregate.__class__.__name__} (ID: {aggregate.id})"
            )

    def _take_events(self) -> List[DomainEvent]:
        events = self._events.copy()
        self._events.clear()
        return events

    def _publish_events(self, events: List[DomainEvent]):
        logger.info(f"Publishing {len(events)} domain events after commit")
        self._bus.publish_events(events)


class DjangoUnitOfWork(AbstractUnitOfWork):
    """
    Django implementation of Unit of Work

    Usage:
        with DjangoUnitOfWork() as uow:
            booking = booking_repo.get_by_id(booking_id, lock=True)
            UsageMeter(policy).start(booking, now)
            uow.collect_events(booking)
            booking_repo.save(booking)
        # Events are published after commit
    """

    def __init__(self, bus: MessageBus | None = None):
        super().__init__(bus)
        self._transaction = None

    def __enter__(self):
        self._transaction = transaction.atomic()
        self._transaction.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            super().__exit__(exc_type, exc_val, exc_tb)
        finally:
            if self._transaction:
                self._transaction.__exit__(exc_type, exc_val, exc_tb)

    def commit(self):
        """
        Schedule event publishing for after the database commit

        transaction.on_commit runs immediately when no outer atomic block
        is open, and never if the transaction is rolled back.
        """
        events = self._take_events()
        logger.debug(f"Committing transaction with {len(events)} events")
        if events:
            transaction.on_commit(lambda: self._publish_events(events))


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """Unit of Work for the in-memory repository: publishes on commit"""

    def commit(self):
        events = self._take_events()
        if events:
            self._publish_events(events)

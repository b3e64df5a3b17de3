"""Command routing and event fan-out."""

from dataclasses import dataclass

import pytest

from shared.application.message_bus import MessageBus
from shared.application.uow import InMemoryUnitOfWork
from shared.domain.base import Aggregate, DomainEvent


@dataclass
class Ping:
    value: int


@dataclass(kw_only=True)
class Pinged(DomainEvent):
    value: int


@dataclass(kw_only=True, eq=False)
class Counter(Aggregate):
    count: int = 0

    def bump(self):
        self.count += 1
        self.add_event(Pinged(aggregate_id=self.id, value=self.count))


def test_command_has_one_handler():
    bus = MessageBus()
    bus.register_command_handler(Ping, lambda cmd: cmd.value * 2)

    assert bus.handle_command(Ping(21)) == 42
    with pytest.raises(ValueError):
        bus.register_command_handler(Ping, lambda cmd: None)


def test_unknown_command_rejected():
    with pytest.raises(ValueError):
        MessageBus().handle_command(Ping(1))


def test_command_errors_propagate():
    bus = MessageBus()

    def fail(cmd):
        raise LookupError("missing")

    bus.register_command_handler(Ping, fail)

    with pytest.raises(LookupError):
        bus.handle_command(Ping(1))


def test_events_fan_out_to_base_class_handlers():
    bus = MessageBus()
    specific, generic = [], []
    bus.register_event_handler(Pinged, specific.append)
    bus.register_event_handler(DomainEvent, generic.append)

    bus.publish_events([Pinged(value=1)])

    assert len(specific) == 1
    assert len(generic) == 1


def test_failing_event_handler_does_not_stop_others():
    bus = MessageBus()
    received = []

    def broken(event):
        raise RuntimeError("notification channel down")

    bus.register_event_handler(Pinged, broken)
    bus.register_event_handler(Pinged, received.append)

    bus.publish_events([Pinged(value=1)])

    assert [e.value for e in received] == [1]


def test_unit_of_work_publishes_only_on_success():
    bus = MessageBus()
    received = []
    bus.register_event_handler(Pinged, received.append)
    counter = Counter()

    with pytest.raises(RuntimeError):
        with InMemoryUnitOfWork(bus) as uow:
            counter.bump()
            uow.collect_events(counter)
            raise RuntimeError("save failed")
    assert received == []

    with InMemoryUnitOfWork(bus) as uow:
        counter.bump()
        uow.collect_events(counter)
    assert [e.value for e in received] == [2]
    assert counter.events == []

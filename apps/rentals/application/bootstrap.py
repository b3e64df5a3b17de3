"""
Wiring

Builds a message bus with every rental command handler registered against
one repository, one policy and one unit-of-work factory.
"""

from datetime import datetime
from typing import Callable
import logging

from shared.application.locks import KeyedLock, booking_locks
from shared.application.message_bus import MessageBus
from shared.application.uow import AbstractUnitOfWork, DjangoUnitOfWork
from shared.domain.base import utcnow

from apps.rentals.application import command_handlers as handlers
from apps.rentals.application.event_handlers import register_event_handlers
from apps.rentals.domain.policy import RentalPolicy

logger = logging.getLogger(__name__)

COMMAND_HANDLERS = {
    handlers.ReserveBookingCommand: handlers.ReserveBookingHandler,
    handlers.ConfirmPaymentCommand: handlers.ConfirmPaymentHandler,
    handlers.ApproveBookingCommand: handlers.ApproveBookingHandler,
    handlers.DenyBookingCommand: handlers.DenyBookingHandler,
    handlers.CancelBookingCommand: handlers.CancelBookingHandler,
    handlers.RequestRefundCommand: handlers.RequestRefundHandler,
    handlers.ApproveRefundCommand: handlers.ApproveRefundHandler,
    handlers.RejectRefundCommand: handlers.RejectRefundHandler,
    handlers.AdvanceDeliveryCommand: handlers.AdvanceDeliveryHandler,
    handlers.OverrideDeliveryCommand: handlers.OverrideDeliveryHandler,
    handlers.StartUsageCommand: handlers.StartUsageHandler,
    handlers.StopUsageCommand: handlers.StopUsageHandler,
    handlers.CompleteUnmeteredCommand: handlers.CompleteUnmeteredHandler,
    handlers.ReleasePaymentCommand: handlers.ReleasePaymentHandler,
    handlers.FlagRetrievalReminderCommand: handlers.FlagRetrievalReminderHandler,
}


def bootstrap(
    booking_repo,
    policy: RentalPolicy,
    bus: MessageBus | None = None,
    uow_factory: Callable[[], AbstractUnitOfWork] | None = None,
    clock: Callable[[], datetime] = utcnow,
    locks: KeyedLock = booking_locks,
) -> MessageBus:
    bus = bus or MessageBus()
    if uow_factory is None:
        def uow_factory():
            return DjangoUnitOfWork(bus)

    for command_type, handler_class in COMMAND_HANDLERS.items():
        handler = handler_class(
            booking_repo,
            policy=policy,
            uow_factory=uow_factory,
            clock=clock,
            locks=locks,
        )
        bus.register_command_handler(command_type, handler.handle)

    register_event_handlers(bus)
    logger.debug(f"Registered {len(COMMAND_HANDLERS)} rental command handlers")
    return bus

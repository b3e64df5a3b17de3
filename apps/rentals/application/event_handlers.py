"""
Rental Event Handlers

Audit trail: one log line per published domain event. Financial events
(payment, refund, payout) are logged under their own logger so they can be
routed separately.
"""

import logging

from shared.application.message_bus import MessageBus
from shared.domain.base import DomainEvent

from apps.rentals.domain import events

logger = logging.getLogger(__name__)
ledger_logger = logging.getLogger('apps.rentals.ledger')

FINANCIAL_EVENTS = (
    events.PaymentConfirmed,
    events.RefundApproved,
    events.BookingSettled,
    events.PayoutReleased,
)


def audit_event(event: DomainEvent):
    data = event.to_dict()
    logger.info(f"{data['event_type']} booking={data['aggregate_id']} payload={data['payload']}")


def record_financial_event(event: DomainEvent):
    data = event.to_dict()
    ledger_logger.info(
        f"{data['event_type']} booking={data['aggregate_id']} "
        f"event={data['event_id']} payload={data['payload']}"
    )


def register_event_handlers(bus: MessageBus):
    bus.register_event_handler(DomainEvent, audit_event)
    for event_type in FINANCIAL_EVENTS:
        bus.register_event_handler(event_type, record_financial_event)

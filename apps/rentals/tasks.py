"""Celery tasks for the rentals domain."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from apps.rentals.application.command_handlers import FlagRetrievalReminderCommand
from apps.rentals.conf import rental_policy
from apps.rentals.domain.exceptions import RentalError
from shared.domain.base import utcnow

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (run by Celery Beat)
# ============================================================================

@shared_task(name="rentals.flag_retrieval_reminders")
def flag_retrieval_reminders() -> dict[str, int]:
    """
    Flag delivered, unreturned tractors whose window ends soon.

    Each booking is flagged once; the RetrievalReminderDue event is what
    the notification side consumes.

    Runs every minute through Celery Beat.

    Returns:
        dict: {"flagged": number of bookings flagged}
    """
    from apps.rentals.services import get_booking_repository, get_message_bus

    policy = rental_policy()
    bus = get_message_bus()
    flagged = 0

    due = get_booking_repository().ids_due_for_retrieval_reminder(utcnow(), policy.retrieval_reminder_lead)
    for booking_id in due:
        try:
            if bus.handle_command(FlagRetrievalReminderCommand(booking_id=booking_id)):
                flagged += 1
        except RentalError as e:
            logger.error(f"Error flagging retrieval reminder for booking {booking_id}: {e}", exc_info=True)

    if flagged > 0:
        logger.info(f"Flagged {flagged} retrieval reminders")

    return {"flagged": flagged}

"""Rental policy from Django settings."""

from decimal import Decimal

from django.conf import settings

from apps.rentals.domain.policy import RentalPolicy


def rental_policy() -> RentalPolicy:
    config = getattr(settings, 'RENTALS', {})
    defaults = RentalPolicy()
    return RentalPolicy(
        currency=config.get('CURRENCY', defaults.currency),
        min_booking_minutes=int(config.get('MIN_BOOKING_MINUTES', defaults.min_booking_minutes)),
        commission_rate=Decimal(str(config.get('COMMISSION_RATE', defaults.commission_rate))),
        refund_fee_rate=Decimal(str(config.get('REFUND_FEE_RATE', defaults.refund_fee_rate))),
        average_delivery_speed_kph=float(
            config.get('AVERAGE_DELIVERY_SPEED_KPH', defaults.average_delivery_speed_kph)
        ),
        tracking_poll_interval_seconds=int(
            config.get('TRACKING_POLL_INTERVAL_SECONDS', defaults.tracking_poll_interval_seconds)
        ),
        retrieval_reminder_minutes=int(
            config.get('RETRIEVAL_REMINDER_MINUTES', defaults.retrieval_reminder_minutes)
        ),
        cash_cancellation_minutes=int(
            config.get('CASH_CANCELLATION_MINUTES', defaults.cash_cancellation_minutes)
        ),
    )

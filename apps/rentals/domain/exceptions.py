"""
Rental Domain Errors

Every rejected operation raises one of these. The booking record is left
untouched whenever one is raised.
"""


class RentalError(Exception):
    """Base class for booking lifecycle errors"""

    code = 'rental_error'

    def __init__(self, message: str, *, booking_id=None):
        super().__init__(message)
        self.booking_id = booking_id


class InvalidTransition(RentalError):
    """A booking or delivery state transition is not allowed from the current state"""

    code = 'invalid_transition'


class PreconditionFailed(RentalError):
    """Usage metering was started or stopped out of order"""

    code = 'precondition_failed'


class NotSettled(RentalError):
    """Payout release attempted before the booking was completed"""

    code = 'not_settled'


class AlreadyReleased(RentalError):
    """Payout for this booking has already been released"""

    code = 'already_released'


class ValidationError(RentalError, ValueError):
    """Malformed input (negative rate, reversed window, unknown status)"""

    code = 'validation_error'


class BookingNotFound(RentalError):
    code = 'not_found'


class ConcurrentModification(RentalError):
    """The booking changed between load and save"""

    code = 'concurrent_modification'

"""Maps typed rental errors to HTTP responses."""

from __future__ import annotations

import logging

from rest_framework import status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler  # type: ignore

from apps.rentals.domain.exceptions import (
    BookingNotFound,
    RentalError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def status_for(exc: RentalError) -> int:
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, BookingNotFound):
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_409_CONFLICT


def rental_exception_handler(exc, context):
    if isinstance(exc, RentalError):
        logger.warning(f"Rejected {context.get('view').__class__.__name__} request: {exc}")
        return Response({"detail": str(exc), "code": exc.code}, status=status_for(exc))
    return exception_handler(exc, context)

"""API views for the rentals domain.

Thin adapter: authorise the caller against the booking, turn the request
into a command and hand it to the bus. Domain errors are mapped to HTTP by
``apps.rentals.exception_handler``.
"""

from __future__ import annotations

from uuid import UUID

from rest_framework import permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.exceptions import PermissionDenied  # type: ignore
from rest_framework.response import Response  # type: ignore

from shared.domain.base import utcnow
from shared.domain.value_objects import GeoPoint

from apps.rentals.application import command_handlers as commands
from apps.rentals.domain.entities import Booking
from apps.rentals.domain.exceptions import BookingNotFound
from apps.rentals.serializers import (
    BookingReserveSerializer,
    BookingSerializer,
    DeliveryAdvanceSerializer,
    DeliveryOverrideSerializer,
    LocationQuerySerializer,
    ReasonSerializer,
)
from apps.rentals.services import get_booking_repository, get_message_bus, get_queries

CUSTOMER = "customer"
OWNER = "owner"
STAFF = "staff"


def is_staff(user) -> bool:
    return bool(getattr(user, "is_staff", False) or getattr(user, "is_superuser", False))


def roles_for(user, booking: Booking) -> set[str]:
    roles = set()
    if is_staff(user):
        roles.add(STAFF)
    if booking.customer_id == user.id:
        roles.add(CUSTOMER)
    if booking.owner_id == user.id:
        roles.add(OWNER)
    return roles


class RentalBookingViewSet(viewsets.ViewSet):
    """Booking lifecycle endpoints for customers, owners and platform admins."""

    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = "[0-9a-fA-F-]{36}"

    # ----- helpers -----

    def _load(self, pk, *allowed: str) -> tuple[Booking, set[str]]:
        try:
            booking_id = UUID(str(pk))
        except ValueError:
            raise BookingNotFound(f"Booking {pk} not found")
        booking = get_booking_repository().get_by_id(booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found", booking_id=booking_id)

        roles = roles_for(self.request.user, booking)
        if not roles or (allowed and not roles.intersection(allowed)):
            raise PermissionDenied("You are not allowed to perform this action on the booking.")
        return booking, roles

    def _require_decision_rights(self, booking: Booking, roles: set[str]):
        """Owners decide on cash-on-delivery bookings; online bookings are staff-only"""
        if STAFF not in roles and not booking.is_deferred_payment:
            raise PermissionDenied("Only platform staff can approve or deny online-payment bookings.")

    def _dispatch(self, command):
        return get_message_bus().handle_command(command)

    def _booking_response(self, booking: Booking, status_code=status.HTTP_200_OK):
        return Response(BookingSerializer(booking).data, status=status_code)

    # ----- collection -----

    def list(self, request):  # type: ignore
        user_id = None if is_staff(request.user) else request.user.id
        bookings = get_booking_repository().list_for_user(user_id)
        return Response(BookingSerializer(bookings, many=True).data)

    def create(self, request):  # type: ignore
        serializer = BookingReserveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        booking = self._dispatch(commands.ReserveBookingCommand(
            customer_id=request.user.id,
            owner_id=data["owner_id"],
            tractor_id=data["tractor_id"],
            start_at=data["start_at"],
            end_at=data["end_at"],
            hourly_rate=data["hourly_rate"],
            payment_method=data["payment_method"],
            delivery_address=data.get("delivery_address", ""),
            delivery_lat=data.get("delivery_lat"),
            delivery_lng=data.get("delivery_lng"),
            base_lat=data.get("base_lat"),
            base_lng=data.get("base_lng"),
        ))
        return self._booking_response(booking, status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):  # type: ignore
        booking, _ = self._load(pk)
        return self._booking_response(booking)

    @action(detail=False, methods=["get"], url_path="settlement-summary")
    def settlement_summary(self, request):  # type: ignore
        if is_staff(request.user):
            owner_id = request.query_params.get("owner_id")
            owner_id = int(owner_id) if owner_id and owner_id.isdigit() else None
        else:
            owner_id = request.user.id
        summary = get_queries().settlement_summary(owner_id=owner_id)
        return Response(summary.to_dict())

    # ----- payment & approval -----

    @action(detail=True, methods=["post"], url_path="confirm-payment")
    def confirm_payment(self, request, pk=None):  # type: ignore
        booking, _ = self._load(pk, CUSTOMER, STAFF)
        booking = self._dispatch(commands.ConfirmPaymentCommand(booking_id=booking.id))
        return self._booking_response(booking)

    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):  # type: ignore
        booking, roles = self._load(pk, OWNER, STAFF)
        self._require_decision_rights(booking, roles)
        booking = self._dispatch(commands.ApproveBookingCommand(
            booking_id=booking.id, approved_by=request.user.id,
        ))
        return self._booking_response(booking)

    @action(detail=True, methods=["post"])
    def deny(self, request, pk=None):  # type: ignore
        booking, roles = self._load(pk, OWNER, STAFF)
        self._require_decision_rights(booking, roles)
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = self._dispatch(commands.DenyBookingCommand(
            booking_id=booking.id, reason=serializer.validated_data["reason"],
        ))
        return self._booking_response(booking)

    # ----- cancellation & refunds -----

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        booking, _ = self._load(pk, CUSTOMER, STAFF)
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = self._dispatch(commands.CancelBookingCommand(
            booking_id=booking.id, reason=serializer.validated_data["reason"],
        ))
        return self._booking_response(booking)

    @action(detail=True, methods=["post"], url_path="request-refund")
    def request_refund(self, request, pk=None):  # type: ignore
        booking, _ = self._load(pk, CUSTOMER)
        booking = self._dispatch(commands.RequestRefundCommand(booking_id=booking.id))
        return self._booking_response(booking)

    @action(detail=True, methods=["post"], url_path="approve-refund")
    def approve_refund(self, request, pk=None):  # type: ignore
        booking, _ = self._load(pk, STAFF)
        booking = self._dispatch(commands.ApproveRefundCommand(booking_id=booking.id))
        return self._booking_response(booking)

    @action(detail=True, methods=["post"], url_path="reject-refund")
    def reject_refund(self, request, pk=None):  # type: ignore
        booking, _ = self._load(pk, STAFF)
        booking = self._dispatch(commands.RejectRefundCommand(booking_id=booking.id))
        return self._booking_response(booking)

    # ----- delivery -----

    @action(detail=True, methods=["post"], url_path="delivery/advance")
    def advance_delivery(self, request, pk=None):  # type: ignore
        booking, _ = self._load(pk, OWNER, STAFF)
        serializer = DeliveryAdvanceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        booking = self._dispatch(commands.AdvanceDeliveryCommand(
            booking_id=booking.id,
            next_status=data["status"],
            tractor_lat=data.get("lat"),
            tractor_lng=data.get("lng"),
        ))
        return self._booking_response(booking)

    @action(detail=True, methods=["post"], url_path="delivery/override")
    def override_delivery(self, request, pk=None):  # type: ignore
        booking, _ = self._load(pk, STAFF)
        serializer = DeliveryOverrideSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = self._dispatch(commands.OverrideDeliveryCommand(
            booking_id=booking.id, status=serializer.validated_data["status"],
        ))
        return self._booking_response(booking)

    @action(detail=True, methods=["get"])
    def tracking(self, request, pk=None):  # type: ignore
        booking, roles = self._load(pk)
        query = LocationQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        lat, lng = query.validated_data.get("lat"), query.validated_data.get("lng")
        current = GeoPoint(lat, lng) if lat is not None and lng is not None else None
        view = get_queries().tracking(
            booking.id, current, for_customer=not roles.intersection({OWNER, STAFF}),
        )
        return Response(view.to_dict())

    # ----- usage & settlement -----

    @action(detail=True, methods=["post"], url_path="usage/start")
    def start_usage(self, request, pk=None):  # type: ignore
        booking, _ = self._load(pk, CUSTOMER, STAFF)
        booking = self._dispatch(commands.StartUsageCommand(booking_id=booking.id))
        return self._booking_response(booking)

    @action(detail=True, methods=["post"], url_path="usage/stop")
    def stop_usage(self, request, pk=None):  # type: ignore
        booking, _ = self._load(pk, CUSTOMER, STAFF)
        booking = self._dispatch(commands.StopUsageCommand(booking_id=booking.id))
        return self._booking_response(booking)

    @action(detail=True, methods=["get"])
    def usage(self, request, pk=None):  # type: ignore
        booking, _ = self._load(pk)
        return Response(get_queries().usage(booking.id, utcnow()).to_dict())

    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):  # type: ignore
        booking, _ = self._load(pk, OWNER, STAFF)
        booking = self._dispatch(commands.CompleteUnmeteredCommand(booking_id=booking.id))
        return self._booking_response(booking)

    @action(detail=True, methods=["post"], url_path="release-payment")
    def release_payment(self, request, pk=None):  # type: ignore
        booking, _ = self._load(pk, STAFF)
        result = self._dispatch(commands.ReleasePaymentCommand(
            booking_id=booking.id, released_by=request.user.id,
        ))
        return Response(result.to_dict())

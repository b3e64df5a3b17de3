"""Serializers for the rentals API.

Input serializers only check shape; every business rule is enforced by the
domain layer behind the command bus. Output serializers read the domain
``Booking`` aggregate directly.
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers  # type: ignore

from apps.rentals.domain.entities import DeliveryStatus, PaymentMethod


class MoneyField(serializers.Field):
    """Money value object as a decimal string."""

    def __init__(self, **kwargs):
        kwargs.setdefault("read_only", True)
        super().__init__(**kwargs)

    def to_representation(self, value):
        return str(value.amount)


class GeoPointField(serializers.Field):
    def __init__(self, **kwargs):
        kwargs.setdefault("read_only", True)
        super().__init__(**kwargs)

    def to_representation(self, value):
        return value.to_dict()


class EnumValueField(serializers.Field):
    def __init__(self, **kwargs):
        kwargs.setdefault("read_only", True)
        super().__init__(**kwargs)

    def to_representation(self, value):
        return value.value


class BookingReserveSerializer(serializers.Serializer):
    """Reservation request; the authenticated user becomes the customer."""

    owner_id = serializers.IntegerField(min_value=1)
    tractor_id = serializers.CharField(max_length=64)
    start_at = serializers.DateTimeField()
    end_at = serializers.DateTimeField()
    hourly_rate = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    payment_method = serializers.ChoiceField(
        choices=[method.value for method in PaymentMethod],
        default=PaymentMethod.ONLINE.value,
    )
    delivery_address = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    delivery_lat = serializers.FloatField(min_value=-90, max_value=90, required=False, allow_null=True)
    delivery_lng = serializers.FloatField(min_value=-180, max_value=180, required=False, allow_null=True)
    base_lat = serializers.FloatField(min_value=-90, max_value=90, required=False, allow_null=True)
    base_lng = serializers.FloatField(min_value=-180, max_value=180, required=False, allow_null=True)

    def validate(self, attrs):  # type: ignore
        if attrs["start_at"] >= attrs["end_at"]:
            raise serializers.ValidationError("End time must be after start time.")
        for prefix in ("delivery", "base"):
            lat, lng = attrs.get(f"{prefix}_lat"), attrs.get(f"{prefix}_lng")
            if (lat is None) != (lng is None):
                raise serializers.ValidationError(
                    {f"{prefix}_lat": "Latitude and longitude must be given together."}
                )
        return attrs


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class DeliveryAdvanceSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s.value for s in DeliveryStatus if s is not DeliveryStatus.NONE])
    lat = serializers.FloatField(min_value=-90, max_value=90, required=False, allow_null=True)
    lng = serializers.FloatField(min_value=-180, max_value=180, required=False, allow_null=True)


class DeliveryOverrideSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s.value for s in DeliveryStatus])


class LocationQuerySerializer(serializers.Serializer):
    """Current tractor position passed by the tracking client."""

    lat = serializers.FloatField(min_value=-90, max_value=90, required=False)
    lng = serializers.FloatField(min_value=-180, max_value=180, required=False)


class BookingSerializer(serializers.Serializer):
    """Booking aggregate as returned by every endpoint."""

    id = serializers.UUIDField(read_only=True)
    version = serializers.IntegerField(read_only=True)
    customer_id = serializers.IntegerField(read_only=True)
    owner_id = serializers.IntegerField(read_only=True)
    tractor_id = serializers.CharField(read_only=True)
    start_at = serializers.DateTimeField(source="window.start_at", read_only=True)
    end_at = serializers.DateTimeField(source="window.end_at", read_only=True)
    booked_minutes = serializers.IntegerField(read_only=True)
    hourly_rate = MoneyField()
    currency = serializers.CharField(source="hourly_rate.currency", read_only=True)
    initial_price = MoneyField()
    payment_method = EnumValueField()
    status = EnumValueField()
    payment_status = EnumValueField()
    approval_status = EnumValueField()
    delivery_status = EnumValueField()
    actual_usage_start_at = serializers.DateTimeField(read_only=True)
    actual_usage_stop_at = serializers.DateTimeField(read_only=True)
    actual_usage_minutes = serializers.IntegerField(read_only=True)
    final_price = MoneyField()
    settled_amount = MoneyField()
    refund_amount = MoneyField()
    overage_amount = MoneyField()
    commission_amount = MoneyField()
    owner_amount = MoneyField()
    refund_fee = MoneyField()
    payment_released = serializers.BooleanField(read_only=True)
    released_at = serializers.DateTimeField(read_only=True)
    delivery_address = serializers.CharField(read_only=True)
    delivery_location = GeoPointField()
    original_location = GeoPointField()
    cancellation_reason = serializers.CharField(read_only=True)
    created_at = serializers.DateTimeField(read_only=True)
    updated_at = serializers.DateTimeField(read_only=True)

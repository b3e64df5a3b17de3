"""Persisted booking record for the tractor-rental marketplace."""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


def _money_field(**kwargs):
    return models.DecimalField(max_digits=12, decimal_places=2, **kwargs)


class RentalBooking(models.Model):
    """One row per booking; the domain aggregate is rebuilt from it on every load."""

    class Status(models.TextChoices):
        PENDING = "PENDING", _("Pending")
        PAID = "PAID", _("Paid")
        DELIVERED = "DELIVERED", _("Delivered")
        COMPLETED = "COMPLETED", _("Completed")
        CANCELLED = "CANCELLED", _("Cancelled")
        REFUND_REQUESTED = "REFUND_REQUESTED", _("Refund requested")

    class DeliveryStatus(models.TextChoices):
        NONE = "NONE", _("Not ordered")
        ORDERED = "ORDERED", _("Ordered")
        DELIVERING = "DELIVERING", _("On the way")
        DELIVERED = "DELIVERED", _("Delivered")
        RETURNED = "RETURNED", _("Returned")

    class PaymentStatus(models.TextChoices):
        PENDING = "PENDING", _("Awaiting payment")
        PAID = "PAID", _("Paid")
        REFUNDED = "REFUNDED", _("Refunded")

    class PaymentMethod(models.TextChoices):
        ONLINE = "ONLINE", _("Online")
        CASH_ON_DELIVERY = "CASH_ON_DELIVERY", _("Cash on delivery")

    class ApprovalStatus(models.TextChoices):
        PENDING_APPROVAL = "PENDING_APPROVAL", _("Awaiting approval")
        APPROVED = "APPROVED", _("Approved")
        DENIED = "DENIED", _("Denied")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    version = models.PositiveIntegerField(default=0)

    customer_id = models.PositiveIntegerField(db_index=True)
    owner_id = models.PositiveIntegerField(db_index=True)
    tractor_id = models.CharField(max_length=64)

    start_at = models.DateTimeField()
    end_at = models.DateTimeField()
    hourly_rate = _money_field()
    currency = models.CharField(max_length=3, default="NPR")
    booked_minutes = models.PositiveIntegerField()
    initial_price = _money_field()
    payment_method = models.CharField(
        max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.ONLINE
    )

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    payment_status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING
    )
    approval_status = models.CharField(
        max_length=20, choices=ApprovalStatus.choices, default=ApprovalStatus.PENDING_APPROVAL
    )
    delivery_status = models.CharField(
        max_length=20, choices=DeliveryStatus.choices, default=DeliveryStatus.NONE
    )

    actual_usage_start_at = models.DateTimeField(null=True, blank=True)
    actual_usage_stop_at = models.DateTimeField(null=True, blank=True)
    actual_usage_minutes = models.PositiveIntegerField(null=True, blank=True)

    final_price = _money_field(null=True, blank=True)
    refund_amount = _money_field(null=True, blank=True)
    overage_amount = _money_field(null=True, blank=True)
    commission_amount = _money_field(null=True, blank=True)
    owner_amount = _money_field(null=True, blank=True)
    refund_fee = _money_field(null=True, blank=True)
    payment_released = models.BooleanField(default=False)
    released_at = models.DateTimeField(null=True, blank=True)

    delivery_address = models.CharField(max_length=255, blank=True)
    delivery_lat = models.FloatField(null=True, blank=True)
    delivery_lng = models.FloatField(null=True, blank=True)
    original_lat = models.FloatField(null=True, blank=True)
    original_lng = models.FloatField(null=True, blank=True)

    cancellation_reason = models.CharField(max_length=255, blank=True)
    payment_status_at_cancellation = models.CharField(
        max_length=20, choices=PaymentStatus.choices, blank=True
    )
    status_before_refund_request = models.CharField(
        max_length=20, choices=Status.choices, blank=True
    )

    paid_at = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    returned_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    retrieval_reminder_sent = models.BooleanField(default=False)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = _("Rental booking")
        verbose_name_plural = _("Rental bookings")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_at__gt=models.F("start_at")),
                name="rental_valid_window",
            ),
            models.CheckConstraint(
                condition=models.Q(hourly_rate__gte=Decimal("0")),
                name="rental_non_negative_rate",
            ),
            models.CheckConstraint(
                condition=(
                    models.Q(actual_usage_stop_at__isnull=True)
                    | models.Q(actual_usage_stop_at__gt=models.F("actual_usage_start_at"))
                ),
                name="rental_usage_stop_after_start",
            ),
            models.CheckConstraint(
                condition=models.Q(payment_released=False) | models.Q(status="COMPLETED"),
                name="rental_release_requires_completion",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "delivery_status"]),
            models.Index(fields=["owner_id", "status"]),
            models.Index(fields=["end_at"]),
        ]

    def __str__(self) -> str:
        return f"Rental {self.id} ({self.status}/{self.delivery_status})"

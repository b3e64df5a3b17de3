"""Admin registration for rentals.

Read-only: every change goes through the command handlers so the
booking invariants and the audit trail stay intact.
"""

from __future__ import annotations

from django.contrib import admin

from .models import RentalBooking


@admin.register(RentalBooking)
class RentalBookingAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "tractor_id",
        "customer_id",
        "owner_id",
        "status",
        "delivery_status",
        "payment_status",
        "initial_price",
        "final_price",
        "payment_released",
        "created_at",
    )
    list_filter = ("status", "delivery_status", "payment_status", "payment_method", "payment_released")
    search_fields = ("id", "tractor_id", "delivery_address")

    def has_add_permission(self, request):  # type: ignore
        return False

    def has_change_permission(self, request, obj=None):  # type: ignore
        return False

    def has_delete_permission(self, request, obj=None):  # type: ignore
        return False

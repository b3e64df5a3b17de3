"""Integration tests for the rentals API endpoints."""

from __future__ import annotations

from datetime import timedelta

from django.contrib.auth import get_user_model
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.rentals.models import RentalBooking

User = get_user_model()


class RentalBookingAPITests(APITestCase):
    """Covers reservation, delivery, metering, payout release and error mapping."""

    def setUp(self) -> None:
        self.customer = User.objects.create_user(username="farmer", password="FarmerPass123")
        self.owner = User.objects.create_user(username="owner", password="OwnerPass123")
        self.admin = User.objects.create_user(username="admin", password="AdminPass123", is_staff=True)
        self.stranger = User.objects.create_user(username="stranger", password="StrangerPass123")
        self.list_url = reverse("rental-booking-list")

    def _payload(self, **overrides) -> dict:
        start = timezone.now() + timedelta(hours=2)
        payload = {
            "owner_id": self.owner.id,
            "tractor_id": "TR-42",
            "start_at": start.isoformat(),
            "end_at": (start + timedelta(minutes=45)).isoformat(),
            "hourly_rate": "100.00",
            "delivery_address": "Bhaktapur",
            "delivery_lat": 27.6710,
            "delivery_lng": 85.4298,
        }
        payload.update(overrides)
        return payload

    def _reserve(self, **overrides) -> str:
        self.client.force_authenticate(self.customer)
        response = self.client.post(self.list_url, self._payload(**overrides), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        return response.data["id"]

    def _post(self, user, booking_id: str, path: str, data: dict | None = None):
        self.client.force_authenticate(user)
        return self.client.post(f"{self.list_url}{booking_id}/{path}/", data or {}, format="json")

    def _deliver(self, booking_id: str) -> None:
        for step in ("ORDERED", "DELIVERING", "DELIVERED"):
            response = self._post(self.owner, booking_id, "delivery/advance", {"status": step})
            self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)

    def test_customer_can_reserve_booking(self) -> None:
        booking_id = self._reserve()

        row = RentalBooking.objects.get(id=booking_id)
        self.assertEqual(row.customer_id, self.customer.id)
        self.assertEqual(row.status, RentalBooking.Status.PENDING)
        self.assertEqual(str(row.initial_price), "75.00")
        self.assertEqual(row.booked_minutes, 45)

    def test_reversed_window_is_rejected(self) -> None:
        self.client.force_authenticate(self.customer)
        start = timezone.now() + timedelta(hours=2)
        response = self.client.post(
            self.list_url,
            self._payload(start_at=start.isoformat(), end_at=(start - timedelta(minutes=5)).isoformat()),
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(RentalBooking.objects.exists())

    def test_full_lifecycle_through_api(self) -> None:
        booking_id = self._reserve()

        response = self._post(self.customer, booking_id, "confirm-payment")
        self.assertEqual(response.data["status"], "PAID")

        self._deliver(booking_id)

        response = self._post(self.customer, booking_id, "usage/start")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNotNone(response.data["actual_usage_start_at"])

        response = self._post(self.customer, booking_id, "usage/stop")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "COMPLETED")
        self.assertEqual(response.data["final_price"], "50.00")
        self.assertEqual(response.data["refund_amount"], "25.00")

        response = self._post(self.admin, booking_id, "release-payment")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["commission_amount"], "7.50")
        self.assertEqual(response.data["owner_amount"], "42.50")

        response = self._post(self.admin, booking_id, "release-payment")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "already_released")
        self.assertTrue(RentalBooking.objects.get(id=booking_id).payment_released)

    def test_release_before_completion_conflicts(self) -> None:
        booking_id = self._reserve()
        self._post(self.customer, booking_id, "confirm-payment")
        self._deliver(booking_id)

        response = self._post(self.admin, booking_id, "release-payment")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "not_settled")

    def test_skipping_a_delivery_step_conflicts(self) -> None:
        booking_id = self._reserve()
        self._post(self.customer, booking_id, "confirm-payment")
        self._post(self.owner, booking_id, "delivery/advance", {"status": "ORDERED"})

        response = self._post(self.owner, booking_id, "delivery/advance", {"status": "DELIVERED"})

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "invalid_transition")
        self.assertEqual(RentalBooking.objects.get(id=booking_id).delivery_status, "ORDERED")

    def test_double_start_conflicts(self) -> None:
        booking_id = self._reserve()
        self._post(self.customer, booking_id, "confirm-payment")
        self._deliver(booking_id)
        self._post(self.customer, booking_id, "usage/start")
        started_at = RentalBooking.objects.get(id=booking_id).actual_usage_start_at

        response = self._post(self.customer, booking_id, "usage/start")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "precondition_failed")
        self.assertEqual(RentalBooking.objects.get(id=booking_id).actual_usage_start_at, started_at)

    def test_unpaid_cancellation(self) -> None:
        booking_id = self._reserve()

        response = self._post(self.customer, booking_id, "cancel", {"reason": "weather"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "CANCELLED")
        self.assertEqual(response.data["cancellation_reason"], "weather")

    def test_roles_are_enforced(self) -> None:
        booking_id = self._reserve()

        self.assertEqual(
            self._post(self.stranger, booking_id, "cancel").status_code, status.HTTP_403_FORBIDDEN
        )
        self.assertEqual(
            self._post(self.customer, booking_id, "approve").status_code, status.HTTP_403_FORBIDDEN
        )
        self.assertEqual(
            self._post(self.owner, booking_id, "release-payment").status_code, status.HTTP_403_FORBIDDEN
        )
        self.client.force_authenticate(self.stranger)
        self.assertEqual(self.client.get(self.list_url).data, [])

    def test_unknown_booking_is_not_found(self) -> None:
        response = self._post(self.admin, "00000000-0000-0000-0000-000000000000", "confirm-payment")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "not_found")

    def test_tracking_hides_delivery_until_paid(self) -> None:
        booking_id = self._reserve()
        url = f"{self.list_url}{booking_id}/tracking/"

        self.client.force_authenticate(self.customer)
        response = self.client.get(url)
        self.assertFalse(response.data["visible"])
        self.assertIsNone(response.data["delivery_status"])

        self._post(self.customer, booking_id, "confirm-payment")
        self._post(self.owner, booking_id, "delivery/advance", {"status": "ORDERED"})
        self._post(self.owner, booking_id, "delivery/advance", {"status": "DELIVERING"})

        self.client.force_authenticate(self.customer)
        response = self.client.get(url, {"lat": 27.7172, "lng": 85.3240})
        self.assertEqual(response.data["delivery_status"], "DELIVERING")
        self.assertGreater(response.data["eta_minutes"], 0)
        self.assertEqual(response.data["poll_interval_seconds"], 10)

        self._post(self.owner, booking_id, "delivery/advance", {"status": "DELIVERED"})
        self.client.force_authenticate(self.customer)
        response = self.client.get(url, {"lat": 27.7172, "lng": 85.3240})
        self.assertIsNone(response.data["eta_minutes"])
        self.assertIsNone(response.data["distance_km"])

    def test_refund_request_and_admin_approval(self) -> None:
        booking_id = self._reserve()
        self._post(self.customer, booking_id, "confirm-payment")

        response = self._post(self.customer, booking_id, "request-refund")
        self.assertEqual(response.data["status"], "REFUND_REQUESTED")

        response = self._post(self.admin, booking_id, "approve-refund")
        self.assertEqual(response.data["status"], "CANCELLED")
        self.assertEqual(response.data["payment_status"], "REFUNDED")
        self.assertEqual(response.data["refund_amount"], "72.75")

    def test_settlement_summary_for_owner(self) -> None:
        booking_id = self._reserve()
        self._post(self.customer, booking_id, "confirm-payment")
        self._deliver(booking_id)
        self._post(self.owner, booking_id, "delivery/advance", {"status": "RETURNED"})
        response = self._post(self.owner, booking_id, "complete")
        self.assertEqual(response.data["status"], "COMPLETED")

        self.client.force_authenticate(self.owner)
        response = self.client.get(f"{self.list_url}settlement-summary/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["completed_count"], 1)
        self.assertEqual(response.data["revenue"], "75.00")
        self.assertEqual(response.data["pending_payouts"], "63.75")

    def test_owner_decides_only_on_cash_on_delivery_bookings(self) -> None:
        online_id = self._reserve()
        response = self._post(self.owner, online_id, "approve")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self._post(self.owner, online_id, "deny", {"reason": "busy"})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self._post(self.admin, online_id, "approve")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["approval_status"], "APPROVED")

        cash_id = self._reserve(payment_method="CASH_ON_DELIVERY")
        response = self._post(self.owner, cash_id, "approve")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["delivery_status"], "ORDERED")
        self.assertEqual(response.data["status"], "PENDING")

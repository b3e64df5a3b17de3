"""URL routing for the rentals domain."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import RentalBookingViewSet

router = DefaultRouter()
router.register(r"bookings", RentalBookingViewSet, basename="rental-booking")

urlpatterns = [
    path("", include(router.urls)),
]

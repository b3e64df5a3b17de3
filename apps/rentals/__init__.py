"""Rentals app package.

Booking lifecycle of the tractor-rental marketplace: reservation, payment,
delivery tracking, metered usage, settlement and owner payout release.
Business rules live in ``apps.rentals.domain``; this package adds the
Django persistence, REST and Celery adapters around them.
"""

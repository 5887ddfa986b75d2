"""Booking admission service: policy window, capacity, and duplicate control for appointment bookings."""

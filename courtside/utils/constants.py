"""
Constants used across the roster and availability services.
"""

# Availability
SLOT_MINUTES = 60  # Fixed slot granularity; a trailing partial slot is never offered
MAX_AVAILABILITY_RANGE_DAYS = 90  # Longest [start_date, end_date) span one query may cover
DEFAULT_COURT_TIMEZONE = "UTC"

# Reservation statuses that block a slot
ACTIVE_RESERVATION_STATUSES = ("PENDING", "CONFIRMED")

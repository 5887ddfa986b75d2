"""
Booking-window policy: which calendar dates may be requested at all.

A pure function of (requested date, today). The admission path and the
public preview endpoint both call ``evaluate`` so they can never disagree
on a boundary date.

Rules, first match wins:
    1. before today                     -> past
    2. on or before today + lead days   -> too_soon
    3. after today + horizon months     -> too_far
    4. Saturday or Sunday               -> weekend
    5. otherwise                        -> ok
"""

import calendar
from datetime import date, timedelta
from typing import NamedTuple

from booking_admission.config import settings
from booking_admission.schemas.booking_schema import DateRangeVerdict

SATURDAY = 5
SUNDAY = 6


class PolicyWindow(NamedTuple):
    """Inclusive range of dates that can pass the lead-time and horizon rules."""
    earliest: date
    latest: date


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping to the last day of the target month.

    Examples:
        >>> add_months(date(2024, 6, 3), 3)
        datetime.date(2024, 9, 3)
        >>> add_months(date(2024, 11, 30), 3)
        datetime.date(2025, 2, 28)
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def evaluate(
    requested: date,
    today: date,
    min_lead_days: int = settings.admission.min_lead_days,
    max_horizon_months: int = settings.admission.max_horizon_months,
) -> DateRangeVerdict:
    """Return the policy verdict for ``requested`` as seen on ``today``."""
    if requested < today:
        return DateRangeVerdict.PAST
    if requested <= today + timedelta(days=min_lead_days):
        return DateRangeVerdict.TOO_SOON
    if requested > add_months(today, max_horizon_months):
        return DateRangeVerdict.TOO_FAR
    if requested.weekday() in (SATURDAY, SUNDAY):
        return DateRangeVerdict.WEEKEND
    return DateRangeVerdict.OK


def policy_window(
    today: date,
    min_lead_days: int = settings.admission.min_lead_days,
    max_horizon_months: int = settings.admission.max_horizon_months,
) -> PolicyWindow:
    """First and last dates outside the lead-time and horizon rules.

    Weekends inside the window still evaluate to ``weekend``.
    """
    return PolicyWindow(
        earliest=today + timedelta(days=min_lead_days + 1),
        latest=add_months(today, max_horizon_months),
    )


VERDICT_MESSAGES: dict[DateRangeVerdict, str] = {
    DateRangeVerdict.OK: "Date is available for booking.",
    DateRangeVerdict.PAST: "Cannot book appointments for past dates.",
    DateRangeVerdict.TOO_SOON: (
        "Appointments cannot be booked within the next "
        f"{settings.admission.min_lead_days} days."
    ),
    DateRangeVerdict.TOO_FAR: (
        "Bookings cannot be made more than "
        f"{settings.admission.max_horizon_months} months in advance."
    ),
    DateRangeVerdict.WEEKEND: "Weekends are not available for appointments.",
}

# subscriptions/billing_cycle.py
"""
Calendar helpers for monthly billing cycles.

All boundaries are computed in the configured local time zone, which is the
zone the remote ledger expresses its naive timestamps in.
"""

import calendar
from datetime import datetime, time, timedelta

from django.utils import timezone


def local(value):
    """Return an aware datetime converted to the current time zone."""
    if timezone.is_naive(value):
        return timezone.make_aware(value)
    return timezone.localtime(value)


def start_of_month(now):
    now = local(now)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def end_of_month(now):
    """Last representable instant of ``now``'s month."""
    now = local(now)
    last_day = calendar.monthrange(now.year, now.month)[1]
    naive = datetime.combine(now.date().replace(day=last_day), time.max)
    return timezone.make_aware(naive, now.tzinfo)


def in_month(value, now):
    """True when ``value`` falls strictly inside ``now``'s month."""
    if value is None:
        return False
    return start_of_month(now) < value < end_of_month(now)


def add_months(value, months=1):
    """
    Shift a date or datetime by whole calendar months.

    The day of month is kept; when the target month is shorter it is clamped
    to the target month's last day (Jan 31 + 1 month = Feb 28/29).
    """
    if isinstance(value, datetime) and timezone.is_aware(value):
        # Shift the local wall-clock time, not the UTC one
        value = timezone.localtime(value)
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def day_of_month(now):
    return local(now).day


def previous_tick(value, tick=timedelta(microseconds=1)):
    return value - tick

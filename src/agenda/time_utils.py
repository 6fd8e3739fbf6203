#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Calendar arithmetic for recurring occurrences: UTC normalisation, day
boundaries and the generator that turns a recurrence rule into the calendar
dates at which occurrences should exist inside a query window.

All instants handled here are naive datetimes interpreted as UTC."""

import datetime
import logging
from enum import StrEnum, auto
from typing import assert_never

from dateutil import rrule
from dateutil.relativedelta import relativedelta

from agenda.constants import DATE_FORMAT, DEFAULT_RULE_HORIZON, MONTHLY_SAFETY_BOUND
from agenda.exceptions import ValidationError

logger = logging.getLogger(__name__)

ONE_DAY = datetime.timedelta(days=1)


class Recurrence(StrEnum):
    """How often a group of occurrences repeats."""

    NONE = auto()
    DAILY = auto()
    DAILY_BUSINESS_DAYS = auto()
    WEEKLY = auto()
    MONTHLY = auto()

    @property
    def is_recurring(self) -> bool:
        return self is not Recurrence.NONE


def utcnow() -> datetime.datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime.datetime) -> datetime.datetime:
    """Convert an aware datetime to naive UTC. Naive datetimes are assumed to be
    UTC already and are returned unchanged."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(datetime.timezone.utc).replace(tzinfo=None)


def as_instant(
    value: datetime.date | datetime.datetime, *, end_of: bool = False
) -> datetime.datetime:
    """Coerce a window bound to an instant. A bare date becomes the start of
    that day, or its last millisecond if `end_of` is set."""
    if isinstance(value, datetime.datetime):
        return to_naive_utc(value)
    return end_of_day(value) if end_of else start_of_day(value)


def to_date_str(value: datetime.date | datetime.datetime | str) -> str:
    """Format the calendar date of `value` as YYYY-MM-DD.

    Raises
    ------
    ValidationError if `value` is a string that is not a valid date.
    """
    if isinstance(value, str):
        return parse_date_str(value).strftime(DATE_FORMAT)
    if isinstance(value, datetime.datetime):
        value = to_naive_utc(value).date()
    return value.strftime(DATE_FORMAT)


def parse_date_str(value: str) -> datetime.date:
    try:
        return datetime.datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD")


def start_of_day(day: datetime.date) -> datetime.datetime:
    return datetime.datetime.combine(day, datetime.time.min)


def end_of_day(day: datetime.date) -> datetime.datetime:
    """The last millisecond of `day`."""
    return datetime.datetime.combine(day, datetime.time(23, 59, 59, 999000))


def end_of_previous_day(dt: datetime.datetime) -> datetime.datetime:
    """23:59:59.999 of the day before `dt`, used to cap a rule so that it never
    generates on or after the day of `dt`."""
    return end_of_day(to_naive_utc(dt).date() - ONE_DAY)


def at_time_of(day: datetime.date, reference: datetime.datetime) -> datetime.datetime:
    """Combine `day` with the wall-clock time of `reference` (to the minute)."""
    return datetime.datetime.combine(
        day, datetime.time(reference.hour, reference.minute)
    )


def effective_end(
    window_end: datetime.datetime,
    anchor: datetime.datetime,
    until: datetime.datetime | None = None,
) -> datetime.datetime:
    """The earlier of the window end and the rule cap. Rules without an until
    cap stop one horizon past their anchor."""
    cap = until if until is not None else anchor + DEFAULT_RULE_HORIZON
    return min(window_end, cap)


def _daily(
    anchor: datetime.datetime, first_day: datetime.date, last_day: datetime.date
) -> list[datetime.date]:
    rule = rrule.rrule(rrule.DAILY, dtstart=start_of_day(anchor.date() + ONE_DAY))
    return [
        dt.date()
        for dt in rule.between(start_of_day(first_day), start_of_day(last_day), inc=True)
    ]


def _weekly(
    anchor: datetime.datetime, first_day: datetime.date, last_day: datetime.date
) -> list[datetime.date]:
    rule = rrule.rrule(
        rrule.WEEKLY, dtstart=start_of_day(anchor.date() + datetime.timedelta(days=7))
    )
    return [
        dt.date()
        for dt in rule.between(start_of_day(first_day), start_of_day(last_day), inc=True)
    ]


def _monthly(
    anchor: datetime.datetime, first_day: datetime.date, last_day: datetime.date
) -> list[datetime.date]:
    dates = []
    # relativedelta clamps the day of month, so 31 Jan + 1 month is 29 Feb in 2024
    for months in range(1, MONTHLY_SAFETY_BOUND + 1):
        candidate = anchor.date() + relativedelta(months=months)
        if candidate > last_day:
            break
        if candidate >= first_day:
            dates.append(candidate)
    return dates


def occurrence_dates(
    recurrence: Recurrence,
    anchor: datetime.datetime,
    window_start: datetime.date | datetime.datetime,
    window_end: datetime.date | datetime.datetime,
    until: datetime.datetime | None = None,
) -> list[datetime.date]:
    """Compute the calendar dates at which a rule produces occurrences inside a
    query window.

    Parameters
    ----------
    recurrence
        The rule periodicity.
    anchor
        The instant the rule is measured from. Its own date is never returned
        because it is the first occurrence of the series.
    window_start, window_end
        The query window. Both bounds are inclusive and compared at calendar
        day granularity.
    until
        Optional cap on the rule. When not set, the rule stops
        `DEFAULT_RULE_HORIZON` after the anchor.

    Returns
    -------
    An ascending list of distinct dates. The time of day is attached by the
    caller.
    """
    try:
        recurrence = Recurrence(recurrence)
    except ValueError:
        logger.warning(f"Unknown recurrence {recurrence!r}, no occurrences generated")
        return []
    anchor = to_naive_utc(anchor)
    window_start = as_instant(window_start)
    window_end = as_instant(window_end, end_of=True)
    if until is not None:
        until = to_naive_utc(until)
    end = effective_end(window_end, anchor, until)
    first_day, last_day = window_start.date(), end.date()
    if last_day < first_day:
        return []
    if recurrence is Recurrence.NONE:
        return []
    elif recurrence is Recurrence.DAILY:
        return _daily(anchor, first_day, last_day)
    elif recurrence is Recurrence.WEEKLY:
        return _weekly(anchor, first_day, last_day)
    elif recurrence is Recurrence.MONTHLY:
        return _monthly(anchor, first_day, last_day)
    elif recurrence is Recurrence.DAILY_BUSINESS_DAYS:
        # TODO: generate Monday-Friday dates once business-day rules are agreed on
        logger.warning(
            f"Recurrence {recurrence} is not supported yet, no occurrences generated"
        )
        return []
    else:
        assert_never(recurrence)

#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime

import pytest

from agenda.exceptions import ValidationError
from agenda.time_utils import (
    Recurrence,
    as_instant,
    at_time_of,
    end_of_previous_day,
    occurrence_dates,
    parse_date_str,
    to_date_str,
)


def dates(*days: tuple[int, int, int]) -> list[datetime.date]:
    return [datetime.date(*day) for day in days]


ANCHOR = datetime.datetime(2024, 1, 1, 9, 0)


def test_daily_excludes_anchor_date():
    found = occurrence_dates(
        Recurrence.DAILY, ANCHOR, datetime.date(2024, 1, 1), datetime.date(2024, 1, 5)
    )
    assert found == dates((2024, 1, 2), (2024, 1, 3), (2024, 1, 4), (2024, 1, 5))


def test_daily_window_after_anchor():
    found = occurrence_dates(
        Recurrence.DAILY,
        ANCHOR,
        datetime.datetime(2024, 3, 10, 15, 0),
        datetime.datetime(2024, 3, 12, 0, 0),
    )
    # bounds are compared as whole days
    assert found == dates((2024, 3, 10), (2024, 3, 11), (2024, 3, 12))


def test_weekly_keeps_anchor_weekday():
    found = occurrence_dates(
        Recurrence.WEEKLY, ANCHOR, datetime.date(2024, 1, 1), datetime.date(2024, 1, 31)
    )
    assert found == dates((2024, 1, 8), (2024, 1, 15), (2024, 1, 22), (2024, 1, 29))


def test_weekly_window_starting_mid_week():
    found = occurrence_dates(
        Recurrence.WEEKLY, ANCHOR, datetime.date(2024, 1, 10), datetime.date(2024, 2, 10)
    )
    assert found == dates((2024, 1, 15), (2024, 1, 22), (2024, 1, 29), (2024, 2, 5))
    assert all(day.weekday() == ANCHOR.weekday() for day in found)


def test_monthly_clamps_to_month_end():
    anchor = datetime.datetime(2024, 1, 31, 8, 30)
    found = occurrence_dates(
        Recurrence.MONTHLY, anchor, datetime.date(2024, 1, 1), datetime.date(2024, 5, 31)
    )
    assert found == dates((2024, 2, 29), (2024, 3, 31), (2024, 4, 30), (2024, 5, 31))


def test_until_caps_generation():
    found = occurrence_dates(
        Recurrence.DAILY,
        ANCHOR,
        datetime.date(2024, 1, 1),
        datetime.date(2024, 1, 31),
        until=datetime.datetime(2024, 1, 3, 10, 0),
    )
    assert found == dates((2024, 1, 2), (2024, 1, 3))


def test_default_horizon_is_one_year_after_anchor():
    found = occurrence_dates(
        Recurrence.DAILY, ANCHOR, datetime.date(2024, 12, 25), datetime.date(2025, 1, 10)
    )
    # 2024 is a leap year, so the horizon ends on 31 December
    assert found[0] == datetime.date(2024, 12, 25)
    assert found[-1] == datetime.date(2024, 12, 31)
    assert len(found) == 7


@pytest.mark.parametrize(
    "recurrence",
    [Recurrence.NONE, Recurrence.DAILY_BUSINESS_DAYS, "fortnightly"],
)
def test_rules_without_generation(recurrence):
    found = occurrence_dates(
        recurrence, ANCHOR, datetime.date(2024, 1, 1), datetime.date(2024, 1, 31)
    )
    assert found == []


def test_empty_when_window_ends_before_it_starts():
    found = occurrence_dates(
        Recurrence.DAILY, ANCHOR, datetime.date(2024, 2, 1), datetime.date(2024, 1, 20)
    )
    assert found == []


def test_accepts_string_tag_and_aware_instants():
    anchor = datetime.datetime(
        2024, 1, 1, 6, 0, tzinfo=datetime.timezone(datetime.timedelta(hours=-3))
    )
    found = occurrence_dates(
        "weekly", anchor, datetime.date(2024, 1, 1), datetime.date(2024, 1, 16)
    )
    assert found == dates((2024, 1, 8), (2024, 1, 15))


def test_end_of_previous_day():
    cut_off = end_of_previous_day(datetime.datetime(2024, 1, 4, 9, 0))
    assert cut_off == datetime.datetime(2024, 1, 3, 23, 59, 59, 999000)


def test_as_instant_bounds():
    day = datetime.date(2024, 1, 5)
    assert as_instant(day) == datetime.datetime(2024, 1, 5)
    assert as_instant(day, end_of=True) == datetime.datetime(
        2024, 1, 5, 23, 59, 59, 999000
    )


def test_at_time_of_drops_seconds():
    reference = datetime.datetime(2024, 1, 1, 9, 30, 45)
    assert at_time_of(datetime.date(2024, 2, 2), reference) == datetime.datetime(
        2024, 2, 2, 9, 30
    )


def test_to_date_str_uses_utc_date():
    late_evening = datetime.datetime(
        2024, 1, 1, 22, 30, tzinfo=datetime.timezone(datetime.timedelta(hours=-3))
    )
    assert to_date_str(late_evening) == "2024-01-02"
    assert to_date_str(datetime.date(2024, 3, 9)) == "2024-03-09"
    assert to_date_str(" 2024-03-09 ") == "2024-03-09"


def test_parse_date_str_rejects_garbage():
    with pytest.raises(ValidationError):
        parse_date_str("09/03/2024")

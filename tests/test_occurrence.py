#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime

import pytest

from agenda.exceptions import ValidationError
from agenda.occurrence import Occurrence, OccurrenceStatus, coerce_enum
from agenda.time_utils import Recurrence

START = datetime.datetime(2024, 1, 1, 9, 0)


def minutes_after(minutes: int) -> datetime.datetime:
    return START + datetime.timedelta(minutes=minutes)


@pytest.fixture
def occurrence() -> Occurrence:
    return Occurrence(
        name="  Budget review ",
        user_id="alex",
        starts_at=START,
        ends_at=minutes_after(60),
        recurrence=Recurrence.WEEKLY,
        category_id=3,
        kind="review",
        discipline_id=11,
        phase="design",
    )


def test_name_is_stripped(occurrence: Occurrence):
    assert occurrence.name == "Budget review"
    assert occurrence.status is OccurrenceStatus.OPEN
    assert occurrence.duration_minutes == 60


@pytest.mark.parametrize(
    "fields",
    [
        {"name": "   ", "user_id": "alex"},
        {"name": "Review", "user_id": ""},
        {"name": "Review", "user_id": "alex", "starts_at": START},
        {"name": "Review", "user_id": "alex", "starts_at": START, "ends_at": START},
        {
            "name": "Review",
            "user_id": "alex",
            "starts_at": START,
            "ends_at": minutes_after(45),
        },
        {
            "name": "Review",
            "user_id": "alex",
            "starts_at": START,
            "ends_at": minutes_after(-30),
        },
        {"name": "Review", "user_id": "alex", "root_id": 1, "max_count": 3},
        {"name": "Review", "user_id": "alex", "root_id": 1, "copy_links": True},
        {"name": "Review", "user_id": "alex", "max_count": -1},
        {"name": "Review", "user_id": "alex", "recurrence": "yearly"},
    ],
)
def test_invalid_occurrences_rejected(fields):
    with pytest.raises(ValidationError):
        Occurrence(**fields)


def test_unscheduled_occurrence():
    occurrence = Occurrence(name="Someday", user_id="alex")
    assert not occurrence.is_scheduled
    assert occurrence.duration is None
    assert occurrence.rule is None
    assert "unscheduled" in str(occurrence)


def test_aware_instants_normalised_to_utc():
    tz = datetime.timezone(datetime.timedelta(hours=-3))
    occurrence = Occurrence(
        name="Review",
        user_id="alex",
        starts_at=datetime.datetime(2024, 1, 1, 6, 0, tzinfo=tz),
        ends_at=datetime.datetime(2024, 1, 1, 7, 0, tzinfo=tz),
    )
    assert occurrence.starts_at == START
    assert occurrence.starts_at.tzinfo is None


def test_reschedule(occurrence: Occurrence):
    new_start = datetime.datetime(2024, 1, 2, 14, 0)
    occurrence.reschedule(new_start, new_start + datetime.timedelta(minutes=90))
    assert occurrence.starts_at == new_start
    assert occurrence.duration_minutes == 90


def test_rejected_reschedule_leaves_occurrence_untouched(occurrence: Occurrence):
    with pytest.raises(ValidationError):
        occurrence.reschedule(minutes_after(120), minutes_after(140))
    assert occurrence.starts_at == START
    assert occurrence.ends_at == minutes_after(60)


def test_resize(occurrence: Occurrence):
    occurrence.resize(minutes_after(30))
    assert occurrence.starts_at == START
    assert occurrence.duration_minutes == 30
    with pytest.raises(ValidationError):
        occurrence.resize(START)
    assert occurrence.duration_minutes == 30


def test_resize_requires_start():
    occurrence = Occurrence(name="Someday", user_id="alex")
    with pytest.raises(ValidationError):
        occurrence.resize(START)


def test_status_toggle(occurrence: Occurrence):
    occurrence.mark_done()
    assert occurrence.is_done
    assert "[done]" in str(occurrence)
    occurrence.reopen()
    assert occurrence.status is OccurrenceStatus.OPEN


def test_exclude_date_is_idempotent(occurrence: Occurrence):
    occurrence.exclude_date("2024-01-08")
    occurrence.exclude_date(datetime.datetime(2024, 1, 8, 9, 0))
    occurrence.exclude_date(datetime.date(2024, 1, 15))
    assert occurrence.excluded_dates == ["2024-01-08", "2024-01-15"]


def test_children_do_not_carry_a_rule(occurrence: Occurrence):
    occurrence.occurrence_id = 1
    child = occurrence.spawn_child(datetime.datetime(2024, 1, 8, 9, 0))
    assert child.is_child
    assert not child.is_group_root
    assert child.rule is None
    with pytest.raises(ValidationError):
        child.exclude_date("2024-01-08")
    with pytest.raises(ValidationError):
        child.set_rule(max_count=3)


def test_spawn_child_copies_root(occurrence: Occurrence):
    occurrence.occurrence_id = 7
    occurrence.mark_done()
    child = occurrence.spawn_child(datetime.datetime(2024, 1, 8, 9, 0))
    assert child.occurrence_id is None
    assert child.root_id == 7
    assert child.group_id == 7
    assert child.name == occurrence.name
    assert child.recurrence is Recurrence.WEEKLY
    assert child.duration == occurrence.duration
    assert child.status is OccurrenceStatus.OPEN
    assert (child.category_id, child.kind, child.discipline_id, child.phase) == (
        3,
        "review",
        11,
        "design",
    )


def test_rule_defaults_anchor_to_start(occurrence: Occurrence):
    rule = occurrence.rule
    assert rule.anchor == START
    assert rule.until is None
    assert rule.max_count is None
    assert rule.excluded_dates == frozenset()

    occurrence.set_rule(
        anchor=datetime.datetime(2024, 1, 3, 9, 0),
        recurs_until=datetime.datetime(2024, 3, 1),
        max_count=4,
        copy_links=True,
    )
    rule = occurrence.rule
    assert rule.anchor == datetime.datetime(2024, 1, 3, 9, 0)
    assert rule.max_count == 4
    assert rule.copy_links


def test_promote_to_root():
    child = Occurrence(
        name="Review",
        user_id="alex",
        starts_at=minutes_after(24 * 60),
        ends_at=minutes_after(25 * 60),
        recurrence=Recurrence.DAILY,
        root_id=1,
    )
    child.promote_to_root(
        anchor=START,
        recurs_until=None,
        excluded_dates=["2024-01-01", "2024-01-05", "2024-01-01"],
    )
    assert child.is_group_root
    assert child.anchor == START
    assert child.excluded_dates == ["2024-01-01", "2024-01-05"]


def test_reclassify(occurrence: Occurrence):
    occurrence.reclassify(kind="inspection", phase=None)
    assert occurrence.kind == "inspection"
    assert occurrence.phase is None
    with pytest.raises(ValidationError):
        occurrence.reclassify(colour="red")


def test_reclassify_rejects_wrong_types(occurrence: Occurrence):
    with pytest.raises(ValidationError):
        occurrence.reclassify(kind="inspection", category_id="not-an-int")
    # nothing is changed by a rejected reclassification
    assert occurrence.category_id == 3
    assert occurrence.kind == "review"


def test_rename(occurrence: Occurrence):
    occurrence.rename(" Budget sign-off ")
    assert occurrence.name == "Budget sign-off"
    with pytest.raises(ValidationError):
        occurrence.rename("")


def test_record_round_trip(occurrence: Occurrence):
    occurrence.exclude_date("2024-01-08")
    record = occurrence.to_record()
    assert record["status"] == "open"
    assert record["recurrence"] == "weekly"
    assert Occurrence.from_record(record) == occurrence


def test_coerce_enum():
    assert coerce_enum(Recurrence, " monthly") is Recurrence.MONTHLY
    with pytest.raises(ValidationError):
        coerce_enum(OccurrenceStatus, "cancelled")

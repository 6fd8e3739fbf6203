#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""The calendar occurrence aggregate and the value objects it carries."""

import datetime
from enum import StrEnum, auto
from typing import Any, Literal, NamedTuple, Self, TypeVar

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from agenda.constants import SLOT_MINUTES
from agenda.exceptions import ValidationError
from agenda.time_utils import Recurrence, to_date_str, to_naive_utc, utcnow

OccurrenceId = int

RULE_FIELDS = ("anchor", "recurs_until", "max_count", "excluded_dates")
CLASSIFICATION_FIELDS = ("category_id", "kind", "discipline_id", "phase")


class NotGiven:
    """Default of optional arguments for which `None` is a meaningful value,
    eg clearing a cap of the rule as opposed to leaving it as it is."""

    def __bool__(self) -> Literal[False]:
        return False

    def __repr__(self) -> str:
        return "NOT_GIVEN"


NOT_GIVEN = NotGiven()


class OccurrenceStatus(StrEnum):
    OPEN = auto()
    DONE = auto()


E = TypeVar("E", bound=StrEnum)


def coerce_enum(enum_cls: type[E], value: E | str) -> E:
    """Parse `value` into `enum_cls`, raising `ValidationError` for unknown values."""
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        allowed = ", ".join(enum_cls)
        raise ValidationError(
            f"Invalid {enum_cls.__name__} {value!r}. Allowed values: {allowed}"
        )


def validate_duration(starts_at: datetime.datetime, ends_at: datetime.datetime):
    """Check that an occurrence ends after it starts and lasts a whole number
    of slots."""
    if ends_at <= starts_at:
        raise ValidationError("The end of an occurrence must be after its start")
    minutes = (ends_at - starts_at).total_seconds() / 60
    if minutes % SLOT_MINUTES != 0:
        raise ValidationError(
            f"The duration must be a multiple of {SLOT_MINUTES} minutes, "
            f"got {minutes:g} minutes"
        )


class RecurrenceRule(NamedTuple):
    """The rule held by a group root.

    Parameters
    ----------
    recurrence
        How often the group repeats.
    anchor
        The instant the rule is measured from.
    until
        No occurrence is generated after this instant, if set.
    max_count
        The maximum number of children the rule generates, if set.
    excluded_dates
        YYYY-MM-DD dates at which an occurrence is never (re-)generated.
    copy_links
        Whether children receive the auxiliary links of the root.
    """

    recurrence: Recurrence
    anchor: datetime.datetime
    until: datetime.datetime | None
    max_count: int | None
    excluded_dates: frozenset[str]
    copy_links: bool


class Occurrence(BaseModel):
    """A single activity in a user's calendar, either the root of a recurring
    group or one of the children generated from the root's rule.

    Fields should only be changed through the mutation methods below, each of
    which re-checks the invariants and leaves the occurrence untouched if the
    change is rejected.

    Parameters
    ----------
    occurrence_id
        Assigned by the store when the occurrence is first saved.
    starts_at, ends_at
        Both set for scheduled occurrences, both unset otherwise.
    category_id, kind, discipline_id, phase
        Classification copied verbatim from a root to its children.
    recurrence
        On a child this mirrors the tag of its root and is for display only.
    root_id
        Set on children, pointing at the group root.
    anchor, recurs_until, max_count, excluded_dates, copy_links
        The rule payload, only meaningful on a group root.
    """

    occurrence_id: OccurrenceId | None = None
    name: str
    user_id: str
    starts_at: datetime.datetime | None = None
    ends_at: datetime.datetime | None = None
    status: OccurrenceStatus = OccurrenceStatus.OPEN
    recurrence: Recurrence = Recurrence.NONE
    category_id: int | None = None
    kind: str | None = None
    discipline_id: int | None = None
    phase: str | None = None
    root_id: OccurrenceId | None = None
    anchor: datetime.datetime | None = None
    recurs_until: datetime.datetime | None = None
    max_count: int | None = None
    excluded_dates: list[str] = Field(default_factory=list)
    copy_links: bool = False
    created_at: datetime.datetime = Field(default_factory=utcnow)

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except PydanticValidationError as e:
            messages = "; ".join(err["msg"] for err in e.errors())
            raise ValidationError(messages) from e

    @field_validator("name")
    @classmethod
    def _strip_name(cls, name: str) -> str:
        name = name.strip()
        if not name:
            raise ValueError("The occurrence name is required")
        return name

    @field_validator("user_id")
    @classmethod
    def _require_user(cls, user_id: str) -> str:
        if not user_id:
            raise ValueError("The owning user is required")
        return user_id

    @field_validator("starts_at", "ends_at", "anchor", "recurs_until", "created_at")
    @classmethod
    def _normalise_instant(
        cls, value: datetime.datetime | None
    ) -> datetime.datetime | None:
        return to_naive_utc(value) if value is not None else None

    @field_validator("excluded_dates", mode="before")
    @classmethod
    def _normalise_excluded(cls, value: list[str] | None) -> list[str]:
        if value is None:
            return []
        normalised = []
        for date_str in value:
            date_str = to_date_str(date_str)
            if date_str not in normalised:
                normalised.append(date_str)
        return normalised

    @model_validator(mode="after")
    def _check_invariants(self) -> Self:
        if (self.starts_at is None) != (self.ends_at is None):
            raise ValueError("Start and end must either both be set or both be unset")
        if self.starts_at is not None:
            validate_duration(self.starts_at, self.ends_at)
        if self.root_id is not None and (
            self.anchor is not None
            or self.recurs_until is not None
            or self.max_count is not None
            or self.excluded_dates
            or self.copy_links
        ):
            raise ValueError("Only the root of a recurring group carries a rule")
        if self.max_count is not None and self.max_count < 0:
            raise ValueError("The maximum number of occurrences cannot be negative")
        return self

    @field_serializer("status", "recurrence")
    def _serialise_enum(self, value: StrEnum) -> str:
        return str(value)

    @property
    def is_scheduled(self) -> bool:
        return self.starts_at is not None and self.ends_at is not None

    @property
    def duration(self) -> datetime.timedelta | None:
        if not self.is_scheduled:
            return None
        return self.ends_at - self.starts_at

    @property
    def duration_minutes(self) -> int | None:
        if not self.is_scheduled:
            return None
        return round(self.duration.total_seconds() / 60)

    @property
    def is_done(self) -> bool:
        return self.status is OccurrenceStatus.DONE

    @property
    def is_recurring(self) -> bool:
        return self.recurrence.is_recurring

    @property
    def is_group_root(self) -> bool:
        return self.is_recurring and self.root_id is None

    @property
    def is_child(self) -> bool:
        return self.root_id is not None

    @property
    def group_id(self) -> OccurrenceId | None:
        """The id of the group root, which is this occurrence unless it is a child."""
        return self.root_id if self.root_id is not None else self.occurrence_id

    @property
    def rule(self) -> RecurrenceRule | None:
        """The rule this occurrence holds, or None unless it is a scheduled group root."""
        if not self.is_group_root or self.starts_at is None:
            return None
        return RecurrenceRule(
            recurrence=self.recurrence,
            anchor=self.anchor or self.starts_at,
            until=self.recurs_until,
            max_count=self.max_count,
            excluded_dates=frozenset(self.excluded_dates),
            copy_links=self.copy_links,
        )

    def reschedule(self, starts_at: datetime.datetime, ends_at: datetime.datetime):
        """Move the occurrence to a new slot."""
        starts_at, ends_at = to_naive_utc(starts_at), to_naive_utc(ends_at)
        validate_duration(starts_at, ends_at)
        self.starts_at = starts_at
        self.ends_at = ends_at

    def resize(self, ends_at: datetime.datetime):
        """Change the end of the occurrence, keeping its start."""
        if self.starts_at is None:
            raise ValidationError("Cannot resize an occurrence without a start time")
        ends_at = to_naive_utc(ends_at)
        validate_duration(self.starts_at, ends_at)
        self.ends_at = ends_at

    def mark_done(self):
        self.status = OccurrenceStatus.DONE

    def reopen(self):
        self.status = OccurrenceStatus.OPEN

    def rename(self, name: str):
        if not name or not name.strip():
            raise ValidationError("The occurrence name is required")
        self.name = name.strip()

    def reclassify(self, **classification: Any):
        """Update any of `category_id`, `kind`, `discipline_id` and `phase`.

        Raises
        ------
        ValidationError if a field is unknown or a value has the wrong type, in
        which case no field is changed.
        """
        unknown = set(classification) - set(CLASSIFICATION_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown classification fields {sorted(unknown)}")
        checked = Occurrence(**{**self.model_dump(), **classification})
        for field in classification:
            setattr(self, field, getattr(checked, field))

    def change_recurrence(self, recurrence: Recurrence | str):
        self.recurrence = coerce_enum(Recurrence, recurrence)

    def set_rule(
        self,
        *,
        anchor: datetime.datetime | None = None,
        recurs_until: datetime.datetime | None = None,
        max_count: int | None = None,
        copy_links: bool = False,
    ):
        """Replace the caps of the rule held by this occurrence. Exclusions are kept."""
        if self.root_id is not None:
            raise ValidationError("Only the root of a recurring group carries a rule")
        if max_count is not None and max_count < 0:
            raise ValidationError("The maximum number of occurrences cannot be negative")
        self.anchor = to_naive_utc(anchor) if anchor is not None else None
        self.recurs_until = to_naive_utc(recurs_until) if recurs_until else None
        self.max_count = max_count
        self.copy_links = bool(copy_links)

    def exclude_date(self, date: datetime.date | datetime.datetime | str):
        """Never generate an occurrence of this group on `date` again."""
        if self.root_id is not None:
            raise ValidationError("Only the root of a recurring group carries a rule")
        date_str = to_date_str(date)
        if date_str not in self.excluded_dates:
            self.excluded_dates = [*self.excluded_dates, date_str]

    def promote_to_root(
        self,
        *,
        anchor: datetime.datetime | None,
        recurs_until: datetime.datetime | None,
        excluded_dates: list[str],
    ):
        """Take over the rule of a group whose root is being removed."""
        excluded = []
        for date_str in excluded_dates:
            date_str = to_date_str(date_str)
            if date_str not in excluded:
                excluded.append(date_str)
        self.root_id = None
        self.anchor = to_naive_utc(anchor) if anchor is not None else None
        self.recurs_until = to_naive_utc(recurs_until) if recurs_until else None
        self.excluded_dates = excluded

    def spawn_child(self, starts_at: datetime.datetime) -> "Occurrence":
        """Build an unsaved child of this group root starting at `starts_at`
        and lasting as long as the root."""
        return Occurrence(
            name=self.name,
            user_id=self.user_id,
            starts_at=starts_at,
            ends_at=starts_at + self.duration,
            recurrence=self.recurrence,
            root_id=self.occurrence_id,
            **{f: getattr(self, f) for f in CLASSIFICATION_FIELDS},
        )

    def to_record(self) -> dict[str, Any]:
        return self.model_dump()

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Self:
        return cls(**record)

    def __str__(self) -> str:
        if self.is_scheduled:
            when = (
                f"{self.starts_at.strftime('%Y-%m-%d %H:%M')} "
                f"for {self.duration_minutes} minutes"
            )
        else:
            when = "unscheduled"
        display = f"'{self.name}' {when}"
        if self.is_recurring:
            display += f" (repeats {self.recurrence})"
        if self.is_done:
            display += " [done]"
        return display

#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
from typing import Any, Protocol, runtime_checkable

from agenda.occurrence import Occurrence, OccurrenceId


@runtime_checkable
class AgendaStore(Protocol):
    """Persistence operations the materializer, the deletion coordinator and
    the agenda service rely on.

    Implementations are free to raise their own errors, which propagate to the
    caller unchanged. `delete` must not fail for ids that no longer exist.
    """

    def find_by_id(self, occurrence_id: OccurrenceId) -> Occurrence | None: ...

    def save(self, occurrence: Occurrence) -> Occurrence:
        """Insert `occurrence` and return it with its id assigned."""
        ...

    def save_many(self, occurrences: list[Occurrence]) -> list[Occurrence]: ...

    def update(self, occurrence: Occurrence) -> Occurrence: ...

    def delete(self, occurrence_id: OccurrenceId) -> bool:
        """Remove an occurrence, returning False if it was already gone."""
        ...

    def find_by_user_and_range(
        self, user_id: str, start: datetime.datetime, end: datetime.datetime
    ) -> list[Occurrence]:
        """Occurrences of `user_id` starting in [start, end], ordered by start."""
        ...

    def find_by_user(self, user_id: str) -> list[Occurrence]: ...

    def find_by_name(self, user_id: str, name: str) -> list[Occurrence]:
        """Occurrences of `user_id` that are not group children and whose name
        matches `name` approximately."""
        ...

    def find_group_roots(self, user_id: str) -> list[Occurrence]:
        """Recurring occurrences of `user_id` without a root reference."""
        ...

    def count_children(self, root_id: OccurrenceId) -> int: ...

    def find_children_start_dates(
        self, root_id: OccurrenceId, start: datetime.datetime, end: datetime.datetime
    ) -> list[datetime.datetime]: ...

    def find_group_instances(self, root_id: OccurrenceId) -> list[Occurrence]:
        """The root and all of its children."""
        ...

    def update_root_rule_fields(
        self, root_id: OccurrenceId, fields: dict[str, Any]
    ) -> None:
        """Partially update the rule payload of a group root."""
        ...

    def reassign_children(
        self, old_root_id: OccurrenceId, new_root_id: OccurrenceId
    ) -> int:
        """Point the children of `old_root_id` at `new_root_id`, skipping the new
        root itself. Returns the number of children moved."""
        ...

    def delete_all_children(self, root_id: OccurrenceId) -> int: ...

    def delete_children_from(
        self, root_id: OccurrenceId, starts_at: datetime.datetime
    ) -> int:
        """Delete the children of `root_id` starting at or after `starts_at`."""
        ...

    def apply_time_delta(
        self, occurrence_ids: list[OccurrenceId], delta: datetime.timedelta
    ) -> None:
        """Shift the start and end of the given occurrences by `delta`."""
        ...

    def find_linked_ids(self, occurrence_id: OccurrenceId) -> list[int]: ...

    def link_ids(self, occurrence_id: OccurrenceId, linked_ids: list[int]) -> None: ...

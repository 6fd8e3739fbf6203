#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Creates the missing children of recurring groups for a date window."""

import datetime
import logging

from agenda.occurrence import Occurrence
from agenda.storage.port import AgendaStore
from agenda.time_utils import (
    as_instant,
    at_time_of,
    end_of_day,
    occurrence_dates,
    start_of_day,
    to_date_str,
)

logger = logging.getLogger(__name__)


class Materializer:
    """Generates and persists the children of a user's recurring groups.

    Materializing is idempotent: children already stored for a date, the
    date of the root itself and the dates excluded from the rule are never
    (re-)created, and the rule's count cap takes every existing child into
    account.

    Notes
    -----
    1. Groups are processed one after the other. A store error aborts the call,
    leaving the children saved for earlier groups in place.
    2. There is no lock or uniqueness constraint behind the idempotency checks,
    concurrent calls for overlapping windows may create the same child twice.
    """

    def __init__(self, store: AgendaStore):
        self._store = store

    def materialize(
        self,
        user_id: str,
        window_start: datetime.date | datetime.datetime,
        window_end: datetime.date | datetime.datetime,
    ) -> list[Occurrence]:
        """Create the children of every recurring group of `user_id` falling
        in [window_start, window_end] and return them."""
        window_start = as_instant(window_start)
        window_end = as_instant(window_end, end_of=True)
        created = []
        for root in self._store.find_group_roots(user_id):
            created += self.materialize_root(root, window_start, window_end)
        return created

    def materialize_root(
        self,
        root: Occurrence,
        window_start: datetime.datetime,
        window_end: datetime.datetime,
    ) -> list[Occurrence]:
        rule = root.rule
        if rule is None:
            logger.debug(f"Skipping {root.occurrence_id}: unscheduled or not a root")
            return []
        candidates = occurrence_dates(
            rule.recurrence, rule.anchor, window_start, window_end, until=rule.until
        )
        if not candidates:
            return []

        existing_count = 0
        if rule.max_count is not None:
            existing_count = self._store.count_children(root.occurrence_id)
        # whole days, so that a window ending at midnight still sees the
        # children created on its last day
        do_not_recreate = {
            to_date_str(starts_at)
            for starts_at in self._store.find_children_start_dates(
                root.occurrence_id,
                start_of_day(window_start.date()),
                end_of_day(window_end.date()),
            )
        }
        do_not_recreate.add(to_date_str(root.starts_at))

        to_create = []
        for day in candidates:
            date_str = to_date_str(day)
            if date_str in do_not_recreate or date_str in rule.excluded_dates:
                continue
            # candidates are ascending, so nothing later can fit either
            if (
                rule.max_count is not None
                and existing_count + len(to_create) >= rule.max_count
            ):
                break
            to_create.append(root.spawn_child(at_time_of(day, rule.anchor)))

        if not to_create:
            return []
        saved = self._store.save_many(to_create)
        logger.info(
            f"Materialized {len(saved)} occurrences of group {root.occurrence_id} "
            f"between {window_start:%Y-%m-%d} and {window_end:%Y-%m-%d}"
        )
        if rule.copy_links:
            linked_ids = self._store.find_linked_ids(root.occurrence_id)
            if linked_ids:
                for child in saved:
                    self._store.link_ids(child.occurrence_id, linked_ids)
        return saved

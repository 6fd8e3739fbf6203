#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Use cases of the agenda: creating, reading, editing and deleting occurrences."""

import datetime
import logging
from typing import Any, Callable

from agenda.deletion import DeleteScope, DeletionCoordinator, parse_scope
from agenda.exceptions import NotFoundError, ValidationError
from agenda.materializer import Materializer
from agenda.occurrence import (
    CLASSIFICATION_FIELDS,
    NOT_GIVEN,
    NotGiven,
    Occurrence,
    OccurrenceId,
    coerce_enum,
)
from agenda.storage.port import AgendaStore
from agenda.time_utils import Recurrence, as_instant, utcnow

logger = logging.getLogger(__name__)


class AgendaService:
    """Entry point for everything a user does with their agenda.

    Parameters
    ----------
    store
        Where occurrences are persisted.
    clock
        Returns the current (naive UTC) instant. Changing the recurrence of a
        group drops the children starting from this instant onwards.
    """

    def __init__(
        self,
        store: AgendaStore,
        clock: Callable[[], datetime.datetime] = utcnow,
    ):
        self._store = store
        self._clock = clock
        self.materializer = Materializer(store)
        self.deletion = DeletionCoordinator(store)

    def create(
        self,
        name: str,
        user_id: str,
        starts_at: datetime.datetime | None = None,
        ends_at: datetime.datetime | None = None,
        recurrence: Recurrence | str = Recurrence.NONE,
        recurs_until: datetime.datetime | None = None,
        max_count: int | None = None,
        copy_links: bool = False,
        linked_ids: list[int] | None = None,
        **classification: Any,
    ) -> Occurrence:
        """Create and persist a new occurrence.

        Parameters
        ----------
        recurrence
            Anything other than `none` turns the occurrence into the root of
            a recurring group anchored at `starts_at`.
        recurs_until, max_count, copy_links
            Caps of the rule, ignored for non-recurring occurrences.
        linked_ids
            Auxiliary records (eg projects) the occurrence is linked to.
        **classification
            Any of `category_id`, `kind`, `discipline_id` and `phase`.

        Raises
        ------
        ValidationError if the occurrence breaks one of its invariants.
        """
        recurrence = coerce_enum(Recurrence, recurrence)
        unknown = set(classification) - set(CLASSIFICATION_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown classification fields {sorted(unknown)}")
        rule = {}
        if recurrence.is_recurring:
            rule = {
                "anchor": starts_at,
                "recurs_until": recurs_until,
                "max_count": max_count,
                "copy_links": bool(copy_links),
            }
        occurrence = Occurrence(
            name=name,
            user_id=user_id,
            starts_at=starts_at,
            ends_at=ends_at,
            recurrence=recurrence,
            **rule,
            **classification,
        )
        occurrence = self._store.save(occurrence)
        if linked_ids:
            self._store.link_ids(occurrence.occurrence_id, linked_ids)
        logger.info(f"Created occurrence {occurrence.occurrence_id}: {occurrence}")
        return occurrence

    def get(self, occurrence_id: OccurrenceId) -> Occurrence:
        occurrence = self._store.find_by_id(occurrence_id)
        if occurrence is None:
            raise NotFoundError(occurrence_id)
        return occurrence

    def list_range(
        self,
        user_id: str,
        start: datetime.date | datetime.datetime,
        end: datetime.date | datetime.datetime,
    ) -> list[Occurrence]:
        """Return the occurrences of `user_id` starting in [start, end], ordered
        by start, after creating the recurring ones that fall in the window.
        Dates are read as whole days."""
        if not user_id:
            raise ValidationError("The owning user is required")
        start, end = as_instant(start), as_instant(end, end_of=True)
        if end < start:
            raise ValidationError("The end of the window must not precede its start")
        self.materializer.materialize(user_id, start, end)
        return self._store.find_by_user_and_range(user_id, start, end)

    def search(self, user_id: str, name: str) -> list[Occurrence]:
        """Find single occurrences and recurring groups of `user_id` by
        approximate name."""
        if not name or not name.strip():
            raise ValidationError("A name to search for is required")
        return self._store.find_by_name(user_id, name.strip())

    def set_status(self, occurrence_id: OccurrenceId, done: bool) -> Occurrence:
        occurrence = self.get(occurrence_id)
        if done:
            occurrence.mark_done()
        else:
            occurrence.reopen()
        return self._store.update(occurrence)

    def rename(
        self,
        occurrence_id: OccurrenceId,
        name: str,
        scope: DeleteScope | str = DeleteScope.THIS,
    ) -> Occurrence:
        """Rename an occurrence. With scope `future` or `all` the later (or all
        other) members of its group and the group root are renamed too."""
        return self._edit_group(
            occurrence_id, parse_scope(scope), lambda o: o.rename(name)
        )

    def reclassify(
        self,
        occurrence_id: OccurrenceId,
        scope: DeleteScope | str = DeleteScope.THIS,
        **classification: Any,
    ) -> Occurrence:
        """Change the classification of an occurrence, see `rename` for `scope`."""
        return self._edit_group(
            occurrence_id,
            parse_scope(scope),
            lambda o: o.reclassify(**classification),
        )

    def _edit_group(
        self,
        occurrence_id: OccurrenceId,
        scope: DeleteScope,
        edit: Callable[[Occurrence], None],
    ) -> Occurrence:
        """Apply `edit` to an occurrence and, for a recurring one with scope
        `future` or `all`, to the matching members of its group.

        The group root is always edited along with them, since the children
        created later copy its name and classification.
        """
        occurrence = self.get(occurrence_id)
        edit(occurrence)
        self._store.update(occurrence)
        if scope is DeleteScope.THIS or not occurrence.is_recurring:
            return occurrence

        targets = self._scope_targets(occurrence, scope, occurrence.starts_at)
        root_id = occurrence.group_id
        if root_id != occurrence.occurrence_id and all(
            t.occurrence_id != root_id for t in targets
        ):
            targets.append(self.get(root_id))
        for target in targets:
            edit(target)
            self._store.update(target)
        logger.info(
            f"Edited {len(targets)} other occurrences of group {root_id} (scope {scope})"
        )
        return occurrence

    def _scope_targets(
        self,
        occurrence: Occurrence,
        scope: DeleteScope,
        starts_at: datetime.datetime | None,
    ) -> list[Occurrence]:
        """The other members of the group of `occurrence` covered by `scope`.
        For `future` these are the ones starting at or after `starts_at`."""
        others = [
            o
            for o in self._store.find_group_instances(occurrence.group_id)
            if o.occurrence_id != occurrence.occurrence_id
        ]
        if scope is DeleteScope.FUTURE:
            others = [
                o
                for o in others
                if o.starts_at is not None
                and starts_at is not None
                and o.starts_at >= starts_at
            ]
        return others

    def reschedule(
        self,
        occurrence_id: OccurrenceId,
        starts_at: datetime.datetime,
        ends_at: datetime.datetime,
        scope: DeleteScope | str = DeleteScope.THIS,
    ) -> Occurrence:
        """Move an occurrence, and for a recurring one with scope `future` or
        `all` shift the matching members of its group by the same amount.

        The group rule is then anchored at the new start, so that occurrences
        generated later follow the move. A child moved on its own to another
        day has its previous day excluded from the rule instead.
        """
        scope = parse_scope(scope)
        occurrence = self.get(occurrence_id)
        previous_start = occurrence.starts_at
        occurrence.reschedule(starts_at, ends_at)
        self._store.update(occurrence)

        if scope is DeleteScope.THIS or not occurrence.is_recurring:
            if (
                occurrence.is_child
                and previous_start is not None
                and previous_start.date() != occurrence.starts_at.date()
            ):
                self._exclude_from_rule(occurrence.root_id, previous_start)
            return occurrence
        if previous_start is None:
            logger.warning(
                f"Occurrence {occurrence_id} had no start, nothing to shift in its group"
            )
            return occurrence
        delta = occurrence.starts_at - previous_start
        if not delta:
            return occurrence

        targets = self._scope_targets(occurrence, scope, previous_start)
        if targets:
            self._store.apply_time_delta([o.occurrence_id for o in targets], delta)
        self._store.update_root_rule_fields(
            occurrence.group_id, {"anchor": occurrence.starts_at}
        )
        if occurrence.root_id is None:
            occurrence.anchor = occurrence.starts_at
        logger.info(
            f"Shifted {len(targets)} occurrences of group {occurrence.group_id} by {delta}"
        )
        return occurrence

    def _exclude_from_rule(self, root_id: OccurrenceId, day: datetime.datetime):
        root = self._store.find_by_id(root_id)
        if root is None:
            logger.warning(f"Group root {root_id} not found, {day:%Y-%m-%d} not excluded")
            return
        root.exclude_date(day)
        self._store.update(root)

    def resize(
        self,
        occurrence_id: OccurrenceId,
        ends_at: datetime.datetime,
        scope: DeleteScope | str = DeleteScope.THIS,
    ) -> Occurrence:
        """Change the end of an occurrence, and for a recurring one with scope
        `future` or `all` move the end of the matching members of its group by
        the same amount. Members the change would leave with an invalid
        duration keep their end."""
        scope = parse_scope(scope)
        occurrence = self.get(occurrence_id)
        previous_end = occurrence.ends_at
        occurrence.resize(ends_at)
        self._store.update(occurrence)

        if scope is DeleteScope.THIS or not occurrence.is_recurring:
            return occurrence
        delta = occurrence.ends_at - previous_end
        if not delta:
            return occurrence

        for target in self._scope_targets(occurrence, scope, occurrence.starts_at):
            if target.ends_at is None:
                continue
            try:
                target.resize(target.ends_at + delta)
            except ValidationError as e:
                logger.warning(f"Not resizing occurrence {target.occurrence_id}: {e}")
                continue
            self._store.update(target)
        return occurrence

    def change_recurrence(
        self,
        occurrence_id: OccurrenceId,
        recurrence: Recurrence | str,
        recurs_until: datetime.datetime | None | NotGiven = NOT_GIVEN,
        max_count: int | None | NotGiven = NOT_GIVEN,
        copy_links: bool | NotGiven = NOT_GIVEN,
    ) -> Occurrence:
        """Give the group of an occurrence a new rule.

        The rule lives on the group root, so a child is resolved to its root
        first. Children starting from now onwards are removed; those the new
        rule produces are created again the next time the window is listed.
        Changing to `none` clears the caps and leaves past children in place.

        Parameters
        ----------
        recurs_until, max_count, copy_links
            Caps of the new rule. Those not given keep their current value,
            pass None to clear a cap.
        """
        occurrence = self.get(occurrence_id)
        root = occurrence if occurrence.root_id is None else self.get(occurrence.root_id)
        if recurs_until is NOT_GIVEN:
            recurs_until = root.recurs_until
        if max_count is NOT_GIVEN:
            max_count = root.max_count
        if copy_links is NOT_GIVEN:
            copy_links = root.copy_links
        root.change_recurrence(recurrence)
        if root.is_recurring:
            root.set_rule(
                anchor=root.starts_at,
                recurs_until=recurs_until,
                max_count=max_count,
                copy_links=copy_links,
            )
        else:
            root.set_rule()
        self._store.update(root)
        removed = self._store.delete_children_from(root.occurrence_id, self._clock())
        logger.info(
            f"Group {root.occurrence_id} now repeats {root.recurrence}, "
            f"{removed} upcoming occurrences removed"
        )
        return root

    def duplicate(
        self,
        source_id: OccurrenceId,
        starts_at: datetime.datetime,
        ends_at: datetime.datetime,
        user_id: str | None = None,
        copy_links: bool = True,
    ) -> Occurrence:
        """Copy the name and classification of an occurrence into a new, open,
        non-recurring occurrence at another slot, optionally for another user."""
        source = self.get(source_id)
        duplicate = Occurrence(
            name=source.name,
            user_id=user_id or source.user_id,
            starts_at=starts_at,
            ends_at=ends_at,
            **{f: getattr(source, f) for f in CLASSIFICATION_FIELDS},
        )
        duplicate = self._store.save(duplicate)
        if copy_links:
            linked_ids = self._store.find_linked_ids(source_id)
            if linked_ids:
                self._store.link_ids(duplicate.occurrence_id, linked_ids)
        return duplicate

    def delete(self, occurrence_id: OccurrenceId):
        """Delete an occurrence. Deleting a group root deletes its children too."""
        occurrence = self.get(occurrence_id)
        if occurrence.root_id is None:
            removed = self._store.delete_all_children(occurrence_id)
            if removed:
                logger.info(f"Removed {removed} children of group {occurrence_id}")
        self._store.delete(occurrence_id)

    def delete_instance(
        self, occurrence_id: OccurrenceId, scope: DeleteScope | str = DeleteScope.THIS
    ):
        self.deletion.delete_instance(occurrence_id, scope)

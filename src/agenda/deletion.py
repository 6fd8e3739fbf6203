#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Scoped deletion of recurring occurrences."""

import datetime
import logging
from enum import StrEnum, auto
from typing import assert_never

from agenda.exceptions import InvalidScopeError, NotFoundError
from agenda.occurrence import Occurrence, OccurrenceId
from agenda.storage.port import AgendaStore
from agenda.time_utils import end_of_previous_day, to_date_str

logger = logging.getLogger(__name__)


class DeleteScope(StrEnum):
    """Which members of a recurring group an operation applies to."""

    THIS = auto()
    FUTURE = auto()
    ALL = auto()


def parse_scope(scope: DeleteScope | str) -> DeleteScope:
    try:
        return DeleteScope(str(scope).strip().lower())
    except ValueError:
        raise InvalidScopeError(
            f"Invalid scope {scope!r}. Use one of: {', '.join(DeleteScope)}"
        )


class DeletionCoordinator:
    """Deletes one, the remaining or all occurrences of a recurring group.

    Each scope runs as a sequence of independent store calls. A failure part
    way leaves the earlier steps applied.
    """

    def __init__(self, store: AgendaStore):
        self._store = store

    def delete_instance(
        self, occurrence_id: OccurrenceId, scope: DeleteScope | str = DeleteScope.THIS
    ):
        """Delete an occurrence and, depending on `scope`, other members of its group.

        Parameters
        ----------
        occurrence_id
            The occurrence the user asked to delete.
        scope
            `this` removes only the occurrence, excluding its date from the rule
            (or handing the rule to the next child if it is the group root).
            `future` also removes the later members of the group and caps the
            rule the day before. `all` removes the whole group.

        Raises
        ------
        InvalidScopeError if `scope` is not one of the above.
        NotFoundError if `occurrence_id` does not exist.
        """
        scope = parse_scope(scope)
        occurrence = self._store.find_by_id(occurrence_id)
        if occurrence is None:
            raise NotFoundError(occurrence_id)
        root_id = occurrence.group_id
        is_root = occurrence.root_id is None
        logger.info(f"Deleting occurrence {occurrence_id} with scope {scope}")

        if scope is DeleteScope.THIS:
            self._delete_this(occurrence, root_id, is_root)
        elif scope is DeleteScope.FUTURE:
            self._delete_future(occurrence, root_id, is_root)
        elif scope is DeleteScope.ALL:
            self._delete_all(root_id)
        else:
            assert_never(scope)

    def _delete_this(self, occurrence: Occurrence, root_id: OccurrenceId, is_root: bool):
        if occurrence.starts_at is not None:
            if is_root:
                self.promote_successor(occurrence)
            else:
                root = self._store.find_by_id(root_id)
                if root is not None:
                    root.exclude_date(occurrence.starts_at)
                    self._store.update(root)
        self._delete_tolerant(occurrence.occurrence_id)

    def _delete_future(
        self, occurrence: Occurrence, root_id: OccurrenceId, is_root: bool
    ):
        # from the root onwards is the whole group
        if is_root:
            self._delete_all(root_id)
            return
        if occurrence.starts_at is not None:
            self._store.update_root_rule_fields(
                root_id, {"recurs_until": end_of_previous_day(occurrence.starts_at)}
            )
            removed = self._store.delete_children_from(root_id, occurrence.starts_at)
            logger.info(f"Removed {removed} occurrences of group {root_id}")
        # the bulk delete usually takes this one too
        self._delete_tolerant(occurrence.occurrence_id)

    def _delete_all(self, root_id: OccurrenceId):
        removed = self._store.delete_all_children(root_id)
        logger.info(f"Removed {removed} children of group {root_id}")
        self._delete_tolerant(root_id)

    def _delete_tolerant(self, occurrence_id: OccurrenceId):
        if not self._store.delete(occurrence_id):
            logger.debug(f"Occurrence {occurrence_id} was already deleted")

    def promote_successor(self, root: Occurrence) -> Occurrence | None:
        """Hand the rule of `root` over to its earliest child, re-pointing the
        other children at it. Returns the new root, or None if the group has
        no children. `root` itself is left for the caller to delete."""
        instances = self._store.find_group_instances(root.occurrence_id)
        children = sorted(
            (o for o in instances if o.occurrence_id != root.occurrence_id),
            key=lambda o: o.starts_at or datetime.datetime.min,
        )
        if not children:
            logger.info(f"Group {root.occurrence_id} has no children to promote")
            return None

        new_root = children[0]
        excluded_dates = list(root.excluded_dates)
        # the vacated slot of the old root must not be regenerated
        if root.starts_at is not None:
            excluded_dates.append(to_date_str(root.starts_at))
        new_root.promote_to_root(
            anchor=root.anchor or root.starts_at,
            recurs_until=root.recurs_until,
            excluded_dates=excluded_dates,
        )
        self._store.update(new_root)
        moved = self._store.reassign_children(
            root.occurrence_id, new_root.occurrence_id
        )
        logger.info(
            f"Promoted occurrence {new_root.occurrence_id} to root of group "
            f"{root.occurrence_id}, {moved} children re-pointed"
        )
        return new_root

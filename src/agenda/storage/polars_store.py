#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
import json
import logging
from pathlib import Path
from typing import Any, Callable, Self

import polars as pl
from polars.exceptions import NoDataError

from agenda.constants import FUZZY_MATCH_THRESHOLD
from agenda.exceptions import NotFoundError, ValidationError
from agenda.occurrence import RULE_FIELDS, Occurrence, OccurrenceId
from agenda.storage.database_schemas import DATABASE_SCHEMAS, DatabaseNamespace
from agenda.storage.utils import (
    equals,
    fuzzy_match_rows,
    in_group,
    select_rows,
    starts_within,
)
from agenda.time_utils import Recurrence

logger = logging.getLogger(__name__)

UPDATABLE_RULE_FIELDS = frozenset(RULE_FIELDS) | {"copy_links"}


def _to_json_value(value: Any) -> Any:
    if isinstance(value, datetime.datetime):
        return value.isoformat()
    return value


class PolarsAgendaStore:
    """An in-memory `AgendaStore` keeping one polars dataframe per table.

    The whole store can be serialised to a dictionary (and a JSON file) and
    restored from it, which is how the command line endpoints persist state
    between runs.

    Notes
    -----
    1. Tables are replaced rather than edited in place, use `add_to_database`
    and `remove_from_database` to change a table.
    2. Nothing here is transactional: each method applies its change in one go,
    but sequences of calls are not isolated from each other.
    """

    schemas: dict[DatabaseNamespace, dict[str, Any]] = DATABASE_SCHEMAS

    def __init__(self):
        self._tables: dict[DatabaseNamespace, pl.DataFrame] = {
            namespace: pl.DataFrame(schema=schema)
            for namespace, schema in self.schemas.items()
        }
        self._next_id: OccurrenceId = 1

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON compatible dictionary which `from_dict` turns back
        into an equivalent store."""
        return {
            "next_id": self._next_id,
            "tables": {
                str(namespace): [
                    {column: _to_json_value(v) for column, v in row.items()}
                    for row in table.to_dicts()
                ]
                for namespace, table in self._tables.items()
            },
        }

    @classmethod
    def from_dict(cls, serialized: dict[str, Any]) -> Self:
        def parse_row(row: dict[str, Any], datetime_columns: list[str]):
            return {
                column: (
                    datetime.datetime.fromisoformat(v)
                    if column in datetime_columns and v
                    else v
                )
                for column, v in row.items()
            }

        store = cls()
        for name, rows in serialized["tables"].items():
            namespace = DatabaseNamespace(name)
            schema = cls.schemas[namespace]
            datetime_columns = [c for c, dtype in schema.items() if dtype == pl.Datetime]
            store._tables[namespace] = pl.DataFrame(
                [parse_row(row, datetime_columns) for row in rows], schema=schema
            )
        store._next_id = serialized.get("next_id", store._max_id() + 1)
        return store

    def write_snapshot(self, path: Path | str):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f_out:
            json.dump(self.to_dict(), f_out, indent=2)

    @classmethod
    def read_snapshot(cls, path: Path | str) -> Self:
        """Load a store written by `write_snapshot`. A missing file yields an
        empty store."""
        path = Path(path)
        if not path.exists():
            logger.info(f"No snapshot found at {path}, starting from an empty store")
            return cls()
        with open(path) as f_in:
            return cls.from_dict(json.load(f_in))

    def _max_id(self) -> int:
        ids = self._tables[DatabaseNamespace.OCCURRENCES].get_column("occurrence_id")
        return int(ids.max()) if not ids.is_empty() else 0

    def add_to_database(
        self, namespace: DatabaseNamespace, rows: list[dict[str, Any]]
    ) -> None:
        """Append rows to a table.

        Raises
        ------
        KeyError: If a row has a column the table does not define.
        """
        if not rows:
            return
        schema = self.schemas[namespace]
        unknown = {column for row in rows for column in row} - set(schema)
        if unknown:
            raise KeyError(
                f"Table {namespace} has no column(s) {sorted(unknown)}, "
                f"allowed columns are {list(schema)}"
            )
        self._tables[namespace] = pl.concat(
            [self._tables[namespace], pl.DataFrame(rows, schema=schema)]
        )

    def remove_from_database(
        self, namespace: DatabaseNamespace, predicate: pl.Expr
    ) -> int:
        """Remove the rows matching `predicate` and return how many were removed.

        Raises
        ------
        NoDataError: If no row matches.
        """
        predicate = predicate.fill_null(False)
        table = self._tables[namespace]
        kept = table.filter(~predicate)
        removed = table.height - kept.height
        if not removed:
            raise NoDataError(f"No row of {namespace} matches {predicate}")
        self._tables[namespace] = kept
        return removed

    def _replace_rows(
        self,
        predicate: pl.Expr,
        transform: Callable[[dict[str, Any]], dict[str, Any]],
    ) -> int:
        """Rewrite the occurrences matching `predicate` with `transform`."""
        predicate = predicate.fill_null(False)
        table = self._tables[DatabaseNamespace.OCCURRENCES]
        matched = table.filter(predicate)
        if matched.is_empty():
            return 0
        rows = [transform(row) for row in matched.to_dicts()]
        self._tables[DatabaseNamespace.OCCURRENCES] = pl.concat(
            [
                table.filter(~predicate),
                pl.DataFrame(rows, schema=self.schemas[DatabaseNamespace.OCCURRENCES]),
            ]
        )
        return len(rows)

    def _select(self, *predicates: pl.Expr) -> pl.DataFrame:
        return select_rows(self._tables[DatabaseNamespace.OCCURRENCES], *predicates)

    @staticmethod
    def _occurrences(rows: pl.DataFrame) -> list[Occurrence]:
        rows = rows.sort("starts_at", "occurrence_id", nulls_last=False)
        return [Occurrence.from_record(row) for row in rows.to_dicts()]

    def find_by_id(self, occurrence_id: OccurrenceId) -> Occurrence | None:
        found = self._occurrences(self._select(equals("occurrence_id", occurrence_id)))
        if not found:
            return None
        assert len(found) == 1, f"Duplicate occurrence id {occurrence_id}"
        return found[0]

    def save(self, occurrence: Occurrence) -> Occurrence:
        [saved] = self.save_many([occurrence])
        return saved

    def save_many(self, occurrences: list[Occurrence]) -> list[Occurrence]:
        """Store new occurrences. Ids are handed out only once the rows are
        written, a failed write leaves the occurrences without one."""
        ids = range(self._next_id, self._next_id + len(occurrences))
        self.add_to_database(
            DatabaseNamespace.OCCURRENCES,
            [
                {**occurrence.to_record(), "occurrence_id": occurrence_id}
                for occurrence, occurrence_id in zip(occurrences, ids)
            ],
        )
        for occurrence, occurrence_id in zip(occurrences, ids):
            occurrence.occurrence_id = occurrence_id
        self._next_id += len(occurrences)
        return occurrences

    def update(self, occurrence: Occurrence) -> Occurrence:
        row = occurrence.to_record()
        replaced = self._replace_rows(
            equals("occurrence_id", occurrence.occurrence_id), lambda _: row
        )
        if not replaced:
            raise NotFoundError(occurrence.occurrence_id)
        return occurrence

    def delete(self, occurrence_id: OccurrenceId) -> bool:
        try:
            self.remove_from_database(
                DatabaseNamespace.OCCURRENCES, equals("occurrence_id", occurrence_id)
            )
        except NoDataError:
            return False
        self._unlink([occurrence_id])
        return True

    def find_by_user_and_range(
        self, user_id: str, start: datetime.datetime, end: datetime.datetime
    ) -> list[Occurrence]:
        return self._occurrences(
            self._select(equals("user_id", user_id), starts_within(start, end))
        )

    def find_by_user(self, user_id: str) -> list[Occurrence]:
        return self._occurrences(self._select(equals("user_id", user_id)))

    def find_by_name(self, user_id: str, name: str) -> list[Occurrence]:
        # group children are reached through their root
        candidates = self._select(equals("user_id", user_id), equals("root_id", None))
        return self._occurrences(
            fuzzy_match_rows(candidates, "name", name, FUZZY_MATCH_THRESHOLD)
        )

    def find_group_roots(self, user_id: str) -> list[Occurrence]:
        return self._occurrences(
            self._select(
                equals("user_id", user_id),
                equals("root_id", None),
                pl.col("recurrence") != str(Recurrence.NONE),
            )
        )

    def count_children(self, root_id: OccurrenceId) -> int:
        return self._select(equals("root_id", root_id)).height

    def find_children_start_dates(
        self, root_id: OccurrenceId, start: datetime.datetime, end: datetime.datetime
    ) -> list[datetime.datetime]:
        children = self._select(equals("root_id", root_id), starts_within(start, end))
        return children.get_column("starts_at").sort().to_list()

    def find_group_instances(self, root_id: OccurrenceId) -> list[Occurrence]:
        return self._occurrences(self._select(in_group(root_id)))

    def update_root_rule_fields(
        self, root_id: OccurrenceId, fields: dict[str, Any]
    ) -> None:
        unknown = set(fields) - UPDATABLE_RULE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update non-rule fields {sorted(unknown)}")

        def apply(row: dict[str, Any]) -> dict[str, Any]:
            if row["root_id"] is not None:
                raise ValidationError(
                    f"Occurrence {root_id} is not a group root, it has no rule to update"
                )
            return {**row, **fields}

        if not self._replace_rows(equals("occurrence_id", root_id), apply):
            raise NotFoundError(root_id)

    def reassign_children(
        self, old_root_id: OccurrenceId, new_root_id: OccurrenceId
    ) -> int:
        return self._replace_rows(
            equals("root_id", old_root_id) & (pl.col("occurrence_id") != new_root_id),
            lambda row: {**row, "root_id": new_root_id},
        )

    def _delete_where(self, *predicates: pl.Expr) -> int:
        ids = self._select(*predicates).get_column("occurrence_id").to_list()
        if not ids:
            return 0
        removed = self.remove_from_database(
            DatabaseNamespace.OCCURRENCES, pl.col("occurrence_id").is_in(ids)
        )
        self._unlink(ids)
        return removed

    def delete_all_children(self, root_id: OccurrenceId) -> int:
        return self._delete_where(equals("root_id", root_id))

    def delete_children_from(
        self, root_id: OccurrenceId, starts_at: datetime.datetime
    ) -> int:
        return self._delete_where(
            equals("root_id", root_id), starts_within(start=starts_at)
        )

    def apply_time_delta(
        self, occurrence_ids: list[OccurrenceId], delta: datetime.timedelta
    ) -> None:
        def shift(row: dict[str, Any]) -> dict[str, Any]:
            return {
                **row,
                "starts_at": row["starts_at"] + delta,
                "ends_at": row["ends_at"] + delta,
            }

        # unscheduled occurrences have nothing to shift
        self._replace_rows(
            pl.col("occurrence_id").is_in(list(occurrence_ids)) & starts_within(),
            shift,
        )

    def find_linked_ids(self, occurrence_id: OccurrenceId) -> list[int]:
        links = select_rows(
            self._tables[DatabaseNamespace.OCCURRENCE_LINKS],
            equals("occurrence_id", occurrence_id),
        )
        return links.get_column("linked_id").to_list()

    def link_ids(self, occurrence_id: OccurrenceId, linked_ids: list[int]) -> None:
        existing = set(self.find_linked_ids(occurrence_id))
        self.add_to_database(
            DatabaseNamespace.OCCURRENCE_LINKS,
            [
                {"occurrence_id": occurrence_id, "linked_id": linked_id}
                for linked_id in dict.fromkeys(linked_ids)
                if linked_id not in existing
            ],
        )

    def _unlink(self, occurrence_ids: list[OccurrenceId]):
        try:
            self.remove_from_database(
                DatabaseNamespace.OCCURRENCE_LINKS,
                pl.col("occurrence_id").is_in(occurrence_ids),
            )
        except NoDataError:
            pass

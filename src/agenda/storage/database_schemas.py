#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from enum import StrEnum, auto

import polars as pl

from agenda.occurrence import OccurrenceStatus
from agenda.time_utils import Recurrence


class DatabaseNamespace(StrEnum):
    """Namespace for each table"""

    OCCURRENCES = auto()
    # auxiliary ids (eg projects) linked to an occurrence
    OCCURRENCE_LINKS = auto()


OCCURRENCE_SCHEMA = {
    "occurrence_id": pl.Int64,
    "name": pl.String,
    "user_id": pl.String,
    "starts_at": pl.Datetime,
    "ends_at": pl.Datetime,
    "status": pl.Enum([str(x) for x in OccurrenceStatus]),
    "recurrence": pl.Enum([str(x) for x in Recurrence]),
    "category_id": pl.Int64,
    "kind": pl.String,
    "discipline_id": pl.Int64,
    "phase": pl.String,
    "root_id": pl.Int64,
    "anchor": pl.Datetime,
    "recurs_until": pl.Datetime,
    "max_count": pl.Int32,
    "excluded_dates": pl.List(pl.String),
    "copy_links": pl.Boolean,
    "created_at": pl.Datetime,
}
DATABASE_SCHEMAS = {
    DatabaseNamespace.OCCURRENCES: OCCURRENCE_SCHEMA,
    DatabaseNamespace.OCCURRENCE_LINKS: {
        "occurrence_id": pl.Int64,
        "linked_id": pl.Int64,
    },
}

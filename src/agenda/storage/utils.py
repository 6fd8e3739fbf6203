#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Row predicates over the occurrence tables.

Predicates are plain polars expressions, combined by `select_rows`. Rows
where a predicate evaluates to null (eg comparing a null start instant) are
never selected.
"""

import datetime
from typing import Any

import polars as pl
from rapidfuzz import fuzz, process, utils


def equals(column_name: str, value: Any) -> pl.Expr:
    """Rows where `column_name` equals `value`, or is null if `value` is None."""
    if value is None:
        return pl.col(column_name).is_null()
    return pl.col(column_name) == value


def starts_within(
    start: datetime.datetime | None = None, end: datetime.datetime | None = None
) -> pl.Expr:
    """Scheduled rows starting in [start, end]. Either bound may be omitted."""
    predicate = pl.col("starts_at").is_not_null()
    if start is not None:
        predicate &= pl.col("starts_at") >= start
    if end is not None:
        predicate &= pl.col("starts_at") <= end
    return predicate


def in_group(root_id: int) -> pl.Expr:
    """The group root `root_id` and its children."""
    return (pl.col("occurrence_id") == root_id) | (pl.col("root_id") == root_id)


def select_rows(dataframe: pl.DataFrame, *predicates: pl.Expr) -> pl.DataFrame:
    """Keep the rows of `dataframe` matching all `predicates`."""
    if not predicates:
        raise ValueError("At least one predicate is required to select rows")
    combined = predicates[0]
    for predicate in predicates[1:]:
        combined &= predicate
    return dataframe.filter(combined.fill_null(False))


def fuzzy_match_rows(
    dataframe: pl.DataFrame, column_name: str, query: str, threshold: int
) -> pl.DataFrame:
    """Keep the rows whose `column_name` approximately matches `query`.

    Parameters
    ----------
    dataframe
        Rows to search, typically already narrowed to one user.
    column_name
        A string column.
    query
        Text to match, compared case-insensitively.
    threshold
        Minimum `fuzz.WRatio` score (0-100) of a kept row.
    """
    # each match is a (string, score, index) tuple
    matches = process.extract(
        query=query,
        choices=dataframe.get_column(column_name).to_list(),
        processor=utils.default_process,
        scorer=fuzz.WRatio,
        score_cutoff=threshold,
        limit=None,
    )
    if not matches:
        return dataframe.clear()
    return dataframe[sorted(index for _, _, index in matches)]

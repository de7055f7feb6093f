"""Pure table transforms producing DerivedTables.

Every function takes its input table explicitly, copies what it needs and
returns a new `DerivedTable`; inputs are never mutated. Divisions by a zero
or missing denominator yield `pd.NA`, never 0.
"""

from __future__ import annotations

import functools
import operator
from typing import Sequence, Union

import pandas as pd

from .models import Dataset, DerivedTable

Table = Union[Dataset, DerivedTable]


def _columns(by: str | Sequence[str]) -> list[str]:
    return [by] if isinstance(by, str) else list(by)


def _lineage(table: Table) -> tuple[tuple[str, ...], str]:
    if isinstance(table, DerivedTable):
        return table.derived, table.source or table.name
    return (), table.name


def _derive(table: Table, frame: pd.DataFrame, new_columns: Sequence[str]) -> DerivedTable:
    derived, source = _lineage(table)
    merged = tuple(col for col in dict.fromkeys((*derived, *new_columns)) if col in frame.columns)
    return DerivedTable(name=table.name, frame=frame, derived=merged, source=source)


def safe_divide(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    """Element-wise division; zero or missing denominators give NA."""
    num = numerator.astype("Float64")
    den = denominator.astype("Float64")
    usable = den.notna() & (den.fillna(0) != 0)
    return num / den.where(usable)


def ratio_within_group(
    table: Table,
    value: str,
    by: str | Sequence[str],
    name: str = "percent",
) -> DerivedTable:
    """Divide each row's `value` by the total of its `by` group."""
    frame = table.frame.copy()
    keys = [frame[col] for col in _columns(by)]
    values = frame[value].astype("Float64")
    totals = values.groupby(keys, observed=True, dropna=False).transform("sum")
    frame[name] = safe_divide(values, totals)
    return _derive(table, frame, [name])


def share_of_total(
    table: Table,
    value: str,
    by: str | Sequence[str],
    name: str = "share",
    total: float | None = None,
) -> DerivedTable:
    """Aggregate `value` per `by` group and divide by a global total.

    `total` defaults to the sum of `value` over all rows. Declared
    categorical levels without rows are kept. Groups summing to zero or
    holding no values get a missing share.
    """
    by_cols = _columns(by)
    frame = table.frame[[*by_cols, value]].copy()
    frame[value] = frame[value].astype("Float64")
    aggregated = (
        frame.groupby(by_cols, observed=False, dropna=True)[value]
        .sum(min_count=1)
        .reset_index()
    )
    denominator = frame[value].sum() if total is None else total
    if denominator is pd.NA:
        denominator = 0.0
    group_values = aggregated[value].astype("Float64")
    nonzero = group_values.where(group_values.fillna(0) != 0)
    aggregated[name] = safe_divide(
        nonzero,
        pd.Series(float(denominator), index=aggregated.index, dtype="Float64"),
    )
    return _derive(table, aggregated, [value, name])


def accumulate(table: Table, columns: Sequence[str], name: str) -> DerivedTable:
    """Row-wise sum of related columns; any missing input gives a missing total."""
    if not columns:
        raise ValueError("accumulate needs at least one column")
    frame = table.frame.copy()
    parts = [frame[col].astype("Float64") for col in columns]
    frame[name] = functools.reduce(operator.add, parts)
    return _derive(table, frame, [name])


def cumulative(
    table: Table,
    value: str,
    order: str,
    name: str,
    by: str | Sequence[str] | None = None,
) -> DerivedTable:
    """Running total of `value` ordered by `order`, optionally within groups."""
    frame = table.frame.sort_values(order, kind="mergesort").copy()
    values = frame[value].astype("Float64")
    if by is None:
        frame[name] = values.cumsum()
    else:
        keys = [frame[col] for col in _columns(by)]
        frame[name] = values.groupby(keys, observed=True, dropna=False).cumsum()
    frame = frame.reset_index(drop=True)
    return _derive(table, frame, [name])


def surplus(
    table: Table,
    income: str = "Income",
    expenses: str = "Expenses",
    name: str = "Surplus",
) -> DerivedTable:
    frame = table.frame.copy()
    frame[name] = frame[income].astype("Float64") - frame[expenses].astype("Float64")
    return _derive(table, frame, [name])


def to_long(
    table: Table,
    id_columns: Sequence[str],
    value_columns: Sequence[str],
    names_to: str = "Measure",
    values_to: str = "Value",
) -> DerivedTable:
    """Stack wide measure columns into (names_to, values_to) pairs."""
    frame = table.frame.melt(
        id_vars=list(id_columns),
        value_vars=list(value_columns),
        var_name=names_to,
        value_name=values_to,
    )
    frame[names_to] = frame[names_to].astype(
        pd.CategoricalDtype(list(value_columns), ordered=True)
    )
    frame[values_to] = frame[values_to].astype("Float64")
    return _derive(table, frame, [names_to, values_to])


def join(
    left: Table,
    right: Table,
    on: str | Sequence[str],
    how: str = "left",
    *,
    right_on: str | Sequence[str] | None = None,
    columns: Sequence[str] | None = None,
) -> DerivedTable:
    """Merge `right` (optionally only `columns`) onto `left`.

    `right_on` names the right-hand key columns when they differ from `on`;
    they are dropped from the result.
    """
    left_cols = _columns(on)
    right_cols = left_cols if right_on is None else _columns(right_on)
    if len(left_cols) != len(right_cols):
        raise ValueError("join keys must have the same length on both sides")
    right_frame = right.frame
    if columns is not None:
        right_frame = right_frame[[*right_cols, *[c for c in columns if c not in right_cols]]]
    right_frame = right_frame.dropna(subset=right_cols)
    if right_cols != left_cols:
        right_frame = right_frame.rename(columns=dict(zip(right_cols, left_cols)))
    # a GeoDataFrame on the left stays a GeoDataFrame
    frame = left.frame.merge(right_frame, on=left_cols, how=how)
    added = [c for c in right_frame.columns if c not in left_cols]
    return _derive(left, frame, added)


def select_rows(table: Table, mask: pd.Series) -> DerivedTable:
    """Keep rows where `mask` is true; missing mask values drop the row."""
    keep = mask.fillna(False).astype(bool)
    frame = table.frame.loc[keep].reset_index(drop=True)
    return _derive(table, frame, [])

"""Dataset loading: typed CSV tables and Natural Earth country shapes."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Sequence

import pandas as pd

from .errors import DataNotFoundError, SchemaMismatchError, UnmappedCategoryError
from .models import ColumnSpec, ColumnType, Dataset, Schema
from .schemas import COUNTRY_SHAPES

if TYPE_CHECKING:
    from .countries import CountryCodeIndex

_LOGGER = logging.getLogger("figurebuilder.io_data")

COUNTRY_ISO_COLUMNS = (
    "ISO_A3",
    "ISO_A3_EH",
    "ADM0_A3",
    "ADM0_A3_US",
    "ADM0_A3_UN",
    "SOV_A3",
    "WB_A3",
    "BRK_A3",
    "SU_A3",
    "GU_A3",
    "ISO3",
    "A3",
)
COUNTRY_NAME_COLUMNS = ("NAME", "NAME_LONG", "ADMIN", "name")

# Natural Earth marks some sovereign states (France, Norway) with -99 in ISO_A3
ISO_FALLBACK_COLUMNS = ("ADM0_A3", "ISO_A3_EH", "SOV_A3")

_MAX_REPORTED_VALUES = 5


def _first_existing_column(columns: Iterable[str], candidates: Sequence[str]) -> str | None:
    existing = {str(col).lower(): str(col) for col in columns}
    for candidate in candidates:
        match = existing.get(candidate.lower())
        if match:
            return match
    return None


def _dtype_for(spec: ColumnSpec) -> Any:
    if spec.type in {ColumnType.INTEGER, ColumnType.COUNT}:
        return "Int64"
    if spec.type in {ColumnType.CURRENCY, ColumnType.FLOAT}:
        return "Float64"
    if spec.type is ColumnType.CATEGORICAL:
        return pd.CategoricalDtype(list(spec.levels), ordered=spec.ordered) if spec.levels else "category"
    return "string"


def _clean_text(raw: pd.Series) -> pd.Series:
    text = raw.map(lambda value: value.strip() if isinstance(value, str) else None)
    return text.mask(text == "")


def _describe_bad(values: pd.Series) -> str:
    shown = [repr(v) for v in values.unique()[:_MAX_REPORTED_VALUES]]
    return ", ".join(shown)


def _parse_numeric(text: pd.Series, spec: ColumnSpec, dataset: str) -> pd.Series:
    cleaned = text.map(
        lambda value: value.replace(",", "").replace("$", "") if isinstance(value, str) else value
    )
    parsed = pd.to_numeric(cleaned, errors="coerce")
    bad = text.notna() & parsed.isna()
    if bad.any():
        raise SchemaMismatchError(
            dataset,
            f"column '{spec.name}' expects {spec.type.value} values, got {_describe_bad(text[bad])}",
        )
    if spec.type in {ColumnType.INTEGER, ColumnType.COUNT}:
        fractional = parsed.notna() & (parsed % 1 != 0)
        if fractional.any():
            raise SchemaMismatchError(
                dataset,
                f"column '{spec.name}' expects whole numbers, got {_describe_bad(text[fractional])}",
            )
    return parsed.astype(_dtype_for(spec))


def _coerce_column(raw: pd.Series, spec: ColumnSpec, dataset: str) -> pd.Series:
    text = _clean_text(raw)
    if spec.type.is_numeric:
        return _parse_numeric(text, spec, dataset)
    if spec.type is ColumnType.CATEGORICAL and spec.levels:
        unknown = text.notna() & ~text.isin(spec.levels)
        if unknown.any():
            raise SchemaMismatchError(
                dataset,
                f"column '{spec.name}' has undeclared levels {_describe_bad(text[unknown])}",
            )
    return text.astype(_dtype_for(spec))


def load_table(
    path: str | Path,
    schema: Schema,
    *,
    country_codes: CountryCodeIndex | None = None,
    name: str | None = None,
) -> Dataset:
    """Load one CSV into a typed Dataset following `schema`.

    Only declared columns are kept; optional columns missing from the file
    become all-null. With `country_codes` and a schema `country_column`, an
    `iso3` column is appended and unmatched names stay null.
    """
    dataset_name = name or schema.name
    csv_path = Path(path)
    if not csv_path.exists():
        raise DataNotFoundError(dataset_name, csv_path)

    raw = pd.read_csv(csv_path, dtype=str, keep_default_na=True, encoding="utf-8")
    raw.columns = [str(col).strip() for col in raw.columns]
    missing = [col for col in schema.required_columns if col not in raw.columns]
    if missing:
        available = ", ".join(raw.columns)
        raise SchemaMismatchError(
            dataset_name,
            f"missing required column(s) {', '.join(missing)}; available: {available}",
        )

    columns: dict[str, pd.Series] = {}
    for spec in schema.columns:
        if spec.name in raw.columns:
            columns[spec.name] = _coerce_column(raw[spec.name], spec, dataset_name)
        else:
            columns[spec.name] = pd.Series(pd.NA, index=raw.index, dtype=_dtype_for(spec))
    frame = pd.DataFrame(columns, index=raw.index)

    if schema.country_column is not None and country_codes is not None:
        codes, unmatched = country_codes.codes_for(frame[schema.country_column].tolist())
        frame["iso3"] = pd.array(codes, dtype="string")
        if unmatched:
            _LOGGER.warning("%s", UnmappedCategoryError(dataset_name, unmatched))

    _LOGGER.debug("Loaded %s: %d rows from %s", dataset_name, len(frame), csv_path)
    return Dataset(name=dataset_name, schema=schema, frame=frame)


def load_shapes(path: str | Path, *, name: str = "countries") -> Dataset:
    """Load admin-0 country polygons with a normalized `ISO_A3` and `NAME`."""
    shp_path = Path(path)
    if not shp_path.exists():
        raise DataNotFoundError(name, shp_path)
    gpd = _require_geopandas()
    frame = gpd.read_file(shp_path)

    name_col = _first_existing_column(frame.columns, COUNTRY_NAME_COLUMNS)
    if name_col is None:
        raise SchemaMismatchError(name, "no country name column (expected NAME)")
    iso_col = _first_existing_column(frame.columns, ("ISO_A3",)) or select_best_iso_column(
        frame, COUNTRY_ISO_COLUMNS
    )
    if iso_col is None:
        cols = ", ".join(str(c) for c in frame.columns)
        raise SchemaMismatchError(name, f"could not detect an ISO3 column. Available columns: {cols}")

    frame = frame.copy()
    frame["ISO_A3"] = fix_iso_codes(frame, iso_col)
    frame["NAME"] = frame[name_col].astype("string")
    if frame.crs is None:
        frame = frame.set_crs("EPSG:4326")
    _LOGGER.debug("Loaded %s: %d shapes from %s (iso column %s)", name, len(frame), shp_path, iso_col)
    return Dataset(name=name, schema=COUNTRY_SHAPES, frame=frame)


def fix_iso_codes(frame: pd.DataFrame, iso_col: str) -> pd.Series:
    """Return ISO3 codes, filling invalid entries (e.g. -99) from fallback columns."""
    codes = frame[iso_col].map(_normalize_iso)
    for fallback in ISO_FALLBACK_COLUMNS:
        col = _first_existing_column(frame.columns, [fallback])
        if col is None or col == iso_col:
            continue
        invalid = codes.isna()
        if not invalid.any():
            break
        replacement = frame[col].map(_normalize_iso)
        codes = codes.where(~invalid, replacement)
        fixed = int((invalid & codes.notna()).sum())
        if fixed:
            _LOGGER.info("Filled %d invalid %s codes from %s", fixed, iso_col, col)
    return codes.astype("string")


def _normalize_iso(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip().upper()
    if len(normalized) == 3 and normalized.isalpha():
        return normalized
    return None


def select_best_iso_column(
    dataframe: Any,
    preferred_columns: Sequence[str],
) -> str | None:
    """Pick the best ISO3-like column using schema hints and data-based scoring."""
    existing = [str(col) for col in dataframe.columns]
    by_lower = {col.lower(): col for col in existing}

    candidates: list[str] = []
    for candidate in preferred_columns:
        match = by_lower.get(candidate.lower())
        if match and match not in candidates:
            candidates.append(match)

    if not candidates:
        return None

    best_col: str | None = None
    best_score: tuple[int, int] | None = None
    for candidate in candidates:
        score = _score_iso_values(dataframe[candidate].tolist())
        if best_score is None or score > best_score:
            best_col = candidate
            best_score = score

    if best_col is None or best_score is None or best_score[0] == 0:
        return None
    return best_col


def _score_iso_values(values: list[Any]) -> tuple[int, int]:
    """Count of valid codes, then of distinct valid codes."""
    valid = [code for code in (_normalize_iso(value) for value in values) if code is not None]
    return (len(valid), len(set(valid)))


def _require_geopandas() -> Any:
    try:
        import geopandas as gpd
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("geopandas is required for shapefile loading") from exc
    return gpd

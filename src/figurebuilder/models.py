"""Domain models shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

import pandas as pd


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


class ColumnType(str, Enum):
    INTEGER = "integer"
    COUNT = "count"
    CURRENCY = "currency"
    FLOAT = "float"
    CATEGORICAL = "categorical"
    STRING = "string"

    @property
    def is_numeric(self) -> bool:
        return self in {ColumnType.INTEGER, ColumnType.COUNT, ColumnType.CURRENCY, ColumnType.FLOAT}


@dataclass(frozen=True, slots=True)
class ColumnSpec:
    """One declared column of an input table."""

    name: str
    type: ColumnType
    required: bool = True
    levels: tuple[str, ...] = ()
    ordered: bool = False


@dataclass(frozen=True, slots=True)
class Schema:
    """Static column typing for one input file."""

    name: str
    columns: tuple[ColumnSpec, ...]
    country_column: str | None = None

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(col.name for col in self.columns)

    @property
    def required_columns(self) -> tuple[str, ...]:
        return tuple(col.name for col in self.columns if col.required)

    def column(self, name: str) -> ColumnSpec:
        for col in self.columns:
            if col.name == name:
                return col
        raise KeyError(f"Column '{name}' not declared in schema '{self.name}'")


@dataclass(frozen=True, slots=True)
class Dataset:
    """Typed table loaded from disk. Treated as read-only after load."""

    name: str
    schema: Schema
    frame: pd.DataFrame

    def __len__(self) -> int:
        return len(self.frame)


@dataclass(frozen=True, slots=True)
class DerivedTable:
    """A table plus the columns computed from it by one or more transforms."""

    name: str
    frame: pd.DataFrame
    derived: tuple[str, ...] = ()
    source: str | None = None

    def __len__(self) -> int:
        return len(self.frame)


class StyleVariant(str, Enum):
    COLOR = "color"
    GRAYSCALE = "grayscale"

    @property
    def suffix(self) -> str:
        """File-name suffix; grayscale is the unsuffixed default."""
        return "color" if self is StyleVariant.COLOR else ""

    @classmethod
    def parse(cls, value: str) -> StyleVariant:
        raw = value.strip().casefold()
        if raw in {"grey", "gray", "greyscale"}:
            raw = "grayscale"
        try:
            return cls(raw)
        except ValueError as exc:
            allowed = ", ".join(item.value for item in cls)
            raise ValueError(f"Unknown style variant '{value}'; expected one of: {allowed}") from exc


class ExportFormat(str, Enum):
    PDF = "pdf"
    EPS = "eps"
    PNG = "png"
    TIFF = "tiff"

    @property
    def is_vector(self) -> bool:
        return self in {ExportFormat.PDF, ExportFormat.EPS}

    @property
    def extension(self) -> str:
        return self.value


_UNITS_PER_INCH = {"in": 1.0, "cm": 2.54, "mm": 25.4}


@dataclass(frozen=True, slots=True)
class ExportSpec:
    """One (format, physical size, resolution) output instruction."""

    format: ExportFormat
    width: float
    height: float
    units: str = "in"
    dpi: int = 300

    def __post_init__(self) -> None:
        if self.units not in _UNITS_PER_INCH:
            raise ValueError(f"Unsupported export units '{self.units}'")
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Export width/height must be > 0")
        if self.dpi <= 0:
            raise ValueError("Export dpi must be > 0")

    @property
    def size_inches(self) -> tuple[float, float]:
        factor = _UNITS_PER_INCH[self.units]
        return (self.width / factor, self.height / factor)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ExportSpec:
        fmt_raw = _require_str(data.get("format"), "exports[].format").casefold()
        if fmt_raw == "tif":
            fmt_raw = "tiff"
        try:
            fmt = ExportFormat(fmt_raw)
        except ValueError as exc:
            raise ValueError(f"Unsupported export format '{fmt_raw}'") from exc
        width = data.get("width")
        height = data.get("height")
        if not isinstance(width, (int, float)) or not isinstance(height, (int, float)):
            raise ValueError("Expected numeric 'width' and 'height' for exports[]")
        dpi = data.get("dpi", 300)
        if not isinstance(dpi, int):
            raise ValueError("Expected integer 'dpi' for exports[]")
        units = data.get("units", "in")
        return cls(
            format=fmt,
            width=float(width),
            height=float(height),
            units=_require_str(units, "exports[].units"),
            dpi=dpi,
        )


@dataclass(frozen=True, slots=True)
class RenderTarget:
    """A logical chart output: base name, style variant and export specs."""

    name: str
    variant: StyleVariant
    specs: tuple[ExportSpec, ...]

    def file_name(self, spec: ExportSpec) -> str:
        suffix = self.variant.suffix
        stem = f"{self.name}-{suffix}" if suffix else self.name
        return f"{stem}.{spec.format.extension}"


@dataclass(frozen=True, slots=True)
class BuildManifest:
    """Build metadata used for audit trails."""

    generated_at_utc: str
    config_hash_sha256: str
    git_commit: str | None
    steps: Mapping[str, str]
    artifacts: Mapping[str, str]
    hashes: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        *,
        config_hash_sha256: str,
        git_commit: str | None,
        steps: Mapping[str, str],
        artifacts: Mapping[str, str],
        hashes: Mapping[str, str] | None = None,
    ) -> BuildManifest:
        now = datetime.now(timezone.utc).isoformat()
        return cls(
            generated_at_utc=now,
            config_hash_sha256=config_hash_sha256,
            git_commit=git_commit,
            steps=steps,
            artifacts=artifacts,
            hashes=hashes or {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at_utc": self.generated_at_utc,
            "config_hash_sha256": self.config_hash_sha256,
            "git_commit": self.git_commit,
            "steps": dict(self.steps),
            "artifacts": dict(self.artifacts),
            "hashes": dict(self.hashes),
        }

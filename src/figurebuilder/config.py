"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, cast

import yaml

from .models import ExportSpec, StyleVariant


# Generated with scico(7, palette = "roma"), minus the light greenish 4th color
DEFAULT_PALETTE = ("#7E1900", "#AC7825", "#D9D26A", "#60C3D4", "#3877B6", "#1A3399")


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _str_list(value: Any, field_name: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Expected list for '{field_name}'")
    out: list[str] = []
    for idx, item in enumerate(value):
        out.append(_str(item, f"{field_name}[{idx}]"))
    return tuple(out)


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    name: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ProjectConfig:
        return cls(name=_str(raw.get("name"), "project.name"))


@dataclass(frozen=True, slots=True)
class PathsConfig:
    country_codes: Path
    countries_shapefile: Path
    civicus: Path
    population: Path
    finances: Path
    regional_expenses: Path
    partner_funding: Path
    offices: Path
    manuscript_html: Path
    output_dir: Path
    tables_dir: Path
    manifests_dir: Path
    logs_dir: Path

    @property
    def required_input_files(self) -> tuple[Path, ...]:
        return (
            self.country_codes,
            self.civicus,
            self.population,
            self.finances,
            self.regional_expenses,
            self.partner_funding,
            self.offices,
        )

    @property
    def output_directories(self) -> tuple[Path, ...]:
        return (self.output_dir, self.tables_dir, self.manifests_dir, self.logs_dir)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        def path(key: str) -> Path:
            return _path_from_cfg(raw.get(key), f"paths.{key}", root_dir)

        return cls(
            country_codes=path("country_codes"),
            countries_shapefile=path("countries_shapefile"),
            civicus=path("civicus"),
            population=path("population"),
            finances=path("finances"),
            regional_expenses=path("regional_expenses"),
            partner_funding=path("partner_funding"),
            offices=path("offices"),
            manuscript_html=path("manuscript_html"),
            output_dir=path("output_dir"),
            tables_dir=path("tables_dir"),
            manifests_dir=path("manifests_dir"),
            logs_dir=path("logs_dir"),
        )


@dataclass(frozen=True, slots=True)
class StyleConfig:
    font_family: str
    base_size: float
    palette: tuple[str, ...]
    direction: str
    grayscale_cmap: str
    grayscale_begin: float
    grayscale_end: float
    na_color: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> StyleConfig:
        palette_raw = raw.get("palette")
        palette = DEFAULT_PALETTE if palette_raw is None else _str_list(palette_raw, "style.palette")
        if len(palette) < 2:
            raise ValueError("style.palette needs at least two colors")
        direction = _str(raw.get("direction", "ascending"), "style.direction").casefold()
        if direction not in {"ascending", "descending"}:
            raise ValueError("style.direction must be 'ascending' or 'descending'")
        begin = _float(raw.get("grayscale_begin", 0.2), "style.grayscale_begin")
        end = _float(raw.get("grayscale_end", 0.9), "style.grayscale_end")
        if not 0.0 <= begin < end <= 1.0:
            raise ValueError("style.grayscale_begin/end must satisfy 0 <= begin < end <= 1")
        return cls(
            font_family=_str(raw.get("font_family"), "style.font_family"),
            base_size=_float(raw.get("base_size"), "style.base_size"),
            palette=palette,
            direction=direction,
            grayscale_cmap=_str(raw.get("grayscale_cmap", "Greys"), "style.grayscale_cmap"),
            grayscale_begin=begin,
            grayscale_end=end,
            na_color=_str(raw.get("na_color", "#E5E5E5"), "style.na_color"),
        )


@dataclass(frozen=True, slots=True)
class MapConfig:
    crs: str
    excluded_iso3: tuple[str, ...]
    basemap_fill: str
    basemap_edge: str
    edge_width: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> MapConfig:
        excluded = raw.get("excluded_iso3", ["ATA"])
        return cls(
            crs=_str(raw.get("crs"), "map.crs"),
            excluded_iso3=tuple(code.upper() for code in _str_list(excluded, "map.excluded_iso3")),
            basemap_fill=_str(raw.get("basemap_fill", "#F2F2F2"), "map.basemap_fill"),
            basemap_edge=_str(raw.get("basemap_edge", "#FFFFFF"), "map.basemap_edge"),
            edge_width=_float(raw.get("edge_width", 0.15), "map.edge_width"),
        )


@dataclass(frozen=True, slots=True)
class LabelsConfig:
    offsets_px: tuple[tuple[int, int], ...]
    collision_padding_px: int
    seed: int
    font_size: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> LabelsConfig:
        offsets_raw = raw.get("offsets_px")
        if not isinstance(offsets_raw, list) or not offsets_raw:
            raise ValueError("Expected non-empty list for 'labels.offsets_px'")
        offsets: list[tuple[int, int]] = []
        for idx, item in enumerate(offsets_raw):
            if not isinstance(item, list) or len(item) != 2:
                raise ValueError(f"Invalid labels.offsets_px[{idx}]")
            dx = _int(item[0], f"labels.offsets_px[{idx}][0]")
            dy = _int(item[1], f"labels.offsets_px[{idx}][1]")
            offsets.append((dx, dy))
        return cls(
            offsets_px=tuple(offsets),
            collision_padding_px=_int(raw.get("collision_padding_px"), "labels.collision_padding_px"),
            seed=_int(raw.get("seed"), "labels.seed"),
            font_size=_float(raw.get("font_size", 6), "labels.font_size"),
        )


@dataclass(frozen=True, slots=True)
class CountryCodesConfig:
    overrides: Mapping[str, str]

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> CountryCodesConfig:
        overrides_raw = raw.get("overrides") or {}
        overrides = _mapping(overrides_raw, "country_codes.overrides")
        out: dict[str, str] = {}
        for name, code in overrides.items():
            iso3 = _str(code, f"country_codes.overrides[{name}]").upper()
            if len(iso3) != 3 or not iso3.isalpha():
                raise ValueError(f"Invalid ISO3 override '{code}' for '{name}'")
            out[_str(name, "country_codes.overrides key")] = iso3
        return cls(overrides=out)


@dataclass(frozen=True, slots=True)
class FiguresConfig:
    population_year: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> FiguresConfig:
        return cls(population_year=_int(raw.get("population_year"), "figures.population_year"))


@dataclass(frozen=True, slots=True)
class WordCountConfig:
    goal: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> WordCountConfig:
        goal = _int(raw.get("goal", 7500), "wordcount.goal")
        if goal < 0:
            raise ValueError("wordcount.goal must be >= 0")
        return cls(goal=goal)


@dataclass(frozen=True, slots=True)
class BuildConfig:
    write_manifest: bool
    manifest_include_hashes: bool

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> BuildConfig:
        return cls(
            write_manifest=_bool(raw.get("write_manifest"), "build.write_manifest"),
            manifest_include_hashes=_bool(
                raw.get("manifest_include_hashes"), "build.manifest_include_hashes"
            ),
        )


def _variants(value: Any) -> tuple[StyleVariant, ...]:
    names = _str_list(value, "variants")
    if not names:
        raise ValueError("Expected at least one entry in 'variants'")
    variants: list[StyleVariant] = []
    for name in names:
        variant = StyleVariant.parse(name)
        if variant not in variants:
            variants.append(variant)
    return tuple(variants)


def _exports(value: Any) -> tuple[ExportSpec, ...]:
    if not isinstance(value, list) or not value:
        raise ValueError("Expected non-empty list for 'exports'")
    specs: list[ExportSpec] = []
    for idx, item in enumerate(value):
        specs.append(ExportSpec.from_mapping(_mapping(item, f"exports[{idx}]")))
    formats = [spec.format for spec in specs]
    if len(set(formats)) != len(formats):
        raise ValueError("Each export format may appear only once in 'exports'")
    return tuple(specs)


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    project: ProjectConfig
    paths: PathsConfig
    variants: tuple[StyleVariant, ...]
    exports: tuple[ExportSpec, ...]
    style: StyleConfig
    map: MapConfig
    labels: LabelsConfig
    country_codes: CountryCodesConfig
    figures: FiguresConfig
    wordcount: WordCountConfig
    build: BuildConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        return cls(
            source_path=source_path.resolve(),
            project=ProjectConfig.from_mapping(_mapping(raw.get("project"), "project")),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            variants=_variants(raw.get("variants")),
            exports=_exports(raw.get("exports")),
            style=StyleConfig.from_mapping(_mapping(raw.get("style"), "style")),
            map=MapConfig.from_mapping(_mapping(raw.get("map"), "map")),
            labels=LabelsConfig.from_mapping(_mapping(raw.get("labels"), "labels")),
            country_codes=CountryCodesConfig.from_mapping(
                _mapping(raw.get("country_codes", {}), "country_codes")
            ),
            figures=FiguresConfig.from_mapping(_mapping(raw.get("figures"), "figures")),
            wordcount=WordCountConfig.from_mapping(_mapping(raw.get("wordcount", {}), "wordcount")),
            build=BuildConfig.from_mapping(_mapping(raw.get("build"), "build")),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)

"""Figure and table catalogue for the paper, plus the batch run loops."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Sequence

import pandas as pd

from . import schemas
from .config import AppConfig
from .countries import CountryCodeIndex
from .export import ExportManager
from .formatting import comma, dollar, percent
from .io_data import load_shapes, load_table
from .models import Dataset, DerivedTable, RenderTarget, Schema, StyleVariant
from .render import ChartRenderer, Encoding, Geometry
from .styles import resolve
from .tables import TextBlock, format_table
from .transforms import (
    Table,
    accumulate,
    cumulative,
    join,
    ratio_within_group,
    select_rows,
    share_of_total,
    surplus,
    to_long,
)

_LOGGER = logging.getLogger("figurebuilder.figures")

WORLD_ROW = "World"

# dataset key -> (PathsConfig attribute, schema)
SOURCES: dict[str, tuple[str, Schema]] = {
    "civicus": ("civicus", schemas.CIVICUS),
    "population": ("population", schemas.POPULATION),
    "finances": ("finances", schemas.FINANCES),
    "regional_expenses": ("regional_expenses", schemas.REGIONAL_EXPENSES),
    "partner_funding": ("partner_funding", schemas.PARTNER_FUNDING),
    "offices": ("offices", schemas.OFFICES),
}


@dataclass(slots=True)
class FigureReport:
    output_dir: Path | None = None
    written: list[Path] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class FigureContext:
    """Per-run cache of loaded datasets. Loaded datasets are never mutated."""

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg
        self._datasets: dict[str, Dataset] = {}
        self._codes: CountryCodeIndex | None = None

    def country_codes(self) -> CountryCodeIndex:
        if self._codes is None:
            self._codes = CountryCodeIndex.from_csv(
                self.cfg.paths.country_codes,
                overrides=self.cfg.country_codes.overrides,
            )
        return self._codes

    def dataset(self, key: str) -> Dataset:
        if key not in self._datasets:
            attr, schema = SOURCES[key]
            codes = self.country_codes() if schema.country_column else None
            self._datasets[key] = load_table(
                getattr(self.cfg.paths, attr), schema, country_codes=codes, name=key
            )
        return self._datasets[key]

    def shapes(self) -> Dataset:
        if "countries" not in self._datasets:
            self._datasets["countries"] = load_shapes(self.cfg.paths.countries_shapefile)
        return self._datasets["countries"]


@dataclass(frozen=True, slots=True)
class PreparedFigure:
    table: Table
    encoding: Encoding
    basemap: Dataset | None = None
    direction: str | None = None


@dataclass(frozen=True, slots=True)
class FigureDefinition:
    name: str
    prepare: Callable[[FigureContext], PreparedFigure]
    needs_shapes: bool = False


@dataclass(frozen=True, slots=True)
class TableDefinition:
    name: str
    build: Callable[[FigureContext], TextBlock]


# -- shared derivations ----------------------------------------------------


def world_population(table: Table) -> float:
    """World total from a `World` row when present, else the sum over coded countries."""
    frame = table.frame
    is_world = frame["Country"].str.strip().str.casefold() == WORLD_ROW.casefold()
    is_world = is_world.fillna(False).astype(bool)
    if is_world.any():
        return float(frame.loc[is_world, "Population"].astype("Float64").sum())
    coded = frame["iso3"].notna() if "iso3" in frame.columns else ~is_world
    return float(frame.loc[coded, "Population"].astype("Float64").sum())


def civic_space_population(ctx: FigureContext) -> DerivedTable:
    """Share of world population living under each civic space rating.

    The denominator is the world population, so unrated countries shrink
    every share.
    """
    year = ctx.cfg.figures.population_year
    population = ctx.dataset("population")
    in_year = select_rows(population, population.frame["Year"] == year)
    if in_year.frame.empty:
        raise ValueError(f"population has no rows for year {year}")
    rated = join(ctx.dataset("civicus"), in_year, on="iso3", columns=["Population"])
    return share_of_total(
        rated, "Population", by="Rating", name="percent", total=world_population(in_year)
    )


# -- figures ---------------------------------------------------------------


def _civic_space_population_figure(ctx: FigureContext) -> PreparedFigure:
    return PreparedFigure(
        table=civic_space_population(ctx),
        encoding=Encoding(
            geometry=Geometry.POINT_RANGE,
            x="Rating",
            y="percent",
            color="Rating",
            y_format="percent",
            y_label="Percent of world population",
            title="Civic space and world population",
            caption="Source: CIVICUS Monitor; World Bank",
        ),
        direction="descending",
    )


def _civic_space_map(ctx: FigureContext) -> PreparedFigure:
    shapes = ctx.shapes()
    rated = join(shapes, ctx.dataset("civicus"), on="ISO_A3", right_on="iso3", columns=["Rating"])
    return PreparedFigure(
        table=rated,
        encoding=Encoding(
            geometry=Geometry.CHOROPLETH,
            fill="Rating",
            geo_key="ISO_A3",
            levels=schemas.CIVIC_SPACE_LEVELS,
            caption="Source: CIVICUS Monitor",
        ),
        direction="descending",
    )


def _ngo_finances(ctx: FigureContext) -> PreparedFigure:
    long = to_long(ctx.dataset("finances"), ["Year"], ["Income", "Expenses"])
    return PreparedFigure(
        table=long,
        encoding=Encoding(
            geometry=Geometry.LINE,
            x="Year",
            y="Value",
            color="Measure",
            y_format="currency",
            title="NGO income and expenses",
        ),
    )


def _regional_expenses(ctx: FigureContext) -> PreparedFigure:
    shares = ratio_within_group(ctx.dataset("regional_expenses"), "Amount", by="Year", name="percent")
    return PreparedFigure(
        table=shares,
        encoding=Encoding(
            geometry=Geometry.LINE,
            x="Year",
            y="percent",
            facet="Region",
            y_format="percent",
            y_label="Share of annual expenses",
            title="Expenses by region",
        ),
    )


def _partner_funding(ctx: FigureContext) -> PreparedFigure:
    totals = accumulate(ctx.dataset("partner_funding"), ["partner_a", "partner_b"], "cr_total")
    running = cumulative(totals, "cr_total", order="Year", name="cr_cumulative")
    return PreparedFigure(
        table=running,
        encoding=Encoding(
            geometry=Geometry.LINE,
            x="Year",
            y="cr_cumulative",
            y_format="currency",
            y_label="Cumulative partner funding",
            title="Partner funding over time",
        ),
    )


def _office_locations(ctx: FigureContext) -> PreparedFigure:
    return PreparedFigure(
        table=ctx.dataset("offices"),
        encoding=Encoding(
            geometry=Geometry.LABELED_POINT,
            x="Longitude",
            y="Latitude",
            label="Office",
        ),
        basemap=ctx.shapes(),
    )


FIGURES: tuple[FigureDefinition, ...] = (
    FigureDefinition("civic-space-population", _civic_space_population_figure),
    FigureDefinition("civic-space-map", _civic_space_map, needs_shapes=True),
    FigureDefinition("ngo-finances", _ngo_finances),
    FigureDefinition("regional-expenses", _regional_expenses),
    FigureDefinition("partner-funding", _partner_funding),
    FigureDefinition("office-locations", _office_locations, needs_shapes=True),
)


# -- tables ----------------------------------------------------------------


def _finances_table(ctx: FigureContext) -> TextBlock:
    table = surplus(ctx.dataset("finances"))
    frame = table.frame.sort_values("Year", kind="mergesort")
    out = pd.DataFrame(
        {
            "Year": frame["Year"].astype("string"),
            "Income": frame["Income"].map(dollar),
            "Expenses": frame["Expenses"].map(dollar),
            "Surplus": frame["Surplus"].map(dollar),
        }
    )
    return format_table(
        out,
        caption="NGO income, expenses and surplus by year",
        justify=["left", "right", "right", "right"],
    )


def _civic_space_population_table(ctx: FigureContext) -> TextBlock:
    frame = civic_space_population(ctx).frame
    out = pd.DataFrame(
        {
            "Rating": frame["Rating"].astype("string"),
            "Population": frame["Population"].map(comma),
            "Percent": frame["percent"].map(lambda value: percent(value, 1)),
        }
    )
    year = ctx.cfg.figures.population_year
    return format_table(
        out,
        caption=f"World population by civic space rating, {year}",
        justify=["left", "right", "right"],
    )


TABLES: tuple[TableDefinition, ...] = (
    TableDefinition("finances", _finances_table),
    TableDefinition("civic-space-population", _civic_space_population_table),
)


# -- run loops -------------------------------------------------------------


def _select(
    items: Sequence[FigureDefinition] | Sequence[TableDefinition],
    requested: Iterable[str] | None,
    report: FigureReport,
    kind: str,
) -> list:
    if not requested:
        return list(items)
    wanted = list(dict.fromkeys(name.strip() for name in requested if name and name.strip()))
    known = {item.name: item for item in items}
    unknown = [name for name in wanted if name not in known]
    if unknown:
        report.add_error(
            f"Unknown {kind}(s): {', '.join(unknown)}; available: {', '.join(known)}"
        )
    selected = [known[name] for name in wanted if name in known]
    report.add_info(f"{kind.capitalize()} filter enabled: {len(selected)} selected")
    return selected


def run_figures(
    cfg: AppConfig,
    *,
    figure_filter: Sequence[str] | None = None,
    variants: Sequence[StyleVariant] | None = None,
    context: FigureContext | None = None,
) -> FigureReport:
    """Render every selected figure in every selected variant.

    A data or render failure skips that figure; an export failure skips that
    file. Both are reported and the run continues.
    """
    report = FigureReport(output_dir=cfg.paths.output_dir)
    selected: list[FigureDefinition] = _select(FIGURES, figure_filter, report, "figure")
    chosen_variants = tuple(dict.fromkeys(variants)) if variants else cfg.variants
    ctx = context or FigureContext(cfg)
    renderer = ChartRenderer(cfg.style, cfg.map, cfg.labels)
    exporter = ExportManager(cfg.paths.output_dir)
    render_size = cfg.exports[0].size_inches
    rendered = 0

    for idx, definition in enumerate(selected, start=1):
        t0 = time.perf_counter()
        try:
            prepared = definition.prepare(ctx)
        except Exception as exc:
            _LOGGER.debug("Preparing %s failed", definition.name, exc_info=True)
            report.failed.append(definition.name)
            report.add_error(f"{definition.name}: {exc}")
            continue

        figure_ok = True
        for variant in chosen_variants:
            target = RenderTarget(name=definition.name, variant=variant, specs=cfg.exports)
            try:
                binding = resolve(variant, cfg.style, direction=prepared.direction)
                chart = renderer.render(
                    prepared.table,
                    prepared.encoding,
                    binding,
                    name=definition.name,
                    size=render_size,
                    basemap=prepared.basemap,
                )
            except Exception as exc:
                _LOGGER.debug("Rendering %s (%s) failed", definition.name, variant.value, exc_info=True)
                figure_ok = False
                report.add_error(f"{definition.name} ({variant.value}): {exc}")
                continue
            try:
                exported = exporter.export(chart, target)
            finally:
                chart.close()
            report.written.extend(exported.written)
            report.errors.extend(exported.errors)
            if not exported.ok:
                figure_ok = False

        if figure_ok:
            rendered += 1
            _LOGGER.info(
                "[render] (%d/%d) built %s in %.2fs",
                idx,
                len(selected),
                definition.name,
                time.perf_counter() - t0,
            )
        else:
            report.failed.append(definition.name)

    report.summary = {
        "figures_total": len(selected),
        "figures_rendered": rendered,
        "figures_failed": len(report.failed),
        "files_written": len(report.written),
    }
    report.add_info(
        "Figure summary: "
        f"figures_total={len(selected)}, "
        f"figures_rendered={rendered}, "
        f"figures_failed={len(report.failed)}, "
        f"files_written={len(report.written)}"
    )
    return report


def run_tables(
    cfg: AppConfig,
    *,
    table_filter: Sequence[str] | None = None,
    context: FigureContext | None = None,
) -> FigureReport:
    """Write each selected table as `tbl-{name}.md` under `paths.tables_dir`."""
    report = FigureReport(output_dir=cfg.paths.tables_dir)
    selected: list[TableDefinition] = _select(TABLES, table_filter, report, "table")
    ctx = context or FigureContext(cfg)
    exporter = ExportManager(cfg.paths.tables_dir)

    for definition in selected:
        try:
            block = definition.build(ctx)
        except Exception as exc:
            _LOGGER.debug("Building table %s failed", definition.name, exc_info=True)
            report.failed.append(definition.name)
            report.add_error(f"{definition.name}: {exc}")
            continue
        exported = exporter.export_table(block, definition.name)
        report.written.extend(exported.written)
        report.errors.extend(exported.errors)
        if exported.ok:
            _LOGGER.info("[tables] wrote %s", definition.name)
        else:
            report.failed.append(definition.name)

    report.summary = {
        "tables_total": len(selected),
        "tables_failed": len(report.failed),
        "files_written": len(report.written),
    }
    report.add_info(
        f"Table summary: tables_total={len(selected)}, tables_failed={len(report.failed)}"
    )
    return report


def format_figure_lines(report: FigureReport, label: str = "Figure rendering") -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append(f"[OK] {label} completed with no errors.")
    return lines

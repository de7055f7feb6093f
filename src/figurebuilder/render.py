"""Chart rendering: line, point-range, choropleth and labeled-point figures."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

import numpy as np
import pandas as pd

from .config import LabelsConfig, MapConfig, StyleConfig
from .formatting import FORMATTERS
from .models import Dataset, DerivedTable, StyleVariant
from .styles import PaletteBinding, theme_rc

_LOGGER = logging.getLogger("figurebuilder.render")

_SOURCE_CRS = "EPSG:4326"

_PixelBBox = tuple[float, float, float, float]


class Geometry(str, Enum):
    LINE = "line"
    POINT_RANGE = "pointrange"
    CHOROPLETH = "choropleth"
    LABELED_POINT = "labeled_point"

    @property
    def is_map(self) -> bool:
        return self in {Geometry.CHOROPLETH, Geometry.LABELED_POINT}


@dataclass(frozen=True, slots=True)
class Encoding:
    """Which columns drive which visual channels, plus axis and text settings.

    Line/point-range charts use `x`, `y`, optional `color` and `facet`;
    point-range also reads `ymin`/`ymax` (default: a stem from zero to `y`).
    Choropleths read `fill` keyed by `geo_key`; labeled points read `x`
    (longitude), `y` (latitude) and `label`.
    """

    geometry: Geometry
    x: str | None = None
    y: str | None = None
    color: str | None = None
    facet: str | None = None
    ymin: str | None = None
    ymax: str | None = None
    label: str | None = None
    fill: str | None = None
    geo_key: str = "ISO_A3"
    levels: tuple[Any, ...] | None = None
    x_label: str | None = None
    y_label: str | None = None
    x_format: str = "number"
    y_format: str = "number"
    title: str | None = None
    subtitle: str | None = None
    caption: str | None = None
    legend_title: str | None = None
    na_label: str = "No data"
    include_zero: bool = True
    facet_columns: int | None = None


@dataclass(slots=True)
class Chart:
    """A rendered matplotlib figure plus what is needed to export it."""

    name: str
    variant: StyleVariant
    figure: Any
    rc: Mapping[str, Any] = field(default_factory=dict)
    label_positions: tuple[tuple[str, int, int], ...] = ()

    def close(self) -> None:
        plt, _ = _require_matplotlib()
        plt.close(self.figure)


@dataclass(frozen=True, slots=True)
class _LabelCandidate:
    text: str
    x: float
    y: float


class ChartRenderer:
    """Builds one figure from a table, an encoding and a palette binding.

    All appearance settings come from the explicit style config; rc values
    are scoped with `rc_context` and never leak into global defaults.
    """

    def __init__(self, style: StyleConfig, map_cfg: MapConfig, labels: LabelsConfig) -> None:
        self.style = style
        self.map_cfg = map_cfg
        self.labels = labels

    def render(
        self,
        table: Dataset | DerivedTable,
        encoding: Encoding,
        binding: PaletteBinding,
        *,
        name: str,
        size: tuple[float, float] = (6.0, 4.0),
        basemap: Dataset | None = None,
    ) -> Chart:
        plt, _ = _require_matplotlib()
        rc = theme_rc(self.style, "map" if encoding.geometry.is_map else "plot")
        label_positions: tuple[tuple[str, int, int], ...] = ()
        with plt.rc_context(rc):
            if encoding.geometry is Geometry.LINE:
                fig = self._render_xy(table.frame, encoding, binding, size, self._draw_lines)
            elif encoding.geometry is Geometry.POINT_RANGE:
                fig = self._render_xy(table.frame, encoding, binding, size, self._draw_pointranges)
            elif encoding.geometry is Geometry.CHOROPLETH:
                fig = self._render_choropleth(table.frame, encoding, binding, size)
            elif encoding.geometry is Geometry.LABELED_POINT:
                fig, label_positions = self._render_labeled_points(
                    table.frame, encoding, binding, size, basemap
                )
            else:  # pragma: no cover
                raise ValueError(f"Unsupported geometry: {encoding.geometry}")
        _LOGGER.debug("Rendered %s (%s, %s)", name, encoding.geometry.value, binding.variant.value)
        return Chart(
            name=name,
            variant=binding.variant,
            figure=fig,
            rc=rc,
            label_positions=label_positions,
        )

    # -- x/y charts --------------------------------------------------------

    def _render_xy(
        self,
        frame: pd.DataFrame,
        enc: Encoding,
        binding: PaletteBinding,
        size: tuple[float, float],
        draw: Callable[..., None],
    ) -> Any:
        plt, _ = _require_matplotlib()
        if enc.x is None or enc.y is None:
            raise ValueError(f"{enc.geometry.value} charts need both x and y fields")

        facets: list[Any] = _levels(frame, enc.facet) if enc.facet else [None]
        ncols = max(1, min(enc.facet_columns or len(facets), len(facets)))
        nrows = math.ceil(len(facets) / ncols)
        fig, axes = plt.subplots(
            nrows,
            ncols,
            figsize=size,
            sharey=True,
            squeeze=False,
            layout="constrained",
        )
        flat_axes = list(axes.flat)

        color_levels = _levels(frame, enc.color, enc.levels) if enc.color else []
        colors = binding.for_levels(color_levels) if enc.color else {}

        for ax, facet_value in zip(flat_axes, facets):
            subset = frame if enc.facet is None else frame[_equals(frame[enc.facet], facet_value)]
            draw(ax=ax, frame=subset, enc=enc, binding=binding, colors=colors, color_levels=color_levels)
            if enc.facet is not None:
                ax.set_title(str(facet_value), loc="left", fontsize=self.style.base_size, fontweight="bold")
            _format_axis(ax.yaxis, enc.y_format)
            if enc.geometry is Geometry.LINE:
                _format_axis(ax.xaxis, enc.x_format)
        for ax in flat_axes[len(facets):]:
            ax.set_visible(False)

        if enc.include_zero:
            _include_zero(flat_axes[0])
        if enc.y_label is not None:
            fig.supylabel(enc.y_label, fontsize=self.style.base_size)
        if enc.x_label is not None:
            fig.supxlabel(enc.x_label, fontsize=self.style.base_size)
        if enc.color and len(color_levels) > 1:
            handles, labels = flat_axes[0].get_legend_handles_labels()
            if handles:
                fig.legend(
                    handles,
                    labels,
                    loc="outside lower center",
                    ncol=len(handles),
                    title=enc.legend_title,
                )
        self._decorate(fig, enc)
        return fig

    def _draw_lines(
        self,
        *,
        ax: Any,
        frame: pd.DataFrame,
        enc: Encoding,
        binding: PaletteBinding,
        colors: Mapping[Any, str],
        color_levels: Sequence[Any],
    ) -> None:
        series: list[tuple[Any, pd.DataFrame, str]] = []
        if enc.color is None:
            series.append((None, frame, binding.primary()))
        else:
            for level in color_levels:
                series.append((level, frame[_equals(frame[enc.color], level)], colors[level]))
        for level, rows, color in series:
            rows = rows.sort_values(enc.x, kind="mergesort")
            ax.plot(
                _numeric(rows[enc.x]),
                _numeric(rows[enc.y]),
                color=color,
                linewidth=1.2,
                marker="o",
                markersize=3,
                label=None if level is None else str(level),
            )

    def _draw_pointranges(
        self,
        *,
        ax: Any,
        frame: pd.DataFrame,
        enc: Encoding,
        binding: PaletteBinding,
        colors: Mapping[Any, str],
        color_levels: Sequence[Any],
    ) -> None:
        x_levels = _levels(frame, enc.x, enc.levels if enc.color == enc.x else None)
        positions = {level: idx for idx, level in enumerate(x_levels)}
        groups: list[tuple[Any, pd.DataFrame, str]] = []
        if enc.color is None:
            groups.append((None, frame, binding.primary()))
        else:
            for level in color_levels:
                groups.append((level, frame[_equals(frame[enc.color], level)], colors[level]))
        for level, rows, color in groups:
            rows = rows[rows[enc.x].notna()]
            if rows.empty:
                continue
            xs = np.array([positions[value] for value in rows[enc.x]], dtype=float)
            ys = _numeric(rows[enc.y])
            lows = _numeric(rows[enc.ymin]) if enc.ymin else np.zeros_like(ys)
            highs = _numeric(rows[enc.ymax]) if enc.ymax else ys
            ax.vlines(xs, lows, highs, colors=color, linewidth=1.5)
            ax.scatter(xs, ys, color=color, s=28, zorder=3, label=None if level is None else str(level))
        ax.set_xticks(range(len(x_levels)))
        ax.set_xticklabels([str(level) for level in x_levels])
        ax.grid(False, axis="x")
        ax.set_xlim(-0.6, len(x_levels) - 0.4)

    # -- maps --------------------------------------------------------------

    def project_shapes(self, frame: Any, geo_key: str = "ISO_A3") -> Any:
        """Drop excluded regions and reproject into the configured map CRS."""
        if self.map_cfg.excluded_iso3 and geo_key in frame.columns:
            excluded = frame[geo_key].isin(self.map_cfg.excluded_iso3)
            frame = frame[~excluded.fillna(False).astype(bool)]
        if frame.crs is None:
            frame = frame.set_crs(_SOURCE_CRS)
        return frame.to_crs(self.map_cfg.crs)

    def project_points(self, lons: Sequence[float], lats: Sequence[float]) -> tuple[np.ndarray, np.ndarray]:
        transformer = _require_pyproj_transformer().from_crs(
            _SOURCE_CRS, self.map_cfg.crs, always_xy=True
        )
        xs, ys = transformer.transform(np.asarray(lons, dtype=float), np.asarray(lats, dtype=float))
        return np.asarray(xs, dtype=float), np.asarray(ys, dtype=float)

    def _render_choropleth(
        self,
        frame: Any,
        enc: Encoding,
        binding: PaletteBinding,
        size: tuple[float, float],
    ) -> Any:
        plt, _ = _require_matplotlib()
        patches = _require_matplotlib_patches()
        if enc.fill is None:
            raise ValueError("choropleth charts need a fill field")
        shapes = self.project_shapes(frame, enc.geo_key)
        if shapes.empty:
            raise ValueError("no geometries left to draw after exclusions")

        levels = _levels(shapes, enc.fill, enc.levels)
        colors = binding.for_levels(levels)
        fills = [
            binding.na_color if _is_missing(value) else binding.color_for(colors, value)
            for value in shapes[enc.fill]
        ]

        fig, ax = plt.subplots(figsize=size, layout="constrained")
        shapes.plot(
            ax=ax,
            color=fills,
            edgecolor=self.map_cfg.basemap_edge,
            linewidth=self.map_cfg.edge_width,
        )
        ax.set_axis_off()
        ax.set_aspect("equal")

        handles = [patches.Patch(facecolor=colors[level], label=str(level)) for level in levels]
        if any(_is_missing(value) for value in shapes[enc.fill]):
            handles.append(patches.Patch(facecolor=binding.na_color, label=enc.na_label))
        if handles:
            fig.legend(
                handles=handles,
                loc="outside lower center",
                ncol=len(handles),
                title=enc.legend_title,
            )
        self._decorate(fig, enc)
        return fig

    def _render_labeled_points(
        self,
        frame: pd.DataFrame,
        enc: Encoding,
        binding: PaletteBinding,
        size: tuple[float, float],
        basemap: Dataset | None,
    ) -> tuple[Any, tuple[tuple[str, int, int], ...]]:
        plt, transforms = _require_matplotlib()
        if enc.x is None or enc.y is None or enc.label is None:
            raise ValueError("labeled point charts need x (longitude), y (latitude) and label fields")
        rows = frame[frame[enc.x].notna() & frame[enc.y].notna()]
        xs, ys = self.project_points(_numeric(rows[enc.x]), _numeric(rows[enc.y]))

        # fixed axes box: label collision checks need stable pixel geometry
        fig, ax = plt.subplots(figsize=size)
        fig.subplots_adjust(left=0.01, right=0.99, bottom=0.01, top=0.92 if enc.title else 0.99)
        if basemap is not None:
            shapes = self.project_shapes(basemap.frame)
            shapes.plot(
                ax=ax,
                color=self.map_cfg.basemap_fill,
                edgecolor=self.map_cfg.basemap_edge,
                linewidth=self.map_cfg.edge_width,
                zorder=1,
            )
            minx, miny, maxx, maxy = (float(v) for v in shapes.total_bounds)
        elif len(xs):
            minx, maxx = float(xs.min()), float(xs.max())
            miny, maxy = float(ys.min()), float(ys.max())
        else:
            minx, miny, maxx, maxy = (-1.0, -1.0, 1.0, 1.0)
        pad_x = max((maxx - minx) * 0.05, 1.0)
        pad_y = max((maxy - miny) * 0.05, 1.0)
        ax.set_xlim(minx - pad_x, maxx + pad_x)
        ax.set_ylim(miny - pad_y, maxy + pad_y)
        ax.set_aspect("equal", adjustable="datalim")
        ax.set_axis_off()

        ax.scatter(xs, ys, s=12, color=binding.primary(), zorder=3, linewidths=0.0)
        candidates = tuple(
            _LabelCandidate(text=str(text), x=float(x), y=float(y))
            for text, x, y in zip(rows[enc.label], xs, ys)
            if not _is_missing(text)
        )
        if enc.title:
            ax.set_title(enc.title, loc="left")
        placements = self._place_labels(fig=fig, ax=ax, transforms=transforms, candidates=candidates)
        if enc.caption:
            fig.text(0.99, 0.01, enc.caption, ha="right", va="bottom", color="#7F7F7F",
                     fontsize=self.style.base_size * 0.8)
        return fig, placements

    def _place_labels(
        self,
        *,
        fig: Any,
        ax: Any,
        transforms: Any,
        candidates: Sequence[_LabelCandidate],
    ) -> tuple[tuple[str, int, int], ...]:
        """Place each label at the first non-overlapping candidate offset.

        Candidates are processed in name order. The preferred offset is
        always tried first; the order of the remaining offsets is permuted by
        the configured seed. A label that fits nowhere takes its
        least-overlapping offset.
        """
        if not candidates:
            return ()
        rng = np.random.default_rng(self.labels.seed)
        fig.canvas.draw()
        renderer = fig.canvas.get_renderer()
        occupied: list[_PixelBBox] = [
            _expanded_bbox(bbox, self.labels.collision_padding_px)
            for bbox in _marker_bboxes(ax, candidates)
        ]
        preferred, *others = self.labels.offsets_px
        placements: list[tuple[str, int, int]] = []
        for candidate in sorted(candidates, key=lambda item: (item.text.casefold(), item.x, item.y)):
            rest = [others[idx] for idx in rng.permutation(len(others))]

            def trial(offset: tuple[int, int]) -> tuple[float, Any, _PixelBBox, tuple[int, int]]:
                artist = self._create_label_artist(
                    ax=ax, fig=fig, transforms=transforms, candidate=candidate,
                    dx_px=offset[0], dy_px=offset[1],
                )
                bbox = _expanded_bbox(_window_bbox(artist, renderer), self.labels.collision_padding_px)
                return _total_overlap_area(bbox, occupied), artist, bbox, offset

            best = trial(preferred)
            for offset in rest:
                if best[0] <= 0.0:
                    break
                attempt = trial(offset)
                if attempt[0] < best[0]:
                    best[1].remove()
                    best = attempt
                else:
                    attempt[1].remove()
            occupied.append(best[2])
            placements.append((candidate.text, best[3][0], best[3][1]))
        return tuple(placements)

    def _create_label_artist(
        self,
        *,
        ax: Any,
        fig: Any,
        transforms: Any,
        candidate: _LabelCandidate,
        dx_px: int,
        dy_px: int,
    ) -> Any:
        if dx_px > 0:
            ha = "left"
        elif dx_px < 0:
            ha = "right"
        else:
            ha = "center"
        if dy_px > 0:
            va = "bottom"
        elif dy_px < 0:
            va = "top"
        else:
            va = "center"
        shift = transforms.ScaledTranslation(dx_px / fig.dpi, dy_px / fig.dpi, fig.dpi_scale_trans)
        return ax.text(
            candidate.x,
            candidate.y,
            candidate.text,
            transform=ax.transData + shift,
            fontsize=self.labels.font_size,
            ha=ha,
            va=va,
            clip_on=False,
            zorder=4,
        )

    def _decorate(self, fig: Any, enc: Encoding) -> None:
        if enc.title:
            heading = enc.title if not enc.subtitle else f"{enc.title}\n{enc.subtitle}"
            fig.suptitle(heading, x=0.01, ha="left", fontsize=self.style.base_size * 1.2)
        if enc.caption:
            fig.get_layout_engine().set(rect=(0.0, 0.04, 1.0, 0.96))
            fig.text(
                0.99,
                0.005,
                enc.caption,
                ha="right",
                va="bottom",
                color="#7F7F7F",
                fontsize=self.style.base_size * 0.8,
            )


def _levels(frame: pd.DataFrame, column: str | None, explicit: Sequence[Any] | None = None) -> list[Any]:
    """Ordered distinct values: explicit levels, categorical order, else sorted."""
    if column is None:
        return []
    if explicit:
        return list(explicit)
    series = frame[column]
    if isinstance(series.dtype, pd.CategoricalDtype):
        return list(series.cat.categories)
    values = [value for value in series.unique() if not _is_missing(value)]
    return sorted(values, key=lambda value: (str(type(value)), value))


def _equals(series: pd.Series, value: Any) -> pd.Series:
    return (series == value).fillna(False).astype(bool)


def _is_missing(value: Any) -> bool:
    return value is None or value is pd.NA or (isinstance(value, float) and math.isnan(value))


def _numeric(series: pd.Series) -> np.ndarray:
    return pd.to_numeric(series, errors="coerce").astype("Float64").to_numpy(dtype=float, na_value=np.nan)


def _include_zero(ax: Any) -> None:
    lo, hi = ax.get_ylim()
    ax.set_ylim(min(lo, 0.0), max(hi, 0.0))


def _format_axis(axis: Any, kind: str) -> None:
    ticker = _require_matplotlib_ticker()
    try:
        formatter = FORMATTERS[kind]
    except KeyError as exc:
        raise ValueError(f"Unknown axis format '{kind}'") from exc
    axis.set_major_formatter(ticker.FuncFormatter(lambda value, _pos: formatter(value)))
    if kind == "number":
        axis.set_major_locator(ticker.MaxNLocator(integer=True))


def _marker_bboxes(ax: Any, candidates: Sequence[_LabelCandidate]) -> list[_PixelBBox]:
    half = 2.0
    out: list[_PixelBBox] = []
    for candidate in candidates:
        px, py = ax.transData.transform((candidate.x, candidate.y))
        out.append((float(px) - half, float(py) - half, float(px) + half, float(py) + half))
    return out


def _window_bbox(artist: Any, renderer: Any) -> _PixelBBox:
    bbox = artist.get_window_extent(renderer=renderer)
    return (float(bbox.x0), float(bbox.y0), float(bbox.x1), float(bbox.y1))


def _expanded_bbox(bbox: _PixelBBox, padding_px: int) -> _PixelBBox:
    return (bbox[0] - padding_px, bbox[1] - padding_px, bbox[2] + padding_px, bbox[3] + padding_px)


def _total_overlap_area(bbox: _PixelBBox, occupied: Sequence[_PixelBBox]) -> float:
    return sum(_intersection_area(bbox, current) for current in occupied)


def _intersection_area(left: _PixelBBox, right: _PixelBBox) -> float:
    x0 = max(left[0], right[0])
    y0 = max(left[1], right[1])
    x1 = min(left[2], right[2])
    y1 = min(left[3], right[3])
    if x1 <= x0 or y1 <= y0:
        return 0.0
    return (x1 - x0) * (y1 - y0)


def _require_matplotlib() -> tuple[Any, Any]:
    try:
        import matplotlib

        matplotlib.use("Agg", force=False)
        import matplotlib.pyplot as plt
        import matplotlib.transforms as transforms
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for chart rendering") from exc
    return (plt, transforms)


def _require_matplotlib_ticker() -> Any:
    try:
        import matplotlib.ticker as ticker
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for axis formatting") from exc
    return ticker


def _require_matplotlib_patches() -> Any:
    try:
        import matplotlib.patches as patches
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for map legends") from exc
    return patches


def _require_pyproj_transformer() -> Any:
    try:
        from pyproj import Transformer
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required for map projection") from exc
    return Transformer

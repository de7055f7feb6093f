from __future__ import annotations

import pandas as pd
import pytest

from figurebuilder.models import DerivedTable, StyleVariant
from figurebuilder.render import ChartRenderer, Encoding, Geometry
from figurebuilder.schemas import CIVIC_SPACE_LEVELS
from figurebuilder.styles import resolve


@pytest.fixture()
def renderer(style_cfg, map_cfg, labels_cfg) -> ChartRenderer:
    return ChartRenderer(style_cfg, map_cfg, labels_cfg)


@pytest.fixture()
def binding(style_cfg):
    return resolve(StyleVariant.COLOR, style_cfg)


def _table(frame: pd.DataFrame, name: str = "demo") -> DerivedTable:
    return DerivedTable(name=name, frame=frame)


def test_line_chart_includes_zero(renderer, binding):
    frame = pd.DataFrame(
        {
            "Year": [2015, 2016, 2017],
            "Measure": ["Income", "Income", "Income"],
            "Value": [150.0, 180.0, 210.0],
        }
    )
    chart = renderer.render(
        _table(frame),
        Encoding(geometry=Geometry.LINE, x="Year", y="Value", color="Measure", y_format="currency"),
        binding,
        name="demo",
    )
    low, high = chart.figure.axes[0].get_ylim()
    assert low <= 0.0
    assert high >= 210.0
    assert chart.variant is StyleVariant.COLOR


def test_line_chart_can_skip_zero(renderer, binding):
    frame = pd.DataFrame({"Year": [2015, 2016], "Value": [150.0, 180.0]})
    chart = renderer.render(
        _table(frame),
        Encoding(geometry=Geometry.LINE, x="Year", y="Value", include_zero=False),
        binding,
        name="demo",
    )
    assert chart.figure.axes[0].get_ylim()[0] > 0.0


def test_facets_get_one_panel_each(renderer, binding):
    frame = pd.DataFrame(
        {
            "Year": [2015, 2016, 2015, 2016, 2015, 2016],
            "Region": ["Africa", "Africa", "Asia", "Asia", "Europe", "Europe"],
            "percent": [0.2, 0.3, 0.5, 0.4, 0.3, 0.3],
        }
    )
    chart = renderer.render(
        _table(frame),
        Encoding(geometry=Geometry.LINE, x="Year", y="percent", facet="Region", y_format="percent"),
        binding,
        name="regional",
    )
    visible = [ax for ax in chart.figure.axes if ax.get_visible()]
    assert [ax.get_title(loc="left") for ax in visible] == ["Africa", "Asia", "Europe"]


def test_pointrange_keeps_declared_levels(renderer, binding):
    frame = pd.DataFrame(
        {
            "Rating": pd.Categorical(["Open", "Closed"], categories=CIVIC_SPACE_LEVELS, ordered=True),
            "percent": [0.25, 0.75],
        }
    )
    chart = renderer.render(
        _table(frame),
        Encoding(geometry=Geometry.POINT_RANGE, x="Rating", y="percent", color="Rating", y_format="percent"),
        binding,
        name="civic",
    )
    ax = chart.figure.axes[0]
    assert [tick.get_text() for tick in ax.get_xticklabels()] == list(CIVIC_SPACE_LEVELS)
    assert ax.get_ylim()[0] <= 0.0


def test_unknown_axis_format_raises(renderer, binding):
    frame = pd.DataFrame({"Year": [2015], "Value": [1.0]})
    with pytest.raises(ValueError, match="axis format"):
        renderer.render(
            _table(frame),
            Encoding(geometry=Geometry.LINE, x="Year", y="Value", y_format="roman"),
            binding,
            name="demo",
        )


def test_line_chart_requires_fields(renderer, binding):
    with pytest.raises(ValueError):
        renderer.render(_table(pd.DataFrame({"a": [1]})), Encoding(geometry=Geometry.LINE), binding, name="x")


def test_project_shapes_excludes_antarctica(renderer, shapes):
    projected = renderer.project_shapes(shapes.frame)
    assert "ATA" not in set(projected["ISO_A3"])
    assert len(projected) == 3
    assert projected.crs.to_epsg() == 8857
    assert len(shapes.frame) == 4


def test_choropleth_marks_missing_as_no_data(renderer, binding, shapes):
    frame = shapes.frame.copy()
    frame["Rating"] = pd.Categorical(
        ["Open", None, "Closed", "Open"], categories=CIVIC_SPACE_LEVELS, ordered=True
    )
    chart = renderer.render(
        _table(frame, "civic-map"),
        Encoding(geometry=Geometry.CHOROPLETH, fill="Rating", levels=CIVIC_SPACE_LEVELS),
        binding,
        name="civic-map",
    )
    legend = chart.figure.legends[0]
    labels = [text.get_text() for text in legend.get_texts()]
    assert labels == [*CIVIC_SPACE_LEVELS, "No data"]


def _offices() -> DerivedTable:
    frame = pd.DataFrame(
        {
            "Office": ["Ottawa", "Toronto", "Montreal", "Berlin"],
            "Longitude": [-75.70, -79.38, -73.57, 13.40],
            "Latitude": [45.42, 43.65, 45.50, 52.52],
        }
    )
    return _table(frame, "offices")


def test_labeled_points_are_deterministic(renderer, binding, shapes):
    encoding = Encoding(geometry=Geometry.LABELED_POINT, x="Longitude", y="Latitude", label="Office")
    first = renderer.render(_offices(), encoding, binding, name="offices", basemap=shapes)
    second = renderer.render(_offices(), encoding, binding, name="offices", basemap=shapes)

    assert first.label_positions == second.label_positions
    assert sorted(text for text, _dx, _dy in first.label_positions) == [
        "Berlin",
        "Montreal",
        "Ottawa",
        "Toronto",
    ]
    first.close()
    second.close()


def test_labels_use_configured_offsets(renderer, binding, labels_cfg):
    encoding = Encoding(geometry=Geometry.LABELED_POINT, x="Longitude", y="Latitude", label="Office")
    chart = renderer.render(_offices(), encoding, binding, name="offices")
    allowed = set(labels_cfg.offsets_px)
    assert all((dx, dy) in allowed for _text, dx, dy in chart.label_positions)


def test_single_offset_places_every_label(style_cfg, map_cfg, binding):
    from figurebuilder.config import LabelsConfig

    labels = LabelsConfig.from_mapping({"offsets_px": [[6, 4]], "collision_padding_px": 2, "seed": 3})
    renderer = ChartRenderer(style_cfg, map_cfg, labels)
    # coincident points force overlaps with no alternative offset
    frame = pd.DataFrame({"Office": ["A", "B", "C"], "Longitude": [10.0] * 3, "Latitude": [50.0] * 3})
    encoding = Encoding(geometry=Geometry.LABELED_POINT, x="Longitude", y="Latitude", label="Office")
    chart = renderer.render(_table(frame, "offices"), encoding, binding, name="offices")

    assert chart.label_positions == (("A", 6, 4), ("B", 6, 4), ("C", 6, 4))
    assert len(chart.figure.axes[0].texts) == 3

from __future__ import annotations

import matplotlib
import pytest
from matplotlib import colors as mcolors

from figurebuilder.config import DEFAULT_PALETTE
from figurebuilder.models import StyleVariant
from figurebuilder.styles import resolve, theme_rc


def test_color_variant_spans_palette(style_cfg):
    binding = resolve(StyleVariant.COLOR, style_cfg)
    first, last = binding.sample(2)
    assert first == DEFAULT_PALETTE[0].lower()
    assert last == DEFAULT_PALETTE[-1].lower()
    assert binding.na_color == "#E5E5E5"


def test_grayscale_starts_off_white(style_cfg):
    binding = resolve(StyleVariant.GRAYSCALE, style_cfg)
    first, last = binding.sample(2)
    greys = matplotlib.colormaps["Greys"]
    assert first == mcolors.to_hex(greys(0.2))
    assert last == mcolors.to_hex(greys(0.9))
    assert first != "#ffffff"


def test_descending_reverses_endpoints(style_cfg):
    ascending = resolve(StyleVariant.GRAYSCALE, style_cfg)
    descending = resolve(StyleVariant.GRAYSCALE, style_cfg, direction="descending")
    assert descending.sample(2) == tuple(reversed(ascending.sample(2)))
    assert descending.primary() == ascending.primary()


def test_begin_override(style_cfg):
    binding = resolve(StyleVariant.GRAYSCALE, style_cfg, begin=0.5)
    assert binding.sample(1)[0] == mcolors.to_hex(matplotlib.colormaps["Greys"](0.5))


def test_for_levels_and_missing_level(style_cfg):
    binding = resolve(StyleVariant.COLOR, style_cfg)
    mapping = binding.for_levels(["Open", "Narrowed", "Closed"])
    assert list(mapping) == ["Open", "Narrowed", "Closed"]
    assert len(set(mapping.values())) == 3
    assert binding.color_for(mapping, "Unknown") == binding.na_color


@pytest.mark.parametrize(
    "kwargs",
    [{"direction": "sideways"}, {"begin": 0.9, "end": 0.1}],
)
def test_resolve_rejects_bad_arguments(style_cfg, kwargs):
    with pytest.raises(ValueError):
        resolve(StyleVariant.COLOR, style_cfg, **kwargs)


def test_theme_rc_plot_and_map(style_cfg):
    plot_rc = theme_rc(style_cfg)
    map_rc = theme_rc(style_cfg, "map")

    assert plot_rc["font.family"][0] == "DejaVu Sans"
    assert plot_rc["axes.grid"] is True
    assert plot_rc["axes.spines.top"] is False
    assert plot_rc["pdf.fonttype"] == 42
    assert map_rc["axes.grid"] is False
    with pytest.raises(ValueError):
        theme_rc(style_cfg, "poster")


def test_theme_rc_is_scoped(style_cfg):
    import matplotlib.pyplot as plt

    before = matplotlib.rcParams["axes.grid"]
    with plt.rc_context(theme_rc(style_cfg)):
        assert matplotlib.rcParams["axes.grid"] is True
    assert matplotlib.rcParams["axes.grid"] == before

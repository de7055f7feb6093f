"""Palette resolution for color/grayscale variants and the plot theme."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import matplotlib
import numpy as np
from matplotlib import colors as mcolors

from .config import StyleConfig
from .models import StyleVariant

_COLORMAP_STEPS = 256


@dataclass(frozen=True, slots=True)
class PaletteBinding:
    """Colors bound to one style variant, usable for categorical or sequential fills."""

    variant: StyleVariant
    cmap: Any
    direction: str
    na_color: str

    def sample(self, n: int) -> tuple[str, ...]:
        """`n` evenly spaced colors along the bound colormap."""
        if n <= 0:
            return ()
        positions = np.linspace(0.0, 1.0, n) if n > 1 else np.array([0.0])
        return tuple(mcolors.to_hex(self.cmap(float(pos))) for pos in positions)

    def for_levels(self, levels: Sequence[Any]) -> dict[Any, str]:
        """Map ordered levels to colors; first level takes the start of the palette."""
        return dict(zip(levels, self.sample(len(levels))))

    def color_for(self, mapping: Mapping[Any, str], level: Any) -> str:
        return mapping.get(level, self.na_color)

    def primary(self) -> str:
        """Color for single-series marks: the far end of the configured range."""
        position = 1.0 if self.direction == "ascending" else 0.0
        return mcolors.to_hex(self.cmap(position))


def resolve(
    variant: StyleVariant,
    style: StyleConfig,
    *,
    direction: str | None = None,
    begin: float | None = None,
    end: float | None = None,
) -> PaletteBinding:
    """Build the palette binding for a variant.

    Color uses the multi-hue `style.palette`; grayscale samples the single-hue
    `style.grayscale_cmap` from `begin` so the lightest level is never white.
    """
    chosen_direction = (direction or style.direction).casefold()
    if chosen_direction not in {"ascending", "descending"}:
        raise ValueError(f"Unknown palette direction '{chosen_direction}'")

    if variant is StyleVariant.COLOR:
        base = mcolors.LinearSegmentedColormap.from_list("ngo", list(style.palette))
        lo = 0.0 if begin is None else begin
        hi = 1.0 if end is None else end
    else:
        base = matplotlib.colormaps[style.grayscale_cmap]
        lo = style.grayscale_begin if begin is None else begin
        hi = style.grayscale_end if end is None else end
    if not 0.0 <= lo < hi <= 1.0:
        raise ValueError(f"Palette range must satisfy 0 <= begin < end <= 1, got {lo}..{hi}")

    cmap = mcolors.LinearSegmentedColormap.from_list(
        f"{variant.value}-{lo:.2f}-{hi:.2f}",
        base(np.linspace(lo, hi, _COLORMAP_STEPS)),
    )
    if chosen_direction == "descending":
        cmap = cmap.reversed()
    return PaletteBinding(
        variant=variant,
        cmap=cmap,
        direction=chosen_direction,
        na_color=style.na_color,
    )


def theme_rc(style: StyleConfig, kind: str = "plot") -> dict[str, Any]:
    """rc settings for `matplotlib.rc_context`; `kind` is 'plot' or 'map'."""
    base = style.base_size
    rc: dict[str, Any] = {
        "font.family": [style.font_family, "DejaVu Sans"],
        "font.size": base,
        "axes.titlesize": base * 1.4,
        "axes.titleweight": "bold",
        "axes.titlelocation": "left",
        "axes.labelsize": base,
        "axes.facecolor": "white",
        "figure.facecolor": "white",
        "savefig.facecolor": "white",
        "legend.frameon": False,
        "legend.fontsize": base * 0.9,
        "pdf.fonttype": 42,
        "ps.fonttype": 42,
    }
    if kind == "map":
        rc.update({"axes.grid": False, "axes.axisbelow": True})
        return rc
    if kind != "plot":
        raise ValueError(f"Unknown theme kind '{kind}'")
    rc.update(
        {
            "axes.spines.top": False,
            "axes.spines.right": False,
            "axes.spines.left": False,
            "axes.spines.bottom": False,
            "axes.grid": True,
            "axes.grid.which": "major",
            "axes.axisbelow": True,
            "grid.color": "#EBEBEB",
            "grid.linewidth": 0.6,
            "xtick.major.size": 0,
            "ytick.major.size": 0,
            "xtick.minor.visible": False,
            "ytick.minor.visible": False,
            "xtick.labelsize": base * 0.9,
            "ytick.labelsize": base * 0.9,
            "axes.labelpad": 6,
        }
    )
    return rc

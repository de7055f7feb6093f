"""Grid-text tables with captions, ready for pandoc."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

import pandas as pd

from .formatting import MISSING

_ALIGNMENTS = {"left", "right", "center"}


@dataclass(frozen=True, slots=True)
class TextBlock:
    text: str
    pages: int = 1

    def __str__(self) -> str:
        return self.text


def _alignments(frame: pd.DataFrame, justify: Mapping[str, str] | Sequence[str] | None) -> list[str]:
    if justify is None:
        return [
            "right" if pd.api.types.is_numeric_dtype(frame[col]) else "left"
            for col in frame.columns
        ]
    if isinstance(justify, Mapping):
        unknown = sorted(set(justify) - set(frame.columns))
        if unknown:
            raise ValueError(f"justify names unknown columns: {', '.join(unknown)}")
        aligns = [justify.get(col, "left") for col in frame.columns]
    else:
        aligns = list(justify)
        if len(aligns) != len(frame.columns):
            raise ValueError(
                f"justify has {len(aligns)} entries for {len(frame.columns)} columns"
            )
    for value in aligns:
        if value not in _ALIGNMENTS:
            raise ValueError(f"Unknown alignment '{value}'")
    return aligns


def _as_text(frame: pd.DataFrame) -> pd.DataFrame:
    out = frame.astype("object")
    return out.where(frame.notna(), MISSING).astype(str)


def format_table(
    frame: pd.DataFrame,
    *,
    caption: str,
    justify: Mapping[str, str] | Sequence[str] | None = None,
    rows_per_page: int | None = None,
) -> TextBlock:
    """Render `frame` as a grid table followed by a `Table: caption` line.

    Cell values are used as-is (callers pre-format numbers); missing cells
    print as `NA`. With `rows_per_page`, long tables are split into pages
    that each repeat the header, later pages captioned `(continued)`.
    """
    if rows_per_page is not None and rows_per_page < 1:
        raise ValueError("rows_per_page must be >= 1")
    aligns = _alignments(frame, justify)
    text_frame = _as_text(frame)

    size = rows_per_page or max(len(text_frame), 1)
    starts = range(0, max(len(text_frame), 1), size)
    pages: list[str] = []
    for page_no, start in enumerate(starts):
        chunk = text_frame.iloc[start:start + size]
        grid = chunk.to_markdown(
            index=False,
            tablefmt="grid",
            colalign=aligns,
            disable_numparse=True,
        )
        label = caption if page_no == 0 else f"{caption} (continued)"
        pages.append(f"{grid}\n\nTable: {label}\n")
    return TextBlock(text="\n".join(pages), pages=len(pages))

"""Write rendered charts and table text blocks to disk."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ExportIOError
from .models import ExportFormat, ExportSpec, RenderTarget
from .render import Chart, _require_matplotlib
from .tables import TextBlock
from .util import atomic_output, write_text_atomic

_LOGGER = logging.getLogger("figurebuilder.export")

# Timestamps and version strings vary between runs; leave them out.
_STABLE_METADATA: dict[ExportFormat, dict[str, Any]] = {
    ExportFormat.PDF: {"CreationDate": None, "Producer": None, "Creator": None},
    ExportFormat.PNG: {"Software": None},
    ExportFormat.EPS: {"Creator": "figurebuilder"},
}


@dataclass(slots=True)
class ExportReport:
    written: list[Path] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)

    def extend(self, other: ExportReport) -> None:
        self.written.extend(other.written)
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.infos.extend(other.infos)


class ExportManager:
    """Writes each export spec of a target to `{output_dir}/{name}[-color].{ext}`.

    Files are written to a temp file in the output directory and moved into
    place, so an interrupted run never leaves a truncated figure. The output
    directory is not created here; a missing directory is an export error.
    """

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = output_dir

    def path_for(self, target: RenderTarget, spec: ExportSpec) -> Path:
        return self.output_dir / target.file_name(spec)

    def export(self, chart: Chart, target: RenderTarget) -> ExportReport:
        report = ExportReport()
        for spec in target.specs:
            path = self.path_for(target, spec)
            try:
                self._save(chart, spec, path)
            except ExportIOError as exc:
                _LOGGER.error("%s", exc)
                report.add_error(str(exc))
                continue
            _LOGGER.debug("Wrote %s", path)
            report.written.append(path)
        return report

    def export_table(self, block: TextBlock, name: str) -> ExportReport:
        report = ExportReport()
        path = self.output_dir / f"tbl-{name}.md"
        try:
            write_text_atomic(path, block.text)
        except OSError as exc:
            err = ExportIOError(path, exc.strerror or str(exc))
            _LOGGER.error("%s", err)
            report.add_error(str(err))
            return report
        _LOGGER.debug("Wrote %s", path)
        report.written.append(path)
        return report

    def _save(self, chart: Chart, spec: ExportSpec, path: Path) -> None:
        plt, _ = _require_matplotlib()
        fig = chart.figure
        width, height = spec.size_inches
        current = fig.get_size_inches()
        if abs(current[0] - width) > 1e-9 or abs(current[1] - height) > 1e-9:
            fig.set_size_inches(width, height)
        try:
            with plt.rc_context(chart.rc), atomic_output(path) as tmp_path:
                fig.savefig(tmp_path, **_savefig_kwargs(spec))
        except OSError as exc:
            raise ExportIOError(path, exc.strerror or str(exc)) from exc
        except ValueError as exc:
            raise ExportIOError(path, str(exc)) from exc
        except Exception as exc:
            # backend failures are still scoped to this one file
            raise ExportIOError(path, f"{type(exc).__name__}: {exc}") from exc


def _savefig_kwargs(spec: ExportSpec) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"format": spec.format.extension, "dpi": spec.dpi}
    metadata = _STABLE_METADATA.get(spec.format)
    if metadata is not None:
        kwargs["metadata"] = dict(metadata)
    if spec.format is ExportFormat.TIFF:
        kwargs["pil_kwargs"] = {"compression": "tiff_lzw"}
    return kwargs

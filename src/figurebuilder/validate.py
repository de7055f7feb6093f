"""Validation layer for config and input datasets."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .config import AppConfig
from .errors import FigureBuilderError
from .figures import FIGURES, SOURCES, FigureContext


@dataclass(slots=True)
class ValidationReport:
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


class Validator:
    """Checks that every input loads against its schema before a build."""

    def __init__(self, cfg: AppConfig, *, context: FigureContext | None = None) -> None:
        self.cfg = cfg
        self.context = context or FigureContext(cfg)
        self._data_errors_fatal = True

    def run(self, *, strict_data_files: bool = False, data_errors_fatal: bool = True) -> ValidationReport:
        """Run every check.

        With `data_errors_fatal=False` missing or malformed input files are
        reported as warnings; a build then fails only the figures that read
        them.
        """
        report = ValidationReport()
        self._data_errors_fatal = data_errors_fatal
        self._validate_config_paths(report, strict_data_files=strict_data_files)
        self._validate_datasets(report)
        self._validate_country_codes(report)
        self._validate_shapes(report, strict_data_files=strict_data_files)
        return report

    def _add_data_issue(self, report: ValidationReport, msg: str) -> None:
        self._add_quality_issue(report, msg, strict=self._data_errors_fatal)

    def _validate_config_paths(self, report: ValidationReport, *, strict_data_files: bool) -> None:
        for path in self.cfg.paths.required_input_files:
            if not path.exists():
                self._add_data_issue(report, f"Missing required input file: {path}")
        self._check_exists(report, self.cfg.paths.countries_shapefile, as_error=strict_data_files)
        self._check_exists(report, self.cfg.paths.manuscript_html, as_error=False)

    def _validate_datasets(self, report: ValidationReport) -> None:
        for key, (attr, _schema) in SOURCES.items():
            path: Path = getattr(self.cfg.paths, attr)
            if not path.exists():
                continue
            try:
                dataset = self.context.dataset(key)
            except FigureBuilderError as exc:
                self._add_data_issue(report, str(exc))
                continue
            report.add_info(f"Loaded {len(dataset)} rows for {key} from {path}")

    def _validate_country_codes(self, report: ValidationReport) -> None:
        if not self.cfg.paths.country_codes.exists():
            return
        try:
            codes = self.context.country_codes()
        except FigureBuilderError as exc:
            self._add_data_issue(report, f"Failed loading country codes: {exc}")
            return
        report.add_info(f"Country code index holds {len(codes)} names")

        for key in ("civicus", "population"):
            attr, schema = SOURCES[key]
            if not getattr(self.cfg.paths, attr).exists() or schema.country_column is None:
                continue
            try:
                frame = self.context.dataset(key).frame
            except FigureBuilderError:
                continue
            _codes, unmatched = codes.codes_for(frame[schema.country_column].tolist())
            if unmatched:
                report.add_warning(
                    f"{key}: {len(unmatched)} country name(s) without ISO3 code: "
                    f"{_format_code_list(list(unmatched))}"
                )

    def _validate_shapes(self, report: ValidationReport, *, strict_data_files: bool) -> None:
        map_figures = [figure.name for figure in FIGURES if figure.needs_shapes]
        if not self.cfg.paths.countries_shapefile.exists():
            report.add_info(
                "Skipping shapefile checks; these figures will fail: " + ", ".join(map_figures)
            )
            return
        try:
            shapes = self.context.shapes()
        except Exception as exc:
            self._add_quality_issue(report, f"Failed loading country shapes: {exc}", strict=strict_data_files)
            return
        shape_codes = set(shapes.frame["ISO_A3"].dropna().tolist())
        report.add_info(f"Loaded {len(shapes)} country shapes ({len(shape_codes)} ISO3 codes)")

        if not self.cfg.paths.civicus.exists():
            return
        try:
            civicus = self.context.dataset("civicus").frame
        except FigureBuilderError:
            return
        if "iso3" not in civicus.columns:
            return
        rated_codes = set(civicus["iso3"].dropna().tolist())
        missing = sorted(rated_codes - shape_codes - set(self.cfg.map.excluded_iso3))
        if missing:
            self._add_quality_issue(
                report,
                f"Rated countries missing from shapes: {_format_code_list(missing)}",
                strict=strict_data_files,
            )

    @staticmethod
    def _check_exists(report: ValidationReport, path: Path, *, as_error: bool) -> None:
        if path.exists():
            return
        msg = f"Missing dataset file: {path}"
        if as_error:
            report.add_error(msg)
        else:
            report.add_warning(msg)

    @staticmethod
    def _add_quality_issue(report: ValidationReport, msg: str, *, strict: bool) -> None:
        if strict:
            report.add_error(msg)
        else:
            report.add_warning(msg)


def _format_code_list(values: list[str], limit: int = 12) -> str:
    if len(values) <= limit:
        return ", ".join(values)
    shown = ", ".join(values[:limit])
    return f"{shown}, ... (+{len(values) - limit} more)"


def format_report_lines(report: ValidationReport) -> Iterable[str]:
    for info in report.infos:
        yield f"[INFO] {info}"
    for warning in report.warnings:
        yield f"[WARN] {warning}"
    for error in report.errors:
        yield f"[ERROR] {error}"
    if report.ok:
        yield "[OK] Validation completed with no errors."

"""CLI entrypoint for the figurebuilder paper pipeline."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from .config import AppConfig, load_config
from .errors import DataNotFoundError
from .figures import FIGURES, TABLES, FigureContext, format_figure_lines, run_figures, run_tables
from .models import BuildManifest, StyleVariant
from .util import detect_git_commit, ensure_directories, setup_logging, sha256_file, write_json
from .validate import Validator, format_report_lines
from .wordcount import WordCountReport, count_manuscript_words

LOGGER = logging.getLogger("figurebuilder.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="figurebuilder",
        description="Figures, tables and word count for the NGO regulation paper.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    build_p = subparsers.add_parser("build", help="Validate, then write all figures, tables and word count.")
    add_common(build_p)
    build_p.add_argument(
        "--strict-data-files",
        action="store_true",
        help="Fail if the country shapefile is missing or incomplete.",
    )

    validate_p = subparsers.add_parser("validate", help="Validate config and input files.")
    add_common(validate_p)
    validate_p.add_argument(
        "--strict-data-files",
        action="store_true",
        help="Treat shapefile problems as validation errors.",
    )

    render_p = subparsers.add_parser("render-figures", help="Render figures only.")
    add_common(render_p)
    render_p.add_argument(
        "--figure",
        action="append",
        default=[],
        choices=[figure.name for figure in FIGURES],
        help="Figure name to render. Can be repeated.",
    )
    render_p.add_argument(
        "--variant",
        action="append",
        default=[],
        help="Style variant (color, grayscale). Can be repeated.",
    )

    tables_p = subparsers.add_parser("write-tables", help="Write text tables only.")
    add_common(tables_p)
    tables_p.add_argument(
        "--table",
        action="append",
        default=[],
        choices=[table.name for table in TABLES],
        help="Table name to write. Can be repeated.",
    )

    words_p = subparsers.add_parser("word-count", help="Count manuscript words against the goal.")
    add_common(words_p)
    words_p.add_argument("--manuscript", default=None, help="Override paths.manuscript_html.")
    words_p.add_argument("--goal", type=int, default=None, help="Override wordcount.goal.")

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    log_path = cfg.paths.logs_dir / "build.log"
    setup_logging(log_path, verbose=args.verbose)
    ensure_directories(cfg.paths.output_directories)
    return cfg


def _run_validate(cfg: AppConfig, *, strict_data_files: bool) -> int:
    report = Validator(cfg).run(strict_data_files=strict_data_files)
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_render_figures(cfg: AppConfig, *, figures: Sequence[str], variants: Sequence[str]) -> int:
    try:
        chosen = [StyleVariant.parse(item) for item in variants]
    except ValueError as exc:
        LOGGER.error("%s", exc)
        return 1
    report = run_figures(cfg, figure_filter=figures or None, variants=chosen or None)
    for line in format_figure_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_write_tables(cfg: AppConfig, *, tables: Sequence[str]) -> int:
    report = run_tables(cfg, table_filter=tables or None)
    for line in format_figure_lines(report, label="Table writing"):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _count_words(path: Path, goal: int) -> WordCountReport | None:
    try:
        report = count_manuscript_words(path, goal)
    except DataNotFoundError as exc:
        LOGGER.error("%s", exc)
        return None
    LOGGER.info("%s", report.summary())
    return report


def _run_word_count(cfg: AppConfig, *, manuscript: str | None, goal: int | None) -> int:
    path = Path(manuscript) if manuscript else cfg.paths.manuscript_html
    report = _count_words(path, cfg.wordcount.goal if goal is None else goal)
    return 0 if report is not None else 1


def _run_build(cfg: AppConfig, *, strict_data_files: bool) -> int:
    LOGGER.info("Starting build pipeline.")

    context = FigureContext(cfg)
    # input problems fail only the figures and tables that read them
    report = Validator(cfg, context=context).run(
        strict_data_files=strict_data_files, data_errors_fatal=False
    )
    for line in format_report_lines(report):
        LOGGER.info(line)
    if not report.ok:
        LOGGER.error("Build aborted due to validation errors.")
        return 1

    figure_report = run_figures(cfg, context=context)
    for line in format_figure_lines(figure_report):
        LOGGER.info(line)

    table_report = run_tables(cfg, context=context)
    for line in format_figure_lines(table_report, label="Table writing"):
        LOGGER.info(line)

    words: WordCountReport | None = None
    if cfg.paths.manuscript_html.exists():
        words = _count_words(cfg.paths.manuscript_html, cfg.wordcount.goal)
    else:
        LOGGER.info("Word count skipped; no manuscript at %s", cfg.paths.manuscript_html)

    if cfg.build.write_manifest:
        written = [*figure_report.written, *table_report.written]
        hashes = (
            {str(path): sha256_file(path) for path in written if path.exists()}
            if cfg.build.manifest_include_hashes
            else {}
        )
        artifacts = {path.name: str(path) for path in written}
        artifacts["output_dir"] = str(cfg.paths.output_dir)
        artifacts["tables_dir"] = str(cfg.paths.tables_dir)
        manifest = BuildManifest.create(
            config_hash_sha256=sha256_file(cfg.source_path),
            git_commit=detect_git_commit(cfg.source_path.parent),
            steps={
                "validate": "ok",
                "render_figures": "ok" if figure_report.ok else "error",
                "write_tables": "ok" if table_report.ok else "error",
                "word_count": words.summary() if words is not None else "skipped",
            },
            artifacts=artifacts,
            hashes=hashes,
        )
        manifest_path = cfg.paths.manifests_dir / "build_manifest.json"
        write_json(manifest_path, manifest.to_dict())
        LOGGER.info("Build manifest written to %s", manifest_path)

    if not (figure_report.ok and table_report.ok):
        LOGGER.error(
            "Build finished with errors; failed: %s",
            ", ".join([*figure_report.failed, *table_report.failed]) or "export files",
        )
        return 1
    LOGGER.info("Build finished.")
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    command = str(args.command)
    if command == "build":
        return _run_build(cfg, strict_data_files=bool(args.strict_data_files))
    if command == "validate":
        return _run_validate(cfg, strict_data_files=bool(args.strict_data_files))
    if command == "render-figures":
        return _run_render_figures(
            cfg,
            figures=[str(item) for item in args.figure],
            variants=[str(item) for item in args.variant],
        )
    if command == "write-tables":
        return _run_write_tables(cfg, tables=[str(item) for item in args.table])
    if command == "word-count":
        return _run_word_count(cfg, manuscript=args.manuscript, goal=args.goal)
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())

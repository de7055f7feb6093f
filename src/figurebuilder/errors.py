"""Exception types raised by the figure pipeline."""

from __future__ import annotations


class FigureBuilderError(Exception):
    """Base class for pipeline failures."""


class DataNotFoundError(FigureBuilderError, FileNotFoundError):
    """Raised when an input dataset file is missing."""

    def __init__(self, dataset: str, path: object) -> None:
        super().__init__(f"Dataset '{dataset}' not found: {path}")
        self.dataset = dataset
        self.path = path


class SchemaMismatchError(FigureBuilderError, ValueError):
    """Raised when a required column is absent or holds values of the wrong type."""

    def __init__(self, dataset: str, message: str) -> None:
        super().__init__(f"Dataset '{dataset}': {message}")
        self.dataset = dataset


class UnmappedCategoryError(FigureBuilderError, KeyError):
    """A country or category value has no code/palette mapping.

    Never fatal: callers log it and treat the entry as null.
    """

    def __init__(self, dataset: str, values: tuple[str, ...]) -> None:
        super().__init__(f"Dataset '{dataset}': unmapped values {', '.join(values)}")
        self.dataset = dataset
        self.values = values

    def __str__(self) -> str:
        return str(self.args[0])


class ExportIOError(FigureBuilderError, OSError):
    """Raised when an output file cannot be written."""

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"Cannot write {path}: {reason}")
        self.path = path

"""Figure, table and word-count builder for the NGO regulation paper."""

__version__ = "0.1.0"

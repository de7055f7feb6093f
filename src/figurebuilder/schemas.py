"""Declared column schemas for every input table."""

from __future__ import annotations

from .models import ColumnSpec, ColumnType, Schema

CIVIC_SPACE_LEVELS = ("Open", "Narrowed", "Obstructed", "Repressed", "Closed")

COUNTRY_CODES = Schema(
    name="country_codes",
    columns=(
        ColumnSpec("name", ColumnType.STRING),
        ColumnSpec("iso3", ColumnType.STRING),
        ColumnSpec("aliases", ColumnType.STRING, required=False),
    ),
)

CIVICUS = Schema(
    name="civicus",
    columns=(
        ColumnSpec("Country", ColumnType.STRING),
        ColumnSpec("Rating", ColumnType.CATEGORICAL, levels=CIVIC_SPACE_LEVELS, ordered=True),
    ),
    country_column="Country",
)

POPULATION = Schema(
    name="population",
    columns=(
        ColumnSpec("Country", ColumnType.STRING),
        ColumnSpec("Year", ColumnType.INTEGER),
        ColumnSpec("Population", ColumnType.COUNT),
    ),
    country_column="Country",
)

FINANCES = Schema(
    name="finances",
    columns=(
        ColumnSpec("Year", ColumnType.INTEGER),
        ColumnSpec("Income", ColumnType.CURRENCY),
        ColumnSpec("Expenses", ColumnType.CURRENCY),
    ),
)

REGIONAL_EXPENSES = Schema(
    name="regional_expenses",
    columns=(
        ColumnSpec("Year", ColumnType.INTEGER),
        ColumnSpec("Region", ColumnType.CATEGORICAL),
        ColumnSpec("Amount", ColumnType.CURRENCY),
    ),
)

PARTNER_FUNDING = Schema(
    name="partner_funding",
    columns=(
        ColumnSpec("Year", ColumnType.INTEGER),
        ColumnSpec("partner_a", ColumnType.CURRENCY),
        ColumnSpec("partner_b", ColumnType.CURRENCY),
    ),
)

OFFICES = Schema(
    name="offices",
    columns=(
        ColumnSpec("Office", ColumnType.STRING),
        ColumnSpec("Country", ColumnType.STRING, required=False),
        ColumnSpec("Longitude", ColumnType.FLOAT),
        ColumnSpec("Latitude", ColumnType.FLOAT),
    ),
)

COUNTRY_SHAPES = Schema(
    name="countries",
    columns=(
        ColumnSpec("ISO_A3", ColumnType.STRING),
        ColumnSpec("NAME", ColumnType.STRING),
    ),
)

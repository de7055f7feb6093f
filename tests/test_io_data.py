from __future__ import annotations

import logging

import pandas as pd
import pytest

from figurebuilder.countries import CountryCodeIndex
from figurebuilder.errors import DataNotFoundError, SchemaMismatchError
from figurebuilder.io_data import fix_iso_codes, load_shapes, load_table, select_best_iso_column
from figurebuilder.schemas import CIVICUS, FINANCES, OFFICES, POPULATION


def test_load_table_types_columns(write_csv):
    path = write_csv("finances.csv", 'Year,Income,Expenses,Extra\n2015,"$1,200",$80,x\n2016,,90,y\n')
    dataset = load_table(path, FINANCES)

    assert list(dataset.frame.columns) == ["Year", "Income", "Expenses"]
    assert str(dataset.frame["Year"].dtype) == "Int64"
    assert str(dataset.frame["Income"].dtype) == "Float64"
    assert dataset.frame["Income"].iloc[0] == 1200.0
    assert dataset.frame["Income"].isna().iloc[1]
    assert dataset.name == "finances"


def test_load_table_missing_file_raises(tmp_path):
    with pytest.raises(DataNotFoundError) as excinfo:
        load_table(tmp_path / "nope.csv", FINANCES)
    assert isinstance(excinfo.value, FileNotFoundError)
    assert "finances" in str(excinfo.value)


def test_load_table_missing_required_column(write_csv):
    path = write_csv("finances.csv", "Year,Income\n2015,10\n")
    with pytest.raises(SchemaMismatchError, match="Expenses"):
        load_table(path, FINANCES)


@pytest.mark.parametrize("bad_year", ["abc", "1.5"])
def test_load_table_rejects_non_integer(write_csv, bad_year):
    path = write_csv("finances.csv", f"Year,Income,Expenses\n{bad_year},10,5\n")
    with pytest.raises(SchemaMismatchError, match="Year"):
        load_table(path, FINANCES)


def test_load_table_rejects_undeclared_level(write_csv):
    path = write_csv("civicus.csv", "Country,Rating\nCanada,Open\nChina,Very closed\n")
    with pytest.raises(SchemaMismatchError, match="Very closed"):
        load_table(path, CIVICUS)


def test_ordered_rating_levels(write_csv):
    path = write_csv("civicus.csv", "Country,Rating\nCanada,Open\nChina,Closed\n")
    rating = load_table(path, CIVICUS).frame["Rating"]
    assert rating.cat.ordered
    assert list(rating.cat.categories) == ["Open", "Narrowed", "Obstructed", "Repressed", "Closed"]
    assert rating.cat.codes.iloc[0] < rating.cat.codes.iloc[1]
    assert (rating < "Closed").tolist() == [True, False]


def test_optional_column_added_as_null(write_csv):
    path = write_csv("offices.csv", "Office,Longitude,Latitude\nNairobi,36.8,-1.3\n")
    frame = load_table(path, OFFICES).frame
    assert "Country" in frame.columns
    assert frame["Country"].isna().all()


def test_population_counts_exceed_int32(write_csv):
    path = write_csv("population.csv", 'Country,Year,Population\nChina,2017,"7,510,990,456"\n')
    frame = load_table(path, POPULATION).frame
    assert str(frame["Population"].dtype) == "Int64"
    assert int(frame["Population"].iloc[0]) == 7_510_990_456


def test_country_column_gets_iso3_and_warns_unmatched(write_csv, caplog):
    path = write_csv("civicus.csv", "Country,Rating\nthe United States,Narrowed\nAtlantis,Open\n")
    codes = CountryCodeIndex({"United States": "USA"})
    with caplog.at_level(logging.WARNING, logger="figurebuilder.io_data"):
        frame = load_table(path, CIVICUS, country_codes=codes).frame
    assert frame["iso3"].iloc[0] == "USA"
    assert pd.isna(frame["iso3"].iloc[1])
    assert "Atlantis" in caplog.text


def test_fix_iso_codes_fills_minus_99():
    frame = pd.DataFrame(
        {
            "ISO_A3": ["-99", "DEU", "-99"],
            "ADM0_A3": ["FRA", "DEU", "-99"],
        }
    )
    codes = fix_iso_codes(frame, "ISO_A3")
    assert codes.iloc[0] == "FRA"
    assert codes.iloc[1] == "DEU"
    assert pd.isna(codes.iloc[2])


def test_select_best_iso_column_prefers_valid_codes():
    frame = pd.DataFrame(
        {
            "WB_A3": ["-99", "-99", "DEU"],
            "ADM0_A3": ["FRA", "NOR", "DEU"],
        }
    )
    assert select_best_iso_column(frame, ("WB_A3", "ADM0_A3")) == "ADM0_A3"


def test_select_best_iso_column_without_valid_codes():
    frame = pd.DataFrame({"WB_A3": ["-99", None], "ADM0_A3": ["12", "x"]})
    assert select_best_iso_column(frame, ("WB_A3", "ADM0_A3")) is None
    assert select_best_iso_column(frame, ("SU_A3",)) is None


def test_load_shapes_fixes_codes_and_sets_name(tmp_path):
    gpd = pytest.importorskip("geopandas")
    from shapely.geometry import box

    frame = gpd.GeoDataFrame(
        {
            "ISO_A3": ["-99", "DEU"],
            "ADM0_A3": ["FRA", "DEU"],
            "NAME": ["France", "Germany"],
        },
        geometry=[box(-5, 42, 8, 51), box(6, 47, 15, 55)],
        crs="EPSG:4326",
    )
    path = tmp_path / "countries.geojson"
    frame.to_file(path, driver="GeoJSON")

    shapes = load_shapes(path)
    assert list(shapes.frame["ISO_A3"]) == ["FRA", "DEU"]
    assert list(shapes.frame["NAME"]) == ["France", "Germany"]
    assert shapes.frame.crs.to_epsg() == 4326


def test_load_shapes_missing_file(tmp_path):
    with pytest.raises(DataNotFoundError):
        load_shapes(tmp_path / "missing.shp")

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pytest  # noqa: E402
import yaml  # noqa: E402

from figurebuilder.config import AppConfig, LabelsConfig, MapConfig, StyleConfig, load_config  # noqa: E402
from figurebuilder.models import Dataset  # noqa: E402
from figurebuilder.schemas import COUNTRY_SHAPES  # noqa: E402

COUNTRY_CODES_CSV = """name,iso3,aliases
Canada,CAN,
China,CHN,People's Republic of China
Côte d'Ivoire,CIV,Ivory Coast
Germany,DEU,
Sweden,SWE,
United States,USA,United States of America;USA
"""

CIVICUS_CSV = """Country,Rating
Canada,Open
China,Closed
Germany,Open
Sweden,Narrowed
Atlantis,Obstructed
"""

POPULATION_CSV = """Country,Year,Population
Canada,2017,"36,000,000"
China,2017,"1,386,000,000"
Germany,2017,"82,000,000"
Sweden,2017,"10,000,000"
Canada,2016,"35,000,000"
"""

FINANCES_CSV = """Year,Income,Expenses
2015,"$100","$80"
2016,"$90","$100"
"""

REGIONAL_CSV = """Year,Region,Amount
2015,Africa,30
2015,Asia,70
2016,Africa,50
2016,Asia,50
"""

PARTNER_CSV = """Year,partner_a,partner_b
2015,10,5
2016,20,10
2017,30,15
"""

OFFICES_CSV = """Office,Country,Longitude,Latitude
Ottawa,Canada,-75.70,45.42
Toronto,Canada,-79.38,43.65
Berlin,Germany,13.40,52.52
Stockholm,Sweden,18.07,59.33
"""


@pytest.fixture(autouse=True)
def _close_figures():
    yield
    plt.close("all")


@pytest.fixture()
def write_csv(tmp_path: Path) -> Callable[[str, str], Path]:
    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


def _config_payload() -> dict[str, Any]:
    return {
        "project": {"name": "test-paper"},
        "paths": {
            "country_codes": "data/country_codes.csv",
            "countries_shapefile": "data/missing/countries.shp",
            "civicus": "data/civicus.csv",
            "population": "data/population.csv",
            "finances": "data/finances.csv",
            "regional_expenses": "data/regional.csv",
            "partner_funding": "data/partner.csv",
            "offices": "data/offices.csv",
            "manuscript_html": "manuscript/paper.html",
            "output_dir": "out/figures",
            "tables_dir": "out/tables",
            "manifests_dir": "out/manifests",
            "logs_dir": "out/logs",
        },
        "variants": ["color", "grayscale"],
        "exports": [
            {"format": "pdf", "width": 4, "height": 3},
            {"format": "png", "width": 4, "height": 3, "dpi": 72},
        ],
        "style": {"font_family": "DejaVu Sans", "base_size": 9},
        "map": {"crs": "EPSG:8857", "excluded_iso3": ["ATA"]},
        "labels": {
            "offsets_px": [[6, 4], [6, -4], [-6, 4], [-6, -4]],
            "collision_padding_px": 2,
            "seed": 7,
        },
        "figures": {"population_year": 2017},
        "build": {"write_manifest": True, "manifest_include_hashes": True},
    }


@pytest.fixture()
def config_payload() -> dict[str, Any]:
    return _config_payload()


@pytest.fixture()
def project_dir(tmp_path: Path) -> Path:
    data = tmp_path / "data"
    data.mkdir()
    files = {
        "country_codes.csv": COUNTRY_CODES_CSV,
        "civicus.csv": CIVICUS_CSV,
        "population.csv": POPULATION_CSV,
        "finances.csv": FINANCES_CSV,
        "regional.csv": REGIONAL_CSV,
        "partner.csv": PARTNER_CSV,
        "offices.csv": OFFICES_CSV,
    }
    for name, text in files.items():
        (data / name).write_text(text, encoding="utf-8")
    return tmp_path


@pytest.fixture()
def write_config(project_dir: Path, config_payload: dict[str, Any]) -> Callable[..., Path]:
    def _write(**section_overrides: Any) -> Path:
        payload = dict(config_payload)
        payload.update(section_overrides)
        path = project_dir / "config.yaml"
        path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def app_config(write_config: Callable[..., Path]) -> AppConfig:
    cfg = load_config(write_config())
    for path in cfg.paths.output_directories:
        path.mkdir(parents=True, exist_ok=True)
    return cfg


@pytest.fixture()
def style_cfg() -> StyleConfig:
    return StyleConfig.from_mapping({"font_family": "DejaVu Sans", "base_size": 9})


@pytest.fixture()
def map_cfg() -> MapConfig:
    return MapConfig.from_mapping({"crs": "EPSG:8857", "excluded_iso3": ["ATA"]})


@pytest.fixture()
def labels_cfg() -> LabelsConfig:
    return LabelsConfig.from_mapping(
        {
            "offsets_px": [[6, 4], [6, -4], [-6, 4], [-6, -4], [0, 8]],
            "collision_padding_px": 2,
            "seed": 11,
        }
    )


@pytest.fixture()
def shapes() -> Dataset:
    gpd = pytest.importorskip("geopandas")
    from shapely.geometry import box

    frame = gpd.GeoDataFrame(
        {
            "ISO_A3": ["CAN", "CHN", "DEU", "ATA"],
            "NAME": ["Canada", "China", "Germany", "Antarctica"],
        },
        geometry=[
            box(-140, 42, -52, 70),
            box(75, 20, 135, 50),
            box(6, 47, 15, 55),
            box(-180, -90, 180, -60),
        ],
        crs="EPSG:4326",
    )
    frame["ISO_A3"] = frame["ISO_A3"].astype("string")
    return Dataset(name="countries", schema=COUNTRY_SHAPES, frame=frame)

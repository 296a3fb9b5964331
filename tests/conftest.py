from pathlib import Path

import matplotlib
matplotlib.use("Agg")

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

CASE_HEADER = "Date_reported,Country_code,Country,WHO_region,New_cases,Cumulative_cases,New_deaths,Cumulative_deaths\n"
VAX_HEADER = (
    "COUNTRY,ISO3,WHO_REGION,DATA_SOURCE,DATE_UPDATED,TOTAL_VACCINATIONS,"
    "PERSONS_VACCINATED_1PLUS_DOSE,TOTAL_VACCINATIONS_PER100\n"
)


def write_csv(path: Path, header: str, rows) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(header + "".join(r + "\n" for r in rows), encoding="utf-8")
    return path


@pytest.fixture
def cases_csv(tmp_path: Path) -> Path:
    # Namibia is published with ISO2 "NA"; Zambia has no vaccination row
    rows = [
        "2023-12-24,NA,Namibia,AFRO,0,18,0,1",
        "2023-12-31,NA,Namibia,AFRO,2,20,1,2",
        "2023-12-31,CL,Chile,AMRO,0,40,0,8",
        "2023-12-31,ZM,Zambia,AFRO,0,50,0,5",
        "2023-12-17,NO,Norway,EURO,0,30,0,3",
    ]
    return write_csv(tmp_path / "data" / "WHO-COVID-19-global-data.csv", CASE_HEADER, rows)


@pytest.fixture
def vax_csv(tmp_path: Path) -> Path:
    rows = [
        "Namibia,NAM,AFRO,REPORTING,2023-12-01,100,60,50",
        "Chile,CHL,AMRO,REPORTING,2023-12-01,300,200,75",
        "Norway,NOR,EURO,REPORTING,2023-12-01,120,90,60",
        "Nowhere,XXX,EURO,REPORTING,2023-12-01,,,",
        "Zeroland,ZZZ,EURO,REPORTING,2023-12-01,10,0,0",
    ]
    return write_csv(tmp_path / "data" / "vaccination-data.csv", VAX_HEADER, rows)


@pytest.fixture
def raw_world() -> gpd.GeoDataFrame:
    """Natural Earth style layer: four adjacent 10x10 degree squares.

    Norway carries "-99" in both ISO_A3 and ISO_A2, as in the real layer.
    """
    return gpd.GeoDataFrame(
        {
            "ISO_A3": ["NAM", "CHL", "ZMB", "-99"],
            "ISO_A3_EH": ["NAM", "CHL", "ZMB", "NOR"],
            "ISO_A2": ["NA", "CL", "ZM", "-99"],
            "ISO_A2_EH": ["NA", "CL", "ZM", "NO"],
            "NAME": ["Namibia", "Chile", "Zambia", "Norway"],
        },
        geometry=[box(0, 0, 10, 10), box(10, 0, 20, 10), box(0, 10, 10, 20), box(10, 10, 20, 20)],
        crs="EPSG:4326",
    )


@pytest.fixture
def world() -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {
            "iso3": ["NAM", "CHL", "ZMB", "NOR"],
            "iso2": ["NA", "CL", "ZM", "NO"],
            "country": ["Namibia", "Chile", "Zambia", "Norway"],
        },
        geometry=[box(0, 0, 10, 10), box(10, 0, 20, 10), box(0, 10, 10, 20), box(10, 10, 20, 20)],
        crs="EPSG:4326",
    )


@pytest.fixture
def projected(world) -> gpd.GeoDataFrame:
    layer = world.to_crs("EPSG:3857")
    layer["weight"] = [5.0, 5.0, 10.0, 1.0]
    return layer


class IdentityDeformer:
    """Stands in for the cartogram engine: returns the layer untouched."""

    def __call__(self, layer, column):
        return layer.copy()


@pytest.fixture
def identity_deformer() -> IdentityDeformer:
    return IdentityDeformer()

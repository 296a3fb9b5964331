import logging
from pathlib import Path

import geopandas as gpd
import pandas as pd

from .datasets import download
from .errors import InputUnavailable, SchemaError
from .indicators import normalize_code

log = logging.getLogger(__name__)

# Natural Earth marks a few sovereign states (France, Norway, Kosovo) with "-99" in
# ISO_A3 and ISO_A2; these columns are tried in order for those
ISO3_FALLBACKS = ["ISO_A3", "ISO_A3_EH", "ADM0_A3"]
ISO2_FALLBACKS = ["ISO_A2", "ISO_A2_EH"]
NAME_COLUMNS = ["NAME", "ADMIN", "NAME_LONG"]


def _column(df, name):
    """Find a column regardless of case (shapefiles use upper, GeoJSON exports often lower)."""
    for col in df.columns:
        if col.upper() == name:
            return col
    return None


def _code(world, fallbacks):
    """First usable code per row across the fallback columns, "-99" counting as missing."""
    codes = pd.Series(pd.NA, index=world.index, dtype="string")
    for name in fallbacks:
        col = _column(world, name)
        if col is None:
            continue
        candidate = normalize_code(world[col])
        candidate = candidate.mask(candidate.fillna("-99") == "-99")
        codes = codes.fillna(candidate)
    return codes


def normalize_world(world):
    """
    Reduce a Natural Earth admin-0 layer to the columns used downstream.

    Args:
        world (gpd.GeoDataFrame): Raw Natural Earth countries layer

    Returns:
        gpd.GeoDataFrame: Columns iso3, iso2, country, geometry in EPSG:4326,
            without polygons that have no usable ISO3 code
    """
    if _column(world, "ISO_A3") is None and _column(world, "ADM0_A3") is None:
        raise SchemaError("country layer has neither an ISO_A3 nor an ADM0_A3 column")

    name_col = next((_column(world, n) for n in NAME_COLUMNS if _column(world, n)), None)

    out = gpd.GeoDataFrame(
        {
            "iso3": _code(world, ISO3_FALLBACKS),
            "iso2": _code(world, ISO2_FALLBACKS),
            "country": world[name_col] if name_col else pd.NA,
        },
        geometry=world.geometry.values,
        crs=world.crs,
    )
    if out.crs is None:
        out = out.set_crs("EPSG:4326")
    elif not out.crs.equals("EPSG:4326"):
        out = out.to_crs("EPSG:4326")

    missing = out["iso3"].isna()
    if missing.any():
        log.debug("Dropping %d polygons without an ISO3 code", int(missing.sum()))
    return out.loc[~missing].reset_index(drop=True)


def load_world(cfg, data_dir):
    """
    Load the world country polygons at the configured resolution tier.

    Args:
        cfg (GeometryCfg): Geometry section of the run configuration
        data_dir (str | Path): Where the Natural Earth archive is cached

    Returns:
        gpd.GeoDataFrame: Output of normalize_world
    """
    if cfg.path:
        path = Path(cfg.path)
        if not path.exists():
            raise InputUnavailable(f"country layer not found: {path}")
    else:
        path = download(cfg.url, Path(data_dir) / f"ne_{cfg.scale}_admin_0_countries.zip")

    try:
        raw = gpd.read_file(path)
    except Exception as e:
        raise InputUnavailable(f"could not read country layer {path}: {e}") from e

    world = normalize_world(raw)
    log.info("Loaded %d country polygons (%s, %s)", len(world), cfg.resolution, cfg.scale)
    return world


def join_indicator(world, table, value_column, key="iso3", crs="EPSG:3857"):
    """
    Attach one indicator to the country polygons and prepare it as a cartogram weight.

    Polygons with no value for the indicator are dropped, the rest are reprojected
    so areas come out in consistent planar units.

    Args:
        world (gpd.GeoDataFrame): Country polygons with an iso3 column
        table (pd.DataFrame): Indicator table with the key and value_column
        value_column (str): Column that becomes the weight
        key (str): ISO3 column in table
        crs (str): Target projected CRS

    Returns:
        gpd.GeoDataFrame: Surviving polygons with value_column and weight
    """
    if value_column not in table.columns:
        raise SchemaError(f"indicator table has no column {value_column!r}")
    if key not in table.columns:
        raise SchemaError(f"indicator table has no join column {key!r}")

    values = pd.DataFrame({"iso3": normalize_code(table[key]), value_column: table[value_column]})
    values = values.dropna(subset=["iso3"]).drop_duplicates("iso3")

    base = world.copy()
    base["iso3"] = normalize_code(base["iso3"])
    joined = base.merge(values, on="iso3", how="left")
    joined = joined[joined[value_column].notna()]
    joined = joined.to_crs(crs).reset_index(drop=True)
    joined["weight"] = joined[value_column].astype(float)

    log.info("%s: %d of %d countries have a value", value_column, len(joined), len(world))
    return joined

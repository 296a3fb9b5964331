"""End-to-end cartogram run: load, derive, join, rank-scale, deform, render.

Each step is a pure function of the previous step's output, so the whole run
can be driven piece by piece from tests or a notebook.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import geopandas as gpd
import pandas as pd

from .config import RootCfg
from .datasets import fetch_datasets, load_cases, load_vaccinations
from .deform import AreaDeformer, ContiguousCartogram, deform_all
from .errors import CartogramError
from .geometry import join_indicator, load_world
from .indicators import assign_iso3, clean_vaccination, country_codes, derive_indicators, filter_latest
from .mapping import render_all
from .weights import rank_scale

log = logging.getLogger(__name__)

# indicator -> (source table, value column); "vaccination" comes from the cleaned
# vaccination table, the rates from the derived indicator table
INDICATORS = {
    "vaccination": ("vaccination", "doses_per100"),
    "infection": ("indicators", "infection_rate_pct"),
    "mortality": ("indicators", "mortality_rate_pct"),
    "fatality": ("indicators", "fatality_rate_pct"),
}


@dataclass
class Tables:
    vaccination: pd.DataFrame
    indicators: pd.DataFrame


@dataclass
class RunResult:
    tables: Tables
    layers: Dict[str, gpd.GeoDataFrame]
    cartograms: Dict[str, gpd.GeoDataFrame]
    images: Dict[str, object] = field(default_factory=dict)


def prepare_tables(cases, vax, world, cutoff, date_mode="strict") -> Tables:
    """Clean the vaccination snapshot and derive the per-country rates."""
    vax_clean = clean_vaccination(vax)
    latest = filter_latest(cases, cutoff, mode=date_mode)
    latest = assign_iso3(latest, country_codes(world))
    return Tables(vaccination=vax_clean, indicators=derive_indicators(latest, vax_clean))


def build_layers(world, tables: Tables, crs="EPSG:3857") -> Dict[str, gpd.GeoDataFrame]:
    """Join each indicator onto the polygons and rank-scale its weights."""
    layers = {}
    for name, (source, column) in INDICATORS.items():
        joined = join_indicator(world, getattr(tables, source), column, crs=crs)
        layers[name] = rank_scale(joined)
    return layers


def run(cfg: RootCfg, deformer: Optional[AreaDeformer] = None, world: Optional[gpd.GeoDataFrame] = None) -> RunResult:
    """Run the whole analysis with the given configuration.

    ``deformer`` defaults to the configured contiguous cartogram and ``world``
    to the Natural Earth layer; both can be injected.
    """
    if cfg.data.download:
        fetch_datasets(cfg.data)
    cases = load_cases(cfg.data.cases_path)
    vax = load_vaccinations(cfg.data.vaccination_path)
    if world is None:
        world = load_world(cfg.geometry, cfg.data.data_dir)

    tables = prepare_tables(cases, vax, world, cfg.indicators.cutoff, cfg.indicators.date_mode)
    layers = build_layers(world, tables, crs=cfg.geometry.crs)
    for name, layer in layers.items():
        if layer.empty:
            raise CartogramError(f"no country has a value for {name!r}; check the cutoff date and join keys")

    if deformer is None:
        deformer = ContiguousCartogram(
            max_iterations=cfg.cartogram.max_iterations,
            max_average_error=cfg.cartogram.max_average_error,
        )
    cartograms = deform_all(layers, deformer, workers=cfg.parallel.workers, kind=cfg.parallel.kind)

    out = cfg.output
    images = render_all(
        cartograms, out.styles, out.out_dir,
        dpi=out.dpi, edge_colour=out.edge_colour, line_width=out.line_width,
        figsize=out.figsize, close=not out.show,
    )
    return RunResult(tables=tables, layers=layers, cartograms=cartograms, images=images)

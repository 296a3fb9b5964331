from __future__ import annotations
from datetime import date
from pathlib import Path
from typing import Dict, List, Literal, Optional
import os

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError

DEFAULT_CONFIG = Path(__file__).resolve().parents[1] / "config" / "config.toml"

# Natural Earth scale for each resolution tier
RESOLUTIONS = {"small": "110m", "medium": "50m", "large": "10m"}


# ---------- Leaf models ----------

class DataCfg(BaseModel):
    data_dir: str = "data"
    cases_file: str = "WHO-COVID-19-global-data.csv"
    vaccination_file: str = "vaccination-data.csv"
    cases_url: str = "https://srhdpeuwpubsa.blob.core.windows.net/whdh/COVID/WHO-COVID-19-global-data.csv"
    vaccination_url: str = "https://srhdpeuwpubsa.blob.core.windows.net/whdh/COVID/vaccination-data.csv"
    download: bool = False
    timeout: float = 60.0

    @property
    def cases_path(self) -> Path:
        return Path(self.data_dir) / self.cases_file

    @property
    def vaccination_path(self) -> Path:
        return Path(self.data_dir) / self.vaccination_file


class GeometryCfg(BaseModel):
    resolution: Literal["small", "medium", "large"] = "medium"
    # local shapefile/geojson; when unset the Natural Earth zip is cached in data_dir
    path: Optional[str] = None
    url_template: str = "https://naciscdn.org/naturalearth/{scale}/cultural/ne_{scale}_admin_0_countries.zip"
    crs: str = "EPSG:3857"

    @property
    def scale(self) -> str:
        return RESOLUTIONS[self.resolution]

    @property
    def url(self) -> str:
        return self.url_template.format(scale=self.scale)


class IndicatorsCfg(BaseModel):
    cutoff: date = date(2023, 12, 31)
    date_mode: Literal["strict", "nearest"] = "strict"


class CartogramCfg(BaseModel):
    max_iterations: int = Field(1, ge=1)
    max_average_error: float = Field(0.01, gt=0)


class ParallelCfg(BaseModel):
    # None -> cpu_count - 1
    workers: Optional[int] = Field(None, ge=1)
    kind: Literal["process", "thread"] = "process"


class PlotStyleCfg(BaseModel):
    column: str
    legend_title: str
    colours: List[str]

    @field_validator("colours")
    @classmethod
    def _two_colours(cls, v: List[str]) -> List[str]:
        if len(v) < 2:
            raise ValueError("a colour ramp needs at least two colours")
        return v


def _default_styles() -> Dict[str, PlotStyleCfg]:
    return {
        "vaccination": PlotStyleCfg(
            column="doses_per100",
            legend_title="Doses per 100 people",
            colours=["#e41a1c", "#ffff99", "#377eb8"],
        ),
        "infection": PlotStyleCfg(
            column="infection_rate_pct",
            legend_title="Infection rate (%)",
            colours=["#ffeda0", "#feb24c", "#f03b20"],
        ),
        "mortality": PlotStyleCfg(
            column="mortality_rate_pct",
            legend_title="Mortality rate (%)",
            colours=["#e5f5e0", "#a1d99b", "#31a354"],
        ),
        "fatality": PlotStyleCfg(
            column="fatality_rate_pct",
            legend_title="Case fatality rate (%)",
            colours=["#f7fbff", "#6baed6", "#08306b"],
        ),
    }


class OutputCfg(BaseModel):
    out_dir: str = "output"
    dpi: int = Field(300, ge=50)
    figsize: List[float] = [12.0, 7.0]
    edge_colour: str = "#4d4d4d"  # grey30
    line_width: float = 0.1
    show: bool = False
    styles: Dict[str, PlotStyleCfg] = Field(default_factory=_default_styles)

    @field_validator("styles")
    @classmethod
    def _fill_styles(cls, v: Dict[str, PlotStyleCfg]) -> Dict[str, PlotStyleCfg]:
        # a config that restyles one map keeps the defaults for the others
        return {**_default_styles(), **v}


class LoggingCfg(BaseModel):
    level: str = "INFO"
    structured_json: bool = False


# ---------- Root ----------

class RootCfg(BaseModel):
    data: DataCfg = Field(default_factory=DataCfg)
    geometry: GeometryCfg = Field(default_factory=GeometryCfg)
    indicators: IndicatorsCfg = Field(default_factory=IndicatorsCfg)
    cartogram: CartogramCfg = Field(default_factory=CartogramCfg)
    parallel: ParallelCfg = Field(default_factory=ParallelCfg)
    output: OutputCfg = Field(default_factory=OutputCfg)
    logging: LoggingCfg = Field(default_factory=LoggingCfg)

    base_dir: Optional[str] = None

    @model_validator(mode="after")
    def _normalize_paths(self):
        if not self.base_dir:
            return self
        base = Path(self.base_dir)

        def _abs(p: str) -> str:
            pp = Path(p)
            return str(pp if pp.is_absolute() else (base / pp).resolve())

        self.data.data_dir = _abs(self.data.data_dir)
        self.output.out_dir = _abs(self.output.out_dir)
        if self.geometry.path:
            self.geometry.path = _abs(self.geometry.path)
        return self

    @classmethod
    def from_toml(cls, path: str | os.PathLike[str]) -> "RootCfg":
        try:
            import tomllib  # py>=3.11
        except ImportError:
            import tomli as tomllib

        p = Path(path)
        try:
            with p.open("rb") as f:
                raw = tomllib.load(f)
        except FileNotFoundError as e:
            raise ConfigError(f"config file not found: {p}") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"failed to parse TOML at {p}: {e}") from e

        raw.setdefault("base_dir", str(p.resolve().parent))
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(f"invalid config {p}:\n{e}") from e


def load_config(path: str | os.PathLike[str] | None = None) -> RootCfg:
    """Load the run configuration.

    Falls back to ``config/config.toml`` next to the package, then to the
    model defaults when that file is absent too.
    """
    if path is not None:
        return RootCfg.from_toml(path)
    if DEFAULT_CONFIG.exists():
        return RootCfg.from_toml(DEFAULT_CONFIG)
    return RootCfg()

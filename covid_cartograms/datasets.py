import logging
import os
import tempfile
from pathlib import Path

import pandas as pd
import requests

from .errors import InputUnavailable, SchemaError

log = logging.getLogger(__name__)

# Source column -> pipeline column
CASE_COLUMNS = {
    "Date_reported": "date_reported",
    "Country_code": "country_code",
    "Country": "country",
    "Cumulative_cases": "cumulative_cases",
    "Cumulative_deaths": "cumulative_deaths",
}
VACCINATION_COLUMNS = {
    "COUNTRY": "country",
    "ISO3": "iso3",
    "TOTAL_VACCINATIONS": "total_vaccinations",
    "TOTAL_VACCINATIONS_PER100": "doses_per100",
}

# WHO publishes Namibia's ISO2 code as "NA"
_KEEP_AS_TEXT = ["Country_code", "ISO3", "COUNTRY", "Country"]

HEADERS = {"User-Agent": "covid-cartograms data fetch/1.0"}


def _read_csv(path, required):
    """
    Read a CSV file and check that it carries the required columns.

    Args:
        path (str | Path): Location of the CSV file
        required (list): Column names that must be present

    Returns:
        pd.DataFrame: The raw table
    """
    path = Path(path)
    if not path.is_file():
        raise InputUnavailable(f"dataset not found: {path}")

    # Only empty cells count as missing in the code/name columns; numeric
    # columns are coerced by the callers
    na_values = {c: [""] for c in _KEEP_AS_TEXT}
    try:
        df = pd.read_csv(path, keep_default_na=False, na_values=na_values, dtype={c: str for c in _KEEP_AS_TEXT})
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise SchemaError(f"could not parse {path}: {e}") from e

    missing = [c for c in required if c not in df.columns]
    if missing:
        raise SchemaError(f"{path.name} is missing required columns: {', '.join(missing)}")
    return df


def load_cases(path):
    """
    Load the WHO COVID-19 case/death time series.

    Args:
        path (str | Path): Path to WHO-COVID-19-global-data.csv

    Returns:
        pd.DataFrame: Columns country, country_code, date_reported, cumulative_cases,
            cumulative_deaths, plus iso3 when the file carries an ISO3 column
    """
    df = _read_csv(path, list(CASE_COLUMNS))
    columns = dict(CASE_COLUMNS)
    if "ISO3" in df.columns:
        columns["ISO3"] = "iso3"
    cases = df[list(columns)].rename(columns=columns)

    cases["date_reported"] = pd.to_datetime(cases["date_reported"], errors="coerce")
    for col in ["cumulative_cases", "cumulative_deaths"]:
        cases[col] = pd.to_numeric(cases[col], errors="coerce")
    if "iso3" in cases.columns:
        cases["iso3"] = cases["iso3"].str.strip().str.upper()
    cases["country_code"] = cases["country_code"].str.strip().str.upper()

    log.info("Loaded %d case rows for %d countries from %s", len(cases), cases["country"].nunique(), path)
    return cases


def load_vaccinations(path):
    """
    Load the WHO vaccination snapshot.

    Args:
        path (str | Path): Path to vaccination-data.csv

    Returns:
        pd.DataFrame: Columns country, iso3, total_vaccinations, doses_per100
    """
    df = _read_csv(path, list(VACCINATION_COLUMNS))
    vax = df[list(VACCINATION_COLUMNS)].rename(columns=VACCINATION_COLUMNS)
    vax["iso3"] = vax["iso3"].str.strip().str.upper()
    for col in ["total_vaccinations", "doses_per100"]:
        vax[col] = pd.to_numeric(vax[col], errors="coerce")

    log.info("Loaded %d vaccination rows from %s", len(vax), path)
    return vax


def download(url, dest, timeout=60.0, force=False):
    """
    Download a file unless it is already present.

    The body is streamed to a temporary file in the destination directory and
    renamed once complete, so an interrupted download never leaves a partial file.

    Args:
        url (str): Source URL
        dest (str | Path): Target file
        timeout (float): Request timeout in seconds
        force (bool): Download even when dest exists

    Returns:
        Path: The destination path
    """
    dest = Path(dest)
    if dest.exists() and not force:
        log.debug("Using cached %s", dest)
        return dest
    dest.parent.mkdir(parents=True, exist_ok=True)

    log.info("Downloading %s -> %s", url, dest)
    try:
        with requests.get(url, stream=True, timeout=timeout, headers=HEADERS) as r:
            r.raise_for_status()
            fd, tmp = tempfile.mkstemp(dir=dest.parent, suffix=".part")
            try:
                with os.fdopen(fd, "wb") as f:
                    for chunk in r.iter_content(chunk_size=1 << 16):
                        f.write(chunk)
                os.replace(tmp, dest)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
    except (requests.RequestException, OSError) as e:
        raise InputUnavailable(f"could not download {url}: {e}") from e
    return dest


def fetch_datasets(cfg, force=False):
    """
    Make sure both WHO datasets exist locally, downloading them when missing.

    Args:
        cfg (DataCfg): Data section of the run configuration
        force (bool): Re-download even when the files exist

    Returns:
        tuple: (cases_path, vaccination_path)
    """
    cases = download(cfg.cases_url, cfg.cases_path, timeout=cfg.timeout, force=force)
    vax = download(cfg.vaccination_url, cfg.vaccination_path, timeout=cfg.timeout, force=force)
    return cases, vax

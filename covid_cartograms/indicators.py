import logging

import pandas as pd

from .errors import SchemaError

log = logging.getLogger(__name__)

RATE_COLUMNS = ["infection_rate_pct", "mortality_rate_pct", "fatality_rate_pct"]


def normalize_code(codes):
    """Uppercase and strip ISO2/ISO3 country codes; empty strings become null."""
    codes = codes.astype("string").str.strip().str.upper()
    return codes.replace("", pd.NA)


def _percent(numerator, denominator):
    # undefined (not infinite) where the denominator is missing or zero
    denominator = denominator.where(denominator > 0)
    return 100 * numerator / denominator


def clean_vaccination(vax):
    """
    Keep usable vaccination rows and estimate each country's population from its coverage.

    Rows without a dose count, or with a missing or non-positive doses-per-100 value,
    are dropped before dividing.

    Args:
        vax (pd.DataFrame): Output of load_vaccinations

    Returns:
        pd.DataFrame: Columns country, iso3, population_estimated, doses_per100
    """
    valid = vax["total_vaccinations"].notna() & vax["doses_per100"].notna() & (vax["doses_per100"] > 0)
    clean = vax.loc[valid].copy()
    clean["iso3"] = normalize_code(clean["iso3"])
    clean["population_estimated"] = clean["total_vaccinations"] / (clean["doses_per100"] / 100)

    log.info("Kept %d of %d vaccination rows", len(clean), len(vax))
    return clean[["country", "iso3", "population_estimated", "doses_per100"]].reset_index(drop=True)


def filter_latest(cases, cutoff, mode="strict"):
    """
    Reduce the case time series to one snapshot per country.

    Args:
        cases (pd.DataFrame): Output of load_cases
        cutoff (str | date | pd.Timestamp): Reporting date of the snapshot
        mode (str): "strict" keeps only rows reported exactly on the cutoff, so countries
            that did not report that day drop out; "nearest" keeps each country's latest
            row dated on or before the cutoff

    Returns:
        pd.DataFrame: At most one row per country
    """
    cutoff = pd.Timestamp(cutoff)
    if mode == "strict":
        latest = cases[cases["date_reported"] == cutoff]
    elif mode == "nearest":
        eligible = cases[cases["date_reported"] <= cutoff]
        latest = eligible.sort_values("date_reported").groupby("country", sort=False).tail(1)
    else:
        raise ValueError(f"unknown date mode {mode!r}, expected 'strict' or 'nearest'")

    latest = latest.sort_index().reset_index(drop=True)
    log.info(
        "%d of %d countries have a %s snapshot for %s",
        latest["country"].nunique(), cases["country"].nunique(), mode, cutoff.date(),
    )
    return latest


def country_codes(world):
    """
    ISO2 -> ISO3 lookup built from the polygon layer.

    Args:
        world (gpd.GeoDataFrame): Output of geometry.load_world (needs iso2 and iso3)

    Returns:
        pd.DataFrame: Columns country_code, iso3, one row per ISO2 code
    """
    codes = pd.DataFrame({"country_code": world["iso2"], "iso3": normalize_code(world["iso3"])})
    codes["country_code"] = normalize_code(codes["country_code"])
    codes = codes.dropna().drop_duplicates("country_code")
    return codes.reset_index(drop=True)


def assign_iso3(cases, codes):
    """
    Attach an ISO3 code to every case row.

    Case files that already carry iso3 are only normalised. Otherwise the WHO ISO2
    country code is mapped through codes; unmatched codes are left null.

    Args:
        cases (pd.DataFrame): Case rows with a country_code column
        codes (pd.DataFrame): Output of country_codes

    Returns:
        pd.DataFrame: Copy of cases with an iso3 column
    """
    out = cases.copy()
    if "iso3" in out.columns:
        out["iso3"] = normalize_code(out["iso3"])
        return out

    lookup = codes.set_index("country_code")["iso3"]
    out["iso3"] = normalize_code(out["country_code"]).map(lookup)
    unmatched = sorted(out.loc[out["iso3"].isna(), "country"].dropna().unique())
    if unmatched:
        log.info("%d countries have no ISO3 match in the map layer", len(unmatched))
        log.debug("Unmatched countries: %s", ", ".join(unmatched))
    return out


def derive_indicators(cases, vax):
    """
    Join case snapshots with vaccination data and compute the three rates.

    The join is a left join on ISO3, so every case row survives; rows without a
    vaccination match keep null population-based rates while the case fatality
    rate, which depends on case data only, is still computed.

    Args:
        cases (pd.DataFrame): One row per country at the cutoff, with iso3
        vax (pd.DataFrame): Output of clean_vaccination

    Returns:
        pd.DataFrame: Case columns plus population_estimated, doses_per100 and
            infection_rate_pct, mortality_rate_pct, fatality_rate_pct (in percent)
    """
    if "iso3" not in cases.columns:
        raise SchemaError("case table has no iso3 column; run assign_iso3 first")

    left = cases.copy()
    left["iso3"] = normalize_code(left["iso3"])
    right = vax[["iso3", "population_estimated", "doses_per100"]].copy()
    right["iso3"] = normalize_code(right["iso3"])
    # a repeated code in the snapshot would fan out the join
    right = right.dropna(subset=["iso3"]).drop_duplicates("iso3")

    merged = left.merge(right, on="iso3", how="left")
    merged["infection_rate_pct"] = _percent(merged["cumulative_cases"], merged["population_estimated"])
    merged["mortality_rate_pct"] = _percent(merged["cumulative_deaths"], merged["population_estimated"])
    merged["fatality_rate_pct"] = _percent(merged["cumulative_deaths"], merged["cumulative_cases"])
    merged[RATE_COLUMNS] = merged[RATE_COLUMNS].astype(float)

    log.info(
        "Derived indicators for %d countries (%d without vaccination data)",
        len(merged), int(merged["population_estimated"].isna().sum()),
    )
    return merged

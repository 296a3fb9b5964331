import random
import time

import geopandas as gpd
import pytest
from shapely.geometry import box

from covid_cartograms.deform import ContiguousCartogram, default_workers, deform_all, run_parallel
from covid_cartograms.errors import EngineFailure
from covid_cartograms.weights import rank_scale


def _sleepy(i, delay):
    time.sleep(delay)
    return i

def _boom(i):
    if i == 2:
        raise ValueError("bad job")
    return i


class FailingDeformer:
    def __call__(self, layer, column):
        raise ZeroDivisionError("degenerate polygon")


def test_results_keep_job_order_under_random_delays():
    rng = random.Random(42)
    jobs = [(i, rng.uniform(0.0, 0.05)) for i in range(8)]
    assert run_parallel(_sleepy, jobs, workers=4, kind="thread") == list(range(8))

def test_slowest_first_still_ordered():
    jobs = [(0, 0.1), (1, 0.05), (2, 0.0), (3, 0.0)]
    assert run_parallel(_sleepy, jobs, workers=4, kind="thread") == [0, 1, 2, 3]

def test_failure_propagates():
    with pytest.raises(ValueError, match="bad job"):
        run_parallel(_boom, [(i,) for i in range(4)], workers=2, kind="thread")

def test_empty_and_bad_kind():
    assert run_parallel(_sleepy, [], kind="thread") == []
    with pytest.raises(ValueError):
        run_parallel(_sleepy, [(0, 0)], kind="fiber")

def test_default_workers_leaves_a_core():
    assert default_workers() >= 1

def test_process_pool_round_trip(projected):
    layers = [projected, projected.iloc[:2]]
    out = run_parallel(rank_scale, [(layer,) for layer in layers], workers=2, kind="process")
    assert [len(o) for o in out] == [4, 2]
    assert out[1]["weight"].mean() == pytest.approx(projected.iloc[:2].geometry.area.mean())


def test_deform_all_keeps_names(projected, identity_deformer):
    layers = {"b": projected, "a": projected.iloc[:2]}
    out = deform_all(layers, identity_deformer, workers=2, kind="thread")
    assert list(out) == ["b", "a"]
    assert len(out["a"]) == 2

def test_engine_errors_become_engine_failure(projected):
    with pytest.raises(EngineFailure, match="mortality"):
        deform_all({"mortality": projected}, FailingDeformer(), workers=1, kind="thread")


def test_contiguous_cartogram_grows_heavy_polygon():
    cells = [box(x, y, x + 1, y + 1) for x in range(3) for y in range(3)]
    layer = gpd.GeoDataFrame({"iso3": [f"C{i}" for i in range(9)]}, geometry=cells, crs="EPSG:3857")
    layer["weight"] = 1.0
    layer.loc[4, "weight"] = 5.0  # centre cell

    out = ContiguousCartogram(max_iterations=5, max_average_error=0.01)(layer, "weight")
    assert isinstance(out, gpd.GeoDataFrame)
    assert out["iso3"].tolist() == layer["iso3"].tolist()
    assert out.crs == layer.crs
    assert out.geometry.iloc[4].area > layer.geometry.iloc[4].area

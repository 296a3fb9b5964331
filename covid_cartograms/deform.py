from __future__ import annotations
import logging
import os
import time
from concurrent.futures import FIRST_EXCEPTION, ProcessPoolExecutor, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import cartogram
import geopandas as gpd

from .errors import CartogramError, EngineFailure

log = logging.getLogger(__name__)


class AreaDeformer(Protocol):
    """Anything that turns a weighted polygon layer into a cartogram.

    Implementations must be picklable so they can be shipped to worker processes.
    """

    def __call__(self, layer: gpd.GeoDataFrame, column: str) -> gpd.GeoDataFrame: ...


@dataclass(frozen=True)
class ContiguousCartogram:
    """Dougenik-Chrisman-Niemeyer continuous area cartogram (python-cartogram)."""

    max_iterations: int = 1
    max_average_error: float = 0.01

    def __call__(self, layer: gpd.GeoDataFrame, column: str) -> gpd.GeoDataFrame:
        result = cartogram.Cartogram(
            layer,
            column,
            max_iterations=self.max_iterations,
            max_average_error=self.max_average_error,
        )
        # back to a plain GeoDataFrame so results pickle without the engine's subclass state
        return gpd.GeoDataFrame(result, geometry=result.geometry.name, crs=layer.crs)


def default_workers() -> int:
    """One worker per core, minus one for the parent process."""
    return max(1, (os.cpu_count() or 2) - 1)


def run_parallel(
    func: Callable[..., Any],
    jobs: Sequence[tuple],
    workers: Optional[int] = None,
    kind: str = "process",
) -> List[Any]:
    """Run ``func(*job)`` for every job on a worker pool.

    Each job owns the result slot at its own index, so ``result[i]`` always
    belongs to ``jobs[i]`` whatever order the workers finish in. The first
    failure cancels the jobs that have not started and is re-raised; the pool
    is shut down on every exit path.
    """
    if kind not in ("process", "thread"):
        raise ValueError(f"unknown executor kind {kind!r}")
    if not jobs:
        return []

    n = workers or default_workers()
    pool_cls = ProcessPoolExecutor if kind == "process" else ThreadPoolExecutor
    results: List[Any] = [None] * len(jobs)

    with pool_cls(max_workers=n) as pool:
        slots = {pool.submit(func, *job): i for i, job in enumerate(jobs)}
        done, pending = wait(slots, return_when=FIRST_EXCEPTION)
        # pending is only non-empty when something already failed
        for fut in pending:
            fut.cancel()
        for fut in done:
            results[slots[fut]] = fut.result()
    return results


def _deform_one(deformer: AreaDeformer, name: str, layer: gpd.GeoDataFrame, column: str) -> gpd.GeoDataFrame:
    started = time.perf_counter()
    try:
        out = deformer(layer, column)
    except CartogramError:
        raise
    except Exception as e:
        raise EngineFailure(f"cartogram for {name!r} failed: {type(e).__name__}: {e}") from e
    log.debug("Deformed %s (%d polygons) in %.1fs", name, len(layer), time.perf_counter() - started)
    return out


def deform_all(
    layers: Dict[str, gpd.GeoDataFrame],
    deformer: AreaDeformer,
    column: str = "weight",
    workers: Optional[int] = None,
    kind: str = "process",
) -> Dict[str, gpd.GeoDataFrame]:
    """Deform every named layer in parallel; the returned dict keeps the input order."""
    names = list(layers)
    n = workers or default_workers()
    log.info("Computing %d cartograms on %d %s workers", len(names), n, kind)
    jobs = [(deformer, name, layers[name], column) for name in names]
    results = run_parallel(_deform_one, jobs, workers=n, kind=kind)
    return dict(zip(names, results))

from pathlib import Path

import pytest

from covid_cartograms import __main__ as cli
from covid_cartograms.config import RootCfg
from covid_cartograms.errors import InputUnavailable


def test_overrides_are_applied(tmp_path: Path):
    args = cli.build_parser().parse_args([
        "--data-dir", str(tmp_path), "--cutoff", "2023-06-30", "--date-mode", "nearest",
        "--resolution", "small", "--workers", "3", "--threads", "--json-logs",
    ])
    cfg = cli.apply_overrides(RootCfg(), args)
    assert cfg.data.data_dir == str(tmp_path)
    assert str(cfg.indicators.cutoff) == "2023-06-30"
    assert cfg.indicators.date_mode == "nearest"
    assert cfg.geometry.scale == "110m"
    assert cfg.parallel.workers == 3 and cfg.parallel.kind == "thread"
    assert cfg.logging.structured_json is True

def test_bad_config_exit_code(tmp_path: Path):
    p = tmp_path / "bad.toml"
    p.write_text("[cartogram]\nmax_iterations = -1\n")
    assert cli.main(["--config", str(p)]) == 2

def test_pipeline_failure_exit_code(tmp_path: Path, monkeypatch):
    from covid_cartograms import pipeline

    def fail(cfg):
        raise InputUnavailable("dataset not found: x.csv")

    monkeypatch.setattr(pipeline, "run", fail)
    assert cli.main(["--data-dir", str(tmp_path)]) == 1

def test_success_exit_code(tmp_path: Path, monkeypatch):
    from covid_cartograms import pipeline

    seen = {}

    def ok(cfg):
        seen["cfg"] = cfg
        return pipeline.RunResult(tables=None, layers={}, cartograms={}, images={"fatality": tmp_path / "f.png"})

    monkeypatch.setattr(pipeline, "run", ok)
    assert cli.main(["--out", str(tmp_path / "o")]) == 0
    assert seen["cfg"].output.out_dir == str(tmp_path / "o")

def test_zero_workers_is_rejected(tmp_path: Path):
    assert cli.main(["--data-dir", str(tmp_path), "--workers", "0"]) == 2

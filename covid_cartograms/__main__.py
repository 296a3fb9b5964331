from __future__ import annotations
import argparse
import sys
from typing import List, Optional

from .config import RootCfg, load_config
from .errors import CartogramError
from .log import configure


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="covid-cartograms",
        description="Continuous area cartograms of WHO COVID-19 vaccination, infection, mortality and fatality rates.",
    )
    ap.add_argument("--config", default=None, help="Path to config TOML (default: config/config.toml).")
    ap.add_argument("--data-dir", default=None, help="Directory holding the WHO CSV files.")
    ap.add_argument("--out", default=None, help="Directory for the rendered images.")
    ap.add_argument("--cutoff", default=None, help="Reporting date of the case snapshot (YYYY-MM-DD).")
    ap.add_argument("--date-mode", choices=["strict", "nearest"], default=None,
                    help="strict: only rows reported on the cutoff; nearest: latest row on or before it.")
    ap.add_argument("--resolution", choices=["small", "medium", "large"], default=None, help="Natural Earth resolution tier.")
    ap.add_argument("--workers", type=int, default=None, help="Worker processes (default: cores - 1).")
    ap.add_argument("--threads", action="store_true", help="Use threads instead of processes for the cartograms.")
    ap.add_argument("--download", action="store_true", help="Download missing WHO datasets first.")
    ap.add_argument("--show", action="store_true", help="Show the figures after saving them.")
    ap.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    ap.add_argument("--json-logs", action="store_true", help="Emit structured JSON log lines.")
    return ap


def apply_overrides(cfg: RootCfg, args: argparse.Namespace) -> RootCfg:
    """Fold command line flags into the loaded config (validated again)."""
    raw = cfg.model_dump()
    if args.data_dir:
        raw["data"]["data_dir"] = args.data_dir
    if args.out:
        raw["output"]["out_dir"] = args.out
    if args.cutoff:
        raw["indicators"]["cutoff"] = args.cutoff
    if args.date_mode:
        raw["indicators"]["date_mode"] = args.date_mode
    if args.resolution:
        raw["geometry"]["resolution"] = args.resolution
    if args.workers is not None:
        raw["parallel"]["workers"] = args.workers
    if args.threads:
        raw["parallel"]["kind"] = "thread"
    if args.download:
        raw["data"]["download"] = True
    if args.show:
        raw["output"]["show"] = True
    if args.log_level:
        raw["logging"]["level"] = args.log_level
    if args.json_logs:
        raw["logging"]["structured_json"] = True
    # command line paths are relative to the working directory
    raw["base_dir"] = None
    return RootCfg.model_validate(raw)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = apply_overrides(load_config(args.config), args)
    except (CartogramError, ValueError) as e:
        print(f"[covid-cartograms] Failed to load config: {e}", file=sys.stderr)
        return 2

    log = configure(cfg.logging.level, cfg.logging.structured_json)

    # imported late so --help works without the geo stack
    from .pipeline import run

    try:
        result = run(cfg)
    except CartogramError as e:
        log.error("Run failed: %s", e, exc_info=cfg.logging.level.upper() == "DEBUG")
        return 1

    for name, path in result.images.items():
        log.info("%s -> %s", name, path)
    if cfg.output.show:
        import matplotlib.pyplot as plt
        plt.show()
    return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""blackout

Command line entrypoint for the Houston blackout analysis.

Design goals:
- One entrypoint, one level of subcommands
- Config-driven inputs via YAML (config/houston.yaml)
- A verify command that checks inputs exist before a long run

Examples:
  # Full run, figures and income table in outputs/
  python -m blackout run --config config/houston.yaml --out-dir outputs

  # Also write the blackout mask and flagged tracts to a GeoPackage
  python -m blackout run --write-layers

  # Check that all rasters, OSM layers and the ACS geodatabase are present
  python -m blackout verify
  python -m blackout verify --json

  # Print the resolved configuration
  python -m blackout show-config
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import List, Optional

from blackout.config import (
    DEFAULT_CONFIG_YAML,
    DEFAULT_OUT_DIR,
    PipelineConfig,
    format_bbox,
    load_pipeline_config,
)


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="blackout",
        description="Night-light blackout vs household income, Houston, February 2021",
    )

    # Global args (available for all subcommands)
    ap.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_YAML,
        help=f"Path to pipeline YAML (default: {DEFAULT_CONFIG_YAML})",
    )

    sub = ap.add_subparsers(dest="command", required=True)

    # --- run ---
    run = sub.add_parser("run", help="Run the full analysis")
    run.add_argument(
        "--out-dir",
        type=Path,
        default=DEFAULT_OUT_DIR,
        help=f"Directory for figures and tables (default: {DEFAULT_OUT_DIR})",
    )
    run.add_argument("--no-figures", action="store_true", help="Skip maps and histogram")
    run.add_argument("--write-layers", action="store_true", help="Write blackout mask and tracts to a GeoPackage")
    run.add_argument("--dry-run", action="store_true", help="Print planned actions without reading data")

    # --- verify ---
    ver = sub.add_parser("verify", help="Verify that all configured inputs exist")
    ver.add_argument("--json", action="store_true", help="Emit JSON to stdout")

    # --- show-config ---
    sub.add_parser("show-config", help="Print the resolved configuration")

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _print_config(config: PipelineConfig, prefix: str = "") -> None:
    print(f"{prefix}Study area: {format_bbox(config.bbox)} ({config.bbox_crs})")
    print(f"{prefix}Analysis CRS: {config.analysis_crs}")
    print(f"{prefix}Threshold: {config.threshold:g}; highway buffer: {config.buffer_m:g} m")
    print(f"{prefix}Dates: {config.pre.date} (pre) -> {config.post.date} (post)")
    for name, path in config.input_paths().items():
        print(f"{prefix}  - {name}: {path}")


def _handle_run(args: argparse.Namespace, config: PipelineConfig) -> int:
    if args.dry_run:
        print("[dry-run] Would run blackout analysis:")
        _print_config(config, prefix="  ")
        print(f"  Output dir: {args.out_dir}")
        print(f"  Figures: {not args.no_figures}; layers: {args.write_layers}")
        return 0

    # Lazy import: keeps CLI startup fast, avoids loading geopandas until needed
    from blackout.pipeline import run_pipeline

    run_pipeline(
        config,
        args.out_dir,
        figures=not args.no_figures,
        layers=args.write_layers,
    )
    return 0


def _handle_verify(args: argparse.Namespace, config: PipelineConfig) -> int:
    from blackout.ingest.loaders import verify_inputs

    results = verify_inputs(config)
    ok = all(r["ok"] for r in results)
    if args.json:
        print(json.dumps({"ok": ok, "results": results}, indent=2))
    else:
        for r in results:
            status = "OK" if r["ok"] else "MISSING"
            print(f"[{status}] {r['input']}: {r['path']}")
        print(f"Overall: {'OK' if ok else 'NOT OK'}")
    return 0 if ok else 2


def _handle_show_config(args: argparse.Namespace, config: PipelineConfig) -> int:
    _print_config(config)
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    # Load YAML only once, inside main (so import doesn't have side effects)
    config = load_pipeline_config(args.config)

    handlers = {
        "run": _handle_run,
        "verify": _handle_verify,
        "show-config": _handle_show_config,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    return handler(args, config)


if __name__ == "__main__":
    raise SystemExit(main())

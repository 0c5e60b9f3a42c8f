#!/usr/bin/env python3
"""report.py

Human-readable output of a blackout run: printed counts, an income table,
static maps and a histogram, plus optional GeoPackage/CSV artifacts.

Nothing here feeds back into the analysis.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import geopandas as gpd
import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pandas as pd
from shapely.geometry.base import BaseGeometry


GROUP_COLORS = {"affected": "#e74c3c", "unaffected": "#3498db"}


# -----------------------------------------------------------------------------
# Tables
# -----------------------------------------------------------------------------

def summarize_income(tracts: pd.DataFrame) -> pd.DataFrame:
    """Median household income statistics for affected vs unaffected tracts."""
    groups = tracts["affected"].map({True: "affected", False: "unaffected"})
    rows = []
    for name in ("affected", "unaffected"):
        income = tracts.loc[groups == name, "median_income"]
        rows.append({
            "group": name,
            "n_tracts": int(len(income)),
            "n_missing_income": int(income.isna().sum()),
            "mean_income": float(income.mean()) if income.notna().any() else float("nan"),
            "median_income": float(income.median()) if income.notna().any() else float("nan"),
        })
    return pd.DataFrame(rows).set_index("group")


def print_summary(result) -> None:
    print("[report] Summary")
    print(f"  - blackout polygons: {len(result.mask.polygons)}")
    print(f"  - near highways (removed): {len(result.highways.removed)}")
    print(f"  - after highway exclusion: {len(result.highways.kept)}")
    print(f"  - residential buildings: {result.buildings.total}")
    print(f"  - buildings that lost power: {len(result.buildings.affected)}")
    print(f"  - census tracts: {len(result.tracts.tracts)}")
    print(f"  - tracts that lost power: {len(result.tracts.affected)}")
    print("Median household income by tract group:")
    for group, row in result.income_summary.iterrows():
        print(
            f"  - {group:<10} | tracts={int(row['n_tracts']):>5} | "
            f"mean=${row['mean_income']:>10,.0f} | median=${row['median_income']:>10,.0f} | "
            f"missing={int(row['n_missing_income'])}"
        )


# -----------------------------------------------------------------------------
# Figures
# -----------------------------------------------------------------------------

def plot_blackout_mask(
    polygons: gpd.GeoDataFrame,
    out_path: Path,
    road_buffer: Optional[BaseGeometry] = None,
    title: str = "Blackout mask",
    dpi: int = 150,
) -> Path:
    fig, ax = plt.subplots(figsize=(10, 10))
    if road_buffer is not None and not road_buffer.is_empty:
        gpd.GeoSeries([road_buffer], crs=polygons.crs).plot(ax=ax, color="lightgrey", label="Highway buffer")
    if not polygons.empty:
        polygons.plot(ax=ax, color="black", linewidth=0)
    ax.set_title(title, fontsize=14)
    ax.axis("off")
    plt.tight_layout()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    print(f"  - saved: {out_path}")
    return out_path


def plot_tract_map(
    tracts: gpd.GeoDataFrame,
    out_path: Path,
    title: str = "Census tracts that lost power",
    dpi: int = 150,
) -> Path:
    fig, ax = plt.subplots(figsize=(10, 10))
    for group, flag in (("unaffected", False), ("affected", True)):
        subset = tracts[tracts["affected"] == flag]
        if len(subset) > 0:
            subset.plot(ax=ax, color=GROUP_COLORS[group], edgecolor="white", linewidth=0.1, label=group)
    ax.set_title(title, fontsize=14)
    ax.axis("off")
    plt.tight_layout()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    print(f"  - saved: {out_path}")
    return out_path


def plot_income_histogram(
    tracts: pd.DataFrame,
    out_path: Path,
    bins: int = 30,
    dpi: int = 150,
) -> Path:
    fig, ax = plt.subplots(figsize=(10, 6))
    for group, flag in (("unaffected", False), ("affected", True)):
        income = tracts.loc[tracts["affected"] == flag, "median_income"].dropna()
        if len(income) > 0:
            ax.hist(income, bins=bins, alpha=0.6, color=GROUP_COLORS[group], edgecolor="black", label=group)
    ax.set_xlabel("Median household income (USD)")
    ax.set_ylabel("Census tracts")
    ax.set_title("Median household income of tracts that did and did not lose power")
    ax.legend()
    plt.tight_layout()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    print(f"  - saved: {out_path}")
    return out_path


# -----------------------------------------------------------------------------
# Artifacts
# -----------------------------------------------------------------------------

def write_summary_csv(summary: pd.DataFrame, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    summary.to_csv(path)
    print(f"  - saved: {path}")
    return path


def write_layers(result, out_gpkg: Path) -> Path:
    """Blackout mask (after highway exclusion) and flagged tracts, one layer each."""
    out_gpkg.parent.mkdir(parents=True, exist_ok=True)
    result.highways.kept.to_file(out_gpkg, layer="blackout_mask", driver="GPKG")
    result.tracts.tracts.to_file(out_gpkg, layer="tracts", driver="GPKG")
    print(f"  - saved: {out_gpkg} (layers: blackout_mask, tracts)")
    return out_gpkg

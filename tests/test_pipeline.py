#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import geopandas as gpd
import numpy as np
import pandas as pd
from rasterio.transform import from_origin
from shapely.geometry import LineString, Point, box

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from blackout import report
from blackout.config import PipelineConfig, RasterDate
from blackout.geo.raster import RasterTile
from blackout.pipeline import analyze


RES = 0.05


def _config() -> PipelineConfig:
    return PipelineConfig(
        pre=RasterDate("2021-02-07", ()),
        post=RasterDate("2021-02-16", ()),
        roads_path=Path("roads.gpkg"),
        roads_layer=None,
        buildings_path=Path("buildings.gpkg"),
        buildings_layer=None,
        census_gdb=Path("acs.gdb"),
        tract_layer="TRACTS",
        income_layer="X19_INCOME",
        tract_key="GEOID_Data",
    )


def _tiles(drops):
    """Two 5x5 tiles (north, south) of 600 with `drops` {(tile, row, col): value}."""
    tiles = []
    for i, north in enumerate((30.0, 29.75)):
        data = np.full((5, 5), 600, dtype="float32")
        for (t, r, c), v in drops.items():
            if t == i:
                data[r, c] = v
        tiles.append(RasterTile(data, from_origin(-95.6, north, RES, RES), "EPSG:4326", nodata=-1.0, label=f"v0{5 + i}"))
    return tiles


def _house(lon, lat):
    return box(lon - 0.0005, lat - 0.0005, lon + 0.0005, lat + 0.0005)


def _inputs():
    pre = _tiles({})
    # north tile cell (2, 2) is centred on (-95.475, 29.875); south tile cell (1, 3) on (-95.425, 29.675)
    post = _tiles({(0, 2, 2): 50, (1, 1, 3): 100})
    roads = gpd.GeoDataFrame(
        {"fclass": ["motorway"]},
        geometry=[LineString([(-95.45, 29.675), (-95.40, 29.675)])],
        crs="EPSG:4326",
    )
    buildings = gpd.GeoDataFrame(
        {"type": ["house", None]},
        geometry=[_house(-95.475, 29.875), _house(-95.30, 29.60)],
        crs="EPSG:4326",
    )
    tracts = gpd.GeoDataFrame(
        {"GEOID_Data": ["14000US48201000100", "14000US48201000200"]},
        geometry=[box(-95.5, 29.85, -95.45, 29.90), box(-95.32, 29.58, -95.28, 29.62)],
        crs="EPSG:4269",
    )
    income = pd.DataFrame({"GEOID": ["14000US48201000100", "14000US48201000200"], "B19013e1": [40000, 90000]})
    return dict(pre_tiles=pre, post_tiles=post, roads=roads, buildings=buildings, tracts=tracts, income=income)


def test_analyze_end_to_end():
    result = analyze(_config(), **_inputs())

    assert (result.pre.height, result.pre.width) == (10, 5)
    assert len(result.mask.polygons) == 2
    assert len(result.highways.removed) == 1
    assert len(result.highways.kept) == 1
    assert len(result.buildings.affected) == 1
    assert result.buildings.total == 2

    flags = dict(zip(result.tracts.tracts["GEOID"], result.tracts.tracts["affected"]))
    assert flags == {"48201000100": True, "48201000200": False}
    assert len(result.tracts.filtered) == int(result.tracts.tracts["affected"].sum())

    summary = result.income_summary
    assert summary.loc["affected", "mean_income"] == 40000
    assert summary.loc["unaffected", "median_income"] == 90000

    for stage in (result.mask, result.highways, result.buildings, result.tracts):
        assert all(c.ok for c in stage.checks)


def test_analyze_outputs_share_analysis_crs():
    result = analyze(_config(), **_inputs())
    for layer in (result.mask.polygons, result.highways.kept, result.buildings.affected, result.tracts.tracts):
        assert layer.crs == "EPSG:3083"


def test_no_drop_means_no_affected_tracts():
    inputs = _inputs()
    inputs["post_tiles"] = _tiles({})

    result = analyze(_config(), **inputs)

    assert result.mask.polygons.empty
    assert result.buildings.affected.empty
    assert not result.tracts.tracts["affected"].any()
    assert result.income_summary.loc["affected", "n_tracts"] == 0


# -----------------------------------------------------------------------------
# Report
# -----------------------------------------------------------------------------

def test_summarize_income():
    tracts = pd.DataFrame({
        "affected": [True, True, True, False, False],
        "median_income": [30000, 50000, np.nan, 70000, 90000],
    })
    s = report.summarize_income(tracts)
    assert s.loc["affected", "n_tracts"] == 3
    assert s.loc["affected", "n_missing_income"] == 1
    assert s.loc["affected", "mean_income"] == 40000
    assert s.loc["unaffected", "median_income"] == 80000


def test_report_figures_and_tables(tmp_path, capsys):
    result = analyze(_config(), **_inputs())

    report.print_summary(result)
    out = capsys.readouterr().out
    assert "tracts that lost power: 1" in out

    paths = [
        report.plot_blackout_mask(result.highways.kept, tmp_path / "mask.png", road_buffer=result.highways.road_buffer),
        report.plot_tract_map(result.tracts.tracts, tmp_path / "tracts.png"),
        report.plot_income_histogram(result.tracts.tracts, tmp_path / "hist.png", bins=5),
        report.write_summary_csv(result.income_summary, tmp_path / "summary.csv"),
        report.write_layers(result, tmp_path / "blackout.gpkg"),
    ]
    for p in paths:
        assert p.exists() and p.stat().st_size > 0

    written = gpd.read_file(tmp_path / "blackout.gpkg", layer="tracts")
    assert len(written) == 2

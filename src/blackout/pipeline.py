#!/usr/bin/env python3
"""pipeline.py

The blackout analysis, start to finish.

    load -> merge -> mask -> exclude highways -> join buildings/tracts -> report

This module exposes two interfaces:
1. analyze() - the in-memory ETL over already loaded inputs (what tests drive)
2. run_pipeline() - loads inputs named in a PipelineConfig, calls analyze(),
   then writes the report artifacts

Each stage runs exactly once, in order. A failed fatal check anywhere stops
the run with SystemExit; nothing is retried.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import geopandas as gpd
import pandas as pd

from blackout import report
from blackout.checks import check_extent_match, enforce
from blackout.config import PipelineConfig, format_bbox
from blackout.geo.blackout_mask import MaskResult, build_blackout_mask
from blackout.geo.highways import HighwayFilterResult, exclude_highways
from blackout.geo.joins import (
    BuildingJoinResult,
    TractJoinResult,
    clip_tracts,
    find_affected_buildings,
    flag_affected_tracts,
    join_income,
)
from blackout.geo.raster import RasterTile, merge_tiles
from blackout.ingest import loaders


@dataclass
class PipelineResult:
    pre: RasterTile
    post: RasterTile
    mask: MaskResult
    highways: HighwayFilterResult
    buildings: BuildingJoinResult
    tracts: TractJoinResult
    income_summary: pd.DataFrame


def analyze(
    config: PipelineConfig,
    *,
    pre_tiles: Sequence[RasterTile],
    post_tiles: Sequence[RasterTile],
    roads: gpd.GeoDataFrame,
    buildings: gpd.GeoDataFrame,
    tracts: gpd.GeoDataFrame,
    income: pd.DataFrame,
) -> PipelineResult:
    """Run every ETL stage over in-memory inputs."""
    print(f"Study area: {format_bbox(config.bbox)} ({config.bbox_crs}); analysis CRS {config.analysis_crs}")

    pre = merge_tiles(pre_tiles, label=config.pre.date)
    post = merge_tiles(post_tiles, label=config.post.date)
    enforce(check_extent_match(pre.bounds, post.bounds, name="pre_post_extent"))

    mask = build_blackout_mask(
        pre,
        post,
        config.bbox,
        bbox_crs=config.bbox_crs,
        threshold=config.threshold,
        analysis_crs=config.analysis_crs,
    )

    highways = exclude_highways(
        mask.polygons,
        roads,
        config.bbox,
        bbox_crs=config.bbox_crs,
        analysis_crs=config.analysis_crs,
        distance_m=config.buffer_m,
    )

    homes = find_affected_buildings(buildings, highways.kept, config.analysis_crs)

    joined = join_income(
        tracts,
        income,
        tract_key=config.tract_key,
        income_key=config.income_key,
        income_field=config.income_field,
        prefix=config.geoid_prefix,
    )
    if config.clip_tracts:
        joined = clip_tracts(joined, config.bbox, config.bbox_crs)
    flagged = flag_affected_tracts(joined, homes.affected, config.analysis_crs)

    return PipelineResult(
        pre=pre,
        post=post,
        mask=mask,
        highways=highways,
        buildings=homes,
        tracts=flagged,
        income_summary=report.summarize_income(flagged.tracts),
    )


def run_pipeline(
    config: PipelineConfig,
    out_dir: Optional[Path] = None,
    *,
    figures: bool = True,
    layers: bool = False,
) -> PipelineResult:
    """Load the configured inputs, analyze them, and write the report."""
    pre_tiles = loaders.load_tiles(config.pre.tiles, config.pre.date)
    post_tiles = loaders.load_tiles(config.post.tiles, config.post.date)
    roads = loaders.load_roads(config.roads_path, config.roads_layer, config.road_class)
    buildings = loaders.load_buildings(config.buildings_path, config.buildings_layer, config.building_types)
    tracts = loaders.load_tracts(config.census_gdb, config.tract_layer)
    income = loaders.load_income(config.census_gdb, config.income_layer, config.income_key, config.income_field)

    result = analyze(
        config,
        pre_tiles=pre_tiles,
        post_tiles=post_tiles,
        roads=roads,
        buildings=buildings,
        tracts=tracts,
        income=income,
    )

    report.print_summary(result)

    if out_dir is not None:
        report.write_summary_csv(result.income_summary, out_dir / "income_summary.csv")
        if figures:
            report.plot_blackout_mask(
                result.highways.kept,
                out_dir / "blackout_mask.png",
                road_buffer=result.highways.road_buffer,
                title=f"Blackout mask, {config.post.date} vs {config.pre.date}",
            )
            report.plot_tract_map(result.tracts.tracts, out_dir / "tracts_affected.png")
            report.plot_income_histogram(result.tracts.tracts, out_dir / "income_histogram.png")
        if layers:
            report.write_layers(result, out_dir / "blackout.gpkg")

    return result

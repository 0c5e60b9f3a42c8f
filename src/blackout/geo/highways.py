#!/usr/bin/env python3
"""highways.py

Drop blackout polygons that sit near motorways.

Headlights and road lighting change from night to night, so a drop in light
close to a highway says little about residential power. Everything within
`distance_m` of a motorway is excluded from the blackout mask.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Tuple

import geopandas as gpd
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry

from blackout.checks import (
    CheckResult,
    check_crs_match,
    check_partition,
    check_projected_metric,
    enforce,
    same_crs,
)


BBox = Tuple[float, float, float, float]


@dataclass
class HighwayFilterResult:
    kept: gpd.GeoDataFrame
    removed: gpd.GeoDataFrame
    road_buffer: BaseGeometry
    checks: List[CheckResult] = field(default_factory=list)


def clip_to_bbox(gdf: gpd.GeoDataFrame, bbox: BBox, bbox_crs: Any) -> gpd.GeoDataFrame:
    """Clip geometries to the study area, in the layer's own CRS."""
    if gdf.crs is None:
        raise SystemExit("Layer has no CRS; can't clip it to the study area.")
    area = gpd.GeoSeries([box(*bbox)], crs=bbox_crs)
    if not same_crs(area.crs, gdf.crs):
        area = area.to_crs(gdf.crs)
    return gpd.clip(gdf, area)


def road_buffer(
    roads: gpd.GeoDataFrame,
    bbox: BBox,
    *,
    bbox_crs: Any,
    analysis_crs: Any,
    distance_m: float,
) -> BaseGeometry:
    """Single polygon covering everything within `distance_m` of a road."""
    clipped = clip_to_bbox(roads, bbox, bbox_crs)
    unioned = gpd.GeoSeries([clipped.geometry.union_all()], crs=roads.crs).to_crs(analysis_crs)

    # buffer distance is in CRS units, which must be meters
    enforce(check_projected_metric(unioned.crs))
    print(f"  - roads in study area: {len(clipped)}, buffer {distance_m:g} m")
    return unioned.buffer(distance_m).iloc[0]


def exclude_highways(
    blackout: gpd.GeoDataFrame,
    roads: gpd.GeoDataFrame,
    bbox: BBox,
    *,
    bbox_crs: Any,
    analysis_crs: Any,
    distance_m: float,
) -> HighwayFilterResult:
    """Split blackout polygons into those clear of the road buffer and the rest."""
    print(f"[highways] excluding blackout polygons within {distance_m:g} m of roads")
    checks: List[CheckResult] = []
    checks.append(enforce(check_crs_match(blackout.crs, analysis_crs, name="blackout_crs")))

    buf = road_buffer(roads, bbox, bbox_crs=bbox_crs, analysis_crs=analysis_crs, distance_m=distance_m)

    kept = blackout[blackout.disjoint(buf)].copy()
    removed = blackout[blackout.intersects(buf)].copy()
    checks.append(enforce(check_partition(blackout.index, kept.index, removed.index, name="highway_partition")))

    print(f"  - polygons: {len(blackout)} -> kept {len(kept)}, removed {len(removed)}")
    return HighwayFilterResult(kept=kept, removed=removed, road_buffer=buf, checks=checks)

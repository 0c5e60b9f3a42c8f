#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import geopandas as gpd
import pytest
from shapely.geometry import LineString, Point

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from blackout.geo import highways as hw


HOUSTON_BBOX = (-96.5, 29.0, -94.5, 30.5)


def _roads(*lines):
    return gpd.GeoDataFrame({"fclass": ["motorway"] * len(lines)}, geometry=list(lines), crs="EPSG:4326")


def _blackout(*lonlats, radius=50.0):
    """Small projected polygons around lon/lat points."""
    pts = gpd.GeoSeries([Point(x, y) for x, y in lonlats], crs="EPSG:4326").to_crs("EPSG:3083")
    return gpd.GeoDataFrame({"delta": [-500.0] * len(lonlats)}, geometry=pts.buffer(radius), crs="EPSG:3083")


def _run(blackout, roads, analysis_crs="EPSG:3083", distance_m=200.0):
    return hw.exclude_highways(
        blackout,
        roads,
        HOUSTON_BBOX,
        bbox_crs="EPSG:4326",
        analysis_crs=analysis_crs,
        distance_m=distance_m,
    )


def test_buffer_enclosing_polygon_removes_it():
    roads = _roads(LineString([(-95.40, 29.70), (-95.30, 29.70)]))
    blackout = _blackout((-95.35, 29.70))

    result = _run(blackout, roads)

    assert len(result.kept) == 0
    assert len(result.removed) == 1
    assert result.road_buffer.contains(blackout.geometry.iloc[0])


def test_partition_between_kept_and_removed():
    roads = _roads(LineString([(-95.40, 29.70), (-95.30, 29.70)]))
    # second polygon is ~11 km north of the road
    blackout = _blackout((-95.35, 29.70), (-95.35, 29.80))

    result = _run(blackout, roads)

    assert result.removed.index.tolist() == [0]
    assert result.kept.index.tolist() == [1]
    assert len(result.kept) + len(result.removed) == len(blackout)
    assert all(c.ok for c in result.checks)


def test_buffer_distance_is_in_meters():
    roads = _roads(LineString([(-95.40, 29.70), (-95.30, 29.70)]))
    # ~330 m north of the road; a 50 m polygon stays clear of a 200 m buffer
    blackout = _blackout((-95.35, 29.703))
    assert len(_run(blackout, roads, distance_m=200.0).kept) == 1
    assert len(_run(blackout, roads, distance_m=500.0).kept) == 0


def test_roads_outside_study_area_are_ignored():
    roads = _roads(LineString([(-90.0, 29.70), (-89.9, 29.70)]))
    blackout = _blackout((-95.35, 29.70))

    result = _run(blackout, roads)

    assert len(result.kept) == 1
    assert result.road_buffer.is_empty


def test_clip_to_bbox_cuts_long_roads():
    roads = _roads(LineString([(-97.0, 29.5), (-95.0, 29.5)]))
    clipped = hw.clip_to_bbox(roads, HOUSTON_BBOX, "EPSG:4326")
    assert len(clipped) == 1
    assert clipped.total_bounds[0] == pytest.approx(-96.5)


def test_geographic_analysis_crs_is_rejected():
    roads = _roads(LineString([(-95.40, 29.70), (-95.30, 29.70)]))
    blackout = _blackout((-95.35, 29.70)).to_crs("EPSG:4326")
    with pytest.raises(SystemExit):
        _run(blackout, roads, analysis_crs="EPSG:4326")


def test_blackout_in_wrong_crs_is_rejected():
    roads = _roads(LineString([(-95.40, 29.70), (-95.30, 29.70)]))
    blackout = _blackout((-95.35, 29.70)).to_crs("EPSG:4326")
    with pytest.raises(SystemExit):
        _run(blackout, roads)

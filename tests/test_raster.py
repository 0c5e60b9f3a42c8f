#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest
from rasterio.transform import from_origin

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from blackout.geo.raster import RasterTile, merge_tiles


def _tile(values, west, north, res=1.0, crs="EPSG:4326", nodata=-1.0, label="t"):
    return RasterTile(
        data=np.asarray(values, dtype="float32"),
        transform=from_origin(west, north, res, res),
        crs=crs,
        nodata=nodata,
        label=label,
    )


def test_tile_requires_crs():
    with pytest.raises(ValueError):
        _tile([[1, 2]], 0, 1, crs=None)


def test_tile_requires_2d():
    with pytest.raises(ValueError):
        RasterTile(np.zeros((1, 2, 2)), from_origin(0, 2, 1, 1), "EPSG:4326")


def test_tile_bounds_and_valid_mask():
    t = _tile([[1, -1], [np.nan, 4]], 10, 20, res=0.5)
    assert t.bounds == (10.0, 19.0, 11.0, 20.0)
    assert t.valid_mask.tolist() == [[True, False], [False, True]]


def test_merge_stacks_tiles_north_to_south():
    north = _tile([[1, 2], [3, 4]], 0, 4, label="h08v05")
    south = _tile([[5, 6], [7, 8]], 0, 2, label="h08v06")

    merged = merge_tiles([north, south], label="2021-02-07")

    assert (merged.height, merged.width) == (4, 2)
    assert merged.data.tolist() == [[1, 2], [3, 4], [5, 6], [7, 8]]
    assert merged.bounds == (0.0, 0.0, 2.0, 4.0)
    assert merged.label == "2021-02-07"


def test_merge_keeps_only_original_nodata():
    north = _tile([[1, -1], [3, 4]], 0, 4)
    south = _tile([[5, 6], [7, -1]], 0, 2)

    merged = merge_tiles([north, south])

    assert merged.height == north.height + south.height
    assert int(merged.valid_mask.sum()) == int(north.valid_mask.sum() + south.valid_mask.sum()) == 6
    assert merged.valid_mask.tolist() == [[True, False], [True, True], [True, True], [True, False]]


def test_merge_rejects_crs_mismatch():
    north = _tile([[1, 2]], 0, 2)
    south = _tile([[3, 4]], 0, 1, crs="EPSG:3083")
    with pytest.raises(SystemExit):
        merge_tiles([north, south])


def test_merge_side_by_side_tiles_fails_row_check():
    west = _tile([[1, 2], [3, 4]], 0, 2)
    east = _tile([[5, 6], [7, 8]], 2, 2)
    with pytest.raises(SystemExit):
        merge_tiles([west, east])


def test_tiles_compare_by_identity():
    a = _tile([[1, 2], [3, 4]], 0.0, 2.0)
    b = _tile([[1, 2], [3, 4]], 0.0, 2.0)
    assert a == a
    assert a != b
    assert len({a, b}) == 2

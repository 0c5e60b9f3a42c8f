#!/usr/bin/env python3
"""raster.py

In-memory night-light rasters and the same-day tile merger.

A RasterTile is one band of radiance values plus the grid it lives on.
Tiles, merged mosaics and difference rasters are all RasterTiles, so the
CRS and extent travel with the data instead of being checked after the fact.

Required deps: rasterio, numpy
"""

from __future__ import annotations

from contextlib import ExitStack
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

import numpy as np
from rasterio.io import MemoryFile
from rasterio.merge import merge
from rasterio.transform import Affine, array_bounds

from blackout.checks import check_crs_match, check_merged_rows, enforce


@dataclass(frozen=True, eq=False)
class RasterTile:
    data: np.ndarray
    transform: Affine
    crs: Any
    nodata: Optional[float] = None
    label: str = ""

    def __post_init__(self) -> None:
        if self.crs is None:
            raise ValueError(f"Raster {self.label!r} has no CRS")
        if self.data.ndim != 2:
            raise ValueError(f"Raster {self.label!r} must be 2-D, got shape {self.data.shape}")
        if self.data.size == 0:
            raise ValueError(f"Raster {self.label!r} is empty")

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(xmin, ymin, xmax, ymax) in the raster CRS."""
        west, south, east, north = array_bounds(self.height, self.width, self.transform)
        return (west, south, east, north)

    @property
    def valid_mask(self) -> np.ndarray:
        """True where the cell holds a value (not nodata, not NaN)."""
        valid = np.ones(self.data.shape, dtype=bool)
        if np.issubdtype(self.data.dtype, np.floating):
            valid &= ~np.isnan(self.data)
        if self.nodata is not None and not np.isnan(self.nodata):
            valid &= self.data != self.nodata
        return valid


def _open_in_memory(stack: ExitStack, tile: RasterTile):
    profile = {
        "driver": "GTiff",
        "height": tile.height,
        "width": tile.width,
        "count": 1,
        "dtype": str(tile.data.dtype),
        "crs": tile.crs,
        "transform": tile.transform,
        "nodata": tile.nodata,
    }
    memfile = stack.enter_context(MemoryFile())
    with memfile.open(**profile) as dst:
        dst.write(tile.data, 1)
    return stack.enter_context(memfile.open())


def merge_tiles(tiles: Sequence[RasterTile], label: str = "") -> RasterTile:
    """Mosaic same-day tiles into one raster.

    Tiles are adjacent and disjoint (e.g. h08v05 over h08v06), so no
    tie-breaking is needed. Fails if the tiles' CRSs differ.
    """
    if not tiles:
        raise ValueError("merge_tiles needs at least one tile")

    first = tiles[0]
    for t in tiles[1:]:
        enforce(check_crs_match(first.crs, t.crs, name=f"tile_crs[{first.label} vs {t.label}]"))

    print(f"[merge] {label or first.label}: {len(tiles)} tile(s)")
    with ExitStack() as stack:
        datasets = [_open_in_memory(stack, t) for t in tiles]
        mosaic, transform = merge(datasets, nodata=first.nodata)

    merged = RasterTile(
        data=mosaic[0],
        transform=transform,
        crs=first.crs,
        nodata=first.nodata,
        label=label or first.label,
    )
    print(f"  - shape: {merged.height} x {merged.width}")

    enforce(check_merged_rows(merged.height, [t.height for t in tiles]))
    return merged

#!/usr/bin/env python3
"""blackout_mask.py

Turn a pre-storm and a post-storm night-light mosaic into blackout polygons.

Steps:
1. difference: post - pre, cells above the threshold become NaN
2. crop to the study-area bbox (transformed into the raster CRS if needed)
3. vectorize surviving cells
4. reproject to the analysis CRS

Only large negative drops survive step 1, so every polygon is a place that
lost a lot of light between the two dates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Tuple

import geopandas as gpd
import numpy as np
from rasterio.errors import WindowError
from rasterio.features import shapes
from rasterio.warp import transform_bounds
from rasterio.windows import Window, from_bounds
from rasterio.windows import transform as window_transform
from shapely.geometry import shape

from blackout.checks import (
    CheckResult,
    check_bound_within,
    check_crs_match,
    check_threshold_applied,
    enforce,
    same_crs,
)
from blackout.geo.raster import RasterTile


BBox = Tuple[float, float, float, float]


@dataclass
class MaskResult:
    difference: RasterTile
    cropped: RasterTile
    polygons: gpd.GeoDataFrame
    checks: List[CheckResult] = field(default_factory=list)


def _safe_round_window(win: Window) -> Window:
    """Round window offsets/lengths to integers (GDAL prefers integer windows)."""
    return win.round_offsets().round_lengths()


def bbox_in_crs(bbox: BBox, bbox_crs: Any, crs: Any) -> BBox:
    if same_crs(bbox_crs, crs):
        return bbox
    # densify so curved edges of the reprojected box are still covered
    return transform_bounds(bbox_crs, crs, *bbox, densify_pts=21)


def difference(pre: RasterTile, post: RasterTile, threshold: float) -> RasterTile:
    """Compute post - pre and drop every cell above `threshold`.

    Cells that are nodata in either input are dropped as well. Both rasters
    must sit on the same grid.
    """
    enforce(check_crs_match(pre.crs, post.crs, name="difference_crs"))
    if pre.data.shape != post.data.shape or not pre.transform.almost_equals(post.transform):
        raise SystemExit(
            "Pre and post rasters are not on the same grid:\n"
            f"  pre:  shape={pre.data.shape} transform={tuple(pre.transform)[:6]}\n"
            f"  post: shape={post.data.shape} transform={tuple(post.transform)[:6]}"
        )

    delta = post.data.astype("float64") - pre.data.astype("float64")
    delta[~(pre.valid_mask & post.valid_mask)] = np.nan
    delta[delta > threshold] = np.nan

    return RasterTile(
        data=delta,
        transform=pre.transform,
        crs=pre.crs,
        nodata=None,
        label=f"{post.label} - {pre.label}",
    )


def crop_to_bbox(raster: RasterTile, bbox: BBox, bbox_crs: Any) -> RasterTile:
    """Cut the raster down to the cells covering `bbox`."""
    local = bbox_in_crs(bbox, bbox_crs, raster.crs)
    win = _safe_round_window(from_bounds(*local, transform=raster.transform))
    try:
        win = win.intersection(Window(0, 0, raster.width, raster.height))
    except WindowError as e:
        raise SystemExit(f"Study area {local} does not overlap raster {raster.label!r} {raster.bounds}") from e

    r0, c0 = int(win.row_off), int(win.col_off)
    h, w = int(win.height), int(win.width)
    if h == 0 or w == 0:
        raise SystemExit(f"Study area {local} does not overlap raster {raster.label!r} {raster.bounds}")

    return RasterTile(
        data=raster.data[r0:r0 + h, c0:c0 + w].copy(),
        transform=window_transform(win, raster.transform),
        crs=raster.crs,
        nodata=raster.nodata,
        label=raster.label,
    )


def polygonize(raster: RasterTile) -> gpd.GeoDataFrame:
    """Vectorize defined cells. Adjacent cells with equal values share a polygon."""
    values = raster.data.astype("float32")
    valid = raster.valid_mask
    geoms = []
    deltas = []
    for geom, value in shapes(values, mask=valid, transform=raster.transform):
        geoms.append(shape(geom))
        deltas.append(float(value))
    return gpd.GeoDataFrame({"delta": deltas}, geometry=gpd.GeoSeries(geoms, crs=raster.crs))


def reproject_layer(gdf: gpd.GeoDataFrame, crs: Any) -> gpd.GeoDataFrame:
    """to_crs, except a layer already in `crs` is returned untouched."""
    if gdf.crs is None:
        raise SystemExit("Layer has no CRS; refusing to guess before reprojecting.")
    if same_crs(gdf.crs, crs):
        return gdf
    return gdf.to_crs(crs)


def build_blackout_mask(
    pre: RasterTile,
    post: RasterTile,
    bbox: BBox,
    *,
    bbox_crs: Any,
    threshold: float,
    analysis_crs: Any,
) -> MaskResult:
    checks: List[CheckResult] = []

    print(f"[mask] {post.label} - {pre.label}, threshold {threshold}")
    diff = difference(pre, post, threshold)
    checks.append(enforce(check_threshold_applied(diff.data, threshold)))

    cropped = crop_to_bbox(diff, bbox, bbox_crs)
    n_cells = int(cropped.valid_mask.sum())
    print(f"  - cropped: {cropped.height} x {cropped.width}, {n_cells} blackout cell(s)")

    polys = polygonize(cropped)
    if not polys.empty:
        # whole cells may reach past the study-area edge, by less than one pixel
        xmax = bbox_in_crs(bbox, bbox_crs, cropped.crs)[2]
        tolerance = abs(cropped.transform.a)
        checks.append(enforce(check_bound_within(
            xmax, polys.total_bounds[2], tolerance, name="mask_xmax",
        )))

    polys = reproject_layer(polys, analysis_crs)
    checks.append(enforce(check_crs_match(polys.crs, analysis_crs, name="mask_crs")))
    print(f"  - polygons: {len(polys)}")

    return MaskResult(difference=diff, cropped=cropped, polygons=polys, checks=checks)

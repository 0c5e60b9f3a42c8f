#!/usr/bin/env python3
"""loaders.py

Read the local inputs of the blackout analysis.

- VIIRS VNP46A1 night-light tiles (GeoTIFF, band 1)
- OpenStreetMap roads and buildings (GeoPackage), filtered at read time
- ACS tract polygons and the income table (file geodatabase)

Everything is read fully into memory; the inputs are regional extracts.
Missing files and layers without a CRS stop the run.

Required deps: rasterio, geopandas, pyogrio
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import geopandas as gpd
import pandas as pd
import pyogrio
import rasterio

from blackout.config import PipelineConfig
from blackout.geo.raster import RasterTile


def _require(path: Path, what: str) -> None:
    if not path.exists():
        raise SystemExit(f"{what} not found: {path}")


def _require_crs(gdf: gpd.GeoDataFrame, what: str, path: Path) -> None:
    if gdf.crs is None:
        raise SystemExit(
            f"{what} at {path} has no CRS. "
            "Fix that first; everything downstream depends on CRS."
        )


def _make_valid(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Drop null/empty geometries and repair invalid ones (OSM footprints are occasionally self-intersecting)."""
    missing = gdf.geometry.isna() | gdf.geometry.is_empty
    if missing.any():
        gdf = gdf[~missing].copy()
        print(f"  - dropped {int(missing.sum())} feature(s) with null or empty geometry")
    invalid = ~gdf.geometry.is_valid
    if not invalid.any():
        return gdf
    gdf = gdf.copy()
    gdf.loc[invalid, gdf.geometry.name] = gdf.geometry[invalid].make_valid()
    print(f"  - repaired {int(invalid.sum())} invalid geometr{'y' if invalid.sum() == 1 else 'ies'}")
    return gdf


def _sql_list(values: Sequence[str]) -> str:
    return ", ".join("'" + str(v).replace("'", "''") + "'" for v in values)


# -----------------------------------------------------------------------------
# Rasters
# -----------------------------------------------------------------------------

def load_tile(path: Path, label: Optional[str] = None) -> RasterTile:
    """Read band 1 of a night-light tile."""
    _require(path, "Raster tile")
    with rasterio.open(path) as src:
        if src.crs is None:
            raise SystemExit(f"Raster has no CRS: {path}")
        data = src.read(1)
        return RasterTile(
            data=data,
            transform=src.transform,
            crs=src.crs,
            nodata=src.nodata,
            label=label or path.stem,
        )


def load_tiles(paths: Sequence[Path], label: str) -> List[RasterTile]:
    return [load_tile(p, label=f"{label}:{p.stem}") for p in paths]


# -----------------------------------------------------------------------------
# Vectors
# -----------------------------------------------------------------------------

def load_roads(path: Path, layer: Optional[str] = None, road_class: str = "motorway") -> gpd.GeoDataFrame:
    """Read road segments of one OSM class (fclass)."""
    _require(path, "Roads layer")
    where = f"fclass = {_sql_list([road_class])}"
    roads = gpd.read_file(path, layer=layer, where=where)
    _require_crs(roads, "Roads layer", path)
    print(f"[load] roads ({where}): {len(roads)}")
    return roads


def load_buildings(path: Path, layer: Optional[str] = None, types: Sequence[str] = ()) -> gpd.GeoDataFrame:
    """Read building footprints that are residential or untyped."""
    _require(path, "Buildings layer")
    where = "type IS NULL"
    if types:
        where = f"type IS NULL OR type IN ({_sql_list(types)})"
    buildings = gpd.read_file(path, layer=layer, where=where)
    _require_crs(buildings, "Buildings layer", path)
    print(f"[load] buildings ({where}): {len(buildings)}")
    return _make_valid(buildings)


def load_tracts(gdb: Path, layer: str) -> gpd.GeoDataFrame:
    _require(gdb, "Census geodatabase")
    tracts = gpd.read_file(gdb, layer=layer)
    _require_crs(tracts, f"Tract layer {layer!r}", gdb)
    if tracts.empty:
        raise SystemExit(f"Tract layer {layer!r} in {gdb} contains zero features. Wrong layer?")
    print(f"[load] tracts ({layer}): {len(tracts)}")
    return _make_valid(tracts)


def load_income(gdb: Path, layer: str, key: str, field: str) -> pd.DataFrame:
    """Read the (non-spatial) income table, keeping only the key and value columns."""
    _require(gdb, "Census geodatabase")
    available = list(pyogrio.read_info(gdb, layer=layer)["fields"])
    missing = [c for c in (key, field) if c not in available]
    if missing:
        raise SystemExit(f"Income table {layer!r} lacks columns {missing}. Available: {available[:25]}")
    table = pd.DataFrame(gpd.read_file(gdb, layer=layer, columns=[key, field], ignore_geometry=True))
    print(f"[load] income ({layer}.{field}): {len(table)} row(s)")
    return table[[key, field]].copy()


# -----------------------------------------------------------------------------
# Verify helpers
# -----------------------------------------------------------------------------

def verify_inputs(config: PipelineConfig) -> List[Dict[str, Any]]:
    """Presence check for every configured input. Won't claim correctness, just presence."""
    results = []
    for name, path in config.input_paths().items():
        results.append({"input": name, "ok": path.exists(), "path": str(path)})
    return results

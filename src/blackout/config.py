#!/usr/bin/env python3
"""blackout.config

Shared configuration for the Houston blackout analysis.

The numeric constants below are the defaults of the February 2021 case;
config/houston.yaml can override every one of them. Input paths have no
defaults in code and must come from the YAML.

Design notes:
- YAML loading is strict: files must exist and be valid mappings.
- The study area is given as four lon/lat corners and reduced once to a bbox.
- All functions are pure (no side effects on import).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml


BBox = Tuple[float, float, float, float]


# -----------------------------------------------------------------------------
# Analysis constants
# -----------------------------------------------------------------------------

# Change in night-light radiance (post - pre, nW cm-2 sr-1) at or below which a
# cell counts as a blackout. Anything greater is treated as "no change".
BLACKOUT_THRESHOLD = -200.0

# Exclusion distance around motorways, in meters of the analysis CRS.
HIGHWAY_BUFFER_M = 200.0

# NAD83 / Texas Centric Albers Equal Area
ANALYSIS_CRS = "EPSG:3083"
GEOGRAPHIC_CRS = "EPSG:4326"

# Houston metro, lon/lat
HOUSTON_CORNERS: List[Tuple[float, float]] = [
    (-96.5, 29.0),
    (-96.5, 30.5),
    (-94.5, 30.5),
    (-94.5, 29.0),
]

ROAD_CLASS = "motorway"
RESIDENTIAL_BUILDING_TYPES: Tuple[str, ...] = (
    "residential",
    "apartments",
    "house",
    "static_caravan",
    "detached",
)

# ACS tables key tracts as "14000US" + 11-digit GEOID
GEOID_PREFIX = "14000US"


# -----------------------------------------------------------------------------
# YAML loading
# -----------------------------------------------------------------------------

def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return as dict.

    Raises SystemExit on missing file or invalid format (non-mapping).
    """
    if not path.exists():
        raise SystemExit(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise SystemExit(f"Expected YAML mapping at {path}")
    return data


# -----------------------------------------------------------------------------
# Bounding box utilities
# -----------------------------------------------------------------------------

def coerce_bbox(x: Any) -> Optional[BBox]:
    """Try to coerce [xmin, ymin, xmax, ymax] into a bbox tuple.

    Returns None if input is invalid or missing.
    """
    if x is None:
        return None
    if isinstance(x, (list, tuple)) and len(x) == 4:
        try:
            xmin, ymin, xmax, ymax = map(float, x)
        except (TypeError, ValueError):
            return None
        if xmin >= xmax or ymin >= ymax:
            return None
        return (xmin, ymin, xmax, ymax)
    return None


def bbox_from_corners(corners: Sequence[Sequence[float]]) -> BBox:
    """Reduce a list of (lon, lat) corners to the rectangle that covers them."""
    pts = [tuple(map(float, c)) for c in corners]
    if len(pts) < 2 or any(len(p) != 2 for p in pts):
        raise ValueError(f"Expected a list of (x, y) corners, got: {corners!r}")
    xs = [p[0] for p in pts]
    ys = [p[1] for p in pts]
    bbox = (min(xs), min(ys), max(xs), max(ys))
    if bbox[0] == bbox[2] or bbox[1] == bbox[3]:
        raise ValueError(f"Corners describe a degenerate box: {corners!r}")
    return bbox


def format_bbox(b: BBox, precision: int = 5) -> str:
    """Format a bbox tuple as a readable string."""
    return f"[{b[0]:.{precision}f}, {b[1]:.{precision}f}, {b[2]:.{precision}f}, {b[3]:.{precision}f}]"


# -----------------------------------------------------------------------------
# Pipeline configuration
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class RasterDate:
    date: str
    tiles: Tuple[Path, ...]


@dataclass(frozen=True)
class PipelineConfig:
    pre: RasterDate
    post: RasterDate
    roads_path: Path
    roads_layer: Optional[str]
    buildings_path: Path
    buildings_layer: Optional[str]
    census_gdb: Path
    tract_layer: str
    income_layer: str
    bbox: BBox = field(default_factory=lambda: bbox_from_corners(HOUSTON_CORNERS))
    bbox_crs: str = GEOGRAPHIC_CRS
    analysis_crs: str = ANALYSIS_CRS
    threshold: float = BLACKOUT_THRESHOLD
    buffer_m: float = HIGHWAY_BUFFER_M
    road_class: str = ROAD_CLASS
    building_types: Tuple[str, ...] = RESIDENTIAL_BUILDING_TYPES
    tract_key: str = "GEOID"
    income_key: str = "GEOID"
    income_field: str = "B19013e1"
    geoid_prefix: str = GEOID_PREFIX
    clip_tracts: bool = True

    def input_paths(self) -> Dict[str, Path]:
        """All input files, keyed by a short readable name."""
        paths: Dict[str, Path] = {}
        for i, p in enumerate(self.pre.tiles):
            paths[f"pre_tile_{i}"] = p
        for i, p in enumerate(self.post.tiles):
            paths[f"post_tile_{i}"] = p
        paths["roads"] = self.roads_path
        paths["buildings"] = self.buildings_path
        paths["census_gdb"] = self.census_gdb
        return paths


def _section(data: Dict[str, Any], key: str, path: Path) -> Dict[str, Any]:
    block = data.get(key, {})
    if not isinstance(block, dict):
        raise SystemExit(f"{path}: '{key}:' must be a mapping")
    return block


def _required(block: Dict[str, Any], key: str, where: str) -> Any:
    value = block.get(key)
    if value in (None, ""):
        raise SystemExit(f"Config missing {where}.{key}")
    return value


def _raster_date(block: Dict[str, Any], where: str) -> RasterDate:
    tiles = _required(block, "tiles", where)
    if not isinstance(tiles, list) or not tiles:
        raise SystemExit(f"Config {where}.tiles must be a non-empty list of paths")
    return RasterDate(date=str(_required(block, "date", where)), tiles=tuple(Path(t) for t in tiles))


def load_pipeline_config(path: Path) -> PipelineConfig:
    """Build a PipelineConfig from a YAML file.

    Expects structure like:
        study_area:
          corners: [[-96.5, 29.0], [-96.5, 30.5], [-94.5, 30.5], [-94.5, 29.0]]
        rasters:
          pre:  {date: "2021-02-07", tiles: [...]}
          post: {date: "2021-02-16", tiles: [...]}
        roads:     {path: ..., layer: ...}
        buildings: {path: ..., layer: ...}
        census:    {gdb: ..., tract_layer: ..., income_layer: ...}

    Anything else falls back to the module constants.
    """
    data = load_yaml(path)

    area = _section(data, "study_area", path)
    rasters = _section(data, "rasters", path)
    roads = _section(data, "roads", path)
    buildings = _section(data, "buildings", path)
    census = _section(data, "census", path)
    analysis = _section(data, "analysis", path)

    bbox = coerce_bbox(area.get("bounds"))
    if bbox is None:
        corners = area.get("corners", HOUSTON_CORNERS)
        try:
            bbox = bbox_from_corners(corners)
        except (TypeError, ValueError) as e:
            raise SystemExit(f"{path}: invalid study_area corners: {e}") from e

    if not isinstance(rasters.get("pre"), dict) or not isinstance(rasters.get("post"), dict):
        raise SystemExit(f"{path}: rasters must define 'pre:' and 'post:' mappings")

    types = buildings.get("types", list(RESIDENTIAL_BUILDING_TYPES))
    if not isinstance(types, list):
        raise SystemExit(f"{path}: buildings.types must be a list")

    try:
        threshold = float(analysis.get("threshold", BLACKOUT_THRESHOLD))
        buffer_m = float(analysis.get("buffer_m", HIGHWAY_BUFFER_M))
    except (TypeError, ValueError) as e:
        raise SystemExit(f"{path}: analysis.threshold and analysis.buffer_m must be numbers") from e
    if buffer_m <= 0:
        raise SystemExit(f"{path}: analysis.buffer_m must be positive (got {buffer_m})")

    return PipelineConfig(
        pre=_raster_date(rasters["pre"], "rasters.pre"),
        post=_raster_date(rasters["post"], "rasters.post"),
        roads_path=Path(_required(roads, "path", "roads")),
        roads_layer=roads.get("layer"),
        buildings_path=Path(_required(buildings, "path", "buildings")),
        buildings_layer=buildings.get("layer"),
        census_gdb=Path(_required(census, "gdb", "census")),
        tract_layer=str(_required(census, "tract_layer", "census")),
        income_layer=str(_required(census, "income_layer", "census")),
        bbox=bbox,
        bbox_crs=str(area.get("crs", GEOGRAPHIC_CRS)),
        analysis_crs=str(analysis.get("crs", ANALYSIS_CRS)),
        threshold=threshold,
        buffer_m=buffer_m,
        road_class=str(roads.get("class", ROAD_CLASS)),
        building_types=tuple(str(t) for t in types),
        tract_key=str(census.get("tract_key", "GEOID")),
        income_key=str(census.get("income_key", "GEOID")),
        income_field=str(census.get("income_field", "B19013e1")),
        geoid_prefix=str(census.get("geoid_prefix", GEOID_PREFIX)),
        clip_tracts=bool(census.get("clip_to_study_area", True)),
    )


# -----------------------------------------------------------------------------
# Default paths
# -----------------------------------------------------------------------------

DEFAULT_CONFIG_YAML = Path("config/houston.yaml")
DEFAULT_OUT_DIR = Path("outputs")

#!/usr/bin/env python3
"""joins.py

Spatial joins between the filtered blackout mask, residential buildings and
census tracts.

Two questions are answered here:
1. Which homes sit inside the blackout mask? (buildings x mask)
2. Which census tracts contain at least one of those homes? (tracts x homes)

Question 2 is answered twice, once with a boolean flag computed against the
union of affected buildings and once with a spatial join, and the two
answers must agree.

Notes:
- ACS tables key tracts as "14000US48201..." while some layers use the bare
  11-digit GEOID. Keys are normalized before the income join so both forms match.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Tuple

import geopandas as gpd
import pandas as pd
from shapely.geometry import box

from blackout.checks import (
    CheckResult,
    check_crs_match,
    check_flag_reconciles,
    check_join_keys,
    check_partition,
    enforce,
    same_crs,
)
from blackout.geo.blackout_mask import reproject_layer


BBox = Tuple[float, float, float, float]


@dataclass
class BuildingJoinResult:
    affected: gpd.GeoDataFrame
    unaffected: gpd.GeoDataFrame
    checks: List[CheckResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.affected) + len(self.unaffected)


@dataclass
class TractJoinResult:
    tracts: gpd.GeoDataFrame
    filtered: gpd.GeoDataFrame
    checks: List[CheckResult] = field(default_factory=list)

    @property
    def affected(self) -> gpd.GeoDataFrame:
        return self.tracts[self.tracts["affected"]]

    @property
    def unaffected(self) -> gpd.GeoDataFrame:
        return self.tracts[~self.tracts["affected"]]


# -----------------------------------------------------------------------------
# Buildings
# -----------------------------------------------------------------------------

def find_affected_buildings(
    buildings: gpd.GeoDataFrame,
    blackout: gpd.GeoDataFrame,
    analysis_crs: Any,
) -> BuildingJoinResult:
    """Split buildings into those touching the blackout mask and the rest."""
    print(f"[buildings] {len(buildings)} residential building(s)")
    checks: List[CheckResult] = []

    b = reproject_layer(buildings, analysis_crs)
    checks.append(enforce(check_crs_match(b.crs, blackout.crs, name="buildings_crs")))

    mask = blackout.geometry.union_all()
    affected = b[b.intersects(mask)].copy()
    unaffected = b[b.disjoint(mask)].copy()
    checks.append(enforce(check_partition(b.index, affected.index, unaffected.index, name="building_partition")))

    print(f"  - affected: {len(affected)}, unaffected: {len(unaffected)}")
    return BuildingJoinResult(affected=affected, unaffected=unaffected, checks=checks)


# -----------------------------------------------------------------------------
# Census tracts
# -----------------------------------------------------------------------------

def normalize_geoid(x, prefix: str = "14000US") -> str:
    """Normalize a tract identifier to the bare GEOID.

    Handles "14000US48201100000", " 48201100000 ", and numbers.
    Returns empty string for missing inputs.
    """
    if x is None or (isinstance(x, float) and pd.isna(x)):
        return ""
    s = str(x).strip()
    if prefix and s.startswith(prefix):
        s = s[len(prefix):]
    return s


def join_income(
    tracts: gpd.GeoDataFrame,
    income: pd.DataFrame,
    *,
    tract_key: str,
    income_key: str,
    income_field: str,
    prefix: str = "14000US",
) -> gpd.GeoDataFrame:
    """Attach median household income to tract polygons, one row per tract.

    Both key sets must be identical after normalization; a dangling key on
    either side stops the run.
    """
    for col, frame, what in ((tract_key, tracts, "tracts"), (income_key, income, "income"), (income_field, income, "income")):
        if col not in frame.columns:
            raise SystemExit(f"Column {col!r} not found in {what}. Available columns: {list(frame.columns)}")

    left = gpd.GeoDataFrame(
        {"GEOID": tracts[tract_key].map(lambda v: normalize_geoid(v, prefix))},
        geometry=tracts.geometry,
    )
    right = pd.DataFrame({
        "GEOID": income[income_key].map(lambda v: normalize_geoid(v, prefix)),
        "median_income": pd.to_numeric(income[income_field], errors="coerce"),
    })

    for frame, what in ((left, "tracts"), (right, "income")):
        dupes = frame["GEOID"][frame["GEOID"].duplicated()].unique().tolist()
        if dupes:
            raise SystemExit(f"Duplicate tract ids in {what}: {dupes[:10]}")

    enforce(check_join_keys(left["GEOID"], right["GEOID"], name="income_join_keys"))

    out = left.merge(right, on="GEOID", how="inner", validate="one_to_one")
    print(f"[tracts] joined income for {len(out)} tract(s) ({int(out['median_income'].isna().sum())} without income)")
    return out


def clip_tracts(tracts: gpd.GeoDataFrame, bbox: BBox, bbox_crs: Any) -> gpd.GeoDataFrame:
    """Keep whole tracts that touch the study area."""
    area = gpd.GeoSeries([box(*bbox)], crs=bbox_crs)
    if not same_crs(area.crs, tracts.crs):
        area = area.to_crs(tracts.crs)
    out = tracts[tracts.intersects(area.iloc[0])].copy()
    print(f"  - tracts in study area: {len(out)} of {len(tracts)}")
    return out


def flag_affected_tracts(
    tracts: gpd.GeoDataFrame,
    affected_buildings: gpd.GeoDataFrame,
    analysis_crs: Any,
) -> TractJoinResult:
    """Add a boolean `affected` column and cross-check it with a spatial join."""
    checks: List[CheckResult] = []

    t = reproject_layer(tracts, analysis_crs).copy()
    checks.append(enforce(check_crs_match(t.crs, affected_buildings.crs, name="tracts_crs")))

    homes = affected_buildings.geometry.union_all()
    t["affected"] = t.intersects(homes).astype(bool)

    hits = gpd.sjoin(t, affected_buildings[[affected_buildings.geometry.name]], how="inner", predicate="intersects")
    filtered = t.loc[hits.index.unique()]
    checks.append(enforce(check_flag_reconciles(t.index[t["affected"]], filtered.index, name="tract_flag_reconciles")))

    print(f"  - affected tracts: {int(t['affected'].sum())} of {len(t)}")
    return TractJoinResult(tracts=t, filtered=filtered, checks=checks)

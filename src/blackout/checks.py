#!/usr/bin/env python3
"""blackout.checks

Named sanity checks for the blackout pipeline.

Every check returns a CheckResult instead of printing or raising, so the
pipeline stages can decide what to do with it and tests can assert on it.
`enforce()` applies the two-tier policy:

- fatal checks that fail raise SystemExit (CRS mismatches, bad joins,
  broken partitions). Continuing would compare incompatible geometries.
- advisory checks that fail print a warning and the run continues
  (extent drift after merge, bounds drift after vectorizing).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

import numpy as np
from pyproj import CRS


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    fatal: bool
    message: str


def enforce(result: CheckResult, verbose: bool = False) -> CheckResult:
    """Halt on a failed fatal check, warn on a failed advisory one."""
    if result.ok:
        if verbose:
            print(f"  - ok: {result.name}")
        return result
    if result.fatal:
        raise SystemExit(f"Check failed: {result.name}\n{result.message}")
    print(f"  - warning: {result.name}: {result.message}")
    return result


def same_crs(a: Any, b: Any) -> bool:
    if a is None or b is None:
        return False
    return CRS.from_user_input(a) == CRS.from_user_input(b)


# -----------------------------------------------------------------------------
# Raster checks
# -----------------------------------------------------------------------------

def check_crs_match(a: Any, b: Any, name: str = "crs_match", fatal: bool = True) -> CheckResult:
    ok = same_crs(a, b)
    msg = "CRS match" if ok else f"CRS differ:\n  left:  {a}\n  right: {b}"
    return CheckResult(name, ok, fatal, msg)


def check_merged_rows(merged_height: int, tile_heights: Sequence[int]) -> CheckResult:
    """Tiles are stacked north to south, so rows add up exactly."""
    expected = int(sum(tile_heights))
    ok = int(merged_height) == expected
    msg = f"merged rows {merged_height}, tile rows {list(tile_heights)} (sum {expected})"
    return CheckResult("merged_rows", ok, True, msg)


def check_extent_match(a: Sequence[float], b: Sequence[float], name: str = "extent_match") -> CheckResult:
    ok = all(math.isclose(x, y, rel_tol=0.0, abs_tol=1e-9) for x, y in zip(a, b))
    msg = f"extents {tuple(a)} vs {tuple(b)}"
    return CheckResult(name, ok, False, msg)


def check_threshold_applied(data: np.ndarray, threshold: float) -> CheckResult:
    """No defined cell may sit above the threshold after masking."""
    values = np.asarray(data, dtype="float64")
    above = int(np.count_nonzero(values[~np.isnan(values)] > threshold))
    ok = above == 0
    msg = f"{above} cell(s) above threshold {threshold} survived masking"
    return CheckResult("threshold_applied", ok, True, msg)


def check_bound_within(limit: float, actual: float, tolerance: float, name: str = "bound_within") -> CheckResult:
    """Vectorizing cells can push an edge slightly past the crop box."""
    overshoot = float(actual) - float(limit)
    ok = overshoot <= tolerance
    msg = f"limit {limit:.6f}, got {actual:.6f} (overshoot {overshoot:.6g}, tolerance {tolerance:.6g})"
    return CheckResult(name, ok, False, msg)


# -----------------------------------------------------------------------------
# Vector checks
# -----------------------------------------------------------------------------

def check_projected_metric(crs: Any) -> CheckResult:
    """Buffering in degrees silently produces wrong distances."""
    if crs is None:
        return CheckResult("projected_metric", False, True, "layer has no CRS")
    c = CRS.from_user_input(crs)
    units = {a.unit_name.lower() for a in c.axis_info}
    ok = c.is_projected and units <= {"metre", "meter", "m"}
    msg = f"{c.to_string()} projected={c.is_projected} units={sorted(units)}"
    return CheckResult("projected_metric", ok, True, msg)


def check_partition(total: Iterable, part_a: Iterable, part_b: Iterable, name: str = "partition") -> CheckResult:
    """part_a and part_b must be disjoint and together cover total exactly."""
    total_ids = list(total)
    a = set(part_a)
    b = set(part_b)
    overlap = a & b
    covered = a | b
    counts_ok = len(total_ids) == len(a) + len(b)
    ok = counts_ok and not overlap and covered == set(total_ids)
    msg = (
        f"total={len(total_ids)} parts={len(a)}+{len(b)} "
        f"overlap={len(overlap)} uncovered={len(set(total_ids) - covered)}"
    )
    return CheckResult(name, ok, True, msg)


def check_join_keys(left: Iterable, right: Iterable, name: str = "join_keys") -> CheckResult:
    lk = set(left)
    rk = set(right)
    only_left = sorted(lk - rk)
    only_right = sorted(rk - lk)
    ok = not only_left and not only_right
    msg = (
        f"{len(lk)} left keys, {len(rk)} right keys; "
        f"only in left: {only_left[:10]} ({len(only_left)}), "
        f"only in right: {only_right[:10]} ({len(only_right)})"
    )
    return CheckResult(name, ok, True, msg)


def check_flag_reconciles(flagged: Iterable, filtered: Iterable, name: str = "flag_reconciles") -> CheckResult:
    """Two derivations of "affected" must pick the same tracts."""
    f1 = set(flagged)
    f2 = set(filtered)
    ok = f1 == f2
    msg = f"flagged={len(f1)} filtered={len(f2)} differ={len(f1 ^ f2)}"
    return CheckResult(name, ok, True, msg)

"""CRS normalization and bounds reprojection."""

from __future__ import annotations

from functools import lru_cache
from typing import Tuple

from pyproj import CRS, Transformer

Bounds = Tuple[float, float, float, float]

LATLNG = "EPSG:4326"
WEB_MERCATOR = "EPSG:3857"


def normalize_crs(value: str | CRS) -> CRS:
    """Normalize CRS input into a pyproj CRS object."""
    return CRS.from_user_input(value)


@lru_cache(maxsize=64)
def _cached_transformer(src: str, dst: str) -> Transformer:
    return Transformer.from_crs(normalize_crs(src), normalize_crs(dst), always_xy=True)


def transformer(src: str | CRS, dst: str | CRS) -> Transformer:
    """Return an x/y ordered transformer, cached for string inputs."""
    if isinstance(src, str) and isinstance(dst, str):
        return _cached_transformer(src, dst)
    return Transformer.from_crs(normalize_crs(src), normalize_crs(dst), always_xy=True)


def same_crs(left: str | CRS, right: str | CRS) -> bool:
    if left == right:
        return True
    return normalize_crs(left) == normalize_crs(right)


def transform_bounds(
    bounds: Bounds,
    src: str | CRS,
    dst: str | CRS,
    *,
    densify_pts: int = 0,
) -> Bounds:
    """Return the envelope of ``bounds`` in ``dst``, densifying each edge."""
    if same_crs(src, dst):
        return bounds
    minx, miny, maxx, maxy = transformer(src, dst).transform_bounds(
        *bounds, densify_pts=densify_pts
    )
    return (minx, miny, maxx, maxy)

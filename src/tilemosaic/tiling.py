"""Web-mercator tile math and bounding box parsing."""

from __future__ import annotations

import math
from typing import Tuple

from tilemosaic.crs import LATLNG, WEB_MERCATOR, transform_bounds

Bounds = Tuple[float, float, float, float]

ORIGIN_SHIFT = math.pi * 6378137.0


def tile_bounds(zoom: int, col: int, row: int) -> Bounds:
    """Return web-mercator bounds of a z/x/y tile (row 0 is the northern row)."""
    if zoom < 0:
        raise ValueError(f"Invalid zoom: {zoom}")
    count = 1 << zoom
    if not (0 <= col < count and 0 <= row < count):
        raise ValueError(f"Tile {col}/{row} is outside zoom {zoom}")
    size = 2 * ORIGIN_SHIFT / count
    min_x = -ORIGIN_SHIFT + col * size
    max_y = ORIGIN_SHIFT - row * size
    return (min_x, max_y - size, min_x + size, max_y)


def parse_bbox(text: str) -> Bounds:
    """Parse ``xmin,ymin,xmax,ymax`` into a bounds tuple."""
    parts = [part.strip() for part in text.split(",")]
    if len(parts) != 4:
        raise ValueError(f"Expected four comma separated values, got {len(parts)}: {text!r}")
    try:
        xmin, ymin, xmax, ymax = (float(part) for part in parts)
    except ValueError as exc:
        raise ValueError(f"Invalid bbox coordinate in {text!r}") from exc
    if not all(math.isfinite(value) for value in (xmin, ymin, xmax, ymax)):
        raise ValueError(f"Bbox coordinates must be finite: {text!r}")
    if xmin >= xmax or ymin >= ymax:
        raise ValueError(f"Bbox minimums must be below maximums: {text!r}")
    return (xmin, ymin, xmax, ymax)


def bbox_to_web_mercator(bounds: Bounds, src_crs: str = LATLNG) -> Bounds:
    """Reproject a bounding box into web mercator."""
    return transform_bounds(bounds, src_crs, WEB_MERCATOR, densify_pts=21)

"""Write rendered mosaic tiles to disk with rasterio."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import numpy as np
import rasterio
from rasterio.transform import from_bounds

from tilemosaic.crs import WEB_MERCATOR
from tilemosaic.models import Bounds, Tile

LOGGER = logging.getLogger(__name__)

PNG_DTYPES = (np.dtype("uint8"), np.dtype("uint16"))


def driver_for(path: Path) -> str:
    """Return the GDAL driver implied by an output suffix."""
    return "PNG" if path.suffix.lower() == ".png" else "GTiff"


def write_tile(
    path: Path,
    tile: Tile,
    *,
    bounds: Bounds | None = None,
    crs: str = WEB_MERCATOR,
) -> Path:
    """Write a tile as PNG or GeoTIFF; GeoTIFFs are georeferenced when bounds are given."""
    driver = driver_for(path)
    if driver == "PNG" and tile.data.dtype not in PNG_DTYPES:
        raise ValueError(
            f"PNG output needs 8 or 16 bit data, got {tile.data.dtype}; write a .tif instead."
        )
    meta: dict[str, Any] = {
        "driver": driver,
        "height": tile.rows,
        "width": tile.cols,
        "count": tile.band_count,
        "dtype": tile.data.dtype.name,
    }
    if driver == "GTiff":
        meta["nodata"] = tile.nodata
        if bounds is not None:
            meta["crs"] = crs
            meta["transform"] = from_bounds(*bounds, width=tile.cols, height=tile.rows)
    path.parent.mkdir(parents=True, exist_ok=True)
    with rasterio.open(path, "w", **meta) as dest:
        dest.write(tile.data)
    LOGGER.info("Wrote %s band %s tile to %s", tile.band_count, driver, path)
    return path

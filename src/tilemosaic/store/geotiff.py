"""GeoTIFF pyramid store read with rasterio.

Layout beneath the store root::

    {layer}/{zoom}/metadata.json
    {layer}/{zoom}/histogram.json
    {layer}/{zoom}/{col}/{row}.tif
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np
import rasterio
from rasterio.enums import Resampling
from rasterio.transform import from_bounds
from rasterio.warp import reproject

from tilemosaic.histogram import Histogram, histograms_from_payload
from tilemosaic.models import Bounds, LayerMetadata, SpatialKey, Tile

LOGGER = logging.getLogger(__name__)

METADATA_NAME = "metadata.json"
HISTOGRAM_NAME = "histogram.json"


def _resampling(method: str) -> Resampling:
    """Return rasterio resampling enum for a method string."""
    return Resampling[method]


def fill_value(metadata: LayerMetadata) -> float:
    """Return the value used for pixels without data in a layer."""
    if metadata.nodata is not None:
        return metadata.nodata
    if np.issubdtype(np.dtype(metadata.dtype), np.floating):
        return float("nan")
    return 0.0


class GeoTiffPyramidStore:
    """Attribute and tile store over a directory of GeoTIFF pyramids."""

    def __init__(self, root: Path, *, resampling: str = "nearest") -> None:
        self.root = Path(root)
        self.resampling = _resampling(resampling)

    def _zoom_dir(self, layer_id: str, zoom: int) -> Path:
        return self.root / layer_id / str(zoom)

    def tile_path(self, layer_id: str, zoom: int, key: SpatialKey) -> Path:
        return self._zoom_dir(layer_id, zoom) / str(key.col) / f"{key.row}.tif"

    def indexed_zooms(self, layer_id: str) -> list[int]:
        """Return sorted zoom levels that carry layer metadata."""
        layer_dir = self.root / layer_id
        if not layer_dir.is_dir():
            return []
        zooms = []
        for child in layer_dir.iterdir():
            if child.is_dir() and child.name.isdigit() and (child / METADATA_NAME).exists():
                zooms.append(int(child.name))
        return sorted(zooms)

    def max_zoom(self, layer_id: str) -> int | None:
        zooms = self.indexed_zooms(layer_id)
        return zooms[-1] if zooms else None

    def read_metadata(self, layer_id: str, zoom: int) -> LayerMetadata:
        path = self._zoom_dir(layer_id, zoom) / METADATA_NAME
        payload = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Layer metadata must be a JSON object: {path}")
        return LayerMetadata.from_dict(payload)

    def read_histogram(self, layer_id: str, zoom: int) -> tuple[Histogram, ...] | None:
        path = self._zoom_dir(layer_id, zoom) / HISTOGRAM_NAME
        if not path.exists():
            LOGGER.debug("No histogram for layer %s at zoom %s", layer_id, zoom)
            return None
        return histograms_from_payload(json.loads(path.read_text(encoding="utf-8")))

    def read_tile(self, layer_id: str, zoom: int, key: SpatialKey) -> Tile | None:
        path = self.tile_path(layer_id, zoom, key)
        if not path.exists():
            return None
        with rasterio.open(path) as dataset:
            return Tile(dataset.read(), dataset.nodata)

    def read_tile_for_extent(
        self,
        layer_id: str,
        zoom: int,
        extent: Bounds,
        shape: tuple[int, int],
        *,
        dst_extent: Bounds | None = None,
        dst_crs: str | None = None,
    ) -> Tile | None:
        """Warp the tiles intersecting ``extent`` onto a grid of the given shape.

        ``extent`` is in the layer CRS and selects the source tiles. The output
        grid spans ``dst_extent`` in ``dst_crs`` when given, else ``extent`` in
        the layer CRS. Returns None when no source tile was read.
        """
        metadata = self.read_metadata(layer_id, zoom)
        rows, cols = shape
        nodata = fill_value(metadata)
        dtype = np.dtype(metadata.dtype)
        if np.isnan(nodata) and not np.issubdtype(dtype, np.floating):
            dtype = np.dtype("float32")
        grid_crs = dst_crs or metadata.crs
        grid_extent = dst_extent if dst_extent is not None else extent
        destination = np.full((metadata.band_count, rows, cols), nodata, dtype=dtype)
        dst_transform = from_bounds(*grid_extent, width=cols, height=rows)
        warped = 0
        for key in metadata.keys_for_extent(extent):
            path = self.tile_path(layer_id, zoom, key)
            if not path.exists():
                continue
            with rasterio.open(path) as src:
                src_nodata = src.nodata if src.nodata is not None else metadata.nodata
                for band in range(1, min(src.count, metadata.band_count) + 1):
                    reproject(
                        source=src.read(band),
                        destination=destination[band - 1],
                        src_transform=src.transform,
                        src_crs=src.crs or metadata.crs,
                        dst_transform=dst_transform,
                        dst_crs=grid_crs,
                        resampling=self.resampling,
                        src_nodata=src_nodata,
                        dst_nodata=nodata,
                        init_dest_nodata=False,
                    )
            warped += 1
        if not warped:
            LOGGER.debug("No tiles of layer %s at zoom %s intersect %s", layer_id, zoom, extent)
            return None
        return Tile(destination, nodata)

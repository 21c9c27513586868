"""Per-layer tile reads: one spatial key with zoom fallback, or an extent."""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from tilemosaic.cache import LayerCache
from tilemosaic.crs import WEB_MERCATOR, transform_bounds
from tilemosaic.histogram import Histogram
from tilemosaic.metadata import MetadataResolver
from tilemosaic.models import TILE_SIZE, Bounds, LayerMetadata, SpatialKey, Tile
from tilemosaic.pools import WorkerPool
from tilemosaic.result import Deferred, Result

LOGGER = logging.getLogger(__name__)

TileWithHistogram = Tuple[Tile, Tuple[Histogram, ...]]


def source_key(col: int, row: int, factor: int) -> SpatialKey:
    """Return the coarser key holding the requested key."""
    return SpatialKey(col // factor, row // factor)


def crop_and_resample(
    tile: Tile,
    factor: int,
    inner_col: int,
    inner_row: int,
    size: int = TILE_SIZE,
) -> Tile:
    """Crop one ``factor``-th sub-square of a tile and upsample it (nearest).

    Pixel centers of the output are mapped back into the source window, so any
    factor yields a full ``size`` x ``size`` tile, including factors larger than
    the source tile width.
    """
    if factor == 1 and tile.shape == (size, size):
        return tile
    rows, cols = tile.shape
    centers = (np.arange(size, dtype=np.float64) + 0.5) / size
    row_index = np.floor((inner_row + centers) * rows / factor).astype(np.intp)
    col_index = np.floor((inner_col + centers) * cols / factor).astype(np.intp)
    row_index = np.clip(row_index, 0, rows - 1)
    col_index = np.clip(col_index, 0, cols - 1)
    return Tile(tile.data[:, row_index[:, np.newaxis], col_index[np.newaxis, :]], tile.nodata)


class TileFetcher:
    """Fetch a layer tile at a requested key, falling back to coarser zooms."""

    def __init__(
        self,
        resolver: MetadataResolver,
        cache: LayerCache,
        pool: WorkerPool,
        *,
        tile_size: int = TILE_SIZE,
    ) -> None:
        self.resolver = resolver
        self.cache = cache
        self.pool = pool
        self.tile_size = tile_size

    def fetch(self, layer_id: str, zoom: int, col: int, row: int) -> Result[Tile]:
        """Return the tile covering ``zoom/col/row``, or empty when the layer has none."""
        return self.resolver.resolve(layer_id, zoom).flat_map(
            lambda resolved: self._fetch_resolved(layer_id, zoom, col, row, *resolved)
        )

    def _fetch_resolved(
        self,
        layer_id: str,
        zoom: int,
        col: int,
        row: int,
        source_zoom: int,
        metadata: LayerMetadata,
    ) -> Result[Tile]:
        factor = 1 << (zoom - source_zoom)
        key = source_key(col, row, factor)
        LOGGER.debug(
            "Requesting layer tile (layer: %s, zoom: %s, col: %s, row: %s, sourceZoom: %s)",
            layer_id,
            zoom,
            col,
            row,
            source_zoom,
        )
        if not metadata.key_bounds.includes(key):
            return Result.empty()
        tile = self.cache.tile(layer_id, source_zoom, key)
        if tile is None:
            return Result.empty()
        return Result.found(
            crop_and_resample(tile, factor, col % factor, row % factor, self.tile_size)
        )

    def fetch_histogram(self, layer_id: str, zoom: int) -> Result[tuple[Histogram, ...]]:
        return self.resolver.resolve_histogram(layer_id, zoom)

    def fetch_async(self, layer_id: str, zoom: int, col: int, row: int) -> Deferred[Tile]:
        return self.pool.submit(self.fetch, layer_id, zoom, col, row)

    def fetch_histogram_async(self, layer_id: str, zoom: int) -> Deferred[tuple[Histogram, ...]]:
        return self.pool.submit(self.fetch_histogram, layer_id, zoom)

    def fetch_with_histogram_async(
        self, layer_id: str, zoom: int, col: int, row: int
    ) -> Deferred[TileWithHistogram]:
        """Fetch a tile and the layer histogram concurrently, paired."""
        return self.fetch_async(layer_id, zoom, col, row).zip(
            self.fetch_histogram_async(layer_id, zoom)
        )


class ExtentFetcher:
    """Fetch a layer's data over an extent together with its histogram."""

    def __init__(
        self,
        resolver: MetadataResolver,
        cache: LayerCache,
        pool: WorkerPool,
        *,
        tile_size: int = TILE_SIZE,
    ) -> None:
        self.resolver = resolver
        self.cache = cache
        self.pool = pool
        self.tile_size = tile_size

    def fetch_for_extent(
        self,
        layer_id: str,
        zoom: int,
        extent: Bounds | None = None,
        extent_crs: str = WEB_MERCATOR,
    ) -> Result[TileWithHistogram]:
        """Return ``(tile, histogram)`` over an extent, or the full layout extent."""
        return self.resolver.resolve(layer_id, zoom).flat_map(
            lambda resolved: self._fetch_resolved(layer_id, extent, extent_crs, *resolved)
        )

    def _fetch_resolved(
        self,
        layer_id: str,
        extent: Bounds | None,
        extent_crs: str,
        source_zoom: int,
        metadata: LayerMetadata,
    ) -> Result[TileWithHistogram]:
        if extent is None:
            layer_extent = metadata.layout_extent
            grid: dict[str, object] = {}
        else:
            layer_extent = transform_bounds(extent, extent_crs, metadata.crs, densify_pts=21)
            grid = {"dst_extent": extent, "dst_crs": extent_crs}
        LOGGER.debug(
            "Requesting extent tile (layer: %s, sourceZoom: %s, extent: %s)",
            layer_id,
            source_zoom,
            layer_extent,
        )
        histogram = Result.of_optional(self.cache.histogram(layer_id, source_zoom))
        if not histogram.is_found:
            return histogram  # type: ignore[return-value]
        tile = self.cache.tile_for_extent(
            layer_id,
            source_zoom,
            layer_extent,
            (self.tile_size, self.tile_size),
            **grid,
        )
        return Result.of_optional(tile).zip(histogram)

    def fetch_for_extent_async(
        self,
        layer_id: str,
        zoom: int,
        extent: Bounds | None = None,
        extent_crs: str = WEB_MERCATOR,
    ) -> Deferred[TileWithHistogram]:
        return self.pool.submit(self.fetch_for_extent, layer_id, zoom, extent, extent_crs)

"""Read-only stores backing the mosaic pipeline."""

from tilemosaic.store.base import AttributeStore, CacheBackend, TileStore
from tilemosaic.store.geotiff import GeoTiffPyramidStore

__all__ = ["AttributeStore", "CacheBackend", "GeoTiffPyramidStore", "TileStore"]

"""Interfaces of the read-only stores backing the mosaic pipeline."""

from __future__ import annotations

from typing import Protocol

from tilemosaic.histogram import Histogram
from tilemosaic.models import Bounds, LayerMetadata, SpatialKey, Tile


class AttributeStore(Protocol):
    """Pyramid attributes: indexed zooms, layout metadata, histograms."""

    def max_zoom(self, layer_id: str) -> int | None:
        ...

    def read_metadata(self, layer_id: str, zoom: int) -> LayerMetadata:
        ...

    def read_histogram(self, layer_id: str, zoom: int) -> tuple[Histogram, ...] | None:
        ...


class TileStore(Protocol):
    """Tile reads by spatial key or by extent."""

    def read_tile(self, layer_id: str, zoom: int, key: SpatialKey) -> Tile | None:
        ...

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
        ...


class CacheBackend(Protocol):
    """Byte-valued key/value cache."""

    def get(self, key: str) -> bytes | None:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...

"""Cache-aside layer in front of the attribute and tile stores.

Pyramids are immutable once ingested, so entries are never invalidated. A miss
(including an entry the backend evicted or one that no longer decodes) always
falls back to the store and repopulates the cache.
"""

from __future__ import annotations

import io
import json
import logging
import threading
import zipfile
from dataclasses import dataclass
from typing import Callable, TypeVar

import numpy as np

from tilemosaic.histogram import Histogram, histograms_from_payload, histograms_to_payload
from tilemosaic.models import Bounds, LayerMetadata, SpatialKey, Tile
from tilemosaic.store.base import AttributeStore, CacheBackend, TileStore

T = TypeVar("T")

LOGGER = logging.getLogger(__name__)

_MISSING = b"null"
_DECODE_ERRORS = (
    KeyError,
    OSError,
    TypeError,
    ValueError,
    zipfile.BadZipFile,
)


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache hit and miss counters."""

    hits: int
    misses: int

    @property
    def requests(self) -> int:
        return self.hits + self.misses


def encode_tile(tile: Tile | None) -> bytes:
    """Serialize a tile (or its absence) to bytes."""
    if tile is None:
        return _MISSING
    buffer = io.BytesIO()
    nodata = np.nan if tile.nodata is None else tile.nodata
    np.savez(
        buffer,
        data=tile.data,
        nodata=np.array(nodata, dtype=np.float64),
        has_nodata=np.array(tile.nodata is not None),
    )
    return buffer.getvalue()


def decode_tile(payload: bytes) -> Tile | None:
    """Deserialize bytes written by :func:`encode_tile`."""
    if payload == _MISSING:
        return None
    with np.load(io.BytesIO(payload), allow_pickle=False) as archive:
        data = archive["data"]
        nodata = float(archive["nodata"]) if bool(archive["has_nodata"]) else None
    return Tile(data, nodata)


def _encode_json(value: object) -> bytes:
    return json.dumps(value, sort_keys=True).encode("utf-8")


def _decode_json(payload: bytes) -> object:
    return json.loads(payload.decode("utf-8"))


def _format_extent(extent: Bounds) -> str:
    return ",".join(repr(float(value)) for value in extent)


class LayerCache:
    """Cache-aside reads of max zooms, metadata, histograms, and tiles."""

    def __init__(
        self,
        attributes: AttributeStore,
        tiles: TileStore,
        backend: CacheBackend,
        *,
        prefix: str = "tilemosaic",
    ) -> None:
        self.attributes = attributes
        self.tiles = tiles
        self.backend = backend
        self.prefix = prefix
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses)

    def _count(self, hit: bool) -> None:
        with self._lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1

    def key(self, *parts: object) -> str:
        return ":".join([self.prefix, *(str(part) for part in parts)])

    def _lookup(
        self,
        key: str,
        load: Callable[[], T],
        encode: Callable[[T], bytes],
        decode: Callable[[bytes], T],
    ) -> T:
        try:
            payload = self.backend.get(key)
        except OSError as exc:
            LOGGER.warning("Cache read failed for %s: %s", key, exc)
            payload = None
        if payload is not None:
            try:
                value = decode(payload)
            except _DECODE_ERRORS as exc:
                LOGGER.warning("Discarding undecodable cache entry %s: %s", key, exc)
            else:
                self._count(True)
                return value
        self._count(False)
        value = load()
        try:
            self.backend.set(key, encode(value))
        except OSError as exc:
            LOGGER.warning("Cache write failed for %s: %s", key, exc)
        return value

    def max_zoom(self, layer_id: str) -> int | None:
        """Return the highest indexed zoom of a layer, if any."""

        def _decode(payload: bytes) -> int | None:
            value = _decode_json(payload)
            if value is None:
                return None
            if not isinstance(value, int):
                raise ValueError("Cached max zoom must be an integer.")
            return value

        return self._lookup(
            self.key("maxzoom", layer_id),
            lambda: self.attributes.max_zoom(layer_id),
            _encode_json,
            _decode,
        )

    def metadata(self, layer_id: str, zoom: int) -> LayerMetadata:
        def _decode(payload: bytes) -> LayerMetadata:
            value = _decode_json(payload)
            if not isinstance(value, dict):
                raise ValueError("Cached metadata must be an object.")
            return LayerMetadata.from_dict(value)

        return self._lookup(
            self.key("metadata", layer_id, zoom),
            lambda: self.attributes.read_metadata(layer_id, zoom),
            lambda value: _encode_json(value.to_dict()),
            _decode,
        )

    def histogram(self, layer_id: str, zoom: int) -> tuple[Histogram, ...] | None:
        def _encode(value: tuple[Histogram, ...] | None) -> bytes:
            if value is None:
                return _MISSING
            return _encode_json(histograms_to_payload(value))

        def _decode(payload: bytes) -> tuple[Histogram, ...] | None:
            value = _decode_json(payload)
            return None if value is None else histograms_from_payload(value)

        return self._lookup(
            self.key("histogram", layer_id, zoom),
            lambda: self.attributes.read_histogram(layer_id, zoom),
            _encode,
            _decode,
        )

    def tile(self, layer_id: str, zoom: int, key: SpatialKey) -> Tile | None:
        return self._lookup(
            self.key("tile", layer_id, zoom, key.col, key.row),
            lambda: self.tiles.read_tile(layer_id, zoom, key),
            encode_tile,
            decode_tile,
        )

    def tile_for_extent(
        self,
        layer_id: str,
        zoom: int,
        extent: Bounds,
        shape: tuple[int, int],
        *,
        dst_extent: Bounds | None = None,
        dst_crs: str | None = None,
    ) -> Tile | None:
        grid = "layer" if dst_extent is None else f"{dst_crs}:{_format_extent(dst_extent)}"
        return self._lookup(
            self.key(
                "extent",
                layer_id,
                zoom,
                _format_extent(extent),
                f"{shape[0]}x{shape[1]}",
                grid,
            ),
            lambda: self.tiles.read_tile_for_extent(
                layer_id, zoom, extent, shape, dst_extent=dst_extent, dst_crs=dst_crs
            ),
            encode_tile,
            decode_tile,
        )

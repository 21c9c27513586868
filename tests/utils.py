from __future__ import annotations

import json
import os
import threading
import time
from collections import Counter
from pathlib import Path
from typing import Mapping, Tuple

import numpy as np
import rasterio
from rasterio.transform import from_bounds

from tilemosaic.cache import LayerCache
from tilemosaic.cache_backends import MemoryCacheBackend
from tilemosaic.fetch import ExtentFetcher, TileFetcher
from tilemosaic.histogram import Histogram
from tilemosaic.metadata import MetadataResolver
from tilemosaic.models import KeyBounds, LayerMetadata, SpatialKey, Tile
from tilemosaic.mosaic import MosaicCompositor
from tilemosaic.pools import WorkerPool

WEB_MERCATOR = "EPSG:3857"


def write_raster(
    path: Path,
    data: np.ndarray,
    *,
    bounds: Tuple[float, float, float, float],
    crs: str = WEB_MERCATOR,
    nodata: float | None = None,
) -> None:
    if data.ndim == 2:
        data = data[np.newaxis, :, :]
    count, height, width = data.shape
    transform = from_bounds(*bounds, width=width, height=height)
    path.parent.mkdir(parents=True, exist_ok=True)
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=count,
        dtype=data.dtype,
        crs=crs,
        transform=transform,
        nodata=nodata,
    ) as dataset:
        dataset.write(data)


def layer_metadata(
    *,
    cols: int = 4,
    rows: int = 4,
    tile_size: int = 256,
    band_count: int = 1,
    nodata: float | None = None,
    key_bounds: KeyBounds | None = None,
    crs: str = WEB_MERCATOR,
) -> LayerMetadata:
    """Metadata for a layout whose tiles span ``tile_size`` map units."""
    return LayerMetadata(
        crs=crs,
        layout_extent=(0.0, 0.0, float(cols * tile_size), float(rows * tile_size)),
        layout_cols=cols,
        layout_rows=rows,
        key_bounds=key_bounds or KeyBounds(0, 0, cols - 1, rows - 1),
        tile_cols=tile_size,
        tile_rows=tile_size,
        band_count=band_count,
        dtype="float32",
        nodata=nodata,
    )


def write_pyramid_level(
    root: Path,
    layer_id: str,
    zoom: int,
    metadata: LayerMetadata,
    tiles: Mapping[Tuple[int, int], np.ndarray],
    *,
    histogram: bool = True,
) -> Path:
    """Write one zoom level of a GeoTIFF pyramid and return its directory."""
    level = root / layer_id / str(zoom)
    level.mkdir(parents=True, exist_ok=True)
    (level / "metadata.json").write_text(json.dumps(metadata.to_dict()), encoding="utf-8")
    for (col, row), data in tiles.items():
        write_raster(
            level / str(col) / f"{row}.tif",
            data,
            bounds=metadata.key_extent(SpatialKey(col, row)),
            crs=metadata.crs,
            nodata=metadata.nodata,
        )
    if histogram:
        stacked = [np.asarray(data) for data in tiles.values()]
        bands = []
        for band in range(metadata.band_count):
            samples = [(data[band] if data.ndim == 3 else data).ravel() for data in stacked]
            values = np.concatenate(samples) if samples else np.empty(0)
            histogram = Histogram.from_values(values, nodata=metadata.nodata)
            bands.append(histogram.to_dict())
        (level / "histogram.json").write_text(json.dumps(bands), encoding="utf-8")
    return level


def write_service_fixture(root: Path) -> Path:
    """Write a two-scene catalog, a project file, and a config; return the config path."""
    catalog = root / "catalog"
    metadata = layer_metadata(cols=2, rows=1, tile_size=4, nodata=-9999.0)
    for scene_id, value in (("scene-a", 1.0), ("scene-b", 2.0)):
        write_pyramid_level(
            catalog,
            scene_id,
            1,
            metadata,
            {
                (0, 0): np.full((4, 4), value, dtype=np.float32),
                (1, 0): np.full((4, 4), value * 10.0, dtype=np.float32),
            },
        )
    projects = {
        "projects": [
            {
                "id": "coast",
                "scenes": ["scene-a", {"id": "scene-b", "color_correct": {"blue_band": 0}}],
                "single_band_options": {"band": 0, "color_scheme": "greys"},
            },
            {"id": "plain", "scenes": ["scene-a"]},
        ]
    }
    (root / "projects.json").write_text(json.dumps(projects), encoding="utf-8")
    config_path = root / "tilemosaic.json"
    config_path.write_text(
        json.dumps(
            {
                "catalog_root": "catalog",
                "projects_path": "projects.json",
                "io_workers": 2,
                "request_workers": 2,
            }
        ),
        encoding="utf-8",
    )
    return config_path


class FakeLayerStore:
    """In-memory attribute and tile store with call counters and failure injection."""

    def __init__(self) -> None:
        self.metadata: dict[tuple[str, int], LayerMetadata] = {}
        self.histograms: dict[tuple[str, int], tuple[Histogram, ...]] = {}
        self.tiles: dict[tuple[str, int, SpatialKey], Tile] = {}
        self.extent_values: dict[str, float] = {}
        self.failures: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.completed: list[str] = []
        self.extent_requests: list[tuple[str, int, tuple, tuple[int, int]]] = []
        self.calls: Counter[str] = Counter()
        self._lock = threading.Lock()

    def add_layer(
        self,
        layer_id: str,
        zoom: int,
        metadata: LayerMetadata,
        *,
        tiles: Mapping[Tuple[int, int], np.ndarray] | None = None,
        histogram: tuple[Histogram, ...] | None = None,
        extent_value: float | None = None,
    ) -> None:
        self.metadata[(layer_id, zoom)] = metadata
        if histogram is not None:
            self.histograms[(layer_id, zoom)] = histogram
        for (col, row), data in (tiles or {}).items():
            self.tiles[(layer_id, zoom, SpatialKey(col, row))] = Tile(data, metadata.nodata)
        if extent_value is not None:
            self.extent_values[layer_id] = extent_value

    def fail(self, layer_id: str, exc: Exception) -> None:
        self.failures[layer_id] = exc

    def delay(self, layer_id: str, seconds: float) -> None:
        """Slow every read of a layer so its fetches complete late."""
        self.delays[layer_id] = seconds

    def _record(self, name: str, layer_id: str) -> None:
        with self._lock:
            self.calls[name] += 1
        if layer_id in self.delays:
            time.sleep(self.delays[layer_id])
        if layer_id in self.failures:
            raise self.failures[layer_id]

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def max_zoom(self, layer_id: str) -> int | None:
        self._record("max_zoom", layer_id)
        zooms = [zoom for layer, zoom in self.metadata if layer == layer_id]
        return max(zooms) if zooms else None

    def read_metadata(self, layer_id: str, zoom: int) -> LayerMetadata:
        self._record("read_metadata", layer_id)
        return self.metadata[(layer_id, zoom)]

    def read_histogram(self, layer_id: str, zoom: int) -> tuple[Histogram, ...] | None:
        self._record("read_histogram", layer_id)
        return self.histograms.get((layer_id, zoom))

    def read_tile(self, layer_id: str, zoom: int, key: SpatialKey) -> Tile | None:
        self._record("read_tile", layer_id)
        with self._lock:
            self.completed.append(layer_id)
        return self.tiles.get((layer_id, zoom, key))

    def read_tile_for_extent(
        self,
        layer_id: str,
        zoom: int,
        extent: Tuple[float, float, float, float],
        shape: tuple[int, int],
        *,
        dst_extent: Tuple[float, float, float, float] | None = None,
        dst_crs: str | None = None,
    ) -> Tile | None:
        self._record("read_tile_for_extent", layer_id)
        with self._lock:
            self.extent_requests.append((layer_id, zoom, tuple(extent), shape))
            self.completed.append(layer_id)
        if layer_id not in self.extent_values:
            return None
        metadata = self.metadata[(layer_id, zoom)]
        value = self.extent_values[layer_id]
        data = np.full((metadata.band_count,) + tuple(shape), value, dtype=np.float32)
        return Tile(data, metadata.nodata)


def build_compositor(
    store: FakeLayerStore,
    pool: WorkerPool,
    *,
    backend: MemoryCacheBackend | None = None,
) -> MosaicCompositor:
    """Wire a compositor over a store with an in-memory cache."""
    cache = LayerCache(store, store, backend or MemoryCacheBackend())
    resolver = MetadataResolver(cache)
    return MosaicCompositor(
        TileFetcher(resolver, cache, pool),
        ExtentFetcher(resolver, cache, pool),
    )


def with_src_env(base_env: dict[str, str] | None = None) -> dict[str, str]:
    """Return an environment with repo src/ on PYTHONPATH."""
    env = dict(base_env or os.environ)
    repo_root = Path(__file__).resolve().parents[1]
    src_path = repo_root / "src"
    if src_path.exists():
        existing = env.get("PYTHONPATH", "")
        entries = [entry for entry in existing.split(os.pathsep) if entry]
        src_str = str(src_path)
        if src_str not in entries:
            entries.insert(0, src_str)
        env["PYTHONPATH"] = os.pathsep.join(entries)
    return env

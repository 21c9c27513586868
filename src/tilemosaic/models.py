"""Data models shared by the mosaic pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Tuple

import numpy as np

Bounds = Tuple[float, float, float, float]

TILE_SIZE = 256


@dataclass(frozen=True, order=True)
class SpatialKey:
    """Grid address of one tile within a zoom level's layout."""

    col: int
    row: int


@dataclass(frozen=True)
class KeyBounds:
    """Inclusive range of spatial keys that hold data."""

    col_min: int
    row_min: int
    col_max: int
    row_max: int

    def includes(self, key: SpatialKey) -> bool:
        """Return True when the key lies within the bounds."""
        return (
            self.col_min <= key.col <= self.col_max
            and self.row_min <= key.row <= self.row_max
        )


@dataclass(frozen=True)
class LayerMetadata:
    """Spatial metadata for one zoom level of a layer pyramid."""

    crs: str
    layout_extent: Bounds
    layout_cols: int
    layout_rows: int
    key_bounds: KeyBounds
    tile_cols: int = TILE_SIZE
    tile_rows: int = TILE_SIZE
    band_count: int = 1
    dtype: str = "float32"
    nodata: float | None = None

    @property
    def tile_width(self) -> float:
        """Width of one tile in layer CRS units."""
        xmin, _, xmax, _ = self.layout_extent
        return (xmax - xmin) / self.layout_cols

    @property
    def tile_height(self) -> float:
        """Height of one tile in layer CRS units."""
        _, ymin, _, ymax = self.layout_extent
        return (ymax - ymin) / self.layout_rows

    def key_extent(self, key: SpatialKey) -> Bounds:
        """Return the extent covered by a spatial key."""
        xmin, _, _, ymax = self.layout_extent
        left = xmin + key.col * self.tile_width
        top = ymax - key.row * self.tile_height
        return (left, top - self.tile_height, left + self.tile_width, top)

    def keys_for_extent(self, extent: Bounds) -> list[SpatialKey]:
        """Return the indexed keys intersecting an extent, in row-major order."""
        xmin, ymin, xmax, ymax = self.layout_extent
        ex_min_x, ex_min_y, ex_max_x, ex_max_y = extent
        if ex_max_x <= xmin or ex_min_x >= xmax or ex_max_y <= ymin or ex_min_y >= ymax:
            return []
        col_start = math.floor((ex_min_x - xmin) / self.tile_width)
        col_end = math.ceil((ex_max_x - xmin) / self.tile_width) - 1
        row_start = math.floor((ymax - ex_max_y) / self.tile_height)
        row_end = math.ceil((ymax - ex_min_y) / self.tile_height) - 1
        bounds = self.key_bounds
        keys = []
        for row in range(max(row_start, bounds.row_min), min(row_end, bounds.row_max) + 1):
            for col in range(max(col_start, bounds.col_min), min(col_end, bounds.col_max) + 1):
                keys.append(SpatialKey(col, row))
        return keys

    def to_dict(self) -> dict[str, Any]:
        return {
            "crs": self.crs,
            "layout_extent": list(self.layout_extent),
            "layout_cols": self.layout_cols,
            "layout_rows": self.layout_rows,
            "key_bounds": [
                self.key_bounds.col_min,
                self.key_bounds.row_min,
                self.key_bounds.col_max,
                self.key_bounds.row_max,
            ],
            "tile_cols": self.tile_cols,
            "tile_rows": self.tile_rows,
            "band_count": self.band_count,
            "dtype": self.dtype,
            "nodata": self.nodata,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LayerMetadata":
        extent = data["layout_extent"]
        if not isinstance(extent, (list, tuple)) or len(extent) != 4:
            raise ValueError("layout_extent must hold four coordinates.")
        layout_cols = int(data["layout_cols"])
        layout_rows = int(data["layout_rows"])
        raw_bounds = data.get("key_bounds")
        if raw_bounds is None:
            key_bounds = KeyBounds(0, 0, layout_cols - 1, layout_rows - 1)
        else:
            key_bounds = KeyBounds(*(int(value) for value in raw_bounds))
        nodata = data.get("nodata")
        return cls(
            crs=str(data["crs"]),
            layout_extent=(
                float(extent[0]),
                float(extent[1]),
                float(extent[2]),
                float(extent[3]),
            ),
            layout_cols=layout_cols,
            layout_rows=layout_rows,
            key_bounds=key_bounds,
            tile_cols=int(data.get("tile_cols", TILE_SIZE)),
            tile_rows=int(data.get("tile_rows", TILE_SIZE)),
            band_count=int(data.get("band_count", 1)),
            dtype=str(data.get("dtype", "float32")),
            nodata=float(nodata) if nodata is not None else None,
        )


@dataclass(frozen=True, eq=False)
class Tile:
    """Immutable multi-band raster grid shaped (bands, rows, cols)."""

    data: np.ndarray
    nodata: float | None = None

    def __post_init__(self) -> None:
        data = np.asarray(self.data)
        if data.ndim == 2:
            data = data[np.newaxis, :, :]
        if data.ndim != 3:
            raise ValueError("Tile data must be 2D or 3D.")
        if data.flags.writeable:
            data = data.copy()
            data.setflags(write=False)
        object.__setattr__(self, "data", data)

    @property
    def band_count(self) -> int:
        return int(self.data.shape[0])

    @property
    def rows(self) -> int:
        return int(self.data.shape[1])

    @property
    def cols(self) -> int:
        return int(self.data.shape[2])

    @property
    def shape(self) -> tuple[int, int]:
        """Return the (rows, cols) pixel shape."""
        return self.rows, self.cols

    def band(self, index: int) -> "Tile":
        """Return a one-band tile holding the given band."""
        if index < 0 or index >= self.band_count:
            raise IndexError(f"Band {index} out of range for {self.band_count}-band tile.")
        return Tile(self.data[index : index + 1], self.nodata)


def nodata_mask(data: np.ndarray, nodata: float | None) -> np.ndarray:
    """Return a boolean mask where nodata values are present."""
    if nodata is None:
        if np.issubdtype(data.dtype, np.floating):
            return np.isnan(data)
        return np.zeros(data.shape, dtype=bool)
    if np.isnan(nodata):
        return np.isnan(data)
    return data == nodata


@dataclass(frozen=True)
class SingleBandOptions:
    """Band selection and color ramp settings for single-band rendering."""

    band: int
    color_scheme: str | tuple[str, ...] = "viridis"
    color_bins: int = 0
    data_type: str = "sequential"
    extend_min: bool = True
    extend_max: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SingleBandOptions":
        scheme = data.get("color_scheme", "viridis")
        if isinstance(scheme, (list, tuple)):
            scheme = tuple(str(color) for color in scheme)
        data_type = str(data.get("data_type", "sequential"))
        if data_type not in {"sequential", "diverging"}:
            raise ValueError(f"Unsupported data_type: {data_type}")
        return cls(
            band=int(data["band"]),
            color_scheme=scheme,
            color_bins=int(data.get("color_bins", 0)),
            data_type=data_type,
            extend_min=bool(data.get("extend_min", True)),
            extend_max=bool(data.get("extend_max", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        scheme = self.color_scheme
        return {
            "band": self.band,
            "color_scheme": list(scheme) if isinstance(scheme, tuple) else scheme,
            "color_bins": self.color_bins,
            "data_type": self.data_type,
            "extend_min": self.extend_min,
            "extend_max": self.extend_max,
        }


@dataclass(frozen=True)
class ColorCorrectParams:
    """Per-scene color correction parameters stored with a project."""

    red_band: int = 0
    green_band: int = 1
    blue_band: int = 2
    red_gamma: float | None = None
    green_gamma: float | None = None
    blue_gamma: float | None = None
    brightness: int | None = None
    contrast: float | None = None
    alpha: float | None = None
    beta: float | None = None
    min: int | None = None
    max: int | None = None
    equalize: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ColorCorrectParams":
        known = {name for name in cls.__dataclass_fields__}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown color correction fields: {', '.join(sorted(unknown))}")
        return cls(**dict(data))

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


@dataclass(frozen=True)
class MosaicDefinition:
    """Mosaic behavior of one scene within a project."""

    scene_id: str
    color_correct: ColorCorrectParams | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "scene_id": self.scene_id,
            "color_correct": self.color_correct.to_dict() if self.color_correct else None,
        }


@dataclass(frozen=True)
class Project:
    """Ordered collection of scenes rendered together as one mosaic."""

    id: str
    scene_ids: tuple[str, ...]
    single_band_options: SingleBandOptions | None = None
    name: str = ""
    mosaic_definition: tuple[MosaicDefinition, ...] = field(default_factory=tuple)

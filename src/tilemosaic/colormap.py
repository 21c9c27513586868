"""Color ramp rendering of single-band mosaics.

Break points come from the quantiles of one histogram merged from every
contributing scene, so a value maps to the same color whichever scene holds it.
Where several scenes hold data for a pixel, their values are averaged after
sorting along the scene axis; the result is independent of input order.

Named schemes are matplotlib colormaps (matched case-insensitively); a list of
colors becomes a linear segmented colormap through those colors.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Sequence

import matplotlib
import numpy as np
from matplotlib.colors import Colormap, LinearSegmentedColormap

from tilemosaic.histogram import Histogram, combine
from tilemosaic.models import TILE_SIZE, SingleBandOptions, Tile, nodata_mask

LOGGER = logging.getLogger(__name__)


def _colormap_name(scheme: str) -> str:
    if scheme in matplotlib.colormaps:
        return scheme
    names = {name.lower(): name for name in matplotlib.colormaps}
    try:
        return names[scheme.lower()]
    except KeyError as exc:
        raise ValueError(f"Unknown color scheme: {scheme}") from exc


def resolve_colormap(scheme: str | Sequence[str], count: int = 0) -> Colormap:
    """Return the colormap for a named scheme or color list.

    ``count`` resamples the colormap to that many colors; 0 keeps one entry per
    listed color, or the named colormap's own size.
    """
    if count < 0:
        raise ValueError("color_bins must be >= 0")
    if isinstance(scheme, str):
        colormap = matplotlib.colormaps[_colormap_name(scheme)]
        return colormap.resampled(count) if count else colormap
    colors = list(scheme)
    if len(colors) < 2:
        raise ValueError("A color ramp needs at least two colors.")
    try:
        return LinearSegmentedColormap.from_list("custom", colors, N=count or len(colors))
    except ValueError as exc:
        raise ValueError(f"Invalid color in {colors}: {exc}") from exc


@lru_cache(maxsize=64)
def _palette(scheme: str | tuple[str, ...], count: int) -> np.ndarray:
    colormap = resolve_colormap(scheme, count)
    rgba = colormap(np.arange(colormap.N))
    lut = np.clip(np.rint(np.asarray(rgba) * 255.0), 0, 255).astype(np.uint8)
    lut.setflags(write=False)
    return lut


def palette(scheme: str | Sequence[str], count: int = 0) -> np.ndarray:
    """Return an (n, 4) uint8 RGBA lookup table for a scheme."""
    key = scheme if isinstance(scheme, str) else tuple(scheme)
    return _palette(key, count)


def ramp_breaks(histogram: Histogram, options: SingleBandOptions, count: int) -> np.ndarray:
    """Return ``count`` ascending upper break values for the ramp classes."""
    if options.data_type == "diverging":
        low, high = histogram.min_max() or (0.0, 0.0)
        magnitude = max(abs(low), abs(high))
        return np.linspace(-magnitude, magnitude, count + 1)[1:]
    fractions = [(index + 1) / count for index in range(count)]
    return histogram.quantiles(fractions)


def ramp_floor(histogram: Histogram, options: SingleBandOptions) -> float:
    """Return the lowest value covered by the first ramp class."""
    low, high = histogram.min_max() or (0.0, 0.0)
    if options.data_type == "diverging":
        return -max(abs(low), abs(high))
    return low


def _masked_band(tile: Tile, band: int) -> np.ndarray:
    data = tile.data[band].astype(np.float64)
    mask = nodata_mask(tile.data[band], tile.nodata)
    return np.where(mask, np.nan, data)


def overlay_mean(bands: Sequence[np.ndarray]) -> np.ndarray:
    """Average valid samples per pixel; NaN where no band holds data."""
    stack = np.sort(np.stack(bands, axis=0), axis=0)
    valid = ~np.isnan(stack)
    sums = np.where(valid, stack, 0.0).sum(axis=0)
    counts = valid.sum(axis=0)
    result = np.full(sums.shape, np.nan, dtype=np.float64)
    np.divide(sums, counts, out=result, where=counts > 0)
    return result


def apply_ramp(
    values: np.ndarray,
    histogram: Histogram,
    options: SingleBandOptions,
) -> np.ndarray:
    """Map values to a (4, rows, cols) RGBA array."""
    lut = palette(options.color_scheme, options.color_bins)
    count = len(lut)
    rgba = np.zeros((4,) + values.shape, dtype=np.uint8)
    valid = ~np.isnan(values)
    if histogram.is_empty or not valid.any():
        return rgba
    breaks = ramp_breaks(histogram, options, count)
    indices = np.searchsorted(breaks, np.where(valid, values, 0.0), side="left")
    if options.extend_max:
        indices = np.minimum(indices, count - 1)
    else:
        valid &= indices < count
    if not options.extend_min:
        valid &= values >= ramp_floor(histogram, options)
    indices = np.clip(indices, 0, count - 1)
    colors = lut[indices]
    for channel in range(4):
        rgba[channel] = np.where(valid, colors[..., channel], 0)
    return rgba


def colorize(
    pairs: Sequence[tuple[Tile, Sequence[Histogram]]],
    options: SingleBandOptions,
    *,
    size: int = TILE_SIZE,
) -> Tile:
    """Render ``(tile, histogram)`` pairs into one RGBA tile with a shared ramp."""
    if not pairs:
        return Tile(np.zeros((4, size, size), dtype=np.uint8))
    band = options.band
    bands = []
    histograms = []
    for tile, histogram in pairs:
        if band >= tile.band_count:
            raise ValueError(f"Band {band} out of range for {tile.band_count}-band tile.")
        if band >= len(histogram):
            raise ValueError(f"Histogram has no entry for band {band}.")
        bands.append(_masked_band(tile, band))
        histograms.append(histogram[band])
    shapes = {values.shape for values in bands}
    if len(shapes) != 1:
        raise ValueError(f"Tiles must share one shape, got {sorted(shapes)}.")
    values = overlay_mean(bands)
    merged = combine(histograms)
    if merged.is_empty:
        LOGGER.debug("Histograms are empty; deriving ramp from tile samples")
        merged = Histogram.from_values(values)
    return Tile(apply_ramp(values, merged, options))

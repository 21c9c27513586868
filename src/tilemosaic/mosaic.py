"""Compose per-scene tiles of a project into one mosaic tile.

Scenes are fetched concurrently on the blocking I/O pool and joined before
composition. Completion order never matters: results are read back in project
scene order. A scene that fails or has no data is left out; the composite only
fails when no scene contributes and at least one failed.
"""

from __future__ import annotations

import logging
from typing import Sequence, TypeVar

import numpy as np

from tilemosaic.colormap import colorize
from tilemosaic.crs import LATLNG, WEB_MERCATOR
from tilemosaic.fetch import ExtentFetcher, TileFetcher, TileWithHistogram
from tilemosaic.logging_utils import with_context
from tilemosaic.models import Project, SingleBandOptions, Tile, nodata_mask
from tilemosaic.result import Deferred, ErrorKind, MosaicError, Result, gather
from tilemosaic.tiling import bbox_to_web_mercator, parse_bbox

T = TypeVar("T")

LOGGER = logging.getLogger(__name__)

DEFAULT_EXTENT_ZOOM = 8
MISSING_OPTIONS_MESSAGE = "No valid single band render options found"
BBOX_MESSAGE = "Four comma separated coordinates must be given for bbox"


def merge_overlay(tiles: Sequence[Tile]) -> Tile | None:
    """Overlay one-band tiles in order; later tiles win where they hold data."""
    combined: np.ndarray | None = None
    nodata: float | None = None
    for tile in tiles:
        data = tile.data
        mask = nodata_mask(data, tile.nodata)
        if combined is None:
            combined = data.copy()
            nodata = tile.nodata
            continue
        if data.shape != combined.shape:
            raise ValueError(f"Cannot merge tiles of shape {data.shape} and {combined.shape}.")
        if data.dtype != combined.dtype:
            combined = combined.astype(np.result_type(combined, data))
        combined = np.where(~mask, data, combined)
    if combined is None:
        return None
    return Tile(combined, nodata)


def _contributions(
    project: Project,
    results: Sequence[Result[T]],
) -> Result[list[T]]:
    """Collect found values in scene order, isolating per-scene failures."""
    found: list[T] = []
    first_error: MosaicError | None = None
    log = with_context(LOGGER, project=project.id)
    for scene_id, result in zip(project.scene_ids, results):
        if result.is_found:
            found.append(result.value)
        elif result.is_failed:
            log.warning("Scene %s failed: %s", scene_id, result.error, extra={"scene": scene_id})
            if first_error is None:
                first_error = result.error
        else:
            log.debug("Scene %s has no data", scene_id, extra={"scene": scene_id})
    if not found and first_error is not None:
        return Result.failed(first_error)
    return Result.found(found)


def _missing_options(project: Project) -> Result[Tile]:
    LOGGER.error("%s (project: %s)", MISSING_OPTIONS_MESSAGE, project.id)
    return Result.failed(MosaicError(ErrorKind.CONFIGURATION, MISSING_OPTIONS_MESSAGE))


def _bad_options(project: Project, exc: Exception) -> Result[Tile]:
    LOGGER.error("Cannot render project %s with its band options: %s", project.id, exc)
    error = MosaicError(ErrorKind.CONFIGURATION, str(exc))
    error.__cause__ = exc
    return Result.failed(error)


class MosaicCompositor:
    """Render single-band mosaics of a project's scenes."""

    def __init__(
        self,
        tiles: TileFetcher,
        extents: ExtentFetcher,
        *,
        default_extent_zoom: int = DEFAULT_EXTENT_ZOOM,
    ) -> None:
        self.tiles = tiles
        self.extents = extents
        self.default_extent_zoom = default_extent_zoom

    def compose_pixel(self, project: Project, zoom: int, col: int, row: int) -> Result[Tile]:
        """Color-ramp mosaic of every scene covering ``zoom/col/row``."""
        LOGGER.debug(
            "Creating single band mosaic (project: %s, zoom: %s, col: %s, row: %s)",
            project.id,
            zoom,
            col,
            row,
        )
        options = project.single_band_options
        if options is None:
            return _missing_options(project)
        deferreds = [
            self.tiles.fetch_with_histogram_async(scene_id, zoom, col, row)
            for scene_id in project.scene_ids
        ]
        return self._colorize(project, deferreds, options)

    def compose_extent(
        self,
        project: Project,
        zoom: int | None = None,
        bbox: str | None = None,
        color_correct: bool = False,
    ) -> Result[Tile]:
        """Render a project over a lat/lng bbox (or each scene's full extent)."""
        extent = None
        if bbox is not None:
            try:
                extent = bbox_to_web_mercator(parse_bbox(bbox), LATLNG)
            except ValueError as exc:
                LOGGER.error("%s: %s", BBOX_MESSAGE, exc)
                error = MosaicError(ErrorKind.INPUT, BBOX_MESSAGE)
                error.__cause__ = exc
                return Result.failed(error)
        options = project.single_band_options
        if options is None:
            return _missing_options(project)
        source_zoom = self.default_extent_zoom if zoom is None else zoom
        LOGGER.debug(
            "Rendering single band mosaic (project: %s, zoom: %s, extent: %s, color correct: %s)",
            project.id,
            source_zoom,
            extent,
            color_correct,
        )
        deferreds = [
            self.extents.fetch_for_extent_async(scene_id, source_zoom, extent, WEB_MERCATOR)
            for scene_id in project.scene_ids
        ]
        if color_correct:
            return self._colorize(project, deferreds, options)
        contributions = _contributions(project, gather(deferreds))
        if not contributions.is_found:
            return contributions  # type: ignore[return-value]
        try:
            bands = [tile.band(options.band) for tile, _ in contributions.value]
            return Result.of_optional(merge_overlay(bands))
        except (IndexError, ValueError) as exc:
            return _bad_options(project, exc)

    def _colorize(
        self,
        project: Project,
        deferreds: Sequence[Deferred[TileWithHistogram]],
        options: SingleBandOptions,
    ) -> Result[Tile]:
        contributions = _contributions(project, gather(deferreds))
        if not contributions.is_found:
            return contributions  # type: ignore[return-value]
        if not contributions.value:
            return Result.empty()
        try:
            return Result.found(colorize(contributions.value, options, size=self.tiles.tile_size))
        except ValueError as exc:
            return _bad_options(project, exc)

"""Resolve the source zoom and spatial metadata of a layer pyramid."""

from __future__ import annotations

import logging

from tilemosaic.cache import LayerCache
from tilemosaic.histogram import Histogram
from tilemosaic.models import LayerMetadata
from tilemosaic.result import Result

LOGGER = logging.getLogger(__name__)


def effective_zoom(requested: int, max_zoom: int) -> int:
    """Clamp a requested zoom to the layer's highest indexed zoom."""
    return max_zoom if requested > max_zoom else requested


class MetadataResolver:
    """Look up which zoom to read for a layer and that zoom's metadata.

    Reads block on the backing store; store errors are raised and become
    failures when the call runs through a worker pool.
    """

    def __init__(self, cache: LayerCache) -> None:
        self.cache = cache

    def source_zoom(self, layer_id: str, zoom: int) -> Result[int]:
        """Return the zoom to read for a request, or empty for an unindexed layer."""
        max_zoom = self.cache.max_zoom(layer_id)
        if max_zoom is None:
            LOGGER.debug("Layer %s has no indexed zoom levels", layer_id)
            return Result.empty()
        return Result.found(effective_zoom(zoom, max_zoom))

    def resolve(self, layer_id: str, zoom: int) -> Result[tuple[int, LayerMetadata]]:
        """Return ``(effective_zoom, metadata)`` for a layer."""
        LOGGER.debug("Requesting tile layer metadata (layer: %s, zoom: %s)", layer_id, zoom)
        return self.source_zoom(layer_id, zoom).map(
            lambda source: (source, self.cache.metadata(layer_id, source))
        )

    def resolve_histogram(self, layer_id: str, zoom: int) -> Result[tuple[Histogram, ...]]:
        """Return the layer histogram at the effective zoom."""
        return self.source_zoom(layer_id, zoom).flat_map(
            lambda source: Result.of_optional(self.cache.histogram(layer_id, source))
        )

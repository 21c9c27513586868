"""Process-level wiring of the mosaic pipeline.

``MosaicService`` creates and owns every shared instance (cache backend, stores,
project catalog, worker pools) once, and passes them explicitly to the components
that need them.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future

from tilemosaic.cache import LayerCache
from tilemosaic.cache_backends import create_backend
from tilemosaic.config import ServiceConfig
from tilemosaic.fetch import ExtentFetcher, TileFetcher
from tilemosaic.metadata import MetadataResolver
from tilemosaic.models import LayerMetadata, MosaicDefinition, Project, Tile
from tilemosaic.mosaic import MosaicCompositor
from tilemosaic.pools import WorkerPool
from tilemosaic.projects import JsonProjectCatalog, ProjectCatalog
from tilemosaic.result import ErrorKind, MosaicError, Result
from tilemosaic.store.base import AttributeStore, CacheBackend, TileStore
from tilemosaic.store.geotiff import GeoTiffPyramidStore

LOGGER = logging.getLogger(__name__)


class MosaicService:
    """Entry point used by request handlers to render project mosaics."""

    def __init__(
        self,
        *,
        catalog: ProjectCatalog,
        attributes: AttributeStore,
        tiles: TileStore,
        backend: CacheBackend,
        io_pool: WorkerPool,
        request_pool: WorkerPool,
        tile_size: int,
        default_extent_zoom: int,
        cache_prefix: str = "tilemosaic",
    ) -> None:
        self.catalog = catalog
        self.io_pool = io_pool
        self.request_pool = request_pool
        self.cache = LayerCache(attributes, tiles, backend, prefix=cache_prefix)
        self.resolver = MetadataResolver(self.cache)
        self.compositor = MosaicCompositor(
            TileFetcher(self.resolver, self.cache, io_pool, tile_size=tile_size),
            ExtentFetcher(self.resolver, self.cache, io_pool, tile_size=tile_size),
            default_extent_zoom=default_extent_zoom,
        )

    @classmethod
    def from_config(
        cls,
        config: ServiceConfig,
        *,
        catalog: ProjectCatalog | None = None,
    ) -> "MosaicService":
        """Build a service and its collaborators from configuration."""
        store = GeoTiffPyramidStore(config.catalog_root, resampling=config.resampling)
        backend = create_backend(
            config.cache.backend,
            capacity=config.cache.capacity,
            ttl_seconds=config.cache.ttl_seconds,
            directory=config.cache.directory,
        )
        if catalog is None:
            catalog = JsonProjectCatalog.load(config.projects_path)
        LOGGER.info(
            "Mosaic service reading %s with %s cache",
            config.catalog_root,
            config.cache.backend,
        )
        return cls(
            catalog=catalog,
            attributes=store,
            tiles=store,
            backend=backend,
            io_pool=WorkerPool("io", config.io_workers),
            request_pool=WorkerPool("request", config.request_workers),
            tile_size=config.tile_size,
            default_extent_zoom=config.default_extent_zoom,
            cache_prefix=config.cache.prefix,
        )

    def project(self, project_id: str) -> Result[Project]:
        project = self.catalog.get_project(project_id)
        if project is None:
            return Result.failed(MosaicError(ErrorKind.NOT_FOUND, f"Unknown project: {project_id}"))
        return Result.found(project)

    def compose_pixel(self, project_id: str, zoom: int, col: int, row: int) -> Result[Tile]:
        return self.project(project_id).flat_map(
            lambda project: self.compositor.compose_pixel(project, zoom, col, row)
        )

    def compose_extent(
        self,
        project_id: str,
        zoom: int | None = None,
        bbox: str | None = None,
        color_correct: bool = False,
    ) -> Result[Tile]:
        return self.project(project_id).flat_map(
            lambda project: self.compositor.compose_extent(project, zoom, bbox, color_correct)
        )

    def submit_pixel(
        self, project_id: str, zoom: int, col: int, row: int
    ) -> "Future[Result[Tile]]":
        """Run :meth:`compose_pixel` on the request pool."""
        return self.request_pool.submit_raw(self.compose_pixel, project_id, zoom, col, row)

    def submit_extent(
        self,
        project_id: str,
        zoom: int | None = None,
        bbox: str | None = None,
        color_correct: bool = False,
    ) -> "Future[Result[Tile]]":
        """Run :meth:`compose_extent` on the request pool."""
        return self.request_pool.submit_raw(
            self.compose_extent, project_id, zoom, bbox, color_correct
        )

    def resolve_layer(self, layer_id: str, zoom: int) -> Result[tuple[int, LayerMetadata]]:
        """Resolve layer metadata on the I/O pool."""
        return self.io_pool.submit(self.resolver.resolve, layer_id, zoom).result()

    def mosaic_definition(self, project_id: str) -> Result[tuple[MosaicDefinition, ...]]:
        definition = self.catalog.mosaic_definition(project_id)
        if definition is None:
            return Result.failed(MosaicError(ErrorKind.NOT_FOUND, f"Unknown project: {project_id}"))
        return Result.found(definition)

    def close(self) -> None:
        self.request_pool.shutdown()
        self.io_pool.shutdown()

    def __enter__(self) -> "MosaicService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

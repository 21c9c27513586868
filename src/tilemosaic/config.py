"""Service configuration loading."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

from tilemosaic.contracts import validate_service_config
from tilemosaic.models import TILE_SIZE

ENV_CONFIG_PATH = "TILEMOSAIC_CONFIG"
DEFAULT_CONFIG_NAME = "tilemosaic.json"


@dataclass(frozen=True)
class CacheConfig:
    """Layer cache backend settings."""

    backend: str = "memory"
    capacity: int = 1024
    ttl_seconds: float | None = None
    directory: Path | None = None
    prefix: str = "tilemosaic"


@dataclass(frozen=True)
class ServiceConfig:
    """Settings for building a mosaic service."""

    catalog_root: Path = Path("catalog")
    projects_path: Path = Path("projects.json")
    io_workers: int = 8
    request_workers: int = 4
    tile_size: int = TILE_SIZE
    default_extent_zoom: int = 8
    resampling: str = "nearest"
    cache: CacheConfig = field(default_factory=CacheConfig)
    source: Path | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "catalog_root": str(self.catalog_root),
            "projects_path": str(self.projects_path),
            "io_workers": self.io_workers,
            "request_workers": self.request_workers,
            "tile_size": self.tile_size,
            "default_extent_zoom": self.default_extent_zoom,
            "resampling": self.resampling,
            "cache": {
                "backend": self.cache.backend,
                "capacity": self.cache.capacity,
                "ttl_seconds": self.cache.ttl_seconds,
                "directory": str(self.cache.directory) if self.cache.directory else None,
                "prefix": self.cache.prefix,
            },
        }


def _resolve(base: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def config_from_dict(data: Mapping[str, Any], *, base_dir: Path | None = None) -> ServiceConfig:
    """Validate and normalize a configuration payload."""
    validate_service_config(data)
    base = base_dir or Path.cwd()
    defaults = ServiceConfig()
    raw_cache = data.get("cache", {})
    directory = raw_cache.get("directory")
    cache = CacheConfig(
        backend=raw_cache.get("backend", defaults.cache.backend),
        capacity=int(raw_cache.get("capacity", defaults.cache.capacity)),
        ttl_seconds=raw_cache.get("ttl_seconds"),
        directory=_resolve(base, directory) if directory else None,
        prefix=raw_cache.get("prefix", defaults.cache.prefix),
    )
    if cache.backend == "directory" and cache.directory is None:
        raise ValueError("The directory cache backend requires cache.directory.")
    return ServiceConfig(
        catalog_root=_resolve(base, data.get("catalog_root", str(defaults.catalog_root))),
        projects_path=_resolve(base, data.get("projects_path", str(defaults.projects_path))),
        io_workers=int(data.get("io_workers", defaults.io_workers)),
        request_workers=int(data.get("request_workers", defaults.request_workers)),
        tile_size=int(data.get("tile_size", defaults.tile_size)),
        default_extent_zoom=int(data.get("default_extent_zoom", defaults.default_extent_zoom)),
        resampling=data.get("resampling", defaults.resampling),
        cache=cache,
    )


def _candidate_path(path: Path | None) -> Path | None:
    """Return the config path to load, in priority order."""
    if path:
        return path
    env_path = os.environ.get(ENV_CONFIG_PATH)
    if env_path:
        return Path(env_path)
    default = Path.cwd() / DEFAULT_CONFIG_NAME
    return default if default.exists() else None


def load_service_config(path: Path | None = None) -> ServiceConfig:
    """Load service configuration from JSON, falling back to defaults."""
    candidate = _candidate_path(path)
    if candidate is None:
        return config_from_dict({})
    data = json.loads(candidate.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Service configuration must be a JSON object: {candidate}")
    config = config_from_dict(data, base_dir=candidate.resolve().parent)
    return replace(config, source=candidate)

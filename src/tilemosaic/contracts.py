"""Schema validation helpers for service configuration and project catalogs."""

from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any, Mapping

import jsonschema


@lru_cache(maxsize=None)
def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema bundled in the package."""
    with resources.files("tilemosaic.schemas").joinpath(name).open("r", encoding="utf-8") as handle:
        return json.load(handle)


def validate_service_config(config: Mapping[str, Any]) -> None:
    """Validate a service configuration payload against the schema."""
    jsonschema.validate(config, _load_schema("service_config.schema.json"))


def validate_projects(payload: Mapping[str, Any]) -> None:
    """Validate a project catalog payload against the schema."""
    jsonschema.validate(payload, _load_schema("projects.schema.json"))

"""Project metadata provider backed by a JSON catalog file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Protocol

from tilemosaic.contracts import validate_projects
from tilemosaic.models import ColorCorrectParams, MosaicDefinition, Project, SingleBandOptions


class ProjectCatalog(Protocol):
    """Read-only source of projects, their scenes, and render options."""

    def get_project(self, project_id: str) -> Project | None:
        ...

    def mosaic_definition(self, project_id: str) -> tuple[MosaicDefinition, ...] | None:
        ...

    def color_correct_params(self, project_id: str, scene_id: str) -> ColorCorrectParams | None:
        ...


def _coerce_scene(raw: str | Mapping[str, Any]) -> MosaicDefinition:
    """Normalize a scene entry (id string or object) into a MosaicDefinition."""
    if isinstance(raw, str):
        return MosaicDefinition(scene_id=raw)
    color_correct = raw.get("color_correct")
    return MosaicDefinition(
        scene_id=str(raw["id"]),
        color_correct=ColorCorrectParams.from_dict(color_correct) if color_correct else None,
    )


def _coerce_project(raw: Mapping[str, Any]) -> Project:
    """Normalize a validated project object."""
    definition = tuple(_coerce_scene(scene) for scene in raw["scenes"])
    scene_ids = tuple(entry.scene_id for entry in definition)
    if len(set(scene_ids)) != len(scene_ids):
        raise ValueError(f"Project {raw['id']} lists a scene more than once.")
    options = raw.get("single_band_options")
    return Project(
        id=str(raw["id"]),
        name=str(raw.get("name", "")),
        scene_ids=scene_ids,
        single_band_options=SingleBandOptions.from_dict(options) if options else None,
        mosaic_definition=definition,
    )


class JsonProjectCatalog:
    """Projects loaded once from a JSON document."""

    def __init__(self, projects: Mapping[str, Project]) -> None:
        self._projects = dict(projects)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "JsonProjectCatalog":
        validate_projects(payload)
        projects: dict[str, Project] = {}
        for raw in payload["projects"]:
            project = _coerce_project(raw)
            if project.id in projects:
                raise ValueError(f"Duplicate project id: {project.id}")
            projects[project.id] = project
        return cls(projects)

    @classmethod
    def load(cls, path: Path) -> "JsonProjectCatalog":
        """Parse a project catalog from a JSON file."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("Project catalog must be a JSON object.")
        return cls.from_payload(data)

    def project_ids(self) -> list[str]:
        return sorted(self._projects)

    def get_project(self, project_id: str) -> Project | None:
        return self._projects.get(project_id)

    def mosaic_definition(self, project_id: str) -> tuple[MosaicDefinition, ...] | None:
        """Return per-scene mosaic settings in project scene order."""
        project = self._projects.get(project_id)
        return project.mosaic_definition if project else None

    def color_correct_params(self, project_id: str, scene_id: str) -> ColorCorrectParams | None:
        for entry in self.mosaic_definition(project_id) or ():
            if entry.scene_id == scene_id:
                return entry.color_correct
        return None

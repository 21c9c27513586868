from __future__ import annotations

import json

import jsonschema
import pytest

from tilemosaic.models import ColorCorrectParams, MosaicDefinition
from tilemosaic.projects import JsonProjectCatalog

PAYLOAD = {
    "projects": [
        {
            "id": "coast",
            "name": "Coastline",
            "scenes": [
                "scene-a",
                {"id": "scene-b", "color_correct": {"red_band": 3, "red_gamma": 1.2}},
            ],
            "single_band_options": {"band": 0, "color_scheme": "blues", "color_bins": 5},
        },
        {"id": "bare", "scenes": []},
    ]
}


def test_catalog_from_payload() -> None:
    catalog = JsonProjectCatalog.from_payload(PAYLOAD)

    assert catalog.project_ids() == ["bare", "coast"]
    project = catalog.get_project("coast")
    assert project.scene_ids == ("scene-a", "scene-b")
    assert project.name == "Coastline"
    assert project.single_band_options.color_scheme == "blues"
    assert project.single_band_options.color_bins == 5
    assert catalog.get_project("bare").single_band_options is None
    assert catalog.get_project("unknown") is None


def test_mosaic_definition_keeps_scene_order() -> None:
    catalog = JsonProjectCatalog.from_payload(PAYLOAD)

    definition = catalog.mosaic_definition("coast")

    assert definition[0] == MosaicDefinition("scene-a")
    assert definition[1].scene_id == "scene-b"
    assert definition[1].color_correct == ColorCorrectParams(red_band=3, red_gamma=1.2)
    assert catalog.color_correct_params("coast", "scene-b").red_gamma == 1.2
    assert catalog.color_correct_params("coast", "scene-a") is None
    assert catalog.mosaic_definition("unknown") is None


def test_catalog_load(tmp_path) -> None:
    path = tmp_path / "projects.json"
    path.write_text(json.dumps(PAYLOAD), encoding="utf-8")
    assert JsonProjectCatalog.load(path).project_ids() == ["bare", "coast"]

    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError, match="JSON object"):
        JsonProjectCatalog.load(path)


def test_catalog_rejects_duplicates() -> None:
    with pytest.raises(ValueError, match="more than once"):
        JsonProjectCatalog.from_payload({"projects": [{"id": "p", "scenes": ["a", "a"]}]})
    with pytest.raises(ValueError, match="Duplicate project id"):
        JsonProjectCatalog.from_payload(
            {"projects": [{"id": "p", "scenes": []}, {"id": "p", "scenes": ["a"]}]}
        )


@pytest.mark.parametrize(
    "project",
    [
        {"scenes": []},
        {"id": "p", "scenes": [], "owner": "someone"},
        {"id": "p", "scenes": [], "single_band_options": {"color_scheme": "blues"}},
        {"id": "p", "scenes": [{"id": "a", "color_correct": {"hue": 1}}]},
    ],
)
def test_catalog_schema_violations(project) -> None:
    with pytest.raises(jsonschema.ValidationError):
        JsonProjectCatalog.from_payload({"projects": [project]})

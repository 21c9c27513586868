"""Command-line interface for tilemosaic."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

import jsonschema

from tilemosaic import __version__
from tilemosaic.config import ServiceConfig, load_service_config
from tilemosaic.logging_utils import LogOptions, configure_logging
from tilemosaic.models import Bounds, Tile
from tilemosaic.output import write_tile
from tilemosaic.result import ErrorKind, Result
from tilemosaic.service import MosaicService
from tilemosaic.tiling import bbox_to_web_mercator, parse_bbox, tile_bounds

LOGGER = logging.getLogger("tilemosaic.cli")

EXIT_OK = 0
EXIT_STORE_FAILURE = 1
EXIT_BAD_REQUEST = 2
EXIT_NO_CONTENT = 3


def exit_code(result: Result) -> int:
    """Map a render result onto a process exit code."""
    if result.is_found:
        return EXIT_OK
    if result.is_empty:
        return EXIT_NO_CONTENT
    if result.error.kind is ErrorKind.STORE:
        return EXIT_STORE_FAILURE
    return EXIT_BAD_REQUEST


def _report(result: Result, subject: str) -> int:
    code = exit_code(result)
    if result.is_empty:
        LOGGER.warning("No data for %s", subject)
    elif result.is_failed:
        LOGGER.error("%s failed (%s): %s", subject, result.error.kind.value, result.error)
    return code


def _add_tile_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the tile subcommand."""
    tile = subparsers.add_parser("tile", help="Render one z/x/y mosaic tile of a project.")
    tile.add_argument("project", help="Project id.")
    tile.add_argument("zoom", type=int, help="Tile zoom level.")
    tile.add_argument("col", type=int, help="Tile column (x).")
    tile.add_argument("row", type=int, help="Tile row (y).")
    tile.add_argument("-o", "--output", required=True, help="Output .png or .tif path.")


def _add_extent_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the extent subcommand."""
    extent = subparsers.add_parser("extent", help="Render a project over a bounding box.")
    extent.add_argument("project", help="Project id.")
    extent.add_argument("--zoom", type=int, help="Source zoom (defaults to the configured zoom).")
    extent.add_argument("--bbox", help="xmin,ymin,xmax,ymax in EPSG:4326.")
    extent.add_argument(
        "--color-correct",
        action="store_true",
        help="Apply the project color ramp instead of returning raw band values.",
    )
    extent.add_argument("-o", "--output", required=True, help="Output .png or .tif path.")


def _add_layer_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the layer subcommand."""
    layer = subparsers.add_parser("layer", help="Print the resolved metadata of a layer.")
    layer.add_argument("layer", help="Layer (scene) id.")
    layer.add_argument("zoom", type=int, help="Requested zoom level.")


def _add_definition_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the definition subcommand."""
    definition = subparsers.add_parser("definition", help="Print a project's mosaic definition.")
    definition.add_argument("project", help="Project id.")


def _pixel_bounds(zoom: int, col: int, row: int) -> Bounds | None:
    try:
        return tile_bounds(zoom, col, row)
    except ValueError as exc:
        LOGGER.warning("Writing tile without georeferencing: %s", exc)
        return None


def _write(path: Path, tile: Tile, bounds: Bounds | None) -> int:
    try:
        write_tile(path, tile, bounds=bounds)
    except ValueError as exc:
        LOGGER.error("%s", exc)
        return EXIT_BAD_REQUEST
    return EXIT_OK


def _run_tile(service: MosaicService, args: argparse.Namespace) -> int:
    subject = f"{args.project} {args.zoom}/{args.col}/{args.row}"
    result = service.compose_pixel(args.project, args.zoom, args.col, args.row)
    if not result.is_found:
        return _report(result, subject)
    bounds = _pixel_bounds(args.zoom, args.col, args.row)
    return _write(Path(args.output), result.value, bounds)


def _run_extent(service: MosaicService, args: argparse.Namespace) -> int:
    result = service.compose_extent(args.project, args.zoom, args.bbox, args.color_correct)
    if not result.is_found:
        return _report(result, f"{args.project} extent")
    bounds = bbox_to_web_mercator(parse_bbox(args.bbox)) if args.bbox else None
    return _write(Path(args.output), result.value, bounds)


def _run_layer(service: MosaicService, args: argparse.Namespace) -> int:
    result = service.resolve_layer(args.layer, args.zoom)
    if not result.is_found:
        return _report(result, f"layer {args.layer}")
    source_zoom, metadata = result.value
    payload = {
        "layer": args.layer,
        "zoom": args.zoom,
        "source_zoom": source_zoom,
        "metadata": metadata.to_dict(),
    }
    print(json.dumps(payload, indent=2))
    return EXIT_OK


def _run_definition(service: MosaicService, args: argparse.Namespace) -> int:
    result = service.mosaic_definition(args.project)
    if not result.is_found:
        return _report(result, f"project {args.project}")
    print(json.dumps([entry.to_dict() for entry in result.value], indent=2))
    return EXIT_OK


COMMANDS = {
    "tile": _run_tile,
    "extent": _run_extent,
    "layer": _run_layer,
    "definition": _run_definition,
}


def _load_service(config_path: str | None) -> MosaicService:
    config: ServiceConfig = load_service_config(Path(config_path) if config_path else None)
    if config.source:
        LOGGER.debug("Loaded configuration from %s", config.source)
    return MosaicService.from_config(config)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI entrypoint and return an exit code."""
    parser = argparse.ArgumentParser(
        prog="tilemosaic",
        description="Render single-band mosaics of project scenes",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument("--config", help="Service configuration JSON file.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (repeatable).",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Reduce log output to warnings and errors.",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit logs as JSON on stderr.",
    )
    parser.add_argument(
        "--log-file",
        help="Optional path for JSON log output.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_tile_parser(subparsers)
    _add_extent_parser(subparsers)
    _add_layer_parser(subparsers)
    _add_definition_parser(subparsers)

    args = parser.parse_args(argv)
    configure_logging(
        LogOptions(
            verbose=args.verbose or 0,
            quiet=bool(args.quiet),
            log_file=Path(args.log_file) if args.log_file else None,
            json_console=bool(args.log_json),
        ),
        levels={"rasterio": logging.DEBUG if (args.verbose or 0) > 1 else logging.WARNING},
    )

    try:
        service = _load_service(args.config)
    except (OSError, ValueError, jsonschema.ValidationError) as exc:
        LOGGER.error("Cannot start tilemosaic: %s", exc)
        return EXIT_BAD_REQUEST
    with service:
        return COMMANDS[args.command](service, args)

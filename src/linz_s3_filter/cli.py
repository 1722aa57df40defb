"""Command-line entry point for searching and downloading LINZ datasets."""

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from linz_s3_filter.connectors.settings import SettingsResource
from linz_s3_filter.exceptions import InvalidSelectionError, LinzS3FilterError
from linz_s3_filter.geospatial.vrt import build_vrt_from_paths
from linz_s3_filter.models.models import BucketName, SpatialFilterParams, TileGroup
from linz_s3_filter.search import search_catalog, select_tile_groups
from linz_s3_filter.storage import DownloadPipeline

logger = logging.getLogger("linz_s3_filter.cli")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
AUTO_SELECT_FLAGS = ("first", "by_index", "by_size", "by_all")
NAME_FILTER_DESTS = ("include_names", "exclude_names")
SUBCOMMAND_DEST_SUFFIX = "_after_filter"
RASTER_SUFFIXES = (".tif", ".tiff")


def latitude(value: str) -> float:
    try:
        val = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid latitude: {value}") from None
    if not -90.0 <= val <= 90.0:
        raise argparse.ArgumentTypeError(f"Latitude must be between -90 and 90 degrees: {value}")
    return val


def longitude(value: str) -> float:
    try:
        val = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid longitude: {value}") from None
    if not -180.0 <= val <= 180.0:
        raise argparse.ArgumentTypeError(f"Longitude must be between -180 and 180 degrees: {value}")
    return val


def positive_meters(value: str) -> float:
    try:
        val = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid distance: {value}") from None
    if val <= 0:
        raise argparse.ArgumentTypeError(f"Distance in meters must be positive: {value}")
    return val


def _add_common_arguments(parser: argparse.ArgumentParser, suppress_defaults: bool = False) -> None:
    """Options accepted both before and after the spatial filter subcommand.

    Subcommand copies use SUPPRESS defaults so they never overwrite values parsed
    by the main parser.
    """

    def default(value: object) -> object:
        return argparse.SUPPRESS if suppress_defaults else value

    # argparse replaces, not extends, parent values with the subcommand's, so
    # repeatable options parsed after the subcommand land in their own dest
    name_suffix = SUBCOMMAND_DEST_SUFFIX if suppress_defaults else ""

    parser.add_argument("-d", "--download", action="store_true", default=default(False), help="Download the tiles")
    parser.add_argument(
        "-c",
        "--cache",
        type=Path,
        default=default(None),
        help="Directory downloads are written to and looked up in (default: current directory)",
    )
    parser.add_argument(
        "-f",
        "--first",
        action="store_true",
        default=default(False),
        help="Automatically select the first dataset found, usually the highest resolution",
    )
    parser.add_argument(
        "-i", "--by-index", type=int, default=default(None), help="Automatically select the dataset at this index"
    )
    parser.add_argument(
        "-s",
        "--by-size",
        action="store_true",
        default=default(False),
        help="Automatically select the dataset with the most tiles",
    )
    parser.add_argument(
        "-a", "--by-all", action="store_true", default=default(False), help="Automatically select every dataset"
    )
    parser.add_argument(
        "-n",
        "--by-collection-name",
        action="append",
        dest=f"include_names{name_suffix}",
        metavar="NAME",
        default=default(None),
        help="Keep collections whose id or title contains NAME. Repeatable, matches any",
    )
    parser.add_argument(
        "-x",
        "--exclude-collection-name",
        action="append",
        dest=f"exclude_names{name_suffix}",
        metavar="NAME",
        default=default(None),
        help="Drop collections whose id or title contains NAME. Repeatable",
    )
    parser.add_argument(
        "--all-collections",
        action="store_true",
        default=default(False),
        help="Allow a search without any spatial or name filter (crawls the whole bucket)",
    )
    parser.add_argument(
        "-m",
        "--concurrency-multiplier",
        type=int,
        default=default(None),
        help="Concurrent fetches per available CPU (default: 1)",
    )
    parser.add_argument(
        "--vrt", type=Path, default=default(None), help="Build a VRT mosaic at this path from downloaded tiles"
    )
    parser.add_argument(
        "-l", "--log-level", choices=LOG_LEVELS, default=default("INFO"), help="Logging verbosity (default: INFO)"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", default=default(False), help="Shortcut for --log-level DEBUG"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linz-s3-filter",
        description="Search for, filter, and download datasets from LINZ S3 buckets.",
    )
    parser.add_argument("bucket", choices=[bucket.value for bucket in BucketName], help="The bucket to search")
    _add_common_arguments(parser)

    subparsers = parser.add_subparsers(dest="spatial_filter", metavar="{coordinate,area}")

    coordinate_parser = subparsers.add_parser(
        "coordinate", help="Filter by a point, or by the rectangle spanned by two points"
    )
    coordinate_parser.add_argument("lat1", type=latitude, help="Latitude of the point to search")
    coordinate_parser.add_argument("lon1", type=longitude, help="Longitude of the point to search")
    coordinate_parser.add_argument("lat2", type=latitude, nargs="?", help="Optional second latitude")
    coordinate_parser.add_argument("lon2", type=longitude, nargs="?", help="Optional second longitude")
    _add_common_arguments(coordinate_parser, suppress_defaults=True)

    area_parser = subparsers.add_parser("area", help="Filter by a centre point and a search area in meters")
    area_parser.add_argument("lat1", type=latitude, help="Latitude of the centre of the area")
    area_parser.add_argument("lon1", type=longitude, help="Longitude of the centre of the area")
    area_parser.add_argument("width_m", type=positive_meters, help="Width in meters, also the height if omitted")
    area_parser.add_argument("height_m", type=positive_meters, nargs="?", help="Optional height in meters")
    _add_common_arguments(area_parser, suppress_defaults=True)

    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    for dest in NAME_FILTER_DESTS:
        later = vars(args).pop(f"{dest}{SUBCOMMAND_DEST_SUFFIX}", None)
        if later:
            setattr(args, dest, (getattr(args, dest) or []) + later)


    if args.spatial_filter == "coordinate" and (args.lat2 is None) != (args.lon2 is None):
        parser.error("coordinate needs both lat2 and lon2 for a range, or neither for a point")

    # by_index may legitimately be 0
    selected = [flag for flag in AUTO_SELECT_FLAGS if getattr(args, flag) is not None and getattr(args, flag) is not False]
    if len(selected) > 1:
        parser.error(f"Choose at most one automatic selection, got: {', '.join(selected)}")

    if args.concurrency_multiplier is not None and args.concurrency_multiplier < 1:
        parser.error("--concurrency-multiplier must be at least 1")

    return args


def spatial_params_from_args(args: argparse.Namespace) -> SpatialFilterParams | None:
    if args.spatial_filter == "coordinate":
        return SpatialFilterParams(lat1=args.lat1, lon1=args.lon1, lat2=args.lat2, lon2=args.lon2)
    if args.spatial_filter == "area":
        return SpatialFilterParams(lat1=args.lat1, lon1=args.lon1, width_m=args.width_m, height_m=args.height_m)
    return None


def prompt_for_index(tile_count: int) -> int:
    """Ask for a dataset index on stdin."""
    print("Please choose a dataset (enter index):")
    try:
        raw = input("> ").strip()
    except EOFError:
        raise InvalidSelectionError("No dataset index given") from None
    try:
        index = int(raw)
    except ValueError:
        raise InvalidSelectionError(f"Invalid index {raw!r}. Please enter a valid number.") from None
    if not 0 <= index < tile_count:
        raise InvalidSelectionError(f"Invalid index {index}, expected 0 to {tile_count - 1}")
    return index


def print_tile_groups(tile_groups: Sequence[TileGroup]) -> None:
    for i, tile_group in enumerate(tile_groups):
        print(f"{i}. {tile_group.title} - Number of Tiles: {len(tile_group.assets)}")


async def run(args: argparse.Namespace, settings: SettingsResource) -> int:
    tile_groups = await search_catalog(
        BucketName(args.bucket),
        spatial_params=spatial_params_from_args(args),
        include_names=args.include_names,
        exclude_names=args.exclude_names,
        concurrency_multiplier=args.concurrency_multiplier,
        select_all=args.all_collections,
        settings=settings,
    )

    if not tile_groups:
        print("No results found")
        return 0

    print_tile_groups(tile_groups)
    indices = select_tile_groups(
        tile_groups,
        first=args.first,
        by_index=args.by_index,
        by_size=args.by_size,
        by_all=args.by_all,
    )
    if indices is None:
        indices = [prompt_for_index(len(tile_groups))]

    pipeline = DownloadPipeline(settings.get_cache_dir())
    written: list[str] = []
    for index in indices:
        summary = await pipeline.process(tile_groups, index, args.download)
        if summary.interrupted:
            return 130
        written.extend(summary.paths)

    if args.vrt is not None:
        if not args.download:
            logger.warning("--vrt needs --download, skipping mosaic")
        else:
            tiles = [path for path in written if path.lower().endswith(RASTER_SUFFIXES) and Path(path).exists()]
            build_vrt_from_paths(tiles, args.vrt)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    level = "DEBUG" if args.verbose else args.log_level
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    try:
        settings = SettingsResource.create(
            concurrency_multiplier=args.concurrency_multiplier,
            cache_dir=str(args.cache) if args.cache is not None else None,
        )
    except ValueError as e:
        logger.error(f"Error: {e}")
        return 1

    try:
        return asyncio.run(run(args, settings))
    except LinzS3FilterError as e:
        e.report()
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())

"""Search orchestration: argument validation, retried initialisation and selection."""

import asyncio
import logging
from collections.abc import Sequence

from linz_s3_filter.bucket import LinzBucket
from linz_s3_filter.connectors.settings import SettingsResource
from linz_s3_filter.connectors.stac_client import STACResource
from linz_s3_filter.exceptions import (
    CatalogFetchError,
    DimensionAndCoordinateRangeError,
    InvalidSelectionError,
    NoFilterProvidedError,
)
from linz_s3_filter.geospatial.bbox_ops import coordinates_from_dimensions
from linz_s3_filter.models.models import BucketName, SpatialFilterParams, TileGroup

logger = logging.getLogger(__name__)

Corners = tuple[float, float, float | None, float | None]


def resolve_spatial_filter(params: SpatialFilterParams) -> Corners:
    """Turn CLI spatial arguments into ``(lat1, lon1, lat2, lon2)``.

    :param params: Spatial filter parameters
    :returns: Corners; the second corner is None for a single point
    :raises DimensionAndCoordinateRangeError: If both a second corner and dimensions are given
    """
    has_dimensions = params.width_m is not None or params.height_m is not None
    has_range = params.lat2 is not None or params.lon2 is not None
    if has_dimensions and has_range:
        raise DimensionAndCoordinateRangeError()

    if params.width_m is not None:
        height_m = params.height_m if params.height_m is not None else params.width_m
        return coordinates_from_dimensions(params.lat1, params.lon1, params.width_m, height_m)
    if params.height_m is not None:
        return coordinates_from_dimensions(params.lat1, params.lon1, params.height_m, params.height_m)
    return params.lat1, params.lon1, params.lat2, params.lon2


def validate_filters(
    spatial_params: SpatialFilterParams | None,
    include_names: Sequence[str] | None,
    exclude_names: Sequence[str] | None,
    select_all: bool = False,
) -> Corners | None:
    """Reject unscoped or contradictory queries before touching the network.

    :returns: Resolved corners, or None when there is no spatial filter
    """
    if spatial_params is not None:
        return resolve_spatial_filter(spatial_params)
    if not include_names and not exclude_names and not select_all:
        raise NoFilterProvidedError()
    return None


async def initialise_with_retry(
    bucket: BucketName | str,
    settings: SettingsResource,
    concurrency_multiplier: int | None = None,
    store: STACResource | None = None,
) -> LinzBucket:
    """Initialise the bucket, retrying a failed root catalog fetch.

    :param bucket: Named bucket, or base URL/path
    :param settings: Settings with the retry policy
    :param concurrency_multiplier: Overrides the multiplier from settings
    :param store: Optional catalog store
    :returns: Initialised bucket
    :raises CatalogFetchError: If every attempt failed
    """
    attempts = settings.fetch_retry_attempts
    attempt = 1
    while True:
        try:
            return await LinzBucket.initialise_catalog(
                bucket, concurrency_multiplier, settings=settings, store=store
            )
        except CatalogFetchError as e:
            if attempt >= attempts:
                raise
            logger.warning(f"({attempt}/{attempts}) {e}; retrying in {settings.fetch_retry_delay}s")
            await asyncio.sleep(settings.fetch_retry_delay)
            attempt += 1


async def search_catalog(
    bucket: BucketName | str,
    spatial_params: SpatialFilterParams | None = None,
    include_names: Sequence[str] | None = None,
    exclude_names: Sequence[str] | None = None,
    concurrency_multiplier: int | None = None,
    select_all: bool = False,
    settings: SettingsResource | None = None,
    store: STACResource | None = None,
) -> list[TileGroup]:
    """Search a bucket by area and/or collection name.

    :param bucket: Named bucket, or base URL/path
    :param spatial_params: Point, point pair or point plus dimensions
    :param include_names: Collection name substrings to keep
    :param exclude_names: Collection name substrings to drop
    :param concurrency_multiplier: Overrides the multiplier from settings
    :param select_all: Allow a search with no filter at all
    :param settings: Access options and retry policy
    :param store: Optional catalog store
    :returns: Ordered tile groups
    """
    corners = validate_filters(spatial_params, include_names, exclude_names, select_all)
    settings = settings or SettingsResource.create()

    linz_bucket = await initialise_with_retry(bucket, settings, concurrency_multiplier, store=store)
    try:
        if corners is None:
            linz_bucket.set_collection_filter(include_names, exclude_names, None)
            return await linz_bucket.get_all_tiles()

        linz_bucket.set_collection_filter(include_names, exclude_names, corners)
        return await linz_bucket.get_tiles(*corners)
    finally:
        linz_bucket.close()


def select_tile_groups(
    tile_groups: Sequence[TileGroup],
    first: bool = False,
    by_index: int | None = None,
    by_size: bool = False,
    by_all: bool = False,
) -> list[int] | None:
    """Pick tile groups without prompting.

    :param tile_groups: Ordered search result
    :param first: Pick the first group, usually the finest resolution
    :param by_index: Pick the group at this index
    :param by_size: Pick the group with the most assets
    :param by_all: Pick every group
    :returns: Selected indices, or None when no automatic selection was requested
    :raises InvalidSelectionError: If ``by_index`` is out of range
    """
    if not tile_groups:
        return []
    if first:
        return [0]
    if by_index is not None:
        if not 0 <= by_index < len(tile_groups):
            raise InvalidSelectionError(
                f"Index {by_index} is out of range, expected 0 to {len(tile_groups) - 1}"
            )
        return [by_index]
    if by_size:
        largest = max(range(len(tile_groups)), key=lambda index: len(tile_groups[index].assets))
        return [largest]
    if by_all:
        return list(range(len(tile_groups)))
    return None

"""Bounding box operations used to filter collections and items."""

import math
from collections.abc import Iterable
from typing import Any

from shapely.geometry import shape

from linz_s3_filter.config.constants import METERS_PER_DEGREE_LATITUDE
from linz_s3_filter.models.models import BBox


def build_query_bbox(
    lat1: float | None,
    lon1: float | None,
    lat2: float | None = None,
    lon2: float | None = None,
) -> BBox | None:
    """Build the query rectangle from one or two corners.

    Corners are min/max normalised on each axis. A single corner gives a
    zero-area rectangle at that point.

    :param lat1: First latitude
    :param lon1: First longitude
    :param lat2: Optional second latitude
    :param lon2: Optional second longitude
    :returns: BBox, or None when no first corner is given
    """
    if lat1 is None or lon1 is None:
        return None
    if lat2 is None or lon2 is None:
        return BBox.from_point(lat1, lon1)
    return BBox(
        xmin=min(lon1, lon2),
        ymin=min(lat1, lat2),
        xmax=max(lon1, lon2),
        ymax=max(lat1, lat2),
    )


def coordinates_from_dimensions(
    lat: float, lon: float, width_m: float, height_m: float
) -> tuple[float, float, float, float]:
    """Convert a centre point and a size in meters into two corners.

    Uses the spherical approximation of meters per degree.

    :param lat: Centre latitude
    :param lon: Centre longitude
    :param width_m: Width in meters
    :param height_m: Height in meters
    :returns: Tuple of (lat1, lon1, lat2, lon2)
    """
    lat_offset = height_m / METERS_PER_DEGREE_LATITUDE
    lon_offset = width_m / (METERS_PER_DEGREE_LATITUDE * math.cos(math.radians(lat)))
    return (
        lat - lat_offset / 2.0,
        lon - lon_offset / 2.0,
        lat + lat_offset / 2.0,
        lon + lon_offset / 2.0,
    )


def collection_bboxes(collection: Any) -> list[BBox]:
    """Spatial extent boxes of a collection.

    :param collection: pystac.Collection
    :returns: List of BBox
    """
    return [BBox.from_stac(list(values)) for values in collection.extent.spatial.bboxes]


def any_overlap(bboxes: Iterable[BBox], query: BBox) -> bool:
    return any(bbox.overlaps(query) for bbox in bboxes)


def item_bbox(item: Any) -> BBox | None:
    """Bounding box of an item.

    Falls back to the bounds of the item geometry when no bbox is published.

    :param item: pystac.Item
    :returns: BBox or None if the item has neither bbox nor geometry
    """
    if item.bbox:
        return BBox.from_stac(list(item.bbox))
    if item.geometry:
        xmin, ymin, xmax, ymax = shape(item.geometry).bounds
        return BBox(xmin=xmin, ymin=ymin, xmax=xmax, ymax=ymax)
    return None

"""Turn matched items into ranked groups of absolute asset locations."""

import logging
import math
import re
from typing import Any

from linz_s3_filter.config.constants import RESOLUTION_HINT_PATTERN
from linz_s3_filter.models.models import MatchingItems, TileGroup

logger = logging.getLogger(__name__)

_RESOLUTION_HINT = re.compile(RESOLUTION_HINT_PATTERN)


def resolve_asset_reference(href: str, item_location: str | None) -> str:
    """Resolve an asset href against the location of its item.

    Only ``./``-relative hrefs are rewritten; anything else is returned unchanged.

    :param href: Asset href as published in the item
    :param item_location: Absolute location the item was read from
    :returns: Absolute asset location
    """
    if not href.startswith("./") or item_location is None:
        return href
    base_path = item_location.rsplit("/", 1)[0] if "/" in item_location else ""
    return f"{base_path}/{href[2:]}"


def extract_resolution_hint(title: str) -> float:
    """Extract the resolution in meters embedded in a dataset title.

    :param title: Collection title, e.g. ``"Southland LiDAR 1m DEM (2020-2024)"``
    :returns: Resolution in meters, ``math.inf`` when the title carries none
    """
    match = _RESOLUTION_HINT.search(title)
    if match is None:
        logger.debug(f"No resolution found in: {title!r}")
        return math.inf
    return float(match.group(1))


def _item_asset_locations(item: Any) -> list[str]:
    item_location = item.get_self_href()
    if item_location is None:
        logger.debug(f"Item {item.id} has no self href, using asset hrefs as published")
    return [resolve_asset_reference(asset.href, item_location) for asset in item.assets.values()]


def get_hrefs(results: list[MatchingItems]) -> list[TileGroup]:
    """Build tile groups ordered finest resolution first, then by title.

    :param results: Matched items per collection
    :returns: Ordered tile groups
    """
    tile_groups = []
    for result in results:
        locations = []
        for item in result.items:
            locations.extend(_item_asset_locations(item))
        tile_groups.append(TileGroup(assets=locations, title=result.title))

    tile_groups.sort(key=lambda group: (extract_resolution_hint(group.title), group.title))
    return tile_groups

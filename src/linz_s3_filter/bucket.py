"""Crawl a bucket's STAC catalog and filter its collections and items spatially."""

import asyncio
import logging
import os
from collections.abc import Sequence
from typing import Any

import pystac

from linz_s3_filter.assets import get_hrefs
from linz_s3_filter.config.constants import CATALOG_FILE_NAME, REPORT_INTERVAL_SECONDS
from linz_s3_filter.connectors.settings import SettingsResource
from linz_s3_filter.connectors.stac_client import STACResource
from linz_s3_filter.exceptions import CatalogFetchError
from linz_s3_filter.fetcher import BoundedFetcher
from linz_s3_filter.geospatial.bbox_ops import any_overlap, build_query_bbox, collection_bboxes, item_bbox
from linz_s3_filter.models.models import BBox, BucketName, MatchingItems, TileGroup
from linz_s3_filter.reporter import Reporter

logger = logging.getLogger(__name__)

Extent = tuple[float, float, float | None, float | None]


def compute_concurrency_budget(multiplier: int | None) -> int:
    """Number of permits for one bucket session.

    :param multiplier: Factor applied to the available parallelism, 1 when unset
    :returns: Permit count, at least 1
    """
    return max(1, (os.cpu_count() or 1) * (multiplier or 1))


def catalog_url_for(bucket: BucketName | str) -> str:
    """Root catalog URL for a named bucket or a base URL/path."""
    if isinstance(bucket, BucketName):
        return bucket.catalog_url
    return f"{bucket.rstrip('/')}/{CATALOG_FILE_NAME}"


def absolute_link_hrefs(stac_object: Any, rel: str) -> list[str]:
    """Absolute hrefs of all links with the given relation.

    :param stac_object: pystac Catalog or Collection with its self href set
    :param rel: Link relation, e.g. ``"child"`` or ``"item"``
    :returns: Absolute hrefs
    """
    hrefs = []
    for link in stac_object.get_links(rel=rel):
        href = link.get_absolute_href()
        if href:
            hrefs.append(href)
    return hrefs


def _matches_any(collection: Any, names: Sequence[str]) -> bool:
    title = collection.title or ""
    return any(name in collection.id or name in title for name in names)


def _item_overlaps(item: Any, query: BBox) -> bool:
    bbox = item_bbox(item)
    return bbox is not None and bbox.overlaps(query)


async def process_collection(
    collection: Any,
    query: BBox | None,
    fetcher: BoundedFetcher[Any],
    reporter: Reporter,
) -> MatchingItems | None:
    """Search one collection.

    With a query rectangle, collections whose extent misses it are rejected
    without fetching anything. Otherwise every item is fetched and kept if there
    is no query or its bbox overlaps the query. The collection is always counted
    as read, whatever the outcome.

    :param collection: pystac.Collection with its self href set
    :param query: Query rectangle, or None to keep every item
    :param fetcher: Shared bounded fetcher for item documents
    :param reporter: Progress reporter for this search
    :returns: MatchingItems, or None if nothing matched
    """
    title = collection.title or collection.id
    try:
        if query is not None and not any_overlap(collection_bboxes(collection), query):
            return None

        urls = absolute_link_hrefs(collection, pystac.RelType.ITEM)
        reporter.add_urls(len(urls))
        items = await fetcher.fetch_all(urls)
        if query is not None:
            items = [item for item in items if _item_overlaps(item, query)]
        logger.debug(f"Finished processing collection: {title}")
    finally:
        reporter.report_finished_collection()

    if not items:
        return None
    return MatchingItems(title=title, items=items)


class LinzBucket:
    """Collections of one bucket plus the state needed to search them."""

    def __init__(
        self,
        collections: list[Any],
        store: STACResource,
        permits: int,
        report_interval: float = REPORT_INTERVAL_SECONDS,
    ) -> None:
        self.collections = collections
        self.filtered_collections: list[Any] | None = None
        self.store = store
        self.permits = permits
        self.report_interval = report_interval
        self.reporter = Reporter(len(collections))

    @classmethod
    async def initialise_catalog(
        cls,
        bucket: BucketName | str,
        concurrency_multiplier: int | None = None,
        settings: SettingsResource | None = None,
        store: STACResource | None = None,
    ) -> "LinzBucket":
        """Read the root catalog and every child collection.

        :param bucket: Named bucket, or base URL/path holding ``catalog.json``
        :param concurrency_multiplier: Overrides the multiplier from settings
        :param settings: Access options; read from the environment when omitted
        :param store: Catalog store; built from settings when omitted
        :returns: Initialised bucket
        :raises CatalogFetchError: If the root catalog cannot be read
        """
        settings = settings or SettingsResource.create()
        store = store or STACResource(settings=settings)
        multiplier = concurrency_multiplier or settings.get_concurrency_multiplier()

        logger.info("Initialising Catalog...")
        catalog_url = catalog_url_for(bucket)
        try:
            catalog = await store.get_catalog(catalog_url)
        except Exception as e:
            raise CatalogFetchError(catalog_url) from e

        logger.info(f"ID: {catalog.id}")
        logger.info(f"Title: {catalog.title or 'N/A'}")
        logger.info(f"Description: {catalog.description}")

        urls = absolute_link_hrefs(catalog, pystac.RelType.CHILD)
        permits = compute_concurrency_budget(multiplier)
        logger.debug(f"Number of permits: {permits}")
        store.set_max_workers(permits)

        fetcher: BoundedFetcher[Any] = BoundedFetcher(store.get_collection, permits)
        collections = await fetcher.fetch_all(urls)
        if fetcher.failures:
            logger.warning(f"{fetcher.failures} of {len(urls)} collections could not be read")
        logger.info(f"Total number of Collections in catalog: {len(collections)}")

        return cls(collections, store, permits)

    def close(self) -> None:
        """Release the catalog store's read threads."""
        self.store.close()

    @property
    def working_set(self) -> list[Any]:
        if self.filtered_collections is not None:
            return self.filtered_collections
        return self.collections

    def set_collection_filter(
        self,
        include_names: Sequence[str] | None = None,
        exclude_names: Sequence[str] | None = None,
        extent: Extent | None = None,
    ) -> None:
        """Rebuild the filtered view from the full collection list.

        Must not be called while a search is running.

        :param include_names: Keep collections whose id or title contains any of these
        :param exclude_names: Drop collections whose id or title contains any of these
        :param extent: ``(lat1, lon1, lat2, lon2)``; a missing second corner means a point
        """
        query = build_query_bbox(*extent) if extent is not None else None

        filtered = []
        for collection in self.collections:
            include = not include_names or _matches_any(collection, include_names)
            exclude = bool(exclude_names) and _matches_any(collection, exclude_names or [])
            within_extent = query is None or any_overlap(collection_bboxes(collection), query)
            if include and not exclude and within_extent:
                filtered.append(collection)

        logger.debug(f"Collection filter kept {len(filtered)} of {len(self.collections)} collections")
        self.filtered_collections = filtered

    async def get_tiles(
        self,
        lat1: float | None = None,
        lon1: float | None = None,
        lat2: float | None = None,
        lon2: float | None = None,
    ) -> list[TileGroup]:
        """Search the working set for items overlapping the given point or rectangle.

        Without a first corner every item of every collection matches.

        :param lat1: First latitude
        :param lon1: First longitude
        :param lat2: Optional second latitude
        :param lon2: Optional second longitude
        :returns: Tile groups ordered finest resolution first
        """
        collections = self.working_set
        self.reporter.reset_all(len(collections))
        reporter_task = self.reporter.start(self.report_interval)

        query = build_query_bbox(lat1, lon1, lat2, lon2)
        fetcher: BoundedFetcher[Any] = BoundedFetcher(self.store.get_item, self.permits, reporter=self.reporter)
        try:
            results = await asyncio.gather(
                *(process_collection(collection, query, fetcher, self.reporter) for collection in collections),
                return_exceptions=True,
            )
        finally:
            self.reporter.stop()
            reporter_task.cancel()
            await asyncio.gather(reporter_task, return_exceptions=True)

        matches = []
        for collection, result in zip(collections, results):
            if isinstance(result, BaseException):
                logger.warning(f"Collection {collection.id} produced nothing: {result!r}")
                continue
            if result is not None:
                matches.append(result)

        logger.info("All collections processed")
        if fetcher.failures:
            logger.info(f"{fetcher.failures} item documents could not be read and were skipped")

        return get_hrefs(matches)

    async def get_all_tiles(self) -> list[TileGroup]:
        return await self.get_tiles()

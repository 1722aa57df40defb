"""STAC client connector for fetching catalog, collection and item documents."""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any
from urllib.parse import urlsplit

import pystac
from pydantic import BaseModel, PrivateAttr
from pystac.stac_io import DefaultStacIO

from linz_s3_filter.connectors.s3_client import S3Resource
from linz_s3_filter.connectors.settings import SettingsResource

logger = logging.getLogger(__name__)


def split_s3_url(url: str) -> tuple[str, str]:
    """Split an ``s3://bucket/key`` URL.

    :param url: S3 URL
    :returns: Tuple of (bucket, key)
    """
    parts = urlsplit(url)
    return parts.netloc, parts.path.lstrip("/")


class S3StacIO(DefaultStacIO):
    """StacIO that reads ``s3://`` hrefs through boto3 and everything else like pystac."""

    def __init__(self, s3: S3Resource, headers: dict[str, str] | None = None) -> None:
        super().__init__(headers=headers)
        self.s3 = s3
        self._client: Any = None
        self._client_lock = threading.Lock()

    def _get_s3_client(self) -> Any:
        # boto3 clients are thread safe, creating them is not
        with self._client_lock:
            if self._client is None:
                self._client = self.s3.get_client()
            return self._client

    def read_text_from_href(self, href: str) -> str:
        if href.startswith("s3://"):
            bucket, key = split_s3_url(href)
            response = self._get_s3_client().get_object(Bucket=bucket, Key=key)
            body: str = response["Body"].read().decode("utf-8")
            return body
        return super().read_text_from_href(href)


class STACResource(BaseModel):
    """Catalog store: get-by-url for STAC documents, decoded with pystac.

    Blocking reads run on a thread pool so many fetches can be in flight while
    the event loop keeps the bookkeeping. Size the pool with ``set_max_workers``
    to match the number of fetch permits; until then reads share the event
    loop's default executor.
    """

    settings: SettingsResource

    _stac_io: S3StacIO | None = PrivateAttr(default=None)
    _max_workers: int | None = PrivateAttr(default=None)
    _executor: ThreadPoolExecutor | None = PrivateAttr(default=None)

    def create_client(self) -> S3StacIO:
        """Create StacIO honouring the anonymous access and region options.

        :returns: Configured StacIO
        """
        logger.debug(f"Catalog store options: {self.settings.storage_options()}")
        return S3StacIO(S3Resource(settings=self.settings))

    def get_client(self) -> S3StacIO:
        """Get the shared StacIO instance.

        :returns: StacIO
        """
        if self._stac_io is None:
            self._stac_io = self.create_client()
        return self._stac_io

    @property
    def max_workers(self) -> int | None:
        return self._max_workers

    def set_max_workers(self, max_workers: int) -> None:
        """Size the read pool; an existing pool is shut down and rebuilt on next use.

        :param max_workers: Number of reads that may block at the same time
        """
        self.close()
        self._max_workers = max(1, max_workers)

    def get_executor(self) -> ThreadPoolExecutor | None:
        if self._executor is None and self._max_workers is not None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="linz-s3-filter-read"
            )
        return self._executor

    def close(self) -> None:
        """Release the read pool threads."""
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    async def get(self, url: str) -> dict[str, Any]:
        """Fetch and parse a JSON document.

        :param url: Document URL, ``s3://`` URL or local path
        :returns: Decoded JSON dictionary
        """
        stac_io = self.get_client()
        loop = asyncio.get_running_loop()
        document: dict[str, Any] = await loop.run_in_executor(self.get_executor(), stac_io.read_json, url)
        return document

    async def get_catalog(self, url: str) -> pystac.Catalog:
        return pystac.Catalog.from_dict(await self.get(url), href=url)

    async def get_collection(self, url: str) -> pystac.Collection:
        return pystac.Collection.from_dict(await self.get(url), href=url)

    async def get_item(self, url: str) -> pystac.Item:
        return pystac.Item.from_dict(await self.get(url), href=url)

"""Bounded-parallel fetching of STAC documents."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Generic, TypeVar

from linz_s3_filter.reporter import Reporter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BoundedFetcher(Generic[T]):
    """Fetch many URLs with at most ``permits`` requests in flight.

    Failed fetches are logged, counted and left out of the results; they never
    abort sibling fetches. A permit is held only for the duration of the network
    call and is released on every exit path.

    Build one per crawl inside the running event loop.
    """

    def __init__(
        self,
        get: Callable[[str], Awaitable[T]],
        permits: int,
        reporter: Reporter | None = None,
    ) -> None:
        self.get = get
        self.permits = max(1, permits)
        self.semaphore = asyncio.Semaphore(self.permits)
        self.reporter = reporter
        self.failures = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch(self, url: str) -> T | None:
        """Fetch one URL under a permit.

        :param url: Document URL
        :returns: Decoded document, or None if the fetch failed
        """
        async with self.semaphore:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            if self.reporter is not None:
                self.reporter.add_thread()
            try:
                logger.debug(f"Processing URL: {url}")
                return await self.get(url)
            except Exception as e:  # pylint: disable=broad-except
                self.failures += 1
                logger.debug(f"Error fetching {url}: {e!r}")
                return None
            finally:
                self.in_flight -= 1
                if self.reporter is not None:
                    self.reporter.report_finished_url()
                    self.reporter.report_finished_thread()

    async def fetch_all(self, urls: Iterable[str]) -> list[T]:
        """Fetch every URL, keeping only the successes.

        :param urls: Document URLs
        :returns: Decoded documents of the successful fetches
        """
        results = await asyncio.gather(*(self.fetch(url) for url in urls))
        return [result for result in results if result is not None]

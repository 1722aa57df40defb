"""Progress counters shared by the collection tasks of one search."""

import asyncio
import logging
from dataclasses import dataclass

from linz_s3_filter.config.constants import REPORT_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReporterState:
    """Point-in-time copy of the reporter counters."""

    collections_total: int
    collections_read: int
    urls_total: int
    urls_read: int
    open_workers: int
    stop_flag: bool


class Reporter:
    """Live progress display for a crawl.

    Counters are only touched from the event loop thread, so each increment is
    a single uninterrupted step. They are independent of each other: a report
    may show ``urls_read`` from slightly after ``collections_read``, which is fine
    for a liveness display.
    """

    def __init__(self, collections_total: int) -> None:
        self.collections_total = collections_total
        self.collections_read = 0
        self.urls_total = 0
        self.urls_read = 0
        self.open_workers = 0
        self.stop_flag = False

    def report(self) -> None:
        if self.stop_flag:
            return
        logger.info(
            f"Reporting: {self.collections_read}/{self.collections_total} Collections read, "
            f"{self.urls_read}/{self.urls_total} URLS read"
        )

    def report_finished_collection(self) -> None:
        self.collections_read += 1

    def add_urls(self, count: int) -> None:
        self.urls_total += count

    def report_finished_url(self) -> None:
        self.urls_read += 1

    def add_thread(self) -> None:
        self.open_workers += 1

    def report_finished_thread(self) -> None:
        self.open_workers -= 1

    def reset_collection_read(self) -> None:
        self.collections_read = 0

    def reset_urls_read(self) -> None:
        self.urls_read = 0

    def reset_urls_total(self) -> None:
        self.urls_total = 0

    def reset_open_workers(self) -> None:
        self.open_workers = 0

    def reset_all(self, collections_total: int) -> None:
        """Zero the counters and clear the stop flag for a new search."""
        self.collections_total = collections_total
        self.reset_collection_read()
        self.reset_urls_read()
        self.reset_urls_total()
        self.reset_open_workers()
        self.stop_flag = False
        logger.info(f"Collections to be read: {self.collections_total}")

    def stop(self) -> None:
        self.stop_flag = True

    def snapshot(self) -> ReporterState:
        return ReporterState(
            collections_total=self.collections_total,
            collections_read=self.collections_read,
            urls_total=self.urls_total,
            urls_read=self.urls_read,
            open_workers=self.open_workers,
            stop_flag=self.stop_flag,
        )

    async def run(self, interval: float = REPORT_INTERVAL_SECONDS) -> None:
        """Report every ``interval`` seconds until the stop flag is set."""
        self.add_thread()
        try:
            while not self.stop_flag:
                await asyncio.sleep(interval)
                self.report()
        finally:
            self.report_finished_thread()

    def start(self, interval: float = REPORT_INTERVAL_SECONDS) -> "asyncio.Task[None]":
        """Start the reporting loop on the running event loop.

        :param interval: Seconds between progress lines
        :returns: Task handle; the caller owns it and must cancel or await it
        """
        return asyncio.create_task(self.run(interval), name="linz-s3-filter-reporter")

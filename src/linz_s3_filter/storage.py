"""Download the assets of a chosen tile group into the cache directory."""

import asyncio
import logging
import re
import signal
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

import aiohttp
from tqdm.asyncio import tqdm

from linz_s3_filter.config.constants import DOWNLOAD_CHUNK_SIZE, DOWNLOAD_TIMEOUT_SECONDS
from linz_s3_filter.exceptions import InvalidSelectionError
from linz_s3_filter.models.models import DownloadSummary, TileGroup

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^\w\s().,&+-]+")


def sanitize_filename(name: str, max_len: int = 180) -> str:
    """Sanitize a dataset title for use as a directory name."""
    name = _UNSAFE_CHARS.sub("_", name.strip())
    # "Otago: 0.3m" becomes "Otago_0.3m", not "Otago_ 0.3m"
    name = re.sub(r"\s*_[\s_]*", "_", name).strip(" ._")
    if not name:
        name = "dataset"
    return name[:max_len]


def file_name_from_url(url: str) -> str:
    """File name of the last path segment of a URL (keeps the extension)."""
    name = Path(unquote(urlparse(url).path)).name
    return name if name else "asset.bin"


class DownloadPipeline:
    """Materialise one tile group as files on disk.

    Files that already exist are cache hits and are left untouched, so re-runs
    are idempotent. Remaining files download concurrently; Ctrl-C during the
    download phase abandons whatever is still running.

    :param cache_dir: Download root, the working directory when None
    :param chunk_size: Bytes per streamed chunk
    :param timeout: Total seconds allowed per file
    :param show_progress: Render tqdm progress bars
    """

    def __init__(
        self,
        cache_dir: str | Path | None = None,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE,
        timeout: float = DOWNLOAD_TIMEOUT_SECONDS,
        show_progress: bool = True,
    ) -> None:
        self.cache_dir = Path(cache_dir) if cache_dir else Path(".")
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.show_progress = show_progress
        self._cancel_event: asyncio.Event | None = None

    def cancel(self) -> None:
        """Abandon the running download phase, if any."""
        if self._cancel_event is not None:
            self._cancel_event.set()

    def output_dir_for(self, tile_group: TileGroup) -> Path:
        return self.cache_dir / sanitize_filename(tile_group.title)

    async def process(self, tile_groups: Sequence[TileGroup], index: int, download: bool) -> DownloadSummary:
        """Print or download the assets of the selected tile group.

        :param tile_groups: Ordered search result
        :param index: Index of the group to process
        :param download: Download the files instead of printing their URLs
        :returns: Summary of cached, downloaded and failed files
        :raises InvalidSelectionError: If ``index`` is out of range
        """
        if not 0 <= index < len(tile_groups):
            raise InvalidSelectionError(f"Invalid index {index}, expected 0 to {len(tile_groups) - 1}")

        tile_group = tile_groups[index]
        if not download:
            logger.info("Download is disabled, printing URLs only:")
            for url in tile_group.assets:
                print(url)
            return DownloadSummary()

        return await self.download(tile_group)

    async def download(self, tile_group: TileGroup) -> DownloadSummary:
        """Download every asset of a tile group that is not cached yet.

        :param tile_group: Group to download
        :returns: Download summary
        """
        output_dir = self.output_dir_for(tile_group)
        output_dir.mkdir(parents=True, exist_ok=True)

        summary = DownloadSummary()
        pending: list[tuple[str, Path]] = []
        claimed: dict[Path, str] = {}
        for url in tile_group.assets:
            current_path = output_dir / file_name_from_url(url)
            if current_path in claimed:
                logger.warning(f"Skipping {url}: {current_path.name} is already taken by {claimed[current_path]}")
                continue
            claimed[current_path] = url
            print(current_path)
            summary.paths.append(str(current_path))
            if current_path.exists():
                logger.debug(f"File already exists in cache: {current_path}")
                summary.cached += 1
                continue
            pending.append((url, current_path))

        if pending:
            logger.info("Starting downloads...")
            await self._download_all(pending, summary)

        if summary.interrupted:
            logger.info("Download process interrupted by user")
        else:
            logger.info(f"{summary.cached} files found in cache, {summary.downloaded} files downloaded")
            if summary.failed:
                logger.warning(f"{summary.failed} files failed to download")
        return summary

    async def _download_all(self, pending: list[tuple[str, Path]], summary: DownloadSummary) -> None:
        loop = asyncio.get_running_loop()
        self._cancel_event = asyncio.Event()
        handler_installed = self._install_interrupt_handler(loop)
        overall = tqdm(total=len(pending), desc="Downloading", unit="file", disable=not self.show_progress)

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                tasks = [
                    asyncio.create_task(self._download_file(session, url, path, position + 1, overall))
                    for position, (url, path) in enumerate(pending)
                ]
                all_done = asyncio.gather(*tasks)
                cancelled = asyncio.create_task(self._cancel_event.wait())
                await asyncio.wait({all_done, cancelled}, return_when=asyncio.FIRST_COMPLETED)

                if all_done.done():
                    cancelled.cancel()
                    await asyncio.gather(cancelled, return_exceptions=True)
                    results = all_done.result()
                else:
                    summary.interrupted = True
                    all_done.cancel()
                    outcomes = await asyncio.gather(*tasks, return_exceptions=True)
                    results = [outcome for outcome in outcomes if isinstance(outcome, bool)]

                summary.downloaded = sum(1 for ok in results if ok)
                summary.failed = sum(1 for ok in results if not ok)
        finally:
            if handler_installed:
                loop.remove_signal_handler(signal.SIGINT)
            overall.close()
            self._cancel_event = None

    def _install_interrupt_handler(self, loop: asyncio.AbstractEventLoop) -> bool:
        try:
            loop.add_signal_handler(signal.SIGINT, self.cancel)
        except (NotImplementedError, RuntimeError, ValueError):
            logger.debug("Interrupt handler unavailable, downloads cannot be cancelled with Ctrl-C")
            return False
        return True

    async def _download_file(
        self,
        session: aiohttp.ClientSession,
        url: str,
        output_file: Path,
        position: int,
        overall: Any,
    ) -> bool:
        """Stream one URL to disk.

        :returns: True on success; failures are logged and the partial file removed
        """
        try:
            async with session.get(url) as response:
                response.raise_for_status()
                with tqdm(
                    total=response.content_length or 0,
                    unit="B",
                    unit_scale=True,
                    desc=output_file.name,
                    position=position,
                    leave=False,
                    disable=not self.show_progress,
                ) as bar:
                    with open(output_file, "wb") as f:
                        async for chunk in response.content.iter_chunked(self.chunk_size):
                            f.write(chunk)
                            bar.update(len(chunk))
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"Error downloading {url}: {e}")
            output_file.unlink(missing_ok=True)
            return False
        finally:
            overall.update(1)

        logger.debug(f"Downloaded {output_file}")
        return True


async def process_tile_list(
    tile_groups: Sequence[TileGroup],
    index: int,
    download: bool,
    cache_dir: str | Path | None = None,
) -> DownloadSummary:
    """Print or download the selected tile group with default pipeline settings."""
    return await DownloadPipeline(cache_dir).process(tile_groups, index, download)

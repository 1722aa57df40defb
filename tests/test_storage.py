import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest
from aiohttp import test_utils, web

from linz_s3_filter import storage
from linz_s3_filter.exceptions import InvalidSelectionError
from linz_s3_filter.models.models import DownloadSummary, TileGroup

TILE_BYTES = b"II*\x00" + b"\x01" * 4096


class TileServer:
    """Serves fake GeoTIFFs and records every request path."""

    def __init__(self) -> None:
        self.requests: list[str] = []
        self.release: asyncio.Event | None = None

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/tiles/{name}", self.tile)
        app.router.add_get("/slow/{name}", self.slow)
        app.router.add_get("/nested/{folder}/{name}", self.tile)
        return app

    async def tile(self, request: web.Request) -> web.Response:
        self.requests.append(request.path)
        if request.match_info["name"].startswith("missing"):
            raise web.HTTPNotFound()
        return web.Response(body=TILE_BYTES, content_type="image/tiff")

    async def slow(self, request: web.Request) -> web.Response:
        self.requests.append(request.path)
        if self.release is not None:
            await asyncio.wait_for(self.release.wait(), timeout=5.0)
        return web.Response(body=TILE_BYTES, content_type="image/tiff")


def run_with_server(tile_server: TileServer, scenario: Callable[[test_utils.TestServer], Awaitable[Any]]) -> Any:
    async def runner() -> Any:
        tile_server.release = asyncio.Event()
        async with test_utils.TestServer(tile_server.app()) as server:
            try:
                return await scenario(server)
            finally:
                tile_server.release.set()

    return asyncio.run(runner())


def test_sanitize_filename() -> None:
    assert storage.sanitize_filename("Southland LiDAR 1m DEM (2020-2024)") == "Southland LiDAR 1m DEM (2020-2024)"
    assert storage.sanitize_filename("Otago: 0.3m/Rural") == "Otago_0.3m_Rural"
    assert storage.sanitize_filename("Bay of Plenty / Rotorua _ 2019") == "Bay of Plenty_Rotorua_2019"
    assert storage.sanitize_filename("Waikato 0.1m Urban") == "Waikato 0.1m Urban"
    assert storage.sanitize_filename(" /// ") == "dataset"
    assert len(storage.sanitize_filename("x" * 500)) == 180


def test_file_name_from_url() -> None:
    assert storage.file_name_from_url("https://host/a/CA10_1000_0101.tiff") == "CA10_1000_0101.tiff"
    assert storage.file_name_from_url("https://host/a/b%20c.tiff?versionId=1") == "b c.tiff"
    assert storage.file_name_from_url("/local/bucket/x.tif") == "x.tif"
    assert storage.file_name_from_url("https://host/") == "asset.bin"


def test_process_without_download_prints_urls(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """
    Test print-only mode.

    The asset URLs are printed one per line and nothing is written to disk.
    """
    tile_groups = [TileGroup(title="Nelson 1m DEM", assets=["https://host/a.tiff", "https://host/b.tiff"])]
    pipeline = storage.DownloadPipeline(tmp_path, show_progress=False)

    summary = asyncio.run(pipeline.process(tile_groups, 0, download=False))

    assert summary == DownloadSummary()
    assert capsys.readouterr().out.splitlines() == ["https://host/a.tiff", "https://host/b.tiff"]
    assert list(tmp_path.iterdir()) == []


def test_process_rejects_invalid_index(tmp_path: Path) -> None:
    pipeline = storage.DownloadPipeline(tmp_path, show_progress=False)
    with pytest.raises(InvalidSelectionError):
        asyncio.run(pipeline.process([TileGroup(title="only", assets=[])], 1, download=False))


def test_download_is_idempotent(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """
    Test downloading a tile group twice.

    Verifies:
    - The first run downloads every file into a directory named after the title
    - The second run finds everything in the cache and makes no requests
    - Cached files are not rewritten
    """
    tile_server = TileServer()
    pipeline = storage.DownloadPipeline(tmp_path, show_progress=False)

    async def scenario(server: test_utils.TestServer) -> tuple[DownloadSummary, DownloadSummary, dict[str, int], int]:
        group = TileGroup(
            title="Southland LiDAR 1m DEM (2020-2024)",
            assets=[str(server.make_url("/tiles/CA10_1000_0101.tiff")), str(server.make_url("/tiles/CA10_1000_0102.tiff"))],
        )
        first = await pipeline.process([group], 0, download=True)
        output_dir = pipeline.output_dir_for(group)
        mtimes = {path.name: path.stat().st_mtime_ns for path in output_dir.iterdir()}
        requests_after_first = len(tile_server.requests)
        second = await pipeline.process([group], 0, download=True)
        assert {path.name: path.stat().st_mtime_ns for path in output_dir.iterdir()} == mtimes
        return first, second, mtimes, requests_after_first

    first, second, mtimes, requests_after_first = run_with_server(tile_server, scenario)

    output_dir = tmp_path / "Southland LiDAR 1m DEM (2020-2024)"
    assert (first.downloaded, first.cached, first.failed, first.interrupted) == (2, 0, 0, False)
    assert (second.downloaded, second.cached, second.failed) == (0, 2, 0)
    assert requests_after_first == 2
    assert len(tile_server.requests) == 2
    assert sorted(mtimes) == ["CA10_1000_0101.tiff", "CA10_1000_0102.tiff"]
    assert (output_dir / "CA10_1000_0101.tiff").read_bytes() == TILE_BYTES
    assert first.paths == second.paths == [
        str(output_dir / "CA10_1000_0101.tiff"),
        str(output_dir / "CA10_1000_0102.tiff"),
    ]
    assert capsys.readouterr().out.count("CA10_1000_0101.tiff") == 2


def test_failed_download_does_not_abort_siblings(tmp_path: Path) -> None:
    """A 404 is counted as a failure, leaves no file behind and the other file still lands."""
    tile_server = TileServer()
    pipeline = storage.DownloadPipeline(tmp_path, show_progress=False)

    async def scenario(server: test_utils.TestServer) -> DownloadSummary:
        group = TileGroup(
            title="Wellington 0.075m Urban Aerial Photos (2021)",
            assets=[str(server.make_url("/tiles/missing.tiff")), str(server.make_url("/tiles/BQ31_500_0101.tiff"))],
        )
        return await pipeline.download(group)

    summary = run_with_server(tile_server, scenario)

    output_dir = tmp_path / "Wellington 0.075m Urban Aerial Photos (2021)"
    assert (summary.downloaded, summary.failed, summary.cached) == (1, 1, 0)
    assert not (output_dir / "missing.tiff").exists()
    assert (output_dir / "BQ31_500_0101.tiff").read_bytes() == TILE_BYTES


def test_download_skips_assets_sharing_a_file_name(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    """
    Test a tile group whose assets end in the same file name.

    Verifies:
    - Only the first asset is fetched and written
    - The collision is logged with both URLs
    - The target path is reported once
    """
    tile_server = TileServer()
    pipeline = storage.DownloadPipeline(tmp_path, show_progress=False)
    urls: list[str] = []

    async def scenario(server: test_utils.TestServer) -> DownloadSummary:
        urls.extend(
            [
                str(server.make_url("/nested/2019/CA10_1000_0101.tiff")),
                str(server.make_url("/nested/2020/CA10_1000_0101.tiff")),
            ]
        )
        return await pipeline.download(TileGroup(title="Southland 1m DEM", assets=urls))

    with caplog.at_level(logging.WARNING, logger="linz_s3_filter.storage"):
        summary = run_with_server(tile_server, scenario)

    output_file = tmp_path / "Southland 1m DEM" / "CA10_1000_0101.tiff"
    assert (summary.downloaded, summary.cached, summary.failed) == (1, 0, 0)
    assert tile_server.requests == ["/nested/2019/CA10_1000_0101.tiff"]
    assert summary.paths == [str(output_file)]
    assert output_file.read_bytes() == TILE_BYTES
    assert urls[1] in caplog.text
    assert urls[0] in caplog.text


def test_cancel_abandons_running_downloads(tmp_path: Path) -> None:
    """
    Test cancelling the download phase.

    A file still in flight when the pipeline is cancelled is abandoned and the
    run reports itself as interrupted instead of waiting for it.
    """
    tile_server = TileServer()
    pipeline = storage.DownloadPipeline(tmp_path, show_progress=False)

    async def scenario(server: test_utils.TestServer) -> DownloadSummary:
        group = TileGroup(
            title="Canterbury 1m DEM",
            assets=[str(server.make_url("/tiles/BX22_1000_0101.tiff")), str(server.make_url("/slow/BX22_1000_0102.tiff"))],
        )
        asyncio.get_running_loop().call_later(0.2, pipeline.cancel)
        return await asyncio.wait_for(pipeline.download(group), timeout=4.0)

    summary = run_with_server(tile_server, scenario)

    assert summary.interrupted is True
    assert summary.downloaded == 1
    assert summary.failed == 0
    assert (tmp_path / "Canterbury 1m DEM" / "BX22_1000_0101.tiff").read_bytes() == TILE_BYTES


def test_process_tile_list_uses_cache_dir(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    tile_groups = [TileGroup(title="Nelson 1m DEM", assets=["https://host/a.tiff"])]
    summary = asyncio.run(storage.process_tile_list(tile_groups, 0, download=False, cache_dir=tmp_path))

    assert summary.paths == []
    assert capsys.readouterr().out.strip() == "https://host/a.tiff"

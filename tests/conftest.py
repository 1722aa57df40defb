import json
from pathlib import Path
from typing import Any

import pytest

BBox4 = tuple[float, float, float, float]


def write_json(path: Path, obj: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, indent=2), encoding="utf-8")


def polygon_from_bbox(bbox: BBox4) -> dict[str, Any]:
    xmin, ymin, xmax, ymax = bbox
    return {
        "type": "Polygon",
        "coordinates": [[[xmin, ymin], [xmax, ymin], [xmax, ymax], [xmin, ymax], [xmin, ymin]]],
    }


def make_item(item_id: str, bbox: BBox4, assets: dict[str, str]) -> dict[str, Any]:
    return {
        "type": "Feature",
        "stac_version": "1.0.0",
        "id": item_id,
        "geometry": polygon_from_bbox(bbox),
        "bbox": list(bbox),
        "properties": {"datetime": "2020-01-01T00:00:00Z"},
        "links": [],
        "assets": {
            name: {"href": href, "type": "image/tiff; application=geotiff; profile=cloud-optimized"}
            for name, href in assets.items()
        },
    }


def make_collection(
    collection_id: str, title: str, bboxes: list[BBox4], item_hrefs: list[str]
) -> dict[str, Any]:
    return {
        "type": "Collection",
        "stac_version": "1.0.0",
        "id": collection_id,
        "title": title,
        "description": f"{title} test collection",
        "license": "CC-BY-4.0",
        "extent": {
            "spatial": {"bbox": [list(bbox) for bbox in bboxes]},
            "temporal": {"interval": [["2020-01-01T00:00:00Z", None]]},
        },
        "links": [{"rel": "item", "href": href, "type": "application/json"} for href in item_hrefs],
    }


def make_catalog(child_hrefs: list[str]) -> dict[str, Any]:
    return {
        "type": "Catalog",
        "stac_version": "1.0.0",
        "id": "test-catalog",
        "title": "Test Catalog",
        "description": "Catalog written by the test suite",
        "links": [{"rel": "child", "href": href, "type": "application/json"} for href in child_hrefs],
    }


SETTINGS_ENV_VARS = (
    "AWS_REGION",
    "AWS_SKIP_SIGNATURE",
    "CONCURRENCY_MULTIPLIER",
    "CACHE_DIR",
    "FETCH_RETRY_ATTEMPTS",
    "FETCH_RETRY_DELAY",
)


@pytest.fixture(autouse=True)
def clean_settings_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# id, title, extent, items as (item id, bbox)
COLLECTIONS: list[tuple[str, str, BBox4, list[tuple[str, BBox4]]]] = [
    (
        "southland-dem",
        "Southland LiDAR 1m DEM (2020-2024)",
        (166.0, -47.0, 169.0, -44.0),
        [("CA10_1000_0101", (166.9, -45.1, 167.1, -44.9)), ("CA10_1000_0102", (168.0, -46.5, 168.2, -46.3))],
    ),
    (
        "southland-dsm",
        "Southland LiDAR 1m DSM (2020-2024)",
        (166.0, -47.0, 169.0, -44.0),
        [("CA10_1000_0201", (166.9, -45.1, 167.1, -44.9))],
    ),
    (
        "new-zealand-contour",
        "New Zealand 8m DEM (2012)",
        (166.0, -48.0, 179.0, -34.0),
        [("nz-8m-south", (166.0, -48.0, 172.0, -40.0)), ("nz-8m-north", (172.0, -42.0, 179.0, -34.0))],
    ),
    (
        "wellington-imagery",
        "Wellington 0.075m Urban Aerial Photos (2021)",
        (174.6, -41.4, 175.0, -41.1),
        [("BQ31_500_0101", (174.7, -41.3, 174.8, -41.2))],
    ),
]


@pytest.fixture
def local_bucket(tmp_path: Path) -> Path:
    """Write a small static STAC catalog to disk.

    Four readable collections plus one broken child link. Every item has a
    relative ``./{id}.tiff`` asset and one absolute asset URL.
    """
    root = tmp_path / "bucket"
    child_hrefs = []
    for collection_id, title, extent, items in COLLECTIONS:
        item_hrefs = []
        for item_id, bbox in items:
            write_json(
                root / collection_id / f"{item_id}.json",
                make_item(
                    item_id,
                    bbox,
                    {"visual": f"./{item_id}.tiff", "metadata": f"https://example.com/{collection_id}/{item_id}.xml"},
                ),
            )
            item_hrefs.append(f"./{item_id}.json")
        write_json(root / collection_id / "collection.json", make_collection(collection_id, title, [extent], item_hrefs))
        child_hrefs.append(f"./{collection_id}/collection.json")

    child_hrefs.append("./missing/collection.json")
    write_json(root / "catalog.json", make_catalog(child_hrefs))
    return root

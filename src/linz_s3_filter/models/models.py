"""Data models for catalog search and download."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field as PydanticField

from linz_s3_filter.config.constants import BUCKET_BASE_URLS, CATALOG_FILE_NAME


class BucketName(str, Enum):
    """Named public buckets, each mapping to a base URL."""

    ELEVATION = "elevation"
    IMAGERY = "imagery"

    @property
    def base_url(self) -> str:
        return BUCKET_BASE_URLS[self.value]

    @property
    def catalog_url(self) -> str:
        return f"{self.base_url}/{CATALOG_FILE_NAME}"


class BBox(BaseModel):
    """Axis-aligned longitude/latitude rectangle.

    :param xmin: Minimum longitude
    :param ymin: Minimum latitude
    :param xmax: Maximum longitude
    :param ymax: Maximum latitude
    """

    model_config = ConfigDict(frozen=True)

    xmin: float = PydanticField(..., description="Minimum longitude")
    ymin: float = PydanticField(..., description="Minimum latitude")
    xmax: float = PydanticField(..., description="Maximum longitude")
    ymax: float = PydanticField(..., description="Maximum latitude")

    @classmethod
    def from_stac(cls, values: list[float]) -> "BBox":
        """Create BBox from a STAC bbox list.

        3D boxes carry ``[xmin, ymin, zmin, xmax, ymax, zmax]``; the z values are dropped.

        :param values: STAC bbox list with 4 or 6 numbers
        :returns: BBox instance
        """
        if len(values) == 4:
            xmin, ymin, xmax, ymax = values
        elif len(values) == 6:
            xmin, ymin, _, xmax, ymax, _ = values
        else:
            raise ValueError(f"STAC bbox must have 4 or 6 values, got {len(values)}")
        return cls(xmin=xmin, ymin=ymin, xmax=xmax, ymax=ymax)

    @classmethod
    def from_point(cls, lat: float, lon: float) -> "BBox":
        return cls(xmin=lon, ymin=lat, xmax=lon, ymax=lat)

    def overlaps(self, other: "BBox") -> bool:
        """Closed rectangle overlap; touching edges count as overlapping."""
        return (
            self.xmin <= other.xmax
            and self.xmax >= other.xmin
            and self.ymin <= other.ymax
            and self.ymax >= other.ymin
        )


class SpatialFilterParams(BaseModel):
    """Spatial filter as given on the command line.

    Either a coordinate (optionally with a second corner) or a centre point with
    width/height in meters.
    """

    lat1: float
    lon1: float
    lat2: float | None = None
    lon2: float | None = None
    width_m: float | None = None
    height_m: float | None = None


class MatchingItems(BaseModel):
    """Items of one collection that passed spatial filtering.

    :param title: Collection title
    :param items: Matched pystac items
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    title: str = PydanticField(..., description="Title of the originating collection")
    items: list[Any] = PydanticField(default_factory=list, description="Matched pystac.Item objects")


class TileGroup(BaseModel):
    """Resolved asset locations of one collection plus its title."""

    assets: list[str] = PydanticField(default_factory=list, description="Absolute asset locations")
    title: str = PydanticField(..., description="Title of the originating collection")


class DownloadSummary(BaseModel):
    """Outcome of a download run."""

    cached: int = 0
    downloaded: int = 0
    failed: int = 0
    interrupted: bool = False
    paths: list[str] = PydanticField(default_factory=list, description="Target paths, cached and fresh")

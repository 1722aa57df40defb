"""Constants for bucket locations, concurrency and download configuration."""

DEFAULT_AWS_REGION = "ap-southeast-2"
DEFAULT_SKIP_SIGNATURE = True
DEFAULT_CONCURRENCY_MULTIPLIER = 1
DEFAULT_CACHE_DIR = "."

DEFAULT_FETCH_RETRY_ATTEMPTS = 3
DEFAULT_FETCH_RETRY_DELAY = 2.0

CATALOG_FILE_NAME = "catalog.json"

BUCKET_BASE_URLS: dict[str, str] = {
    "elevation": "https://nz-elevation.s3.ap-southeast-2.amazonaws.com",
    "imagery": "https://nz-imagery.s3.ap-southeast-2.amazonaws.com",
}

REPORT_INTERVAL_SECONDS = 1.0

# Approx. meters per degree of latitude
METERS_PER_DEGREE_LATITUDE = 111_320.0

RESOLUTION_HINT_PATTERN = r"(\d+(\.\d+)?)m\s+"

DOWNLOAD_CHUNK_SIZE = 1024 * 1024
DOWNLOAD_TIMEOUT_SECONDS = 600

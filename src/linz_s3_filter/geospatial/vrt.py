"""Build a GDAL virtual raster mosaic from downloaded tiles."""

import logging
import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path

from linz_s3_filter.exceptions import MosaicError

logger = logging.getLogger(__name__)

GDALBUILDVRT = "gdalbuildvrt"


def build_vrt_from_paths(tiff_paths: Sequence[str | Path], output_path: str | Path) -> Path:
    """Run ``gdalbuildvrt`` over the given tiles.

    :param tiff_paths: Raster files to mosaic
    :param output_path: VRT file to write
    :returns: Path of the written VRT
    :raises MosaicError: If the tool is missing or exits non-zero
    """
    if not tiff_paths:
        raise MosaicError("No tiles to build a VRT from")

    executable = shutil.which(GDALBUILDVRT)
    if executable is None:
        raise MosaicError(f"{GDALBUILDVRT} not found on PATH; install GDAL to build mosaics")

    command = [executable, str(output_path), *(str(path) for path in tiff_paths)]
    logger.debug(f"Running {' '.join(command[:2])} with {len(tiff_paths)} tiles")
    result = subprocess.run(command, capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise MosaicError(f"Error creating VRT file: {result.stderr.strip()}")

    logger.info(f"VRT file created at {output_path}")
    return Path(output_path)

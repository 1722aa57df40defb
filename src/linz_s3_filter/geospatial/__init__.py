"""
Geospatial helpers for catalog filtering and mosaics.

This module contains:
- Bounding box operations (query rectangles, overlap tests, item extents)
- VRT mosaic building via the GDAL command line tools
"""

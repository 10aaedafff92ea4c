"""Raster access, geocoding and terrain kernels."""

from terratile.raster.geocoding import CrsGeoCoding, PixelGeoCoding, geocoding_from_raster
from terratile.raster.neighborhood import read_neighborhood
from terratile.raster.product import (
    BandSpec,
    add_band,
    copy_band,
    create_target_product,
    get_band,
    load_product,
    save_product,
)
from terratile.raster.resolution import Resolution, estimate_resolution, resolve_resolution
from terratile.raster.terrain import (
    compute_orientation,
    compute_slope_aspect,
    compute_slope_aspect_variance,
)
from terratile.raster.tiles import TileRect, iter_tiles

__all__ = [
    "TileRect",
    "iter_tiles",
    "read_neighborhood",
    # Geocoding and resolution
    "CrsGeoCoding",
    "PixelGeoCoding",
    "geocoding_from_raster",
    "Resolution",
    "estimate_resolution",
    "resolve_resolution",
    # Terrain kernels
    "compute_slope_aspect",
    "compute_slope_aspect_variance",
    "compute_orientation",
    # Products
    "BandSpec",
    "get_band",
    "create_target_product",
    "add_band",
    "copy_band",
    "load_product",
    "save_product",
]

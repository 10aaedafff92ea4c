"""Pixel to geographic coordinate mappings.

Two geocodings are supported: a CRS plus affine transform (the usual
GeoTIFF case) and per-pixel latitude/longitude arrays (swath products).
Image coordinates follow the pixel-corner convention: (0, 0) is the upper
left corner of the first pixel and (0.5, 0.5) its centre.
"""

from dataclasses import dataclass
from typing import Any, Protocol

import numpy as np
import rioxarray  # noqa: F401 - registers the .rio accessor
import xarray as xr
from pyproj import CRS
from rasterio.transform import Affine
from scipy import ndimage

from terratile.geo_utils import get_wgs84_transformer
from terratile.raster.tiles import TileRect

# Coordinate names recognised as per-pixel geolocation
PIXEL_GEOLOCATION_COORDS: list[tuple[str, str]] = [
    ("lat", "lon"),
    ("latitude", "longitude"),
]


class GeoCoding(Protocol):
    """Interface shared by all geocodings."""

    @property
    def affine_scale(self) -> float | None:
        """X scale of an axis-aligned affine map transform in a projected CRS."""
        ...

    def geo_pos(self, x: float, y: float) -> tuple[float, float]:
        """Return (lat, lon) in degrees for an image coordinate."""
        ...

    def geo_pixels(self, rect: TileRect) -> tuple[np.ndarray, np.ndarray]:
        """Return (lat, lon) arrays at the pixel centres of ``rect``."""
        ...


@dataclass(frozen=True)
class CrsGeoCoding:
    """Geocoding defined by a CRS and an affine image-to-map transform."""

    crs: CRS
    transform: Affine

    @property
    def affine_scale(self) -> float | None:
        if not self.crs.is_projected:
            return None
        if self.transform.b != 0 or self.transform.d != 0:
            return None
        return float(self.transform.a)

    def _to_wgs84(self, map_x: Any, map_y: Any) -> tuple[Any, Any]:
        transformer = get_wgs84_transformer(self.crs.to_wkt())
        lon, lat = transformer.transform(map_x, map_y)
        return lat, lon

    def geo_pos(self, x: float, y: float) -> tuple[float, float]:
        map_x, map_y = self.transform @ (x, y)
        lat, lon = self._to_wgs84(map_x, map_y)
        return float(lat), float(lon)

    def geo_pixels(self, rect: TileRect) -> tuple[np.ndarray, np.ndarray]:
        cols = np.arange(rect.x, rect.x + rect.width, dtype=np.float64) + 0.5
        rows = np.arange(rect.y, rect.y + rect.height, dtype=np.float64) + 0.5
        xx, yy = np.meshgrid(cols, rows)

        t = self.transform
        map_x = t.a * xx + t.b * yy + t.c
        map_y = t.d * xx + t.e * yy + t.f

        lat, lon = self._to_wgs84(map_x, map_y)
        return np.asarray(lat), np.asarray(lon)


@dataclass(frozen=True, eq=False)
class PixelGeoCoding:
    """Geocoding defined by per-pixel latitude and longitude arrays.

    The arrays hold the position of each pixel centre. Such a mapping is
    never a single affine transform, so resolution must be estimated.
    """

    latitudes: np.ndarray
    longitudes: np.ndarray

    def __post_init__(self) -> None:
        if self.latitudes.shape != self.longitudes.shape or self.latitudes.ndim != 2:
            raise ValueError(
                "Latitude and longitude arrays must be 2-D with equal shapes, got "
                f"{self.latitudes.shape} and {self.longitudes.shape}"
            )

    @property
    def affine_scale(self) -> float | None:
        return None

    def geo_pos(self, x: float, y: float) -> tuple[float, float]:
        # Array index i holds the centre of pixel i, i.e. image coordinate i + 0.5
        coords = np.array([[y - 0.5], [x - 0.5]])
        lat = ndimage.map_coordinates(self.latitudes, coords, order=1, mode="nearest")
        lon = ndimage.map_coordinates(self.longitudes, coords, order=1, mode="nearest")
        return float(lat[0]), float(lon[0])

    def geo_pixels(self, rect: TileRect) -> tuple[np.ndarray, np.ndarray]:
        height, width = self.latitudes.shape
        rows = np.clip(np.arange(rect.y, rect.y + rect.height), 0, height - 1)
        cols = np.clip(np.arange(rect.x, rect.x + rect.width), 0, width - 1)
        index = np.ix_(rows, cols)
        return self.latitudes[index], self.longitudes[index]


def geocoding_from_raster(raster: xr.DataArray | xr.Dataset) -> GeoCoding | None:
    """Derive the geocoding of a band or product.

    Per-pixel latitude/longitude coordinates take precedence over a CRS.

    Args:
        raster: DataArray or Dataset, optionally carrying CRS metadata or
            2-D lat/lon coordinates.

    Returns:
        A geocoding, or None if the raster is not geolocated.
    """
    for lat_name, lon_name in PIXEL_GEOLOCATION_COORDS:
        if lat_name in raster.coords and lon_name in raster.coords:
            lat = raster.coords[lat_name]
            lon = raster.coords[lon_name]
            if lat.ndim == 2 and lon.ndim == 2:
                return PixelGeoCoding(
                    latitudes=np.asarray(lat.values, dtype=np.float64),
                    longitudes=np.asarray(lon.values, dtype=np.float64),
                )

    crs = raster.rio.crs
    if crs is None:
        return None

    return CrsGeoCoding(crs=CRS.from_user_input(crs), transform=raster.rio.transform())

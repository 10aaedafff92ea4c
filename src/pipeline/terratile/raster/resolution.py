"""Ground sampling distance of a raster.

The exact spacing is the X scale of an axis-aligned affine transform in a
projected CRS. Without one, the spacing is estimated from great-circle
distances across the raster, assuming square, near-uniform pixels.
"""

from dataclasses import dataclass

import structlog

from terratile.exceptions import MissingGeoCodingError, ResolutionError
from terratile.geo_utils import haversine_distance_km
from terratile.raster.geocoding import GeoCoding

logger = structlog.get_logger()


@dataclass(frozen=True)
class Resolution:
    """Pixel spacing in metres, computed once per raster."""

    meters_per_pixel: float
    exact: bool

    @property
    def method(self) -> str:
        return "affine" if self.exact else "great-circle"


def estimate_resolution(geocoding: GeoCoding, width: int, height: int) -> float:
    """Estimate pixel spacing from great-circle distances at the raster edges.

    Measures left-to-right across the middle row and top-to-bottom across
    the middle column, averages both and divides by (width - 1).

    Args:
        geocoding: Geocoding of the raster.
        width: Raster width in pixels.
        height: Raster height in pixels.

    Returns:
        Spacing in metres per pixel.
    """
    if width < 2:
        raise ResolutionError(f"Cannot estimate resolution of a raster {width} pixel(s) wide")

    left_lat, left_lon = geocoding.geo_pos(0, height // 2)
    right_lat, right_lon = geocoding.geo_pos(width - 1, height // 2)
    distance1 = haversine_distance_km(left_lat, left_lon, right_lat, right_lon)

    upper_lat, upper_lon = geocoding.geo_pos(width // 2, 0)
    lower_lat, lower_lon = geocoding.geo_pos(width // 2, height - 1)
    distance2 = haversine_distance_km(upper_lat, upper_lon, lower_lat, lower_lon)

    distance = 0.5 * (distance1 + distance2)

    return 1000.0 * distance / (width - 1)


def resolve_resolution(
    geocoding: GeoCoding | None,
    width: int,
    height: int,
    allow_estimate: bool = True,
) -> Resolution:
    """Determine the pixel spacing of a raster.

    Args:
        geocoding: Geocoding of the raster, or None if it has none.
        width: Raster width in pixels.
        height: Raster height in pixels.
        allow_estimate: Fall back to the great-circle estimate when the
            geocoding is not an affine projected grid.

    Returns:
        Resolution in metres per pixel.

    Raises:
        MissingGeoCodingError: If the raster has no geocoding.
        ResolutionError: If no affine scale exists and estimation is disabled.
    """
    if geocoding is None:
        raise MissingGeoCodingError("Source product has no geo-coding")

    scale = geocoding.affine_scale
    if scale is not None:
        resolution = Resolution(meters_per_pixel=scale, exact=True)
    elif allow_estimate:
        resolution = Resolution(
            meters_per_pixel=estimate_resolution(geocoding, width, height),
            exact=False,
        )
    else:
        raise ResolutionError("Could not retrieve spatial resolution from geo-coding")

    logger.info(
        "Resolved spatial resolution",
        meters_per_pixel=resolution.meters_per_pixel,
        method=resolution.method,
    )
    return resolution

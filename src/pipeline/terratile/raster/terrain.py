"""Terrain derivatives from 3x3 elevation neighbourhoods.

Neighbourhoods are sequences of nine elevations in row-major order
(index 4 is the centre pixel, indices 0/3/6 the left column, 2/5/8 the
right column). Every function also accepts stacked neighbourhoods with
shape (..., 9) and evaluates them element-wise.

Slope and aspect use the Horn (1981) weighted differences. Angles are
returned in radians; conversion to degrees happens when writing bands.
"""

import math
from dataclasses import dataclass
from typing import ClassVar

import numpy as np

from terratile.raster.neighborhood import HALO

# Name under which kernels expect the elevation windows
ELEVATION_INPUT = "elevation"
LATITUDE_INPUT = "latitude"
LONGITUDE_INPUT = "longitude"

SLOPE_BAND_NAME = "slope"
ASPECT_BAND_NAME = "aspect"
VARIANCE_BAND_NAME = "elevation_variance"
ORIENTATION_BAND_NAME = "orientation"

RTOD = 180.0 / math.pi
TWO_PI = 2.0 * math.pi

# Window positions of the west and east neighbours in a 3x3 neighbourhood
_WEST = 3
_EAST = 5


def _gradients(e: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Weighted x (left to right) and y (top row minus bottom row) differences."""
    b = (e[..., 2] + 2 * e[..., 5] + e[..., 8] - e[..., 0] - 2 * e[..., 3] - e[..., 6]) / e.dtype.type(8.0)
    c = (e[..., 0] + 2 * e[..., 1] + e[..., 2] - e[..., 6] - 2 * e[..., 7] - e[..., 8]) / e.dtype.type(8.0)
    return b, c


def _slope_and_aspect(b: np.ndarray, c: np.ndarray, spacing: float) -> tuple[np.ndarray, np.ndarray]:
    b = np.asarray(b, dtype=np.float64)
    c = np.asarray(c, dtype=np.float64)

    slope = np.arctan(np.sqrt((b / spacing) ** 2 + (c / spacing) ** 2)).astype(np.float32)

    # atan2 keeps the sign of zero gradients, so -0.0 is a legitimate aspect
    aspect = np.arctan2(-b, -c).astype(np.float32)
    aspect = np.where(
        aspect < 0.0,
        (aspect.astype(np.float64) + TWO_PI).astype(np.float32),
        aspect,
    )
    return slope, aspect


def compute_slope_aspect(neighborhood: np.ndarray, spacing: float) -> tuple[np.ndarray, np.ndarray]:
    """Slope and aspect of the centre pixel, evaluated in float32.

    Args:
        neighborhood: Nine elevations (or an array of shape (..., 9)).
        spacing: Pixel spacing in metres.

    Returns:
        Tuple of (slope, aspect) in radians. Slope is in [0, pi/2), aspect
        in [0, 2*pi). Flat pixels keep whatever angle atan2 yields.
    """
    e = np.asarray(neighborhood, dtype=np.float32)
    b, c = _gradients(e)
    return _slope_and_aspect(b, c, spacing)


def compute_slope_aspect_variance(
    neighborhood: np.ndarray,
    spacing: float,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Slope, aspect and elevation variance of the centre pixel.

    Gradients are evaluated in float64. Where the slope is zero the aspect
    is undefined and set to NaN. The variance is the bias-corrected
    (n - 1) estimator over the nine elevations.

    Args:
        neighborhood: Nine elevations (or an array of shape (..., 9)).
        spacing: Pixel spacing in metres.

    Returns:
        Tuple of (slope, aspect, variance); angles in radians, all float32.
    """
    e = np.asarray(neighborhood, dtype=np.float64)
    b, c = _gradients(e)
    slope, aspect = _slope_and_aspect(b, c, spacing)

    aspect = np.where(slope <= 0.0, np.float32(np.nan), aspect)
    variance = np.var(e, axis=-1, ddof=1).astype(np.float32)

    return slope, aspect, variance


def compute_orientation(
    lat_west: np.ndarray,
    lon_west: np.ndarray,
    lat_east: np.ndarray,
    lon_east: np.ndarray,
) -> np.ndarray:
    """Angle between grid "up" and geographic north at a pixel.

    Uses the geographic positions of the immediate west and east neighbours.

    Returns:
        Orientation in radians, float32.
    """
    lat_w = np.asarray(lat_west, dtype=np.float32)
    lat_e = np.asarray(lat_east, dtype=np.float32)
    d_lat = (lat_e - lat_w).astype(np.float64)
    d_lon = (np.asarray(lon_east, dtype=np.float32) - np.asarray(lon_west, dtype=np.float32)).astype(np.float64)

    return np.arctan2(-d_lat, d_lon * np.cos(np.radians(lat_w.astype(np.float64)))).astype(np.float32)


def to_degrees(radians: np.ndarray) -> np.ndarray:
    """Convert kernel angles to float32 degrees for output bands."""
    return (np.asarray(radians, dtype=np.float64) * RTOD).astype(np.float32)


# ---------------------------------------------------------------------------
# Row kernels consumed by the tile executor
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SlopeAspectKernel:
    """Slope and aspect in degrees, float32 arithmetic."""

    spacing: float
    halo: int = HALO
    outputs: ClassVar[dict[str, np.dtype]] = {
        SLOPE_BAND_NAME: np.dtype(np.float32),
        ASPECT_BAND_NAME: np.dtype(np.float32),
    }

    def __call__(self, windows: dict[str, np.ndarray]) -> dict[str, np.ndarray]:
        slope, aspect = compute_slope_aspect(windows[ELEVATION_INPUT], self.spacing)
        return {SLOPE_BAND_NAME: to_degrees(slope), ASPECT_BAND_NAME: to_degrees(aspect)}


@dataclass(frozen=True)
class SlopeAspectVarianceKernel:
    """Slope and aspect in degrees plus elevation variance, NaN aspect when flat."""

    spacing: float
    halo: int = HALO
    outputs: ClassVar[dict[str, np.dtype]] = {
        SLOPE_BAND_NAME: np.dtype(np.float32),
        ASPECT_BAND_NAME: np.dtype(np.float32),
        VARIANCE_BAND_NAME: np.dtype(np.float32),
    }

    def __call__(self, windows: dict[str, np.ndarray]) -> dict[str, np.ndarray]:
        slope, aspect, variance = compute_slope_aspect_variance(windows[ELEVATION_INPUT], self.spacing)
        return {
            SLOPE_BAND_NAME: to_degrees(slope),
            ASPECT_BAND_NAME: to_degrees(aspect),
            VARIANCE_BAND_NAME: variance,
        }


@dataclass(frozen=True)
class OrientationKernel:
    """Orientation in degrees from latitude/longitude windows."""

    halo: int = HALO
    outputs: ClassVar[dict[str, np.dtype]] = {
        ORIENTATION_BAND_NAME: np.dtype(np.float32),
    }

    def __call__(self, windows: dict[str, np.ndarray]) -> dict[str, np.ndarray]:
        lat = windows[LATITUDE_INPUT]
        lon = windows[LONGITUDE_INPUT]
        orientation = compute_orientation(lat[..., _WEST], lon[..., _WEST], lat[..., _EAST], lon[..., _EAST])
        return {ORIENTATION_BAND_NAME: to_degrees(orientation)}

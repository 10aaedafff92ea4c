"""Halo reads with clamp-to-edge border extension.

A tile job reads its target rectangle expanded by a halo so that 3x3 kernels
can be evaluated at tile edges. Where the expanded rectangle leaves the
raster, samples are copied from the nearest in-raster pixel.
"""

import numpy as np
import xarray as xr
from numpy.lib.stride_tricks import sliding_window_view

from terratile.exceptions import UnsupportedSampleTypeError
from terratile.raster.tiles import TileRect

# Halo for the 3x3 kernels. Larger kernels pass their own halo to the reader.
HALO = 1

# Working sample type of every halo buffer
WORKING_DTYPE = np.dtype(np.float32)

SUPPORTED_SAMPLE_TYPES: tuple[np.dtype, ...] = (
    np.dtype(np.int16),
    np.dtype(np.int32),
    np.dtype(np.float32),
    np.dtype(np.float64),
)


def check_sample_type(
    dtype: np.dtype | str,
    band_name: str | None = None,
    any_numeric: bool = False,
) -> None:
    """Raise if a source sample type cannot be converted to the working type.

    Elevation inputs are limited to SUPPORTED_SAMPLE_TYPES. With
    ``any_numeric`` every integer or real floating type is accepted.
    """
    dtype = np.dtype(dtype)
    if any_numeric:
        supported = np.issubdtype(dtype, np.integer) or np.issubdtype(dtype, np.floating)
    else:
        supported = dtype in SUPPORTED_SAMPLE_TYPES
    if not supported:
        label = f" of band '{band_name}'" if band_name else ""
        raise UnsupportedSampleTypeError(
            f"Source data type '{dtype.name}'{label} not supported."
        )


def widen_samples(samples: np.ndarray, any_numeric: bool = False) -> np.ndarray:
    """Convert source samples to the float32 working type.

    int16 and int32 are cast by value, float32 is passed through and float64
    is narrowed.
    """
    check_sample_type(samples.dtype, any_numeric=any_numeric)
    return np.asarray(samples).astype(WORKING_DTYPE, copy=False)


def read_neighborhood(
    raster: xr.DataArray,
    rect: TileRect,
    halo: int = HALO,
    any_numeric: bool = False,
) -> np.ndarray:
    """Read ``rect`` expanded by ``halo`` pixels, clamping to the raster edge.

    Only the in-raster part of the expanded rectangle is read from the
    source; the border is filled by index clamping afterwards.

    Args:
        raster: 2-D band with dims (..., y, x).
        rect: Target rectangle in pixel coordinates.
        halo: Border width in pixels.
        any_numeric: Accept any integer or floating sample type.

    Returns:
        float32 array of shape (rect.height + 2*halo, rect.width + 2*halo).
    """
    check_sample_type(raster.dtype, raster.name, any_numeric=any_numeric)

    if raster.ndim == 3 and raster.shape[0] == 1:
        raster = raster.squeeze(raster.dims[0], drop=True)

    y_dim, x_dim = raster.dims[-2], raster.dims[-1]
    height, width = raster.shape[-2], raster.shape[-1]

    source = rect.dilate(halo)
    rows = np.clip(np.arange(source.y, source.y + source.height), 0, height - 1)
    cols = np.clip(np.arange(source.x, source.x + source.width), 0, width - 1)

    row0, row1 = int(rows.min()), int(rows.max()) + 1
    col0, col1 = int(cols.min()), int(cols.max()) + 1
    block = raster.isel({y_dim: slice(row0, row1), x_dim: slice(col0, col1)}).values

    return widen_samples(block[np.ix_(rows - row0, cols - col0)], any_numeric=any_numeric)


def neighborhood_windows(grid: np.ndarray, halo: int = HALO) -> np.ndarray:
    """View every (2*halo+1)^2 window of a halo buffer.

    Args:
        grid: Halo buffer of shape (H + 2*halo, W + 2*halo).
        halo: Border width the buffer was read with.

    Returns:
        Array of shape (H, W, (2*halo+1)**2); the last axis is row-major with
        the centre sample in the middle.
    """
    size = 2 * halo + 1
    windows = sliding_window_view(grid, (size, size))
    return windows.reshape(windows.shape[0], windows.shape[1], size * size)

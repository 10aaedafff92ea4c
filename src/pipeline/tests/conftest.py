"""Shared test fixtures for terratile tests."""

import numpy as np
import pytest
import rioxarray  # noqa: F401 - needed for .rio accessor on DataArrays
import xarray as xr
from rasterio.transform import Affine

# 4x4 elevation grid on a 10 m UTM zone 50N grid
ELEVATION = [
    [10.0, 15.0, 17.5, 12.5],
    [12.0, 14.0, 16.0, 13.0],
    [13.0, 11.0, 13.0, 14.0],
    [14.0, 12.0, 14.0, 11.0],
]
UTM_CRS = "EPSG:32650"
UTM_ORIGIN = (699960.0, 4000020.0)
PIXEL_SIZE = 10.0


def georeferenced_band(
    values: np.ndarray,
    name: str = "elevation",
    crs: str | None = UTM_CRS,
    origin: tuple[float, float] = UTM_ORIGIN,
    pixel_size: float = PIXEL_SIZE,
) -> xr.DataArray:
    """Create a band DataArray with pixel-centre coordinates and, optionally, CRS metadata.

    Args:
        values: 2D array of samples.
        name: Band name.
        crs: CRS to attach, or None for a band without geocoding.
        origin: Map coordinates of the upper left corner.
        pixel_size: Pixel size in CRS units.

    Returns:
        xr.DataArray with dims (y, x).
    """
    rows, cols = values.shape
    x0, y0 = origin
    da = xr.DataArray(
        values,
        dims=["y", "x"],
        coords={
            "y": y0 - pixel_size * (np.arange(rows) + 0.5),
            "x": x0 + pixel_size * (np.arange(cols) + 0.5),
        },
        name=name,
    )
    if crs is not None:
        da = da.rio.write_crs(crs)
        da = da.rio.write_transform(Affine(pixel_size, 0.0, x0, 0.0, -pixel_size, y0))
    return da


@pytest.fixture
def make_band():
    """Factory for georeferenced test bands."""
    return georeferenced_band


@pytest.fixture
def elevation_values() -> np.ndarray:
    return np.array(ELEVATION, dtype=np.float32)


@pytest.fixture
def elevation_product(elevation_values) -> xr.Dataset:
    """Float32 elevation product with time coverage attributes."""
    product = xr.Dataset({"elevation": georeferenced_band(elevation_values)})
    product.attrs["start_time"] = "2024-06-01T10:00:00"
    product.attrs["end_time"] = "2024-06-01T10:05:00"
    return product


@pytest.fixture
def int16_elevation_product(elevation_values) -> xr.Dataset:
    """The same grid stored as 16-bit integers (fractional elevations truncated)."""
    values = elevation_values.astype(np.int16)
    return xr.Dataset({"elevation": georeferenced_band(values)})


@pytest.fixture
def geographic_elevation_product(elevation_values) -> xr.Dataset:
    """Elevation product on a WGS84 lat/lon grid of roughly 10 m pixels."""
    band = georeferenced_band(
        elevation_values,
        crs="EPSG:4326",
        origin=(10.0, 50.0),
        pixel_size=0.0001,
    )
    return xr.Dataset({"elevation": band})

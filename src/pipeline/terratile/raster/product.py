"""Raster products: band access, target construction, loading and saving.

A product is an xarray Dataset of 2-D (y, x) bands sharing one grid and
geocoding. Time coverage lives in the ``start_time``/``end_time`` attrs.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import rasterio
import rioxarray as rxr
import structlog
import xarray as xr

from terratile.classify.legend import ClassLegend
from terratile.exceptions import ConfigurationError, MissingBandError
from terratile.raster.geocoding import PIXEL_GEOLOCATION_COORDS

logger = structlog.get_logger()

TIME_ATTRS = ("start_time", "end_time")


@dataclass
class BandSpec:
    """Declaration of a target band."""

    name: str
    dtype: np.dtype
    description: str = ""
    unit: str = ""
    nodata: float | None = None
    attrs: dict[str, Any] = field(default_factory=dict)


def as_product(source: xr.Dataset | xr.DataArray) -> xr.Dataset:
    """Treat a single DataArray as a one-band product."""
    if isinstance(source, xr.DataArray):
        name = source.name or "band_1"
        return source.to_dataset(name=name)
    return source


def get_band(product: xr.Dataset, name: str) -> xr.DataArray:
    """Get a 2-D band by name.

    Raises:
        MissingBandError: If the product has no such band.
    """
    if name not in product.data_vars:
        raise MissingBandError(
            f"Band '{name}' not found in product (available: {', '.join(map(str, product.data_vars))})"
        )

    band = product[name]
    if band.ndim == 3 and band.shape[0] == 1:
        band = band.squeeze(band.dims[0], drop=True)
    if band.ndim != 2:
        raise ConfigurationError(f"Band '{name}' must be 2-D, got dims {band.dims}")
    return band


def raster_size(product: xr.Dataset, band_name: str) -> tuple[int, int]:
    """(width, height) of a band."""
    band = get_band(product, band_name)
    return band.shape[-1], band.shape[-2]


def create_target_product(
    source: xr.Dataset,
    reference_band: str,
    name: str,
    product_type: str,
    copy_metadata: bool = False,
) -> xr.Dataset:
    """Create an empty target product on the grid of a source band.

    Copies the spatial coordinates, CRS, transform and 2-D geolocation
    coordinates of the source band, as well as its time coverage.

    Args:
        source: Source product.
        reference_band: Band whose grid and geocoding the target takes over.
        name: Target product name.
        product_type: Target product type.
        copy_metadata: Also copy all other source attrs.

    Returns:
        Dataset without data variables.
    """
    band = get_band(source, reference_band)

    # Index coordinates stand in for missing ones so the grid dims stay known to add_band
    coords = {
        dim: band.coords[dim] if dim in band.coords else np.arange(size)
        for dim, size in band.sizes.items()
    }
    for lat_name, lon_name in PIXEL_GEOLOCATION_COORDS:
        for coord_name in (lat_name, lon_name):
            if coord_name in band.coords and band.coords[coord_name].ndim == 2:
                coords[coord_name] = band.coords[coord_name]

    attrs: dict[str, Any] = dict(source.attrs) if copy_metadata else {}
    for key in TIME_ATTRS:
        if key in source.attrs:
            attrs[key] = source.attrs[key]
    attrs["product_name"] = name
    attrs["product_type"] = product_type

    target = xr.Dataset(coords=coords, attrs=attrs)
    if band.rio.crs is not None:
        target = target.rio.write_crs(band.rio.crs)
        target = target.rio.write_transform(band.rio.transform())
    return target


def grid_dims(target: xr.Dataset) -> tuple[str, str]:
    """(y, x) dimension names of a target product."""
    dims = [str(name) for name, coord in target.coords.items() if coord.dims == (name,)]
    if len(dims) == 2:
        return dims[0], dims[1]
    return "y", "x"


def add_band(target: xr.Dataset, spec: BandSpec, data: np.ndarray) -> xr.Dataset:
    """Attach a band on the grid dims of a target product."""
    dims = grid_dims(target)
    da = xr.DataArray(np.asarray(data, dtype=spec.dtype), dims=dims, name=spec.name)

    # long_name becomes the GeoTIFF band description, which load_product maps back to the band name
    attrs = {"long_name": spec.name, **spec.attrs}
    if spec.description:
        attrs["description"] = spec.description
    if spec.unit:
        attrs["units"] = spec.unit
    da.attrs.update(attrs)

    if spec.nodata is not None:
        da = da.rio.write_nodata(spec.nodata)

    target[spec.name] = da
    return target


def copy_band(source: xr.Dataset, target: xr.Dataset, name: str) -> xr.Dataset:
    """Copy a source band, with its attrs, into the target product."""
    band = get_band(source, name)
    target[name] = (band.dims, band.values, dict(band.attrs))
    return target


def load_product(path: Path) -> xr.Dataset:
    """Open a raster product.

    GeoTIFFs are opened with one data variable per band, named after the
    band description when present. NetCDF files are opened with their
    grid mapping decoded.

    Args:
        path: Path to a GeoTIFF or NetCDF file.

    Returns:
        Lazily loaded product.
    """
    if not path.exists():
        raise ConfigurationError(f"Input product not found: {path}")

    logger.info("Loading product", path=str(path))

    if path.suffix.lower() in (".nc", ".nc4", ".cdf"):
        return xr.open_dataset(path, decode_coords="all")

    product = rxr.open_rasterio(path, band_as_variable=True)
    renames = {}
    for var_name, band in product.data_vars.items():
        long_name = band.attrs.get("long_name")
        if isinstance(long_name, str) and long_name and long_name not in product.data_vars:
            renames[var_name] = long_name
    if renames:
        product = product.rename(renames)
    return product


def save_product(product: xr.Dataset, path: Path, compress: str = "deflate") -> Path:
    """Write a product to disk.

    A ``.nc`` path writes a single NetCDF file. Any other path is treated as
    a directory receiving one GeoTIFF per band. Class bands carrying a
    legend get a colormap when their labels fit uint8.

    Args:
        product: Product to write.
        path: Output NetCDF file or directory.
        compress: GeoTIFF compression.

    Returns:
        The written path.
    """
    if path.suffix.lower() == ".nc":
        path.parent.mkdir(parents=True, exist_ok=True)
        product.to_netcdf(path)
        logger.info("Saved product", path=str(path), bands=len(product.data_vars))
        return path

    path.mkdir(parents=True, exist_ok=True)
    for name, band in product.data_vars.items():
        band_path = path / f"{name}.tif"
        legend = ClassLegend.from_attrs(band.attrs)

        if legend is not None and min(legend.labels) >= 0 and max(legend.labels) <= 255:
            band.astype(np.uint8).rio.to_raster(band_path, compress=compress)
            with rasterio.open(band_path, "r+") as dst:
                dst.write_colormap(1, legend.colormap())
        else:
            band.rio.to_raster(band_path, compress=compress)

    logger.info("Saved product", path=str(path), bands=len(product.data_vars))
    return path

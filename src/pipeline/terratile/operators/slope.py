"""Terrain operators computing slope, aspect and related bands from elevation."""

from abc import abstractmethod
from typing import ClassVar

import numpy as np
import structlog
import xarray as xr

from terratile.operators.base import TileOperator
from terratile.pipeline.executor import PixelKernel, band_source, geolocation_source
from terratile.raster.geocoding import geocoding_from_raster
from terratile.raster.neighborhood import check_sample_type
from terratile.raster.product import BandSpec, copy_band, create_target_product, get_band
from terratile.raster.resolution import resolve_resolution
from terratile.raster.terrain import (
    ASPECT_BAND_NAME,
    ELEVATION_INPUT,
    ORIENTATION_BAND_NAME,
    SLOPE_BAND_NAME,
    VARIANCE_BAND_NAME,
    OrientationKernel,
    SlopeAspectKernel,
    SlopeAspectVarianceKernel,
)

logger = structlog.get_logger()

DEFAULT_ELEVATION_BAND = "elevation"
NODATA_VALUE = -9999.0


def _float_band(name: str, description: str, unit: str, nodata: float) -> BandSpec:
    return BandSpec(name=name, dtype=np.dtype(np.float32), description=description, unit=unit, nodata=nodata)


def slope_band(nodata: float = NODATA_VALUE) -> BandSpec:
    return _float_band(SLOPE_BAND_NAME, "Slope of each pixel as angle", "deg [0..90]", nodata)


def aspect_band(nodata: float = NODATA_VALUE) -> BandSpec:
    return _float_band(
        ASPECT_BAND_NAME,
        "Aspect of each pixel as angle between raster 'up' direction and the steepest descent, clockwise",
        "deg [0..360]",
        nodata,
    )


def variance_band(nodata: float = NODATA_VALUE) -> BandSpec:
    return _float_band(VARIANCE_BAND_NAME, "Variance of elevation over a 3x3 pixel window", "m^2", nodata)


def orientation_band(nodata: float = NODATA_VALUE) -> BandSpec:
    return _float_band(
        ORIENTATION_BAND_NAME,
        "Angle between raster 'up' direction and geographic north",
        "deg",
        nodata,
    )


class TerrainOperator(TileOperator):
    """Shared setup of the elevation-based operators.

    Resolves the elevation band, its sample type and geocoding, and the pixel
    spacing once per raster. Subclasses pick the kernels and output bands.
    """

    product_type: ClassVar[str]
    allow_resolution_estimate: ClassVar[bool]

    def __init__(
        self,
        source: xr.Dataset | xr.DataArray,
        elevation_band_name: str = DEFAULT_ELEVATION_BAND,
        copy_elevation_band: bool = False,
        nodata_value: float = NODATA_VALUE,
    ) -> None:
        super().__init__(source)
        self.elevation_band_name = elevation_band_name
        self.copy_elevation_band = copy_elevation_band
        self.nodata_value = nodata_value
        self.geocoding = None
        self.resolution = None

    def _initialize(self) -> None:
        band = get_band(self.source, self.elevation_band_name)
        check_sample_type(band.dtype, self.elevation_band_name)

        self.height, self.width = band.shape
        self.geocoding = geocoding_from_raster(band)
        self.resolution = resolve_resolution(
            self.geocoding,
            self.width,
            self.height,
            allow_estimate=self.allow_resolution_estimate,
        )

        self.sources = [band_source(ELEVATION_INPUT, band)]
        self.kernels = self._build_kernels(self.resolution.meters_per_pixel)
        self.computed_bands = self._band_specs()

        logger.info(
            "Initialized terrain operator",
            operator=self.name,
            elevation_band=self.elevation_band_name,
            dtype=str(band.dtype),
            width=self.width,
            height=self.height,
            meters_per_pixel=self.resolution.meters_per_pixel,
            method=self.resolution.method,
        )

    @abstractmethod
    def _build_kernels(self, spacing: float) -> list[PixelKernel]:
        ...

    @abstractmethod
    def _band_specs(self) -> list[BandSpec]:
        ...

    def _create_empty_target(self) -> xr.Dataset:
        return create_target_product(
            self.source,
            self.elevation_band_name,
            name=self.name,
            product_type=self.product_type,
        )

    def _finalize_target(self, target: xr.Dataset, outputs: dict[str, np.ndarray]) -> xr.Dataset:
        if self.copy_elevation_band:
            target = copy_band(self.source, target, self.elevation_band_name)

        slope = outputs[SLOPE_BAND_NAME]
        valid = np.isfinite(slope)
        if valid.any():
            logger.info(
                "Terrain statistics",
                operator=self.name,
                min_slope=float(slope[valid].min()),
                max_slope=float(slope[valid].max()),
                mean_slope=float(slope[valid].mean()),
            )
        return target


class SlopeCalculationOperator(TerrainOperator):
    """Slope, aspect and elevation variance of an elevation band.

    Works with any geocoding: the pixel spacing is the affine scale of a
    projected grid, otherwise a great-circle estimate. Aspect is NaN on flat
    pixels.
    """

    name = "Slope-Calculation"
    product_type = "slope-calculation"
    allow_resolution_estimate = True

    def _build_kernels(self, spacing: float) -> list[PixelKernel]:
        return [SlopeAspectVarianceKernel(spacing=spacing)]

    def _band_specs(self) -> list[BandSpec]:
        return [
            slope_band(self.nodata_value),
            aspect_band(self.nodata_value),
            variance_band(self.nodata_value),
        ]


class SlopeAspectOrientationOperator(TerrainOperator):
    """Slope and aspect, optionally with grid orientation.

    Requires an axis-aligned affine geocoding in a projected CRS. Aspect is
    always defined; flat pixels keep the angle atan2 yields.
    """

    name = "Slope-Aspect-Orientation"
    product_type = "slope-aspect-orientation"
    allow_resolution_estimate = False

    def __init__(
        self,
        source: xr.Dataset | xr.DataArray,
        elevation_band_name: str = DEFAULT_ELEVATION_BAND,
        copy_elevation_band: bool = False,
        nodata_value: float = NODATA_VALUE,
        compute_orientation: bool = False,
    ) -> None:
        super().__init__(source, elevation_band_name, copy_elevation_band, nodata_value)
        self.compute_orientation = compute_orientation

    def _build_kernels(self, spacing: float) -> list[PixelKernel]:
        kernels: list[PixelKernel] = [SlopeAspectKernel(spacing=spacing)]
        if self.compute_orientation:
            self.sources = [*self.sources, geolocation_source(self.geocoding)]
            kernels.append(OrientationKernel())
        return kernels

    def _band_specs(self) -> list[BandSpec]:
        specs = [slope_band(self.nodata_value), aspect_band(self.nodata_value)]
        if self.compute_orientation:
            specs.append(orientation_band(self.nodata_value))
        return specs

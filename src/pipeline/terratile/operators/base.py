"""Base class for tiled raster operators."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import ClassVar

import numpy as np
import structlog
import xarray as xr

from terratile.pipeline.executor import (
    CancellationToken,
    NeighborhoodSource,
    PixelKernel,
    TileResult,
    run_tile,
)
from terratile.raster.product import BandSpec, add_band, as_product
from terratile.raster.tiles import TileRect

logger = structlog.get_logger()


class TileOperator(ABC):
    """An operator computing target bands tile by tile from a source product.

    Subclasses validate their inputs and build the per-raster context in
    ``_initialize``, which must set ``width``, ``height``, ``sources``,
    ``kernels`` and ``computed_bands``. Nothing tile-related runs before
    ``initialize`` has succeeded.
    """

    name: ClassVar[str]

    def __init__(self, source: xr.Dataset | xr.DataArray) -> None:
        self.source = as_product(source)
        self.width = 0
        self.height = 0
        self.sources: Sequence[NeighborhoodSource] = ()
        self.kernels: Sequence[PixelKernel] = ()
        self.computed_bands: list[BandSpec] = []
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Validate the configuration and compute the per-raster context once."""
        if self._initialized:
            return
        self._initialize()
        self._initialized = True

    @abstractmethod
    def _initialize(self) -> None:
        ...

    def compute_tile(self, rect: TileRect, cancel: CancellationToken | None = None) -> TileResult:
        """Compute every output band over one tile."""
        if not self._initialized:
            raise RuntimeError(f"Operator {self.name} used before initialize()")
        return run_tile(rect, self.sources, self.kernels, cancel)

    @abstractmethod
    def _create_empty_target(self) -> xr.Dataset:
        ...

    def _finalize_target(self, target: xr.Dataset, outputs: dict[str, np.ndarray]) -> xr.Dataset:
        """Hook for operator-specific bands and statistics."""
        return target

    def create_target(self, outputs: dict[str, np.ndarray]) -> xr.Dataset:
        """Assemble the target product from full-size output arrays."""
        target = self._create_empty_target()
        for spec in self.computed_bands:
            target = add_band(target, spec, outputs[spec.name])
        return self._finalize_target(target, outputs)

"""Tile execution: halo reads, per-row kernel evaluation, output buffers.

A tile job reads the neighbourhood buffers of all its inputs once, then
evaluates its kernels row by row in row-major order. Cancellation is polled
before every row; a cancelled tile is abandoned and produces no output.
"""

import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from functools import partial
from typing import Protocol

import numpy as np
import xarray as xr

from terratile.exceptions import ProcessingCancelledError
from terratile.raster.geocoding import GeoCoding
from terratile.raster.neighborhood import neighborhood_windows, read_neighborhood
from terratile.raster.terrain import LATITUDE_INPUT, LONGITUDE_INPUT
from terratile.raster.tiles import TileRect

# Reads the halo buffers of one input for a target rectangle and halo
NeighborhoodSource = Callable[[TileRect, int], dict[str, np.ndarray]]


class PixelKernel(Protocol):
    """Evaluates one row of pixels from their neighbourhood windows."""

    halo: int
    outputs: Mapping[str, np.dtype]

    def __call__(self, windows: dict[str, np.ndarray]) -> Mapping[str, np.ndarray]:
        ...


class CancellationToken:
    """Cooperative cancellation flag shared by the tiles of one raster."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        """Raise ProcessingCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise ProcessingCancelledError("Processing cancelled")


@dataclass
class TileResult:
    """Completed output buffers of one tile, keyed by band name."""

    rect: TileRect
    outputs: dict[str, np.ndarray]


def _read_band(
    name: str,
    raster: xr.DataArray,
    any_numeric: bool,
    rect: TileRect,
    halo: int,
) -> dict[str, np.ndarray]:
    return {name: read_neighborhood(raster, rect, halo, any_numeric=any_numeric)}


def band_source(name: str, raster: xr.DataArray, any_numeric: bool = False) -> NeighborhoodSource:
    """Neighbourhood source reading a raster band under ``name``.

    ``any_numeric`` lifts the elevation sample type restriction.
    """
    return partial(_read_band, name, raster, any_numeric)


def _read_geolocation(geocoding: GeoCoding, rect: TileRect, halo: int) -> dict[str, np.ndarray]:
    lat, lon = geocoding.geo_pixels(rect.dilate(halo))
    return {LATITUDE_INPUT: lat, LONGITUDE_INPUT: lon}


def geolocation_source(geocoding: GeoCoding) -> NeighborhoodSource:
    """Neighbourhood source providing latitude and longitude grids."""
    return partial(_read_geolocation, geocoding)


def run_tile(
    rect: TileRect,
    sources: Sequence[NeighborhoodSource],
    kernels: Sequence[PixelKernel],
    cancel: CancellationToken | None = None,
) -> TileResult:
    """Evaluate kernels over every pixel of a tile.

    Args:
        rect: Target rectangle; outputs cover exactly this rectangle.
        sources: Inputs, each returning named halo buffers for the rectangle.
        kernels: Kernels sharing the same halo; their outputs must not clash.
        cancel: Optional cancellation token, checked before every row.

    Returns:
        TileResult holding one (rect.height, rect.width) array per output.

    Raises:
        ProcessingCancelledError: If cancellation was requested mid-tile.
    """
    halos = {kernel.halo for kernel in kernels}
    if len(halos) != 1:
        raise ValueError(f"Kernels of one tile must share a halo, got {sorted(halos)}")
    halo = halos.pop()

    if cancel is not None:
        cancel.check()

    buffers: dict[str, np.ndarray] = {}
    for source in sources:
        buffers.update(source(rect, halo))

    windows = {name: neighborhood_windows(grid, halo) for name, grid in buffers.items()}

    outputs: dict[str, np.ndarray] = {}
    for kernel in kernels:
        for name, dtype in kernel.outputs.items():
            if name in outputs:
                raise ValueError(f"Output band '{name}' produced by more than one kernel")
            outputs[name] = np.empty((rect.height, rect.width), dtype=dtype)

    for row in range(rect.height):
        if cancel is not None:
            cancel.check()
        row_windows = {name: w[row] for name, w in windows.items()}
        for kernel in kernels:
            for name, values in kernel(row_windows).items():
                outputs[name][row] = values

    return TileResult(rect=rect, outputs=outputs)

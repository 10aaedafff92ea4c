"""Unit tests for single-tile kernel execution."""

import numpy as np
import pytest
import xarray as xr

from terratile.classify.scoring import ClassifierKernel, FunctionScoring
from terratile.exceptions import ProcessingCancelledError
from terratile.pipeline.executor import (
    CancellationToken,
    band_source,
    geolocation_source,
    run_tile,
)
from terratile.raster.geocoding import geocoding_from_raster
from terratile.raster.terrain import (
    ELEVATION_INPUT,
    LATITUDE_INPUT,
    LONGITUDE_INPUT,
    SlopeAspectKernel,
    SlopeAspectVarianceKernel,
    compute_slope_aspect_variance,
    to_degrees,
)
from terratile.raster.tiles import TileRect


class CountingKernel:
    """Kernel recording how many rows it evaluated."""

    halo = 1
    outputs = {"count": np.dtype(np.float32)}

    def __init__(self, cancel: CancellationToken | None = None, cancel_after: int = 0):
        self.rows = 0
        self.cancel = cancel
        self.cancel_after = cancel_after

    def __call__(self, windows):
        self.rows += 1
        if self.cancel is not None and self.rows >= self.cancel_after:
            self.cancel.cancel()
        return {"count": np.full(windows[ELEVATION_INPUT].shape[0], self.rows, dtype=np.float32)}


# ---------------------------------------------------------------------------
# 1. Cancellation token
# ---------------------------------------------------------------------------

class TestCancellationToken:
    """Verify the cooperative cancellation flag."""

    def test_initially_not_cancelled(self):
        token = CancellationToken()
        assert not token.cancelled
        token.check()

    def test_check_raises_after_cancel(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled
        with pytest.raises(ProcessingCancelledError):
            token.check()


# ---------------------------------------------------------------------------
# 2. Tile evaluation
# ---------------------------------------------------------------------------

class TestRunTile:
    """Verify per-tile evaluation and edge handling."""

    def test_output_covers_rectangle(self, elevation_product):
        band = elevation_product["elevation"]
        result = run_tile(
            TileRect(1, 1, 3, 2),
            [band_source(ELEVATION_INPUT, band)],
            [SlopeAspectVarianceKernel(spacing=10.0)],
        )
        assert result.rect == TileRect(1, 1, 3, 2)
        assert set(result.outputs) == {"slope", "aspect", "elevation_variance"}
        assert all(out.shape == (2, 3) for out in result.outputs.values())
        assert all(out.dtype == np.float32 for out in result.outputs.values())

    def test_corner_pixel_uses_clamped_neighbours(self, elevation_product):
        band = elevation_product["elevation"]
        result = run_tile(
            TileRect(0, 0, 1, 1),
            [band_source(ELEVATION_INPUT, band)],
            [SlopeAspectVarianceKernel(spacing=10.0)],
        )
        # Out-of-raster neighbours are copies of the nearest edge pixel
        clamped = np.array([10.0, 10.0, 15.0, 10.0, 10.0, 15.0, 12.0, 12.0, 14.0])
        slope, aspect, variance = compute_slope_aspect_variance(clamped, 10.0)
        assert result.outputs["slope"][0, 0] == to_degrees(slope)
        assert result.outputs["aspect"][0, 0] == to_degrees(aspect)
        assert result.outputs["elevation_variance"][0, 0] == variance

    def test_rows_are_evaluated_in_order(self, elevation_product):
        kernel = CountingKernel()
        result = run_tile(
            TileRect(0, 0, 4, 4),
            [band_source(ELEVATION_INPUT, elevation_product["elevation"])],
            [kernel],
        )
        assert kernel.rows == 4
        np.testing.assert_array_equal(result.outputs["count"][:, 0], [1, 2, 3, 4])

    def test_pixel_geolocation_source(self, make_band, elevation_values):
        band = make_band(elevation_values, crs=None).assign_coords(
            lat=(("y", "x"), np.repeat(np.arange(4.0)[:, np.newaxis], 4, axis=1)),
            lon=(("y", "x"), np.repeat(np.arange(4.0)[np.newaxis, :], 4, axis=0)),
        )
        source = geolocation_source(geocoding_from_raster(band))
        buffers = source(TileRect(0, 0, 2, 2), 1)
        assert buffers[LATITUDE_INPUT].shape == (4, 4)
        assert buffers[LONGITUDE_INPUT][0, 0] == 0.0
        assert buffers[LONGITUDE_INPUT][0, -1] == 2.0


# ---------------------------------------------------------------------------
# 3. Failure modes
# ---------------------------------------------------------------------------

class TestRunTileFailures:
    """Verify cancellation and kernel configuration errors."""

    def test_cancelled_before_start(self, elevation_product):
        token = CancellationToken()
        token.cancel()
        kernel = CountingKernel()
        with pytest.raises(ProcessingCancelledError):
            run_tile(
                TileRect(0, 0, 4, 4),
                [band_source(ELEVATION_INPUT, elevation_product["elevation"])],
                [kernel],
                cancel=token,
            )
        assert kernel.rows == 0

    def test_cancelled_mid_tile_abandons_remaining_rows(self, elevation_product):
        token = CancellationToken()
        kernel = CountingKernel(cancel=token, cancel_after=2)
        with pytest.raises(ProcessingCancelledError):
            run_tile(
                TileRect(0, 0, 4, 4),
                [band_source(ELEVATION_INPUT, elevation_product["elevation"])],
                [kernel],
                cancel=token,
            )
        assert kernel.rows == 2

    def test_duplicate_outputs_rejected(self, elevation_product):
        with pytest.raises(ValueError, match="more than one kernel"):
            run_tile(
                TileRect(0, 0, 2, 2),
                [band_source(ELEVATION_INPUT, elevation_product["elevation"])],
                [SlopeAspectKernel(spacing=10.0), SlopeAspectVarianceKernel(spacing=10.0)],
            )

    def test_mixed_halos_rejected(self, elevation_product):
        scoring = FunctionScoring(lambda v: [v[0], v[0]], input_names=["elevation"], output_names=["s", "aux"])
        with pytest.raises(ValueError, match="share a halo"):
            run_tile(
                TileRect(0, 0, 2, 2),
                [band_source(ELEVATION_INPUT, elevation_product["elevation"])],
                [SlopeAspectKernel(spacing=10.0), ClassifierKernel(scoring, (1,))],
            )

    def test_unsupported_band_fails_tile(self):
        band = xr.DataArray(np.zeros((2, 2), dtype=np.uint8), dims=["y", "x"], name="elevation")
        with pytest.raises(ValueError, match="not supported"):
            run_tile(
                TileRect(0, 0, 2, 2),
                [band_source(ELEVATION_INPUT, band)],
                [SlopeAspectKernel(spacing=10.0)],
            )

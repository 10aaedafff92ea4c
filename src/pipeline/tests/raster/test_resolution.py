"""Unit tests for geocodings and pixel spacing resolution."""

import numpy as np
import pytest
import xarray as xr
from pyproj import CRS
from rasterio.transform import Affine

from terratile.exceptions import MissingGeoCodingError, ResolutionError
from terratile.geo_utils import haversine_distance_km
from terratile.raster.geocoding import CrsGeoCoding, PixelGeoCoding, geocoding_from_raster
from terratile.raster.resolution import estimate_resolution, resolve_resolution
from terratile.raster.tiles import TileRect


def dms(degrees: float, minutes: float, seconds: float) -> float:
    return degrees + minutes / 60.0 + seconds / 3600.0


def utm_geocoding(pixel_size: float = 10.0) -> CrsGeoCoding:
    return CrsGeoCoding(
        crs=CRS.from_epsg(32650),
        transform=Affine(pixel_size, 0.0, 699960.0, 0.0, -pixel_size, 4000020.0),
    )


# ---------------------------------------------------------------------------
# 1. Great-circle distance
# ---------------------------------------------------------------------------

class TestHaversineDistance:
    """Verify the great-circle distance against a reference pair."""

    def test_reference_pair(self):
        distance = haversine_distance_km(
            dms(50, 3, 59), -dms(5, 42, 53),
            dms(58, 38, 38), -dms(3, 4, 12),
        )
        assert distance == pytest.approx(968.9, abs=0.1)

    def test_same_point_is_zero(self):
        assert haversine_distance_km(45.0, 7.0, 45.0, 7.0) == 0.0

    def test_symmetric(self):
        d1 = haversine_distance_km(10.0, 20.0, 11.0, 21.5)
        d2 = haversine_distance_km(11.0, 21.5, 10.0, 20.0)
        assert d1 == pytest.approx(d2)


# ---------------------------------------------------------------------------
# 2. Geocodings
# ---------------------------------------------------------------------------

class TestCrsGeoCoding:
    """Verify the affine scale and geographic positions of CRS geocodings."""

    def test_affine_scale_of_projected_grid(self):
        assert utm_geocoding().affine_scale == 10.0

    def test_geographic_crs_has_no_affine_scale(self):
        geocoding = CrsGeoCoding(CRS.from_epsg(4326), Affine(0.0001, 0.0, 10.0, 0.0, -0.0001, 50.0))
        assert geocoding.affine_scale is None

    def test_rotated_grid_has_no_affine_scale(self):
        geocoding = CrsGeoCoding(CRS.from_epsg(32650), Affine(10.0, 2.0, 699960.0, 2.0, -10.0, 4000020.0))
        assert geocoding.affine_scale is None

    def test_geo_pos_of_geographic_grid(self):
        geocoding = CrsGeoCoding(CRS.from_epsg(4326), Affine(0.5, 0.0, 10.0, 0.0, -0.5, 50.0))
        lat, lon = geocoding.geo_pos(1.0, 2.0)
        assert lat == pytest.approx(49.0)
        assert lon == pytest.approx(10.5)

    def test_geo_pixels_at_pixel_centres(self):
        geocoding = CrsGeoCoding(CRS.from_epsg(4326), Affine(0.5, 0.0, 10.0, 0.0, -0.5, 50.0))
        lat, lon = geocoding.geo_pixels(TileRect(0, 0, 2, 3))
        assert lat.shape == (3, 2)
        assert lat[0, 0] == pytest.approx(49.75)
        assert lon[0, 1] == pytest.approx(10.75)


class TestPixelGeoCoding:
    """Verify per-pixel latitude/longitude geocodings."""

    def make_geocoding(self) -> PixelGeoCoding:
        lat = np.array([[50.0, 50.0, 50.0], [49.0, 49.0, 49.0]])
        lon = np.array([[10.0, 11.0, 12.0], [10.0, 11.0, 12.0]])
        return PixelGeoCoding(latitudes=lat, longitudes=lon)

    def test_never_affine(self):
        assert self.make_geocoding().affine_scale is None

    def test_geo_pos_at_pixel_centre(self):
        lat, lon = self.make_geocoding().geo_pos(0.5, 0.5)
        assert lat == pytest.approx(50.0)
        assert lon == pytest.approx(10.0)

    def test_geo_pos_interpolates(self):
        lat, lon = self.make_geocoding().geo_pos(1.0, 1.0)
        assert lat == pytest.approx(49.5)
        assert lon == pytest.approx(10.5)

    def test_geo_pixels_clamp_to_edge(self):
        lat, lon = self.make_geocoding().geo_pixels(TileRect(-1, -1, 5, 4))
        assert lat.shape == (4, 5)
        assert lat[0, 0] == 50.0
        assert lat[-1, -1] == 49.0
        assert lon[0, 0] == 10.0
        assert lon[0, -1] == 12.0

    def test_rejects_mismatched_shapes(self):
        with pytest.raises(ValueError):
            PixelGeoCoding(latitudes=np.zeros((2, 3)), longitudes=np.zeros((3, 2)))


class TestGeocodingFromRaster:
    """Verify geocoding detection on bands."""

    def test_crs_band(self, make_band):
        geocoding = geocoding_from_raster(make_band(np.zeros((4, 4), dtype=np.float32)))
        assert isinstance(geocoding, CrsGeoCoding)
        assert geocoding.affine_scale == 10.0

    def test_band_without_geocoding(self, make_band):
        assert geocoding_from_raster(make_band(np.zeros((4, 4), dtype=np.float32), crs=None)) is None

    def test_pixel_coordinates_take_precedence(self, make_band):
        band = make_band(np.zeros((2, 3), dtype=np.float32))
        band = band.assign_coords(
            lat=(("y", "x"), np.full((2, 3), 50.0)),
            lon=(("y", "x"), np.full((2, 3), 10.0)),
        )
        assert isinstance(geocoding_from_raster(band), PixelGeoCoding)

    def test_one_dimensional_lat_lon_are_ignored(self):
        band = xr.DataArray(
            np.zeros((2, 3), dtype=np.float32),
            dims=["lat", "lon"],
            coords={"lat": [50.0, 49.0], "lon": [10.0, 11.0, 12.0]},
        )
        assert geocoding_from_raster(band) is None


# ---------------------------------------------------------------------------
# 3. Resolution
# ---------------------------------------------------------------------------

class TestResolveResolution:
    """Verify the exact and great-circle resolution strategies."""

    def test_affine_resolution_is_exact(self):
        resolution = resolve_resolution(utm_geocoding(), 4, 4)
        assert resolution.meters_per_pixel == 10.0
        assert resolution.exact
        assert resolution.method == "affine"

    def test_estimate_agrees_with_affine_resolution(self):
        geocoding = utm_geocoding()
        estimate = estimate_resolution(geocoding, 4, 4)
        assert estimate == pytest.approx(geocoding.affine_scale, abs=0.1)

    def test_estimate_on_larger_grid(self):
        geocoding = utm_geocoding(pixel_size=30.0)
        assert estimate_resolution(geocoding, 100, 100) == pytest.approx(30.0, abs=0.1)

    def test_falls_back_to_estimate_without_affine_scale(self):
        geocoding = CrsGeoCoding(CRS.from_epsg(4326), Affine(0.0001, 0.0, 10.0, 0.0, -0.0001, 50.0))
        resolution = resolve_resolution(geocoding, 10, 10)
        assert not resolution.exact
        assert resolution.method == "great-circle"
        # 0.0001 deg of longitude at 50N is about 7.1 m, of latitude about 11.1 m
        assert 7.0 < resolution.meters_per_pixel < 11.2

    def test_missing_geocoding_raises(self):
        with pytest.raises(MissingGeoCodingError, match="no geo-coding"):
            resolve_resolution(None, 4, 4)

    def test_estimate_disabled_raises(self):
        geocoding = CrsGeoCoding(CRS.from_epsg(4326), Affine(0.0001, 0.0, 10.0, 0.0, -0.0001, 50.0))
        with pytest.raises(ResolutionError, match="Could not retrieve spatial resolution from geo-coding"):
            resolve_resolution(geocoding, 4, 4, allow_estimate=False)

    def test_single_column_cannot_be_estimated(self):
        geocoding = CrsGeoCoding(CRS.from_epsg(4326), Affine(0.0001, 0.0, 10.0, 0.0, -0.0001, 50.0))
        with pytest.raises(ResolutionError):
            estimate_resolution(geocoding, 1, 4)

"""Shared geospatial utility functions."""

import math
from functools import lru_cache

from pyproj import CRS, Transformer

# Mean Earth radius used for great-circle distances
EARTH_RADIUS_KM = 6371.0


@lru_cache(maxsize=32)
def get_wgs84_transformer(crs_wkt: str) -> Transformer:
    """Get a CRS -> WGS84 transformer for a given CRS.

    Args:
        crs_wkt: WKT of the source CRS (hashable, so transformers are cached).

    Returns:
        pyproj Transformer to EPSG:4326 with (x, y) -> (lon, lat) axis order.
    """
    return Transformer.from_crs(CRS.from_wkt(crs_wkt), 4326, always_xy=True)


def haversine_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points.

    Uses the haversine formula on a sphere of radius 6371 km, see
    https://www.movable-type.co.uk/scripts/latlong.html

    Args:
        lat1: First point latitude in degrees.
        lon1: First point longitude in degrees.
        lat2: Second point latitude in degrees.
        lon2: Second point longitude in degrees.

    Returns:
        Distance in kilometres.
    """
    delta_lat = math.radians(lat1 - lat2)
    delta_lon = math.radians(lon1 - lon2)

    a = (
        math.sin(delta_lat / 2.0) * math.sin(delta_lat / 2.0)
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2))
        * math.sin(delta_lon / 2.0) * math.sin(delta_lon / 2.0)
    )
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c

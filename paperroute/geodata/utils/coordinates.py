# paperroute/geodata/utils/coordinates.py
"""
Provides essential coordinate geometry utilities: great-circle distances,
bounding-box tests and the corridor sampler used to tile a route with
bounded-radius queries.
"""
import numpy as np
from typing import List, Sequence, Tuple

EARTH_RADIUS_M = 6371000

Coordinate = Tuple[float, float]


class CoordinateCalculations:
    """A collection of static methods for coordinate-based calculations."""

    @staticmethod
    def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculates the Haversine distance between two points in meters."""
        d_lat = np.radians(lat2 - lat1)
        d_lon = np.radians(lon2 - lon1)
        a = np.sin(d_lat / 2)**2 + np.cos(np.radians(lat1)) * np.cos(np.radians(lat2)) * np.sin(d_lon / 2)**2
        c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
        return float(EARTH_RADIUS_M * c)

    @staticmethod
    def distances_m(lat: float, lon: float, lats: Sequence[float], lons: Sequence[float]) -> np.ndarray:
        """Vectorised Haversine distance from one point to many, in meters."""
        lats_arr = np.asarray(lats, dtype=float)
        lons_arr = np.asarray(lons, dtype=float)
        d_lat = np.radians(lats_arr - lat)
        d_lon = np.radians(lons_arr - lon)
        a = np.sin(d_lat / 2)**2 + np.cos(np.radians(lat)) * np.cos(np.radians(lats_arr)) * np.sin(d_lon / 2)**2
        c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
        return EARTH_RADIUS_M * c

    @staticmethod
    def any_point_in_bounds(geometry: Sequence[Coordinate], min_lat: float, max_lat: float,
                            min_lon: float, max_lon: float) -> bool:
        """True when at least one vertex lies inside the (inclusive) box."""
        return any(
            min_lat <= lat <= max_lat and min_lon <= lon <= max_lon
            for lat, lon in geometry
        )


class CorridorSampler:
    """
    Reduces a route polyline to sparse sample points spaced by arc length.

    The first point is always kept. Walking the route, a point is emitted
    each time the accumulated distance since the last emitted point reaches
    the interval. The final point is appended when it was not the one most
    recently emitted, so the end of a route is always covered.
    """

    @staticmethod
    def sample(geometry: Sequence[Sequence[float]], interval_m: float) -> List[Coordinate]:
        if interval_m <= 0:
            raise ValueError(f"Sample interval must be positive, got {interval_m}")
        if len(geometry) == 0:
            return []

        points = [CorridorSampler._as_coordinate(point) for point in geometry]
        samples = [points[0]]
        last_emitted = 0
        accumulated = 0.0

        for i in range(1, len(points)):
            prev_lat, prev_lon = points[i - 1]
            lat, lon = points[i]
            accumulated += CoordinateCalculations.distance_m(prev_lat, prev_lon, lat, lon)
            if accumulated >= interval_m:
                samples.append(points[i])
                last_emitted = i
                accumulated = 0.0

        if last_emitted != len(points) - 1:
            samples.append(points[-1])
        return samples

    @staticmethod
    def _as_coordinate(point: Sequence[float]) -> Coordinate:
        if len(point) != 2:
            raise ValueError(f"Expected a (lat, lon) pair, got {point!r}")
        lat, lon = float(point[0]), float(point[1])
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
            raise ValueError(f"Coordinate out of range: ({lat}, {lon})")
        return (lat, lon)

# paperroute/geodata/lookup.py
"""
Read-only, network-free queries over the cached feature stores. This is
what the renderer and the drive-time UI call while the car is moving.
"""
from typing import List, Optional, Tuple

import numpy as np

from .data_models import Coordinate, LanduseFeature, PlaceLookup, PlaceMatch, RoadFeature, WaterFeature
from .feature_store import RouteFeatureStore
from .utils.constants import FeatureConstants
from .utils.coordinates import CoordinateCalculations

# (min_lat, max_lat, min_lon, max_lon)
Bounds = Tuple[float, float, float, float]


class OfflineLookup:
    """Pure reads over the per-family stores. Nothing here touches the network."""

    def __init__(self, roads: RouteFeatureStore, water: RouteFeatureStore,
                 landuse: RouteFeatureStore, locations: RouteFeatureStore,
                 place_threshold_m: float = 100.0):
        self._stores = {
            FeatureConstants.ROADS: roads,
            FeatureConstants.WATER: water,
            FeatureConstants.LANDUSE: landuse,
            FeatureConstants.LOCATIONS: locations,
        }
        self.place_threshold_m = place_threshold_m

    def _store(self, family: str) -> RouteFeatureStore:
        try:
            return self._stores[family]
        except KeyError:
            raise ValueError(f"Unknown feature family: {family}") from None

    def all_features(self, family: str) -> list:
        return self._store(family).get_all()

    def features_in_bounds(self, family: str, min_lat: float, max_lat: float,
                           min_lon: float, max_lon: float) -> list:
        return self._store(family).get_in_bounds(min_lat, max_lat, min_lon, max_lon)

    def _select(self, family: str, bounds: Optional[Bounds]) -> list:
        if bounds is None:
            return self.all_features(family)
        return self.features_in_bounds(family, *bounds)

    def roads(self, bounds: Optional[Bounds] = None) -> List[RoadFeature]:
        return self._select(FeatureConstants.ROADS, bounds)

    def water(self, bounds: Optional[Bounds] = None, include_areas: bool = True,
              include_waterways: bool = True) -> List[WaterFeature]:
        """Water bodies (`is_area`) and/or waterways, optionally limited to a box."""
        return [
            feature for feature in self._select(FeatureConstants.WATER, bounds)
            if (include_areas if feature.is_area else include_waterways)
        ]

    def landuse(self, bounds: Optional[Bounds] = None) -> List[LanduseFeature]:
        return self._select(FeatureConstants.LANDUSE, bounds)

    def places(self) -> List[PlaceLookup]:
        return self.all_features(FeatureConstants.LOCATIONS)

    def nearest_place(self, position: Coordinate, threshold_m: Optional[float] = None) -> Optional[PlaceMatch]:
        """
        Finds the cached place closest to `position`.

        Returns:
            A PlaceMatch if the closest place is strictly nearer than the
            threshold, otherwise None.
        """
        threshold = self.place_threshold_m if threshold_m is None else threshold_m
        places = self.places()
        if not places:
            return None

        lat, lon = position
        distances = CoordinateCalculations.distances_m(
            lat, lon,
            [place.latitude for place in places],
            [place.longitude for place in places],
        )
        best = int(np.argmin(distances))
        distance = float(distances[best])
        if distance < threshold:
            return PlaceMatch(place=places[best], distance_m=distance)
        return None

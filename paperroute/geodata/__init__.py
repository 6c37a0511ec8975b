"""
Paperroute - Geodata Module
Prefetches roads, water, landuse and place names along a planned route
and serves them offline while driving.
"""

from .core import GeoDataService, RoutePrefetcher
from .control import CancellationToken, ProgressChannel
from .data_models import (
    DriveRoute, PrefetchConfig, PrefetchProgress,
    RoadFeature, WaterFeature, LanduseFeature, PlaceLookup, PlaceMatch,
)
from .exceptions import GeoDataError, NotInitializedError, CacheWriteError, PrefetchError, PrefetchCancelled
from .lookup import OfflineLookup

__all__ = [
    "GeoDataService",
    "RoutePrefetcher",
    "OfflineLookup",
    "CancellationToken",
    "ProgressChannel",
    "DriveRoute",
    "PrefetchConfig",
    "PrefetchProgress",
    "RoadFeature",
    "WaterFeature",
    "LanduseFeature",
    "PlaceLookup",
    "PlaceMatch",
    "GeoDataError",
    "NotInitializedError",
    "CacheWriteError",
    "PrefetchError",
    "PrefetchCancelled"
]

# Utility classes for query building, geometry and tag classification.

from .constants import FeatureConstants
from .coordinates import CoordinateCalculations, CorridorSampler
from .queries import OverpassQueryBuilder, NominatimQueryBuilder

__all__ = [
    "FeatureConstants",
    "CoordinateCalculations",
    "CorridorSampler",
    "OverpassQueryBuilder",
    "NominatimQueryBuilder"
]

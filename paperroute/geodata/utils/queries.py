# paperroute/geodata/utils/queries.py
"""
Builders for the outbound upstream queries, one per feature family.
"""
from typing import Dict

from .constants import FeatureConstants


class OverpassQueryBuilder:
    """
    Constructs Overpass QL queries for a circular region around a sample
    point. Every query asks for inline geometry (`out geom`) so no node
    lookups are needed when parsing.
    """

    @staticmethod
    def _around(radius_m: float, lat: float, lon: float) -> str:
        radius = int(radius_m) if float(radius_m).is_integer() else radius_m
        return f"(around:{radius},{lat},{lon})"

    @staticmethod
    def _pattern(values) -> str:
        return "^(" + "|".join(values) + ")$"

    @staticmethod
    def build_road_query(lat: float, lon: float, radius_m: float, timeout_sec: int) -> str:
        around = OverpassQueryBuilder._around(radius_m, lat, lon)
        pattern = OverpassQueryBuilder._pattern(FeatureConstants.HIGHWAY_TYPES)
        return f"""
        [out:json][timeout:{timeout_sec}];
        way{around}[highway~"{pattern}"];
        out geom;
        """

    @staticmethod
    def build_water_query(lat: float, lon: float, radius_m: float, timeout_sec: int) -> str:
        around = OverpassQueryBuilder._around(radius_m, lat, lon)
        waterways = OverpassQueryBuilder._pattern(FeatureConstants.WATERWAY_TYPES)
        standing = OverpassQueryBuilder._pattern(FeatureConstants.STANDING_WATER_TYPES)
        return f"""
        [out:json][timeout:{timeout_sec}];
        (
          way{around}[waterway~"{waterways}"];
          way{around}[natural="water"];
          way{around}[water~"{standing}"];
          relation{around}[natural="water"];
          relation{around}[water~"{standing}"];
        );
        out geom;
        """

    @staticmethod
    def build_landuse_query(lat: float, lon: float, radius_m: float, timeout_sec: int) -> str:
        around = OverpassQueryBuilder._around(radius_m, lat, lon)
        landuse = OverpassQueryBuilder._pattern(FeatureConstants.LANDUSE_TYPES)
        query_parts = []
        for element_type in ("way", "relation"):
            query_parts.append(f'{element_type}{around}[landuse~"{landuse}"];')
            query_parts.append(f'{element_type}{around}[natural="wood"];')
            query_parts.append(f'{element_type}{around}[leisure="park"];')
        joined = "\n          ".join(query_parts)
        return f"""
        [out:json][timeout:{timeout_sec}];
        (
          {joined}
        );
        out geom;
        """


class NominatimQueryBuilder:
    """Builds the query parameters for a single-point reverse lookup."""

    @staticmethod
    def build_reverse_params(lat: float, lon: float) -> Dict[str, str]:
        return {
            'lat': f"{lat}",
            'lon': f"{lon}",
            'format': 'json',
            'addressdetails': '1',
        }

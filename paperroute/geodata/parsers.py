# paperroute/geodata/parsers.py
"""
Turns raw upstream responses into typed feature records.

Overpass elements are first decoded into an explicit `OverpassWay` or
`OverpassRelation`; anything that does not decode is dropped. Each family
parser then classifies the element by its tags and applies the family's
minimum-vertex rule. A record that fails any check is discarded, never
raised, so one odd element cannot spoil the rest of a response.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from .data_models import (
    Coordinate, HighwayType, LanduseFeature, LanduseType, PlaceLookup,
    RoadFeature, WaterFeature, WaterType, utc_now,
)
from .utils.constants import FeatureConstants


# --- Overpass element variants ---

@dataclass(frozen=True)
class RelationMember:
    role: str
    geometry: Tuple[Coordinate, ...] = ()


@dataclass(frozen=True)
class OverpassWay:
    id: int
    tags: Dict[str, str] = field(default_factory=dict)
    geometry: Tuple[Coordinate, ...] = ()

    def feature_geometry(self) -> Tuple[Coordinate, ...]:
        return self.geometry


@dataclass(frozen=True)
class OverpassRelation:
    id: int
    tags: Dict[str, str] = field(default_factory=dict)
    members: Tuple[RelationMember, ...] = ()

    def feature_geometry(self) -> Tuple[Coordinate, ...]:
        """Concatenates the outer members; inner rings (holes) are ignored."""
        points: List[Coordinate] = []
        for member in self.members:
            if member.role == FeatureConstants.OUTER_ROLE:
                points.extend(member.geometry)
        return tuple(points)


OverpassElement = Union[OverpassWay, OverpassRelation]


def _decode_points(raw_points: Any) -> Tuple[Coordinate, ...]:
    if not isinstance(raw_points, list):
        return ()
    return tuple(
        (float(node['lat']), float(node['lon']))
        for node in raw_points
        if isinstance(node, dict) and 'lat' in node and 'lon' in node
    )


def decode_element(raw: Any) -> Optional[OverpassElement]:
    """Decodes one raw Overpass element, or returns None if it is unusable."""
    if not isinstance(raw, dict):
        return None
    try:
        element_id = int(raw['id'])
        tags = raw.get('tags') or {}
        if not isinstance(tags, dict):
            tags = {}
        if raw.get('type') == 'way':
            return OverpassWay(id=element_id, tags=tags, geometry=_decode_points(raw.get('geometry')))
        if raw.get('type') == 'relation':
            members = tuple(
                RelationMember(role=str(member.get('role', '')), geometry=_decode_points(member.get('geometry')))
                for member in (raw.get('members') or [])
                if isinstance(member, dict)
            )
            return OverpassRelation(id=element_id, tags=tags, members=members)
    except (KeyError, TypeError, ValueError) as e:
        logging.debug(f"Skipping undecodable Overpass element: {e}")
    return None


def decode_elements(payload: Any) -> List[OverpassElement]:
    if not isinstance(payload, dict):
        return []
    raw_elements = payload.get('elements')
    if not isinstance(raw_elements, list):
        return []
    decoded = (decode_element(raw) for raw in raw_elements)
    return [element for element in decoded if element is not None]


# --- Family parsers ---

class RoadParser:
    """Parses road ways. Relations are not roads and are skipped."""

    @staticmethod
    def classify(tags: Dict[str, str]) -> Optional[HighwayType]:
        highway = tags.get('highway')
        if highway in FeatureConstants.HIGHWAY_TYPES:
            return HighwayType(highway)
        return None

    @staticmethod
    def parse(payload: Dict[str, Any]) -> List[RoadFeature]:
        roads = []
        for element in decode_elements(payload):
            if not isinstance(element, OverpassWay):
                continue
            highway_type = RoadParser.classify(element.tags)
            if highway_type is None:
                continue
            if len(element.geometry) < FeatureConstants.MIN_ROAD_POINTS:
                continue
            roads.append(RoadFeature(
                external_id=element.id,
                highway_type=highway_type,
                name=element.tags.get('name'),
                geometry=element.geometry,
            ))
        return roads


class WaterParser:
    """Parses water bodies and waterways from ways and multipolygon relations."""

    @staticmethod
    def classify(tags: Dict[str, str]) -> Optional[Tuple[WaterType, bool]]:
        """
        Returns (water_type, is_area) or None.

        Priority: an explicit waterway (always linear), then natural=water
        (an area, refined by a `water` sub-tag), then a bare `water` tag
        (an area unless the value itself is a linear type).
        """
        waterway = tags.get('waterway')
        if waterway:
            if waterway in FeatureConstants.WATERWAY_TYPES:
                return WaterType(waterway), False
            return None

        water = tags.get('water')
        if tags.get('natural') == 'water':
            if water in FeatureConstants.WATER_TYPES:
                return WaterType(water), True
            return WaterType.WATER, True

        if water in FeatureConstants.WATER_TYPES:
            water_type = WaterType(water)
            return water_type, not water_type.is_linear
        return None

    @staticmethod
    def parse(payload: Dict[str, Any]) -> List[WaterFeature]:
        features = []
        for element in decode_elements(payload):
            classified = WaterParser.classify(element.tags)
            if classified is None:
                continue
            geometry = element.feature_geometry()
            if len(geometry) < FeatureConstants.MIN_WATER_POINTS:
                continue
            water_type, is_area = classified
            features.append(WaterFeature(
                external_id=element.id,
                water_type=water_type,
                is_area=is_area,
                name=element.tags.get('name'),
                geometry=geometry,
            ))
        return features


class LanduseParser:
    """Parses landuse, wood and park areas."""

    @staticmethod
    def classify(tags: Dict[str, str]) -> Optional[LanduseType]:
        landuse = tags.get('landuse')
        if landuse:
            try:
                return LanduseType(landuse)
            except ValueError:
                return None
        if tags.get('natural') == 'wood':
            return LanduseType.WOOD
        if tags.get('leisure') == 'park':
            return LanduseType.PARK
        return None

    @staticmethod
    def parse(payload: Dict[str, Any]) -> List[LanduseFeature]:
        features = []
        for element in decode_elements(payload):
            landuse_type = LanduseParser.classify(element.tags)
            if landuse_type is None:
                continue
            geometry = element.feature_geometry()
            # A valid area needs at least a triangle
            if len(geometry) < FeatureConstants.MIN_LANDUSE_POINTS:
                continue
            features.append(LanduseFeature(
                external_id=element.id,
                landuse_type=landuse_type,
                name=element.tags.get('name'),
                geometry=geometry,
            ))
        return features


class PlaceParser:
    """Parses a Nominatim reverse lookup into at most one PlaceLookup."""

    @staticmethod
    def short_display_name(display_name: str, road: Optional[str], locality: Optional[str]) -> str:
        parts = [part for part in (road, locality) if part]
        if parts:
            return ", ".join(parts)
        segments = [segment.strip() for segment in display_name.split(",")]
        return ", ".join(segment for segment in segments[:2] if segment)

    @staticmethod
    def parse(payload: Dict[str, Any], lat: float, lon: float,
              cached_at: Optional[datetime] = None) -> List[PlaceLookup]:
        if not isinstance(payload, dict):
            return []
        if payload.get('error'):
            # "Unable to geocode" and friends mean no result, not a failure
            logging.warning(f"Nominatim returned error for ({lat:.5f}, {lon:.5f}): {payload['error']}")
            return []
        display_name = payload.get('display_name')
        if not isinstance(display_name, str) or not display_name.strip():
            return []

        address = payload.get('address')
        if not isinstance(address, dict):
            # A missing or malformed address still leaves the display name usable
            address = {}
        address = {key: value for key, value in address.items() if isinstance(value, str) and value}
        road = address.get('road')
        locality = next((address[key] for key in FeatureConstants.LOCALITY_KEYS if key in address), None)
        short_name = PlaceParser.short_display_name(display_name, road, locality)
        if not short_name:
            return []
        place_id = payload.get('place_id')
        try:
            place_id = int(place_id) if place_id is not None else None
        except (TypeError, ValueError):
            place_id = None

        return [PlaceLookup(
            latitude=lat,
            longitude=lon,
            display_name=short_name,
            cached_at=cached_at or utc_now(),
            street=road,
            locality=locality,
            region=address.get('county') or address.get('state'),
            country=address.get('country'),
            postcode=address.get('postcode'),
            place_id=place_id,
        )]


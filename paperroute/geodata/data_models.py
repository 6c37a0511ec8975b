# paperroute/geodata/data_models.py
"""
Defines the core data structures used throughout the geodata prefetch and
offline lookup module.

Feature records are frozen dataclasses with tuple geometry so that a record
handed out by a store can never be used to mutate the store's own copy.
Every record knows how to turn itself into the JSON shape used by the
per-route cache files and back.
"""
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..constants.endpoints import EndpointConstants
from .utils.constants import FeatureConstants

Coordinate = Tuple[float, float]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parses an ISO-8601 timestamp, accepting a trailing 'Z' for UTC."""
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return datetime.fromisoformat(value)


def _geometry_from_raw(raw: Sequence[Sequence[float]], min_points: int) -> Tuple[Coordinate, ...]:
    geometry = tuple((float(point[0]), float(point[1])) for point in raw)
    if len(geometry) < min_points:
        raise ValueError(f"Geometry has {len(geometry)} points, need at least {min_points}")
    return geometry


# --- OSM classification enums ---

class HighwayType(str, Enum):
    MOTORWAY = 'motorway'
    MOTORWAY_LINK = 'motorway_link'
    TRUNK = 'trunk'
    TRUNK_LINK = 'trunk_link'
    PRIMARY = 'primary'
    PRIMARY_LINK = 'primary_link'
    SECONDARY = 'secondary'
    SECONDARY_LINK = 'secondary_link'
    TERTIARY = 'tertiary'
    TERTIARY_LINK = 'tertiary_link'
    RESIDENTIAL = 'residential'
    UNCLASSIFIED = 'unclassified'


class WaterType(str, Enum):
    RIVER = 'river'
    STREAM = 'stream'
    CANAL = 'canal'
    LAKE = 'lake'
    POND = 'pond'
    RESERVOIR = 'reservoir'
    WATER = 'water'

    @property
    def is_linear(self) -> bool:
        return self.value in FeatureConstants.LINEAR_WATER_TYPES


class LanduseType(str, Enum):
    FOREST = 'forest'
    WOOD = 'wood'
    PARK = 'park'
    MEADOW = 'meadow'
    GRASS = 'grass'
    FARMLAND = 'farmland'


# --- Route input ---

@dataclass
class DriveRoute:
    """A calculated route handed over by the route-calculation service."""
    route_id: str
    geometry: List[Coordinate] = field(default_factory=list)
    destination: Optional[str] = None


# --- Cached feature records ---

@dataclass(frozen=True)
class RoadFeature:
    """A road way with its inline polyline geometry."""
    external_id: int
    highway_type: HighwayType
    geometry: Tuple[Coordinate, ...]
    name: Optional[str] = None

    @property
    def key(self) -> int:
        return self.external_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.external_id,
            'highwayType': self.highway_type.value,
            'name': self.name,
            'geometry': [list(point) for point in self.geometry],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoadFeature":
        return cls(
            external_id=int(data['id']),
            highway_type=HighwayType(data['highwayType']),
            name=data.get('name'),
            geometry=_geometry_from_raw(data['geometry'], FeatureConstants.MIN_ROAD_POINTS),
        )


@dataclass(frozen=True)
class WaterFeature:
    """A water body (polygon ring) or waterway (polyline)."""
    external_id: int
    water_type: WaterType
    is_area: bool
    geometry: Tuple[Coordinate, ...]
    name: Optional[str] = None

    @property
    def key(self) -> int:
        return self.external_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.external_id,
            'waterType': self.water_type.value,
            'name': self.name,
            'isArea': self.is_area,
            'geometry': [list(point) for point in self.geometry],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WaterFeature":
        return cls(
            external_id=int(data['id']),
            water_type=WaterType(data['waterType']),
            is_area=bool(data['isArea']),
            name=data.get('name'),
            geometry=_geometry_from_raw(data['geometry'], FeatureConstants.MIN_WATER_POINTS),
        )


@dataclass(frozen=True)
class LanduseFeature:
    """A landuse area described by its approximate outer ring."""
    external_id: int
    landuse_type: LanduseType
    geometry: Tuple[Coordinate, ...]
    name: Optional[str] = None

    @property
    def key(self) -> int:
        return self.external_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.external_id,
            'landuseType': self.landuse_type.value,
            'name': self.name,
            'geometry': [list(point) for point in self.geometry],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LanduseFeature":
        return cls(
            external_id=int(data['id']),
            landuse_type=LanduseType(data['landuseType']),
            name=data.get('name'),
            geometry=_geometry_from_raw(data['geometry'], FeatureConstants.MIN_LANDUSE_POINTS),
        )


@dataclass(frozen=True)
class PlaceLookup:
    """A reverse-geocoded place name, keyed by the sample point it was resolved for."""
    latitude: float
    longitude: float
    display_name: str
    cached_at: datetime = field(default_factory=utc_now)
    street: Optional[str] = None
    locality: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    postcode: Optional[str] = None
    place_id: Optional[int] = None

    @property
    def key(self) -> Coordinate:
        return (self.latitude, self.longitude)

    @property
    def geometry(self) -> Tuple[Coordinate, ...]:
        return ((self.latitude, self.longitude),)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'location': {
                'displayName': self.display_name,
                'street': self.street,
                'locality': self.locality,
                'region': self.region,
                'country': self.country,
                'postcode': self.postcode,
                'placeId': self.place_id,
            },
            'cachedAt': self.cached_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlaceLookup":
        location = data['location']
        if not location.get('displayName'):
            raise ValueError("Cached location has no display name")
        place_id = location.get('placeId')
        return cls(
            latitude=float(data['latitude']),
            longitude=float(data['longitude']),
            display_name=location['displayName'],
            cached_at=parse_timestamp(data['cachedAt']),
            street=location.get('street'),
            locality=location.get('locality'),
            region=location.get('region'),
            country=location.get('country'),
            postcode=location.get('postcode'),
            place_id=int(place_id) if place_id is not None else None,
        )


@dataclass(frozen=True)
class PlaceMatch:
    """Result of a nearest-place lookup."""
    place: PlaceLookup
    distance_m: float


# --- Cache bookkeeping ---

@dataclass
class RouteCacheEntry:
    """Everything cached for one route in one feature family."""
    route_id: str
    records: List[Any] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    corridor_radius_m: Optional[float] = None

    def to_dict(self, payload_key: str) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'routeId': self.route_id,
            'createdAt': self.created_at.isoformat(),
        }
        if self.corridor_radius_m is not None:
            data['corridorRadius'] = self.corridor_radius_m
        data[payload_key] = [record.to_dict() for record in self.records]
        return data


@dataclass(frozen=True)
class PrefetchProgress:
    """Transient progress snapshot published while a prefetch runs."""
    family: str
    current: int
    total: int
    found: int
    complete: bool = False


# --- Configuration ---

@dataclass
class PrefetchConfig:
    """Configuration parameters for prefetching and offline lookups."""
    cache_root: str = './data'
    corridor_radius_m: float = 5000.0
    road_sample_interval_m: float = 2000.0
    area_sample_interval_m: float = 4000.0
    location_sample_interval_m: float = 1000.0
    min_request_interval_s: float = EndpointConstants.MIN_REQUEST_INTERVAL_S
    request_timeout_s: float = EndpointConstants.REQUEST_TIMEOUT_S
    overpass_timeout_s: int = EndpointConstants.OVERPASS_QUERY_TIMEOUT_S
    place_threshold_m: float = 100.0
    http_cache_enabled: bool = False
    http_cache_expire_s: int = 86400
    user_agent: str = EndpointConstants.USER_AGENT
    overpass_url: str = EndpointConstants.OVERPASS_URL
    nominatim_url: str = EndpointConstants.NOMINATIM_URL

    def family_dir(self, family: str) -> str:
        return os.path.join(self.cache_root, family)

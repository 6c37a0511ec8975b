# helpers/map_helpers.py
from typing import Iterable, List, Optional

from paperroute.geodata.data_models import LanduseFeature, RoadFeature, WaterFeature
from paperroute.geodata.lookup import OfflineLookup

def get_color_for_feature(feature) -> str:
    if isinstance(feature, RoadFeature):
        value = feature.highway_type.value
        if value.startswith(('motorway', 'trunk')): return "#1C1C1C"
        elif value.startswith('primary'): return "#404040"
        else: return "#808080"
    if isinstance(feature, WaterFeature):
        return "#1E90FF" if feature.is_area else "#4682B4"
    if isinstance(feature, LanduseFeature):
        return "#006400" if feature.landuse_type.value in ('forest', 'wood') else "#9ACD32"
    return "#483D8B"

def feature_to_geojson(feature) -> dict:
    coords = [[lon, lat] for lat, lon in feature.geometry]
    is_polygon = isinstance(feature, LanduseFeature) or (isinstance(feature, WaterFeature) and feature.is_area)
    if is_polygon:
        # GeoJSON rings must be closed
        if coords and coords[0] != coords[-1]:
            coords.append(coords[0])
        geometry = {"type": "Polygon", "coordinates": [coords]}
    else:
        geometry = {"type": "LineString", "coordinates": coords}

    properties = feature.to_dict()
    properties.pop('geometry', None)
    properties['display_color'] = get_color_for_feature(feature)
    return {"type": "Feature", "geometry": geometry, "properties": properties}

def features_as_geojson(features: Iterable) -> dict:
    return {"type": "FeatureCollection", "features": [feature_to_geojson(f) for f in features]}

def lookup_as_geojson(lookup: OfflineLookup, bounds: Optional[tuple] = None) -> dict:
    """Every cached road, water and landuse feature (optionally within bounds) as one collection."""
    features: List = []
    features.extend(lookup.landuse(bounds))
    features.extend(lookup.water(bounds))
    features.extend(lookup.roads(bounds))
    return features_as_geojson(features)

# paperroute/geodata/visualization.py
"""
Interactive Folium preview of what has been cached along a route, with one
toggleable layer per feature family.
"""
import folium
import logging
from typing import List, Optional

from .data_models import DriveRoute, LanduseFeature, PlaceLookup, RoadFeature, WaterFeature
from .lookup import Bounds, OfflineLookup

class CacheMapVisualizer:
    """Creates Folium maps of the offline cache."""

    def create_cache_map(self, lookup: OfflineLookup, route: Optional[DriveRoute] = None,
                         bounds: Optional[Bounds] = None) -> folium.Map:
        """
        Generates a map with layers for the route, roads, water, landuse and place names.
        """
        map_center = self._center(route, bounds)
        cache_map = folium.Map(location=map_center, zoom_start=12, tiles="CartoDB positron")

        if route and route.geometry:
            route_group = folium.FeatureGroup(name=f"Route {route.route_id}", show=True).add_to(cache_map)
            folium.PolyLine(locations=[tuple(p) for p in route.geometry], color='#E41A1C', weight=4,
                            opacity=0.9, tooltip=route.destination or route.route_id).add_to(route_group)

        landuse_group = folium.FeatureGroup(name="Landuse", show=True).add_to(cache_map)
        for feature in lookup.landuse(bounds):
            self._landuse_visual(feature).add_to(landuse_group)

        water_group = folium.FeatureGroup(name="Water", show=True).add_to(cache_map)
        for feature in lookup.water(bounds):
            self._water_visual(feature).add_to(water_group)

        roads_group = folium.FeatureGroup(name="Roads", show=True).add_to(cache_map)
        for feature in lookup.roads(bounds):
            self._road_visual(feature).add_to(roads_group)

        places_group = folium.FeatureGroup(name="Place names", show=False).add_to(cache_map)
        for place in lookup.places():
            self._place_visual(place).add_to(places_group)

        folium.LayerControl(collapsed=False).add_to(cache_map)
        logging.info("Cache preview map created.")
        return cache_map

    def _center(self, route: Optional[DriveRoute], bounds: Optional[Bounds]) -> List[float]:
        if bounds:
            min_lat, max_lat, min_lon, max_lon = bounds
            return [(min_lat + max_lat) / 2, (min_lon + max_lon) / 2]
        if route and route.geometry:
            lats, lons = zip(*[(p[0], p[1]) for p in route.geometry])
            return [sum(lats) / len(lats), sum(lons) / len(lons)]
        return [0.0, 0.0]

    def _road_visual(self, road: RoadFeature) -> folium.PolyLine:
        major = road.highway_type.value.startswith(('motorway', 'trunk', 'primary'))
        return folium.PolyLine(locations=list(road.geometry), color='#333333',
                               weight=4 if major else 2,
                               tooltip=road.name or road.highway_type.value)

    def _water_visual(self, water: WaterFeature):
        tooltip = water.name or water.water_type.value
        if water.is_area and len(water.geometry) >= 3:
            return folium.Polygon(locations=list(water.geometry), color='#1E90FF', fill=True,
                                  fill_color='#1E90FF', fill_opacity=0.4, tooltip=tooltip)
        return folium.PolyLine(locations=list(water.geometry), color='#4682B4', weight=3, tooltip=tooltip)

    def _landuse_visual(self, landuse: LanduseFeature) -> folium.Polygon:
        color = '#006400' if landuse.landuse_type.value in ('forest', 'wood') else '#9ACD32'
        return folium.Polygon(locations=list(landuse.geometry), color=color, fill=True,
                              fill_color=color, fill_opacity=0.3,
                              tooltip=landuse.name or landuse.landuse_type.value)

    def _place_visual(self, place: PlaceLookup) -> folium.Marker:
        return folium.Marker(location=[place.latitude, place.longitude],
                             popup=f"<b>{place.display_name}</b><br>{place.region or ''}",
                             tooltip=place.display_name,
                             icon=folium.Icon(color='blue', icon='info-sign'))

# paperroute/geodata/tests/test_lookup.py

import unittest
import os
import sys
import tempfile
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).resolve().parents[3]))

from paperroute.geodata.data_models import (
    HighwayType, LanduseFeature, LanduseType, PlaceLookup, RoadFeature, WaterFeature, WaterType,
)
from paperroute.geodata.feature_store import RouteFeatureStore
from paperroute.geodata.lookup import OfflineLookup
from helpers.map_helpers import features_as_geojson, lookup_as_geojson

LONDON = (51.5074, -0.1278)


class TestOfflineLookup(unittest.TestCase):
    """Test cases for network-free lookups"""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = self._tmp.name
        self.roads = RouteFeatureStore('roads', os.path.join(root, 'roads'), RoadFeature, 'features')
        self.water = RouteFeatureStore('water', os.path.join(root, 'water'), WaterFeature, 'water')
        self.landuse = RouteFeatureStore('landuse', os.path.join(root, 'landuse'), LanduseFeature, 'landuse')
        self.locations = RouteFeatureStore('locations', os.path.join(root, 'locations'), PlaceLookup,
                                           'locations', keeps_corridor_radius=False)
        self.lookup = OfflineLookup(self.roads, self.water, self.landuse, self.locations)

        self.lake = WaterFeature(external_id=10, water_type=WaterType.LAKE, is_area=True,
                                 geometry=((51.50, -0.10), (51.50, -0.09), (51.51, -0.09)))
        self.river = WaterFeature(external_id=11, water_type=WaterType.RIVER, is_area=False,
                                  geometry=((51.49, -0.12), (51.50, -0.11)), name='Thames')
        self.water.upsert('r1', [self.lake, self.river])

    def tearDown(self):
        self._tmp.cleanup()

    def _place(self, lat, lon, name):
        return PlaceLookup(latitude=lat, longitude=lon, display_name=name)

    def test_nearest_place_at_same_coordinate(self):
        self.locations.upsert('r1', [self._place(*LONDON, 'Whitehall, London')])
        match = self.lookup.nearest_place(LONDON)
        self.assertIsNotNone(match)
        self.assertEqual(match.place.display_name, 'Whitehall, London')
        self.assertAlmostEqual(match.distance_m, 0.0, places=6)

    def test_nearest_place_too_far(self):
        self.locations.upsert('r1', [self._place(*LONDON, 'Whitehall, London')])
        self.assertIsNone(self.lookup.nearest_place((52.0, -0.1278)))

    def test_nearest_place_picks_closest_across_routes(self):
        self.locations.upsert('r1', [self._place(51.5080, -0.1278, 'North')])
        self.locations.upsert('r2', [self._place(51.5075, -0.1278, 'Near')])
        match = self.lookup.nearest_place(LONDON)
        self.assertEqual(match.place.display_name, 'Near')
        self.assertLess(match.distance_m, 20)

    def test_threshold_is_strict(self):
        place = self._place(51.5083, -0.1278, 'Edge')
        self.locations.upsert('r1', [place])
        distance = self.lookup.nearest_place(LONDON, threshold_m=1000).distance_m
        self.assertIsNone(self.lookup.nearest_place(LONDON, threshold_m=distance))
        self.assertIsNotNone(self.lookup.nearest_place(LONDON, threshold_m=distance + 0.01))

    def test_nearest_place_with_empty_cache(self):
        self.assertIsNone(self.lookup.nearest_place(LONDON))

    def test_water_filters(self):
        self.assertEqual(self.lookup.water(), [self.lake, self.river])
        self.assertEqual(self.lookup.water(include_waterways=False), [self.lake])
        self.assertEqual(self.lookup.water(include_areas=False), [self.river])

    def test_features_in_bounds(self):
        self.roads.upsert('r1', [
            RoadFeature(external_id=1, highway_type=HighwayType.PRIMARY, geometry=((51.5, -0.1), (51.6, -0.1))),
            RoadFeature(external_id=2, highway_type=HighwayType.PRIMARY, geometry=((48.8, 2.3), (48.9, 2.3))),
        ])
        inside = self.lookup.features_in_bounds('roads', 51.0, 52.0, -1.0, 0.0)
        self.assertEqual([r.external_id for r in inside], [1])
        self.assertEqual(len(self.lookup.roads()), 2)
        self.assertEqual(len(self.lookup.roads((48.0, 49.0, 2.0, 3.0))), 1)

    def test_unknown_family(self):
        with self.assertRaises(ValueError):
            self.lookup.all_features('buildings')


class TestGeoJsonExport(unittest.TestCase):
    """Test cases for the GeoJSON preview helpers"""

    def test_geometry_types(self):
        road = RoadFeature(external_id=1, highway_type=HighwayType.MOTORWAY,
                           geometry=((51.5, -0.1), (51.6, -0.2)), name='M1')
        park = LanduseFeature(external_id=2, landuse_type=LanduseType.PARK,
                              geometry=((51.5, -0.1), (51.5, -0.2), (51.6, -0.2)))
        collection = features_as_geojson([road, park])

        line, polygon = collection['features']
        self.assertEqual(line['geometry'], {'type': 'LineString', 'coordinates': [[-0.1, 51.5], [-0.2, 51.6]]})
        self.assertEqual(line['properties']['name'], 'M1')
        self.assertNotIn('geometry', line['properties'])
        ring = polygon['geometry']['coordinates'][0]
        self.assertEqual(polygon['geometry']['type'], 'Polygon')
        self.assertEqual(ring[0], ring[-1])
        self.assertEqual(len(ring), 4)

    def test_lookup_export_skips_places(self):
        with tempfile.TemporaryDirectory() as root:
            stores = [RouteFeatureStore(name, root, cls, key) for name, cls, key in (
                ('roads', RoadFeature, 'features'), ('water', WaterFeature, 'water'),
                ('landuse', LanduseFeature, 'landuse'), ('locations', PlaceLookup, 'locations'))]
            stores[3].upsert('r1', [PlaceLookup(latitude=51.5, longitude=-0.1, display_name='Somewhere')])
            collection = lookup_as_geojson(OfflineLookup(*stores))
        self.assertEqual(collection, {'type': 'FeatureCollection', 'features': []})


if __name__ == '__main__':
    unittest.main()

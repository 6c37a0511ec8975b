# paperroute/geodata/tests/test_feature_store.py

import unittest
from unittest.mock import patch
import json
import os
import sys
import tempfile
import threading
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).resolve().parents[3]))

from paperroute.geodata.data_models import HighwayType, PlaceLookup, RoadFeature
from paperroute.geodata.exceptions import CacheWriteError
from paperroute.geodata.feature_store import RouteFeatureStore


def road(element_id, name=None, geometry=((51.5, -0.1), (51.51, -0.11))):
    return RoadFeature(external_id=element_id, highway_type=HighwayType.RESIDENTIAL,
                       geometry=tuple(geometry), name=name)


class TestRouteFeatureStore(unittest.TestCase):
    """Test cases for RouteFeatureStore"""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.cache_dir = os.path.join(self._tmp.name, 'roads')
        self.store = self._new_store()
        self.store.ensure_cache_dir()

    def tearDown(self):
        self._tmp.cleanup()

    def _new_store(self):
        return RouteFeatureStore('roads', self.cache_dir, RoadFeature, 'features')

    def test_upsert_first_seen_wins(self):
        self.assertEqual(self.store.upsert('r1', [road(1, 'Old'), road(2)]), 2)
        self.assertEqual(self.store.upsert('r1', [road(1, 'New'), road(3)]), 1)

        records = self.store.get_route('r1')
        self.assertEqual([r.external_id for r in records], [1, 2, 3])
        self.assertEqual(records[0].name, 'Old')

    def test_replace_starts_over(self):
        self.store.upsert('r1', [road(1), road(2)], corridor_radius_m=5000)
        self.assertEqual(self.store.replace('r1', [road(3), road(3)], corridor_radius_m=2000), 1)
        self.assertEqual([r.external_id for r in self.store.get_route('r1')], [3])

    def test_get_all_deduplicates_across_routes(self):
        self.store.upsert('r1', [road(1, 'First'), road(2)])
        self.store.upsert('r2', [road(2), road(1, 'Second'), road(4)])

        everything = self.store.get_all()
        self.assertEqual([r.external_id for r in everything], [1, 2, 4])
        self.assertEqual(everything[0].name, 'First')

    def test_returned_lists_are_copies(self):
        self.store.upsert('r1', [road(1)])
        self.store.get_route('r1').append(road(99))
        self.store.get_all().clear()
        self.assertEqual(self.store.count('r1'), 1)

    def test_get_in_bounds(self):
        self.store.upsert('r1', [road(1), road(2, geometry=((48.85, 2.35), (48.86, 2.36)))])
        inside = self.store.get_in_bounds(51.0, 52.0, -1.0, 0.0)
        self.assertEqual([r.external_id for r in inside], [1])

    def test_persist_and_load_round_trip(self):
        self.store.upsert('r1', [road(1, 'A'), road(2)], corridor_radius_m=5000)
        self.store.upsert('r2', [road(3, 'C')], corridor_radius_m=5000)
        self.store.persist('r1')
        self.store.persist('r2')

        fresh = self._new_store()
        self.assertEqual(fresh.load_all(), 2)
        self.assertEqual(set(fresh.get_all()), set(self.store.get_all()))
        self.assertEqual(fresh.created_at('r1'), self.store.created_at('r1'))

    def test_persisted_file_shape(self):
        self.store.upsert('r1', [road(7, 'Mill Lane')], corridor_radius_m=5000)
        path = self.store.persist('r1')

        with open(path) as f:
            data = json.load(f)
        self.assertEqual(data['routeId'], 'r1')
        self.assertEqual(data['corridorRadius'], 5000)
        self.assertIn('createdAt', data)
        self.assertEqual(data['features'][0]['id'], 7)
        self.assertEqual(data['features'][0]['highwayType'], 'residential')
        self.assertFalse([name for name in os.listdir(self.cache_dir) if name.endswith('.tmp')])

    def test_route_id_is_made_filename_safe(self):
        self.store.upsert('trip/../2024 05', [road(1)])
        path = self.store.persist('trip/../2024 05')
        self.assertEqual(os.path.dirname(path), self.cache_dir)

        fresh = self._new_store()
        fresh.load_all()
        self.assertTrue(fresh.has('trip/../2024 05'))

    def test_route_ids_that_sanitise_alike_keep_separate_files(self):
        self.store.upsert('a/b', [road(1, 'Slash')])
        self.store.upsert('a_b', [road(2, 'Underscore')])
        slash_path = self.store.persist('a/b')
        underscore_path = self.store.persist('a_b')
        self.assertNotEqual(slash_path, underscore_path)

        fresh = self._new_store()
        self.assertEqual(fresh.load_all(), 2)
        self.assertEqual(sorted(fresh.route_ids()), ['a/b', 'a_b'])
        self.assertEqual([r.name for r in fresh.get_route('a/b')], ['Slash'])
        self.assertEqual([r.name for r in fresh.get_route('a_b')], ['Underscore'])

        fresh.clear('a/b')
        self.assertTrue(os.path.exists(underscore_path))
        self.assertEqual(self._new_store().load_all(), 1)

    def test_safe_route_id_keeps_plain_filename(self):
        path = self.store._cache_path('trip-2024.05_a')
        self.assertEqual(os.path.basename(path), 'trip-2024.05_a.json')

    def test_route_id_shaped_like_a_rewritten_name_is_rewritten_too(self):
        self.store.upsert('a b', [road(1)])
        rewritten = os.path.basename(self.store.persist('a b'))[:-len('.json')]
        self.store.upsert(rewritten, [road(2)])
        self.store.persist(rewritten)

        fresh = self._new_store()
        self.assertEqual(fresh.load_all(), 2)
        self.assertEqual(sorted(fresh.route_ids()), sorted(['a b', rewritten]))

    def test_reader_sees_whole_batches_while_writer_upserts(self):
        batches, batch_size = 50, 10
        seen_sizes = []
        done = threading.Event()

        def writer():
            for batch in range(batches):
                self.store.upsert('r1', [road(batch * batch_size + i) for i in range(batch_size)])
            done.set()

        def reader():
            while not done.is_set():
                seen_sizes.append(len(self.store.get_all()))
            seen_sizes.append(len(self.store.get_all()))

        threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        self.assertTrue(seen_sizes)
        self.assertTrue(all(size % batch_size == 0 for size in seen_sizes))
        self.assertEqual(seen_sizes[-1], batches * batch_size)

    def test_persist_unknown_route(self):
        with self.assertRaises(CacheWriteError):
            self.store.persist('missing')

    def test_persist_write_failure(self):
        self.store.upsert('r1', [road(1)])
        with patch('paperroute.geodata.feature_store.os.replace', side_effect=OSError("disk full")):
            with self.assertRaises(CacheWriteError):
                self.store.persist('r1')
        self.assertEqual(os.listdir(self.cache_dir), [])

    def test_load_skips_corrupt_files_and_invalid_records(self):
        self.store.upsert('good', [road(1)])
        self.store.persist('good')
        with open(os.path.join(self.cache_dir, 'broken.json'), 'w') as f:
            f.write('{"routeId": "broken", "features": [')
        with open(os.path.join(self.cache_dir, 'partial.json'), 'w') as f:
            json.dump({'routeId': 'partial', 'features': [
                {'id': 5, 'highwayType': 'primary', 'geometry': [[1.0, 1.0], [1.1, 1.1]]},
                {'id': 6, 'highwayType': 'footway', 'geometry': [[1.0, 1.0], [1.1, 1.1]]},
                {'id': 7, 'highwayType': 'primary', 'geometry': [[1.0, 1.0]]},
            ]}, f)

        fresh = self._new_store()
        with self.assertLogs(level='WARNING'):
            self.assertEqual(fresh.load_all(), 2)
        self.assertFalse(fresh.has('broken'))
        self.assertEqual([r.external_id for r in fresh.get_route('partial')], [5])

    def test_load_without_directory(self):
        store = RouteFeatureStore('roads', os.path.join(self._tmp.name, 'absent'), RoadFeature, 'features')
        self.assertEqual(store.load_all(), 0)

    def test_clear_removes_memory_and_file(self):
        self.store.upsert('r1', [road(1)])
        path = self.store.persist('r1')

        self.store.clear('r1')
        self.assertFalse(self.store.has('r1'))
        self.assertFalse(os.path.exists(path))
        # Clearing again is harmless
        self.store.clear('r1')

    def test_clear_all_leaves_other_files(self):
        for route_id in ('r1', 'r2'):
            self.store.upsert(route_id, [road(1)])
            self.store.persist(route_id)
        notes = os.path.join(self.cache_dir, 'notes.txt')
        with open(notes, 'w') as f:
            f.write('keep me')

        self.store.clear_all()
        self.assertEqual(self.store.route_ids(), [])
        self.assertEqual(os.listdir(self.cache_dir), ['notes.txt'])

    def test_reset_keeps_files(self):
        self.store.upsert('r1', [road(1)])
        self.store.persist('r1')
        self.store.reset()
        self.assertFalse(self.store.has('r1'))
        self.assertEqual(self.store.load_all(), 1)

    def test_ensure_cache_dir_failure(self):
        with patch('paperroute.geodata.feature_store.os.makedirs', side_effect=PermissionError("read-only")):
            with self.assertRaises(CacheWriteError):
                self.store.ensure_cache_dir()


class TestLocationStore(unittest.TestCase):
    """Test cases for the place-name store, keyed by coordinate"""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = RouteFeatureStore('locations', self._tmp.name, PlaceLookup, 'locations',
                                       keeps_corridor_radius=False)

    def tearDown(self):
        self._tmp.cleanup()

    def test_dedup_by_coordinate_and_round_trip(self):
        london = PlaceLookup(latitude=51.5074, longitude=-0.1278, display_name='Whitehall, London',
                             street='Whitehall', locality='London', place_id=42)
        duplicate = PlaceLookup(latitude=51.5074, longitude=-0.1278, display_name='Other')
        self.assertEqual(self.store.upsert('r1', [london, duplicate], corridor_radius_m=5000), 1)
        path = self.store.persist('r1')

        with open(path) as f:
            data = json.load(f)
        self.assertNotIn('corridorRadius', data)
        self.assertEqual(data['locations'][0]['location']['displayName'], 'Whitehall, London')

        fresh = RouteFeatureStore('locations', self._tmp.name, PlaceLookup, 'locations',
                                  keeps_corridor_radius=False)
        fresh.load_all()
        self.assertEqual(fresh.get_all(), [london])


if __name__ == '__main__':
    unittest.main()

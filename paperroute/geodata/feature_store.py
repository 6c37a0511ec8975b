# paperroute/geodata/feature_store.py
"""
Route-keyed, deduplicated storage for one feature family.

The in-memory map is a write-through cache over one JSON file per route.
On startup `load_all()` hydrates it from disk; afterwards every `persist()`
rewrites the route's file whole, through a temporary sibling that is
atomically renamed into place.
"""
import hashlib
import json
import logging
import os
import re
import tempfile
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Type

from .data_models import RouteCacheEntry, parse_timestamp, utc_now
from .exceptions import CacheWriteError
from .utils.coordinates import CoordinateCalculations

_UNSAFE_FILENAME_CHARS = re.compile(r'[^A-Za-z0-9_.-]')
# Suffix appended to names that had to be rewritten
_NAME_HASH_SUFFIX = re.compile(r'-[0-9a-f]{8}$')


class RouteFeatureStore:
    """
    In-memory collection of RouteCacheEntry objects for one feature family.

    Records are frozen dataclasses, and every read returns a fresh list, so
    callers can never reach into the store's own state. All access to the
    map goes through an RLock: a reader sees a route either before or after
    an upsert, never half-way through one.
    """

    def __init__(self, family: str, cache_dir: str, record_cls: Type, payload_key: str,
                 keeps_corridor_radius: bool = True):
        self.family = family
        self.cache_dir = cache_dir
        self.record_cls = record_cls
        self.payload_key = payload_key
        self.keeps_corridor_radius = keeps_corridor_radius
        self._entries: Dict[str, RouteCacheEntry] = {}
        self._lock = threading.RLock()
        self._write_lock = threading.Lock()

    # --- Mutation ---

    def upsert(self, route_id: str, records: Iterable[Any],
               corridor_radius_m: Optional[float] = None) -> int:
        """
        Merges records into the route's entry, creating it if needed.
        A record whose key is already present is dropped (first-seen wins).

        Returns:
            The number of records actually added.
        """
        with self._lock:
            entry = self._entries.get(route_id)
            if entry is None:
                entry = RouteCacheEntry(route_id=route_id, corridor_radius_m=self._radius(corridor_radius_m))
                self._entries[route_id] = entry
            seen = {record.key for record in entry.records}
            merged = list(entry.records)
            added = 0
            for record in records:
                if record.key in seen:
                    continue
                seen.add(record.key)
                merged.append(record)
                added += 1
            # Swap in a new list so snapshots taken earlier stay untouched
            entry.records = merged
            return added

    def replace(self, route_id: str, records: Iterable[Any],
                corridor_radius_m: Optional[float] = None) -> int:
        """Starts the route's entry over with `records` (deduplicated). Returns its size."""
        with self._lock:
            self._entries[route_id] = RouteCacheEntry(
                route_id=route_id, corridor_radius_m=self._radius(corridor_radius_m))
            return self.upsert(route_id, records)

    def clear(self, route_id: str) -> None:
        """Drops the route from memory and deletes its file."""
        with self._lock:
            self._entries.pop(route_id, None)
        try:
            os.remove(self._cache_path(route_id))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CacheWriteError(route_id, e) from e
        logging.info(f"Cleared {self.family} cache for route {route_id}")

    def clear_all(self) -> None:
        """Drops every route and deletes every cache file, leaving other files alone."""
        with self._lock:
            self._entries.clear()
        try:
            if os.path.isdir(self.cache_dir):
                for filename in os.listdir(self.cache_dir):
                    if self._is_cache_file(filename):
                        os.remove(os.path.join(self.cache_dir, filename))
        except OSError as e:
            raise CacheWriteError('all', e) from e
        logging.info(f"Cleared all {self.family} cache")

    def reset(self) -> None:
        """Forgets everything held in memory; files are untouched."""
        with self._lock:
            self._entries.clear()

    # --- Reads ---

    def has(self, route_id: str) -> bool:
        with self._lock:
            return route_id in self._entries

    def route_ids(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def get_route(self, route_id: str) -> List[Any]:
        with self._lock:
            entry = self._entries.get(route_id)
            return list(entry.records) if entry else []

    def count(self, route_id: str) -> int:
        with self._lock:
            entry = self._entries.get(route_id)
            return len(entry.records) if entry else 0

    def get_all(self) -> List[Any]:
        """Every route's records, deduplicated across routes by key (first insertion wins)."""
        with self._lock:
            snapshots = [entry.records for entry in self._entries.values()]
        seen = set()
        result = []
        for records in snapshots:
            for record in records:
                if record.key not in seen:
                    seen.add(record.key)
                    result.append(record)
        return result

    def get_in_bounds(self, min_lat: float, max_lat: float, min_lon: float, max_lon: float) -> List[Any]:
        """Records with at least one geometry vertex inside the box."""
        return [
            record for record in self.get_all()
            if CoordinateCalculations.any_point_in_bounds(record.geometry, min_lat, max_lat, min_lon, max_lon)
        ]

    # --- Persistence ---

    def ensure_cache_dir(self) -> None:
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
        except OSError as e:
            raise CacheWriteError('initialization', e) from e

    def persist(self, route_id: str) -> str:
        """
        Writes the route's current entry to its file.

        Returns:
            The path that was written.

        Raises:
            CacheWriteError: if the route is unknown or the write fails.
        """
        with self._write_lock:
            with self._lock:
                entry = self._entries.get(route_id)
                if entry is None:
                    raise CacheWriteError(route_id, f"no {self.family} entry in memory")
                data = entry.to_dict(self.payload_key)

            cache_path = self._cache_path(route_id)
            tmp_path = None
            try:
                fd, tmp_path = tempfile.mkstemp(
                    dir=self.cache_dir, prefix=f".{os.path.basename(cache_path)}.", suffix='.tmp')
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_path, cache_path)
            except (OSError, TypeError, ValueError) as e:
                if tmp_path and os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise CacheWriteError(route_id, e) from e

        logging.debug(f"Saved {self.family} cache for route {route_id} ({len(data[self.payload_key])} records)")
        return cache_path

    def load_all(self) -> int:
        """
        Reads every cache file in the family directory into memory. A file
        that fails to parse is skipped with a warning.

        Returns:
            The number of routes loaded.
        """
        if not os.path.isdir(self.cache_dir):
            logging.debug(f"No cached {self.family} routes found")
            return 0

        loaded = 0
        for filename in sorted(os.listdir(self.cache_dir)):
            if not filename.endswith('.json'):
                continue
            path = os.path.join(self.cache_dir, filename)
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                entry = self._entry_from_dict(data)
            except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
                logging.warning(f"Failed to load {self.family} cache file {filename}: {e}")
                continue
            with self._lock:
                self._entries[entry.route_id] = entry
            loaded += 1
            logging.debug(f"Loaded cached {self.family} for route {entry.route_id}")

        logging.info(f"Loaded {loaded} cached {self.family} routes")
        return loaded

    # --- Internals ---

    def _radius(self, corridor_radius_m: Optional[float]) -> Optional[float]:
        return corridor_radius_m if self.keeps_corridor_radius else None

    def _cache_path(self, route_id: str) -> str:
        filename = _UNSAFE_FILENAME_CHARS.sub('_', route_id)
        # Keep distinct ids in distinct files: "a/b" must not land on "a_b"
        if filename != route_id or not filename or _NAME_HASH_SUFFIX.search(route_id):
            digest = hashlib.sha1(route_id.encode('utf-8')).hexdigest()[:8]
            filename = f"{filename}-{digest}"
        return os.path.join(self.cache_dir, f"{filename}.json")

    @staticmethod
    def _is_cache_file(filename: str) -> bool:
        return filename.endswith('.json') or (filename.startswith('.') and filename.endswith('.tmp'))

    def _entry_from_dict(self, data: Dict[str, Any]) -> RouteCacheEntry:
        route_id = data['routeId']
        if not isinstance(route_id, str) or not route_id:
            raise ValueError("missing routeId")
        raw_records = data[self.payload_key]
        if not isinstance(raw_records, list):
            raise ValueError(f"'{self.payload_key}' is not a list")

        created_at = data.get('createdAt')
        corridor = data.get('corridorRadius')
        entry = RouteCacheEntry(
            route_id=route_id,
            created_at=parse_timestamp(created_at) if created_at else utc_now(),
            corridor_radius_m=self._radius(float(corridor)) if corridor is not None else None,
        )

        seen = set()
        skipped = 0
        for raw in raw_records:
            try:
                record = self.record_cls.from_dict(raw)
            except (KeyError, TypeError, ValueError, AttributeError, IndexError):
                skipped += 1
                continue
            if record.key in seen:
                continue
            seen.add(record.key)
            entry.records.append(record)
        if skipped:
            logging.warning(f"Dropped {skipped} invalid {self.family} records from route {route_id}")
        return entry

    def created_at(self, route_id: str) -> Optional[datetime]:
        with self._lock:
            entry = self._entries.get(route_id)
            return entry.created_at if entry else None

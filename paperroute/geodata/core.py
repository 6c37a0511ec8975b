# paperroute/geodata/core.py
"""
The core orchestrator for route prefetching. A `RoutePrefetcher` walks one
route's corridor for one feature family, querying the upstream at each
sample point and caching what comes back. `GeoDataService` owns the paced
clients, the per-family stores and the offline lookup, and is the single
entry point collaborators use.
"""
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .control import CancellationToken, ProgressCallback, ProgressChannel
from .data_models import (
    DriveRoute, LanduseFeature, PlaceLookup, PlaceMatch, PrefetchConfig,
    PrefetchProgress, RoadFeature, WaterFeature, Coordinate,
)
from .exceptions import CacheWriteError, NotInitializedError, PrefetchCancelled, PrefetchError, UpstreamError
from .feature_store import RouteFeatureStore
from .lookup import OfflineLookup
from .paced_client import PacedClient
from .parsers import LanduseParser, PlaceParser, RoadParser, WaterParser
from .utils.constants import FeatureConstants
from .utils.coordinates import CorridorSampler
from .utils.queries import NominatimQueryBuilder, OverpassQueryBuilder

# (lat, lon, corridor radius) -> keyword arguments for PacedClient.fetch_json
RequestBuilder = Callable[[float, float, float], Dict[str, Any]]
# (payload, lat, lon) -> parsed records
ResponseParser = Callable[[Any, float, float], List[Any]]


@dataclass
class FeatureFamily:
    """Everything the prefetch loop needs to know about one feature family."""
    name: str
    sample_interval_m: float
    client: PacedClient
    store: RouteFeatureStore
    build_request: RequestBuilder
    parse: ResponseParser
    log_every: int = 5


class RoutePrefetcher:
    """
    Runs the sequential prefetch loop for one feature family.

    Network failures at a single sample point are logged and skipped; only
    malformed route geometry, a failed final write or cancellation end the
    call early.
    """

    def __init__(self, family: FeatureFamily, progress: Optional[ProgressChannel] = None):
        self.family = family
        self.progress = progress or ProgressChannel()

    def prefetch(self, route: DriveRoute, corridor_radius_m: float,
                 on_progress: Optional[ProgressCallback] = None,
                 cancel_token: Optional[CancellationToken] = None) -> int:
        """
        Fetches and caches this family's features along a route.

        Returns:
            The number of distinct records cached for the route.

        Raises:
            PrefetchError: if the route geometry cannot be sampled.
            CacheWriteError: if the final write of the route's entry fails.
            PrefetchCancelled: if `cancel_token` fires; the partial entry is kept.
        """
        family = self.family
        route_id = route.route_id
        try:
            points = CorridorSampler.sample(route.geometry, family.sample_interval_m)
        except (TypeError, ValueError) as e:
            raise PrefetchError(f"Cannot sample route {route_id}: {e}") from e

        total = len(points)
        logging.info(f"Prefetching {family.name} for route {route_id}: {total} sample points, radius {corridor_radius_m}m")
        self._report(on_progress, 0, total, 0)

        # The old entry survives until the first point yields data
        replaced = False
        for index, (lat, lon) in enumerate(points, start=1):
            if cancel_token is not None and cancel_token.cancelled:
                raise self._cancelled(route_id, replaced)

            try:
                records = self._fetch_records(lat, lon, corridor_radius_m, cancel_token)
            except PrefetchCancelled as e:
                raise self._cancelled(route_id, replaced) from e

            if records is not None:
                if replaced:
                    family.store.upsert(route_id, records)
                else:
                    family.store.replace(route_id, records, corridor_radius_m)
                    replaced = True
                try:
                    family.store.persist(route_id)
                except CacheWriteError as e:
                    # Only the final write decides the outcome
                    logging.warning(f"Intermediate {family.name} save failed: {e}")

            found = family.store.count(route_id) if replaced else 0
            if index % family.log_every == 0 or index == total:
                logging.info(f"{family.name} prefetch progress: {index}/{total} points, {found} cached")
            self._report(on_progress, index, total, found)

        if not replaced:
            family.store.replace(route_id, [], corridor_radius_m)
        family.store.persist(route_id)

        count = family.store.count(route_id)
        self._report(on_progress, total, total, count, complete=True)
        logging.info(f"Cached {count} {family.name} records for route {route_id}")
        return count

    def _report(self, on_progress: Optional[ProgressCallback], current: int, total: int,
                found: int, complete: bool = False) -> None:
        event = PrefetchProgress(family=self.family.name, current=current, total=total,
                                 found=found, complete=complete)
        if on_progress is not None:
            try:
                on_progress(event)
            except Exception as e:
                logging.error(f"Progress callback raised: {e}", exc_info=True)
        self.progress.publish(event)

    def _fetch_records(self, lat: float, lon: float, corridor_radius_m: float,
                       cancel_token: Optional[CancellationToken]) -> Optional[List[Any]]:
        """
        Queries one sample point. Returns None when the point failed; the
        failure is logged and the caller moves on.

        Raises:
            PrefetchCancelled: if the token fires while waiting for the upstream.
        """
        family = self.family
        try:
            request = family.build_request(lat, lon, corridor_radius_m)
            payload = family.client.fetch_json(cancel_token=cancel_token, **request)
        except UpstreamError as e:
            logging.warning(f"{family.name} query failed at ({lat:.5f}, {lon:.5f}): {e}")
            return None
        try:
            return family.parse(payload, lat, lon)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logging.warning(f"Unreadable {family.name} response at ({lat:.5f}, {lon:.5f}): {e}")
            return None

    def _cancelled(self, route_id: str, replaced: bool) -> PrefetchCancelled:
        """Keeps whatever was cached so far and builds the error to raise."""
        store = self.family.store
        count = 0
        if replaced:
            count = store.count(route_id)
            try:
                store.persist(route_id)
            except CacheWriteError as e:
                # The caller still needs to learn the run was cancelled
                logging.error(f"Could not save partial {self.family.name} cache on cancel: {e}")
        logging.info(f"{self.family.name} prefetch for route {route_id} cancelled with {count} records cached")
        return PrefetchCancelled(route_id=route_id, count=count)


class GeoDataService:
    """
    Facade over prefetching and offline lookups for all feature families.

    Call `initialize()` once before use: it creates the cache directories
    and loads every previously persisted route.
    """

    def __init__(self, config: Optional[PrefetchConfig] = None,
                 overpass_client: Optional[PacedClient] = None,
                 nominatim_client: Optional[PacedClient] = None):
        self.config = config or PrefetchConfig()
        cfg = self.config
        self.overpass_client = overpass_client or self._make_client('Overpass')
        self.nominatim_client = nominatim_client or self._make_client('Nominatim')

        self.stores = {
            FeatureConstants.ROADS: RouteFeatureStore(
                FeatureConstants.ROADS, cfg.family_dir(FeatureConstants.ROADS), RoadFeature, 'features'),
            FeatureConstants.WATER: RouteFeatureStore(
                FeatureConstants.WATER, cfg.family_dir(FeatureConstants.WATER), WaterFeature, 'water'),
            FeatureConstants.LANDUSE: RouteFeatureStore(
                FeatureConstants.LANDUSE, cfg.family_dir(FeatureConstants.LANDUSE), LanduseFeature, 'landuse'),
            FeatureConstants.LOCATIONS: RouteFeatureStore(
                FeatureConstants.LOCATIONS, cfg.family_dir(FeatureConstants.LOCATIONS), PlaceLookup, 'locations',
                keeps_corridor_radius=False),
        }
        self.progress = ProgressChannel()
        self.prefetchers = {
            family.name: RoutePrefetcher(family, self.progress) for family in self._build_families()
        }
        self.lookup = OfflineLookup(
            roads=self.stores[FeatureConstants.ROADS],
            water=self.stores[FeatureConstants.WATER],
            landuse=self.stores[FeatureConstants.LANDUSE],
            locations=self.stores[FeatureConstants.LOCATIONS],
            place_threshold_m=cfg.place_threshold_m,
        )
        self._initialized = False
        logging.info("GeoDataService created and all components linked.")

    def _make_client(self, service_name: str) -> PacedClient:
        cfg = self.config
        return PacedClient(
            service_name,
            min_interval_s=cfg.min_request_interval_s,
            timeout_s=cfg.request_timeout_s,
            user_agent=cfg.user_agent,
            cache_enabled=cfg.http_cache_enabled,
            cache_name=os.path.join(cfg.cache_root, f"{service_name.lower()}_http_cache"),
            cache_expire_s=cfg.http_cache_expire_s,
        )

    def _build_families(self) -> List[FeatureFamily]:
        cfg = self.config

        def overpass_request(build_query):
            def build(lat: float, lon: float, radius_m: float) -> Dict[str, Any]:
                query = build_query(lat, lon, radius_m, cfg.overpass_timeout_s)
                return {'method': 'POST', 'url': cfg.overpass_url, 'data': {'data': query}}
            return build

        def nominatim_request(lat: float, lon: float, radius_m: float) -> Dict[str, Any]:
            return {'method': 'GET', 'url': cfg.nominatim_url,
                    'params': NominatimQueryBuilder.build_reverse_params(lat, lon)}

        return [
            FeatureFamily(
                name=FeatureConstants.ROADS,
                sample_interval_m=cfg.road_sample_interval_m,
                client=self.overpass_client,
                store=self.stores[FeatureConstants.ROADS],
                build_request=overpass_request(OverpassQueryBuilder.build_road_query),
                parse=lambda payload, lat, lon: RoadParser.parse(payload),
            ),
            FeatureFamily(
                name=FeatureConstants.WATER,
                sample_interval_m=cfg.area_sample_interval_m,
                client=self.overpass_client,
                store=self.stores[FeatureConstants.WATER],
                build_request=overpass_request(OverpassQueryBuilder.build_water_query),
                parse=lambda payload, lat, lon: WaterParser.parse(payload),
            ),
            FeatureFamily(
                name=FeatureConstants.LANDUSE,
                sample_interval_m=cfg.area_sample_interval_m,
                client=self.overpass_client,
                store=self.stores[FeatureConstants.LANDUSE],
                build_request=overpass_request(OverpassQueryBuilder.build_landuse_query),
                parse=lambda payload, lat, lon: LanduseParser.parse(payload),
            ),
            FeatureFamily(
                name=FeatureConstants.LOCATIONS,
                sample_interval_m=cfg.location_sample_interval_m,
                client=self.nominatim_client,
                store=self.stores[FeatureConstants.LOCATIONS],
                build_request=nominatim_request,
                parse=PlaceParser.parse,
                log_every=10,
            ),
        ]

    # --- Lifecycle ---

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Creates the cache directories and loads cached routes. Safe to call twice."""
        if self._initialized:
            return
        for store in self.stores.values():
            store.ensure_cache_dir()
        for store in self.stores.values():
            store.load_all()
        self._initialized = True
        logging.info(f"GeoDataService initialized with cache root {self.config.cache_root}")

    def dispose(self) -> None:
        """Forgets all in-memory data and closes the HTTP sessions. Files are kept."""
        for store in self.stores.values():
            store.reset()
        self.overpass_client.close()
        self.nominatim_client.close()
        self._initialized = False
        logging.info("GeoDataService disposed")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError(type(self).__name__)

    # --- Prefetch ---

    def prefetch(self, family: str, route: DriveRoute, corridor_radius_m: Optional[float] = None,
                 on_progress: Optional[ProgressCallback] = None,
                 cancel_token: Optional[CancellationToken] = None) -> int:
        """Prefetches one family along a route and returns its cached record count."""
        self._require_initialized()
        if family not in self.prefetchers:
            raise ValueError(f"Unknown feature family: {family}")
        radius = self.config.corridor_radius_m if corridor_radius_m is None else corridor_radius_m
        return self.prefetchers[family].prefetch(route, radius, on_progress, cancel_token)

    def prefetch_roads(self, route: DriveRoute, corridor_radius_m: Optional[float] = None,
                       on_progress: Optional[ProgressCallback] = None,
                       cancel_token: Optional[CancellationToken] = None) -> int:
        return self.prefetch(FeatureConstants.ROADS, route, corridor_radius_m, on_progress, cancel_token)

    def prefetch_water(self, route: DriveRoute, corridor_radius_m: Optional[float] = None,
                       on_progress: Optional[ProgressCallback] = None,
                       cancel_token: Optional[CancellationToken] = None) -> int:
        return self.prefetch(FeatureConstants.WATER, route, corridor_radius_m, on_progress, cancel_token)

    def prefetch_landuse(self, route: DriveRoute, corridor_radius_m: Optional[float] = None,
                         on_progress: Optional[ProgressCallback] = None,
                         cancel_token: Optional[CancellationToken] = None) -> int:
        return self.prefetch(FeatureConstants.LANDUSE, route, corridor_radius_m, on_progress, cancel_token)

    def prefetch_locations(self, route: DriveRoute,
                           on_progress: Optional[ProgressCallback] = None,
                           cancel_token: Optional[CancellationToken] = None) -> int:
        # Reverse lookups are single-point, so the radius only lands in logs
        return self.prefetch(FeatureConstants.LOCATIONS, route, None, on_progress, cancel_token)

    def prefetch_all(self, route: DriveRoute, corridor_radius_m: Optional[float] = None,
                     on_progress: Optional[ProgressCallback] = None,
                     cancel_token: Optional[CancellationToken] = None) -> Dict[str, int]:
        """Runs every family in turn; returns {family: cached count}."""
        counts = {}
        for family in FeatureConstants.FAMILIES:
            radius = None if family == FeatureConstants.LOCATIONS else corridor_radius_m
            counts[family] = self.prefetch(family, route, radius, on_progress, cancel_token)
        logging.info(f"Prefetch complete for route {route.route_id}: {counts}")
        return counts

    # --- Lookups ---

    def get_location_name(self, position: Coordinate,
                          threshold_m: Optional[float] = None) -> Optional[PlaceMatch]:
        """Nearest cached place within the threshold, or None. Never goes to the network."""
        self._require_initialized()
        return self.lookup.nearest_place(position, threshold_m)

    def has_route(self, family: str, route_id: str) -> bool:
        return self.stores[family].has(route_id)

    # --- Clearing ---

    def clear_route(self, route_id: str) -> None:
        self._require_initialized()
        for store in self.stores.values():
            store.clear(route_id)

    def clear_all(self) -> None:
        self._require_initialized()
        for store in self.stores.values():
            store.clear_all()

# prefetch_route.py
import os
import sys
import json
import logging

# Add the project root to the Python path
project_root = os.path.dirname(os.path.abspath(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from paperroute.geodata import GeoDataService, DriveRoute, PrefetchConfig, GeoDataError
from paperroute.geodata.visualization import CacheMapVisualizer
from helpers.map_helpers import lookup_as_geojson

def load_route(path: str) -> DriveRoute:
    """
    Reads a route file. Accepts either {"routeId": ..., "geometry": [[lat, lon], ...]}
    or a bare list of [lat, lon] pairs, in which case the file name is the route id.
    """
    with open(path, 'r') as f:
        data = json.load(f)
    if isinstance(data, list):
        route_id = os.path.splitext(os.path.basename(path))[0]
        return DriveRoute(route_id=route_id, geometry=data)
    return DriveRoute(
        route_id=data['routeId'],
        geometry=data['geometry'],
        destination=data.get('destination'),
    )

def main():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    if len(sys.argv) < 2:
        print("Usage: python prefetch_route.py <route.json> [cache_root]")
        sys.exit(1)

    config = PrefetchConfig()
    if len(sys.argv) > 2:
        config.cache_root = sys.argv[2]
    PREVIEW_FILENAME = os.path.join(config.cache_root, "preview.geojson")
    MAP_FILENAME = os.path.join(config.cache_root, "preview_map.html")

    route = load_route(sys.argv[1])
    logging.info(f"--- Starting prefetch for route {route.route_id} ({len(route.geometry)} points) ---")

    service = GeoDataService(config)
    try:
        service.initialize()
        counts = service.prefetch_all(route)
    except GeoDataError as e:
        logging.error(f"Prefetch failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        # Keep the in-memory data for the preview below
        service.overpass_client.close()
        service.nominatim_client.close()

    with open(PREVIEW_FILENAME, 'w') as f:
        json.dump(lookup_as_geojson(service.lookup), f, indent=2)
    CacheMapVisualizer().create_cache_map(service.lookup, route).save(MAP_FILENAME)
    logging.info(f"--- Cached {counts}; previews saved to {PREVIEW_FILENAME} and {MAP_FILENAME} ---")

if __name__ == "__main__":
    main()

# paperroute/constants/endpoints.py

class EndpointConstants:
    """Shared constants for the upstream geodata hosts."""

    OVERPASS_URL = "https://overpass-api.de/api/interpreter"
    NOMINATIM_URL = "https://nominatim.openstreetmap.org/reverse"

    # Nominatim's usage policy requires an identifying User-Agent
    USER_AGENT = "Paperroute GPS Navigator/1.0 (offline e-paper navigation)"

    # Both hosts ask for at most one request per second
    MIN_REQUEST_INTERVAL_S = 1.1
    REQUEST_TIMEOUT_S = 30
    OVERPASS_QUERY_TIMEOUT_S = 25

# paperroute/geodata/exceptions.py
"""
Geodata Exceptions
Error types for prefetching, upstream access and the on-disk cache
"""

class GeoDataError(Exception):
    """Base class for all geodata errors"""
    pass

class NotInitializedError(GeoDataError):
    """Service used before its cache directories were created and loaded"""
    def __init__(self, service="GeoDataService"):
        self.service = service
        super().__init__(f"{service} not initialized. Call initialize() first")

# --- Per-sample-point upstream failures ---

class UpstreamError(GeoDataError):
    """A single upstream request did not produce a usable response"""
    def __init__(self, service, message="Upstream request failed"):
        self.service = service
        super().__init__(f"{service}: {message}")

class RateLimitedError(UpstreamError):
    """Upstream answered HTTP 429"""
    def __init__(self, service):
        super().__init__(service, "rate limit exceeded, try again later")

class RequestFailedError(UpstreamError):
    """Upstream answered with a non-2xx status or an unreadable body"""
    def __init__(self, service, reason, status_code=None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(service, f"request failed: {reason}")

class UnavailableError(UpstreamError):
    """Transport-level failure (timeout, DNS, connection refused)"""
    def __init__(self, service, cause=None):
        self.cause = cause
        super().__init__(service, f"unavailable: {cause or 'network error'}")

# --- Fatal-to-the-call failures ---

class CacheWriteError(GeoDataError):
    """Local filesystem failure while creating, writing or clearing the cache"""
    def __init__(self, route_id, cause=None):
        self.route_id = route_id
        self.cause = cause
        message = f"Failed to write cache for route {route_id}"
        super().__init__(f"{message}: {cause}" if cause else message)

class PrefetchError(GeoDataError):
    """Prefetch could not start, typically because the route geometry is malformed"""
    pass

class PrefetchCancelled(GeoDataError):
    """Prefetch stopped by its cancellation token; partial results were kept"""
    def __init__(self, route_id=None, count=0):
        self.route_id = route_id
        self.count = count
        if route_id is None:
            super().__init__("Prefetch cancelled while waiting for the upstream")
        else:
            super().__init__(f"Prefetch for route {route_id} cancelled after caching {count} records")

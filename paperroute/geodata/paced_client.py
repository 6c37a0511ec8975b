# paperroute/geodata/paced_client.py
"""
Handles all outbound HTTP access to one upstream host, enforcing a minimum
gap between successive requests.

One PacedClient exists per upstream host, so the Overpass and Nominatim
hosts are paced independently of each other.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import requests
import requests_cache

from .control import CancellationToken
from .exceptions import PrefetchCancelled, RateLimitedError, RequestFailedError, UnavailableError


class PacedClient:
    """
    A rate-limited HTTP client for a single upstream host.

    Callers are serialised through `wait_for_slot()`: each caller atomically
    reserves the next free dispatch slot (at least `min_interval_s` after the
    previous one) and then sleeps until it arrives. Bursts of concurrent
    callers therefore come out spaced by the interval, in no guaranteed order.
    """

    def __init__(self, service_name: str, min_interval_s: float, timeout_s: float,
                 user_agent: str, cache_enabled: bool = False, cache_name: Optional[str] = None,
                 cache_expire_s: int = 86400, session: Optional[requests.Session] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Optional[Callable[[float], None]] = None):
        """
        Initializes the PacedClient.

        Args:
            service_name: Human-readable upstream name used in logs and errors.
            min_interval_s: Minimum time between two dispatches to this host.
            timeout_s: Timeout in seconds for each HTTP request.
            user_agent: Descriptive client identifier sent with every request.
            cache_enabled: If True, responses are replayed from a local sqlite
                           cache for `cache_expire_s` seconds.
            cache_name: Name (path) of the response cache database.
            session: Pre-built session, mainly for tests.
            clock, sleep: Time sources, injectable for tests. When `sleep` is
                          left unset, waits use the cancellation token (if
                          any) so they end early on cancel.
        """
        self.service_name = service_name
        self.min_interval_s = min_interval_s
        self.timeout_s = timeout_s
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_dispatch: Optional[float] = None

        if session is not None:
            self.session = session
        elif cache_enabled:
            # Overpass queries are POSTs, so POST has to be cacheable too
            self.session = requests_cache.CachedSession(
                cache_name or f"{service_name.lower()}_cache",
                backend='sqlite',
                expire_after=cache_expire_s,
                allowable_methods=('GET', 'POST'),
            )
        else:
            self.session = requests.Session()
        self.session.headers.update({
            'User-Agent': user_agent,
            'Accept': 'application/json',
        })
        logging.info(f"PacedClient for {service_name} initialized. Interval: {min_interval_s}s, cache enabled: {cache_enabled}")

    def wait_for_slot(self, cancel_token: Optional[CancellationToken] = None) -> None:
        """
        Blocks until this caller may dispatch.

        Raises:
            PrefetchCancelled: if `cancel_token` fires while waiting.
        """
        with self._lock:
            now = self._clock()
            previous = self._last_dispatch
            if previous is None:
                slot = now
            else:
                slot = max(now, previous + self.min_interval_s)
            self._last_dispatch = slot

        delay = slot - now
        if cancel_token is not None and cancel_token.cancelled:
            self._release_slot(slot, previous)
            raise PrefetchCancelled(route_id=None, count=0)
        if delay > 0 and self._pause(delay, cancel_token):
            self._release_slot(slot, previous)
            raise PrefetchCancelled(route_id=None, count=0)

    def _pause(self, delay: float, cancel_token: Optional[CancellationToken]) -> bool:
        """Sleeps for `delay` seconds. Returns True if the token fired meanwhile."""
        if self._sleep is not None:
            self._sleep(delay)
        elif cancel_token is not None:
            return cancel_token.wait(delay)
        else:
            time.sleep(delay)
        return cancel_token is not None and cancel_token.cancelled

    def _release_slot(self, slot: float, previous: Optional[float]) -> None:
        # A cancelled caller sent nothing; give its slot back unless someone already queued behind it
        with self._lock:
            if self._last_dispatch == slot:
                self._last_dispatch = previous

    def dispatch(self, method: str, url: str, params: Optional[Dict[str, Any]] = None,
                 data: Optional[Dict[str, Any]] = None,
                 cancel_token: Optional[CancellationToken] = None) -> requests.Response:
        """
        Waits for the next slot, then sends one request.

        Raises:
            UnavailableError: on any transport-level failure.
        """
        self.wait_for_slot(cancel_token)
        try:
            return self.session.request(method, url, params=params, data=data, timeout=self.timeout_s)
        except requests.exceptions.RequestException as e:
            raise UnavailableError(self.service_name, e) from e

    def fetch_json(self, method: str, url: str, params: Optional[Dict[str, Any]] = None,
                   data: Optional[Dict[str, Any]] = None,
                   cancel_token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        """
        Dispatches a request and classifies the outcome.

        Returns:
            The decoded JSON body of a 2xx response.

        Raises:
            RateLimitedError: HTTP 429.
            RequestFailedError: any other non-2xx status, or a body that is not JSON.
            UnavailableError: transport-level failure.
        """
        response = self.dispatch(method, url, params=params, data=data, cancel_token=cancel_token)
        status = response.status_code
        if status == 429:
            raise RateLimitedError(self.service_name)
        if not 200 <= status < 300:
            raise RequestFailedError(self.service_name, f"HTTP {status}: {response.reason}", status)
        try:
            return response.json()
        except ValueError as e:
            raise RequestFailedError(self.service_name, f"invalid JSON body: {e}", status) from e

    def close(self) -> None:
        self.session.close()

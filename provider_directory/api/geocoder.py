"""
Provider Directory — Address Geocoding

Forward-geocodes entry addresses with OpenStreetMap Nominatim and writes the
resulting point back to the entry. Requests are throttled to one per
``min_interval_seconds`` (1.1 s by default, Nominatim's usage policy asks for
at most one per second).

Request handlers never call Nominatim directly: they ``enqueue`` a job and a
single daemon worker thread performs the lookups one after another.

Dependencies:
    pip install requests
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any, Callable

import requests

from ..algorithms.geo_proximity import GeoPoint

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_MIN_INTERVAL = 1.1
DEFAULT_TIMEOUT = 10.0


# ---------------------------------------------------------------------------
# Nominatim client
# ---------------------------------------------------------------------------


class NominatimGeocoder:
    """Throttled Nominatim search client. Safe to share between threads."""

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        user_agent: str = "provider-directory",
        min_interval_seconds: float = DEFAULT_MIN_INTERVAL,
        timeout_seconds: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.api_url = api_url
        self.min_interval = float(min_interval_seconds)
        self.timeout = float(timeout_seconds)
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent})
        self._lock = threading.Lock()
        self._last_request_ts = 0.0

    @classmethod
    def from_settings(cls, geocoder: dict[str, Any]) -> "NominatimGeocoder":
        return cls(
            api_url=geocoder.get("api_url", DEFAULT_API_URL),
            user_agent=geocoder.get("user_agent", "provider-directory"),
            min_interval_seconds=geocoder.get("min_interval_seconds", DEFAULT_MIN_INTERVAL),
            timeout_seconds=geocoder.get("timeout_seconds", DEFAULT_TIMEOUT),
        )

    def _throttled_get(self, params: dict[str, Any]) -> requests.Response:
        with self._lock:
            delta = time.monotonic() - self._last_request_ts
            if delta < self.min_interval:
                time.sleep(self.min_interval - delta)
            self._last_request_ts = time.monotonic()
        return self.session.get(self.api_url, params=params, timeout=self.timeout)

    @staticmethod
    def build_params(address: dict[str, Any]) -> dict[str, str]:
        """Nominatim structured-search parameters for an entry address."""
        params = {"format": "geojson", "limit": "1"}
        if address.get("city"):
            params["city"] = address["city"]
        if address.get("plz"):
            params["postalcode"] = address["plz"]
        street = " ".join(
            part for part in (address.get("house"), address.get("street")) if part
        )
        if street:
            params["street"] = street
        return params

    def geocode_address(self, address: dict[str, Any]) -> dict[str, Any] | None:
        """
        Look up an address. Returns a GeoJSON point or None.

        Network errors, bad status codes and empty results are logged and
        yield None.
        """
        params = self.build_params(address or {})
        if "city" not in params:
            return None

        try:
            resp = self._throttled_get(params)
            resp.raise_for_status()
            data = resp.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning("Geocoding request failed for %s: %s", params, e)
            return None

        for feature in data.get("features") or []:
            point = GeoPoint.from_geojson(feature.get("geometry"))
            if point is not None:
                return point.to_geojson()

        logger.info("No geocoding result for %s", params)
        return None


# ---------------------------------------------------------------------------
# Background queue
# ---------------------------------------------------------------------------

LocationWriter = Callable[[str, dict[str, Any]], bool]

_STOP = object()


class GeocodeQueue:
    """
    Single-consumer job queue for geocoding entries.

    ``writer(entry_id, location)`` stores a result and returns False when
    the entry no longer exists.
    """

    def __init__(self, geocoder: NominatimGeocoder, writer: LocationWriter):
        self.geocoder = geocoder
        self.writer = writer
        self._jobs: queue.Queue = queue.Queue()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._run, name="geocode-worker", daemon=True)
        self._thread.start()
        logger.info("Geocode worker started")

    def stop(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        self._jobs.put(_STOP)
        self._thread.join(timeout)
        self._thread = None
        logger.info("Geocode worker stopped")

    def enqueue(self, entry_id: str, address: dict[str, Any]) -> None:
        self._jobs.put((entry_id, dict(address or {})))

    def pending(self) -> int:
        return self._jobs.qsize()

    def process(self, entry_id: str, address: dict[str, Any]) -> bool:
        """Geocode one entry and store the result. Returns True if stored."""
        location = self.geocoder.geocode_address(address)
        if location is None:
            return False
        if not self.writer(entry_id, location):
            logger.info("Entry %s vanished before its location could be stored", entry_id)
            return False
        logger.info("Geocoded entry %s", entry_id)
        return True

    def _run(self) -> None:
        while True:
            job = self._jobs.get()
            try:
                if job is _STOP:
                    return
                entry_id, address = job
                try:
                    self.process(entry_id, address)
                except Exception as e:
                    logger.error("Geocode job for %s failed: %s", entry_id, e)
            finally:
                self._jobs.task_done()

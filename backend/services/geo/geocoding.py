"""
Address geocoding.

MapboxGeocoder resolves free-text postal addresses through the Mapbox
forward-geocoding API. Successful lookups are cached in the Django cache
(Redis in production) so repeated dispatches to the same street do not
hit the provider again.
"""

import hashlib
import logging
from typing import Optional
from urllib.parse import quote

import requests
from django.conf import settings
from django.core.cache import cache

from common.utils.geo import Coordinates
from .exceptions import GeocodingNotFound, GeocodingUnavailable

logger = logging.getLogger(__name__)

CACHE_PREFIX = "geocode:"


class MapboxGeocoder:
    """Forward geocoder backed by api.mapbox.com."""

    # One automatic retry on provider outage, never more
    max_attempts = 2

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        default_country: Optional[str] = None,
        cache_ttl: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.access_token = access_token if access_token is not None else settings.MAPBOX_ACCESS_TOKEN
        self.base_url = (base_url or settings.MAPBOX_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.DISPATCH_PROVIDER_TIMEOUT_SECONDS
        self.default_country = default_country if default_country is not None else settings.DISPATCH_GEOCODER_COUNTRY
        self.cache_ttl = cache_ttl if cache_ttl is not None else settings.DISPATCH_GEOCODE_CACHE_TTL
        self.session = session or requests.Session()

    def geocode(self, address: str, country_hint: Optional[str] = None) -> Coordinates:
        """
        Resolve an address to coordinates.

        Raises:
            GeocodingNotFound: blank or unresolvable address
            GeocodingUnavailable: provider outage after one retry
        """
        address = (address or "").strip()
        if not address:
            raise GeocodingNotFound("Address is empty")

        country = country_hint or self.default_country
        cache_key = self._cache_key(address, country)
        cached = cache.get(cache_key)
        if cached is not None:
            return Coordinates(*cached)

        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                coordinates = self._request(address, country)
            except GeocodingUnavailable as exc:
                last_error = exc
                logger.warning(
                    "Geocoding provider unavailable for %r (attempt %d/%d): %s",
                    address, attempt, self.max_attempts, exc,
                )
                continue

            cache.set(cache_key, (coordinates.latitude, coordinates.longitude), self.cache_ttl)
            return coordinates

        raise last_error

    def _request(self, address: str, country: Optional[str]) -> Coordinates:
        url = f"{self.base_url}/geocoding/v5/mapbox.places/{quote(address)}.json"
        params = {"access_token": self.access_token, "limit": 1}
        if country:
            params["country"] = country

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise GeocodingUnavailable(f"Geocoding request failed: {exc}") from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise GeocodingUnavailable(f"Geocoding provider returned HTTP {response.status_code}")
        if response.status_code >= 400:
            # 4xx other than 429: the query itself was rejected
            raise GeocodingNotFound(f"Geocoding rejected address (HTTP {response.status_code})")

        try:
            data = response.json()
        except ValueError as exc:
            raise GeocodingUnavailable("Geocoding provider returned malformed JSON") from exc

        features = data.get("features") or []
        if not features:
            raise GeocodingNotFound(f"No coordinates found for address {address!r}")

        try:
            longitude, latitude = features[0]["center"][:2]
            return Coordinates(float(latitude), float(longitude))
        except (KeyError, TypeError, ValueError) as exc:
            raise GeocodingUnavailable("Geocoding provider returned an unexpected feature") from exc

    @staticmethod
    def _cache_key(address: str, country: Optional[str]) -> str:
        digest = hashlib.sha1(f"{country or ''}|{address.lower()}".encode("utf-8")).hexdigest()
        return f"{CACHE_PREFIX}{digest}"

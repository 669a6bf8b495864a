"""Typed failures raised by the geocoding and distance adapters."""


class GeocodingFailed(Exception):
    """Raised when an address cannot be turned into coordinates."""
    code = "geocoding_failed"


class GeocodingNotFound(GeocodingFailed):
    """Raised when the address is malformed or has no match."""
    code = "geocoding_not_found"


class GeocodingUnavailable(GeocodingFailed):
    """Raised when the geocoding provider is down, slow or rate-limiting."""
    code = "geocoding_unavailable"


class DistanceUnavailable(Exception):
    """Raised when the road-network provider fails or returns an unusable answer."""
    code = "distance_unavailable"

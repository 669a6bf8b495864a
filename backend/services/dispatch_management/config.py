"""Dispatch tuning knobs, read once from Django settings."""

from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings


@dataclass(frozen=True)
class DispatchConfig:
    claim_window_seconds: int = 300
    max_radius_km: float = 15.0
    max_candidates: int = 5
    max_attempts: int = 2
    radius_expansion: float = 1.5
    rating_tie_km: float = 1.0
    notify_timeout_seconds: float = 5.0
    geocoder_country: str = "ca"

    @classmethod
    def from_settings(cls) -> "DispatchConfig":
        return cls(
            claim_window_seconds=settings.DISPATCH_CLAIM_WINDOW_SECONDS,
            max_radius_km=settings.DISPATCH_MAX_RADIUS_KM,
            max_candidates=settings.DISPATCH_MAX_CANDIDATES,
            max_attempts=settings.DISPATCH_MAX_ATTEMPTS,
            radius_expansion=settings.DISPATCH_RADIUS_EXPANSION,
            rating_tie_km=settings.DISPATCH_RATING_TIE_KM,
            notify_timeout_seconds=settings.DISPATCH_NOTIFY_TIMEOUT_SECONDS,
            geocoder_country=settings.DISPATCH_GEOCODER_COUNTRY,
        )

    @property
    def claim_window(self) -> timedelta:
        return timedelta(seconds=self.claim_window_seconds)

    def radius_for_attempt(self, attempt: int) -> float:
        """Search radius for a 1-based attempt number (expanded on each retry)."""
        return self.max_radius_km * (self.radius_expansion ** (attempt - 1))

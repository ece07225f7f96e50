from __future__ import annotations

from typing import Optional

from common.settings import Settings, load_settings

from .contracts import RideSource
from .fake_providers import FixtureRideSource
from .real_providers import SupabaseRideSource


def _build_prod(settings: Settings) -> RideSource:
    return SupabaseRideSource(
        base_url=settings.supabase_url,
        anon_key=settings.supabase_anon_key,
        access_token=settings.supabase_access_token or None,
    )


def _build_fake(settings: Settings) -> RideSource:
    return FixtureRideSource()


def load_ride_source(
    mode: Optional[str] = None, settings: Optional[Settings] = None
) -> RideSource:
    """Build a fresh ride source for mode (default: RIDESHARE_MODE)."""
    settings = settings or load_settings()
    active_mode = (mode or settings.mode).lower()
    if active_mode in {"demo", "test"}:
        return _build_fake(settings)
    return _build_prod(settings)

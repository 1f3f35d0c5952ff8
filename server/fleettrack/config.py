"""Server configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: FLEET_<SECTION>_<KEY> (uppercase).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    env: str = "dev"  # "dev" or "prod"
    timezone: str = "America/Chicago"


@dataclass
class StorageConfig:
    fixes_dir: str = "data/fixes"
    cache_path: str = "data/location_cache.json"
    zones_path: str = "zones.yaml"


@dataclass
class GeocodingConfig:
    nominatim_url: str = "https://nominatim.openstreetmap.org"
    user_agent: str = "fleettrack/0.1"
    places_url: str = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"
    places_api_key: str = ""  # empty disables the paid tier
    places_radius_m: float = 45.0
    daily_places_quota: int = 100
    timeout_seconds: float = 5.0
    free_geocode_eviction_seconds: float = 3600.0


@dataclass
class ResolverConfig:
    custom_match_radius_m: float = 50.0
    mismatch_threshold_m: float = 100.0
    sanity_ceiling_m: float = 500.0
    cache_precision: int = 4
    # [{"lat": ..., "lon": ..., "label": ...}, ...]
    custom_locations: list[dict] = field(default_factory=list)


@dataclass
class SegmentationConfig:
    stationary_radius_m: float = 100.0
    min_stop_seconds: float = 90.0
    min_trip_distance_m: float = 50.0
    min_meaningful_stop_seconds: float = 90.0
    suppress_midday_home_base_stops: bool = True


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    geocoding: GeocodingConfig = field(default_factory=GeocodingConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "FLEET_SERVER_HOST": lambda v: setattr(config.server, "host", v),
        "FLEET_SERVER_PORT": lambda v: setattr(config.server, "port", int(v)),
        "FLEET_SERVER_ENV": lambda v: setattr(config.server, "env", v),
        "FLEET_SERVER_TIMEZONE": lambda v: setattr(config.server, "timezone", v),
        "FLEET_STORAGE_FIXES_DIR": lambda v: setattr(config.storage, "fixes_dir", v),
        "FLEET_STORAGE_CACHE_PATH": lambda v: setattr(config.storage, "cache_path", v),
        "FLEET_STORAGE_ZONES_PATH": lambda v: setattr(config.storage, "zones_path", v),
        "FLEET_GEOCODING_NOMINATIM_URL": lambda v: setattr(config.geocoding, "nominatim_url", v),
        "FLEET_GEOCODING_USER_AGENT": lambda v: setattr(config.geocoding, "user_agent", v),
        "FLEET_GEOCODING_PLACES_API_KEY": lambda v: setattr(config.geocoding, "places_api_key", v),
        "FLEET_GEOCODING_DAILY_PLACES_QUOTA": lambda v: setattr(config.geocoding, "daily_places_quota", int(v)),
        "FLEET_GEOCODING_TIMEOUT": lambda v: setattr(config.geocoding, "timeout_seconds", float(v)),
        "FLEET_SEGMENTATION_SUPPRESS_MIDDAY_HOME_BASE_STOPS":
            lambda v: setattr(config.segmentation, "suppress_midday_home_base_stops", _parse_bool(v)),
        "FLEET_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "FLEET_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    # Try to load YAML
    if config_path is None:
        config_path = Path(os.environ.get("FLEET_CONFIG", "config.yaml"))
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for section_name in ("server", "storage", "geocoding", "resolver", "segmentation", "logging"):
            section = getattr(config, section_name)
            for k, v in (raw.get(section_name) or {}).items():
                if hasattr(section, k):
                    setattr(section, k, v)

    # Environment overrides always win
    _apply_env_overrides(config)
    return config

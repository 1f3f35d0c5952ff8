"""fleettrack server — main entry point.

This is the only file that knows about concrete implementations.
It wires together the core, geocoding, storage, and API layers.

Run with:
    uvicorn fleettrack.main:app --app-dir server --port 8000
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI

from fleettrack.api.fixes import router as fixes_router
from fleettrack.api.locations import router as locations_router
from fleettrack.api.monitoring import router as monitoring_router
from fleettrack.api.timeline import router as timeline_router
from fleettrack.config import AppConfig, load_config
from fleettrack.core.location_cache import LocationCache
from fleettrack.core.quota import DailyQuota
from fleettrack.core.resolver import CustomLocation, GeofenceResolver, default_cascade
from fleettrack.core.segmentation import SegmentationParams
from fleettrack.core.stats import ResolutionStats
from fleettrack.core.timeline import TimelineService
from fleettrack.core.zones import ZoneTable, load_zone_table
from fleettrack.geocoding.nominatim import NominatimGeocoder
from fleettrack.geocoding.places import GooglePlacesFinder
from fleettrack.storage.fix_store import FileFixStore
from fleettrack.storage.label_store import FileLabelStore
from fleettrack.storage.zone_file import YamlZoneFile

log = structlog.get_logger()

# Module-level singletons (set during startup)
_config: AppConfig | None = None
_stats: ResolutionStats | None = None
_quota: DailyQuota | None = None
_cache: LocationCache | None = None
_zones: ZoneTable | None = None
_resolver: GeofenceResolver | None = None
_fix_store: FileFixStore | None = None
_timeline: TimelineService | None = None
_zone_source: YamlZoneFile | None = None
_geocoder: NominatimGeocoder | None = None


def get_config() -> AppConfig:
    assert _config is not None, "Server not initialized"
    return _config


def get_stats() -> ResolutionStats:
    assert _stats is not None, "Server not initialized"
    return _stats


def get_quota() -> DailyQuota:
    assert _quota is not None, "Server not initialized"
    return _quota


def get_cache() -> LocationCache:
    assert _cache is not None, "Server not initialized"
    return _cache


def get_zones() -> ZoneTable:
    assert _zones is not None, "Server not initialized"
    return _zones


def get_resolver() -> GeofenceResolver:
    assert _resolver is not None, "Server not initialized"
    return _resolver


def get_fix_store() -> FileFixStore:
    assert _fix_store is not None, "Server not initialized"
    return _fix_store


def get_timeline_service() -> TimelineService:
    assert _timeline is not None, "Server not initialized"
    return _timeline


async def reload_zones() -> int:
    """Explicit zone reload; the only way the zone table changes after startup."""
    return await load_zone_table(get_zones(), _zone_source, _geocoder)


def _setup_logging(config: AppConfig) -> None:
    """Configure structlog based on the logging config."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
    )


def segmentation_params(config: AppConfig) -> SegmentationParams:
    seg = config.segmentation
    return SegmentationParams(
        stationary_radius_m=seg.stationary_radius_m,
        min_stop_seconds=seg.min_stop_seconds,
        min_trip_distance_m=seg.min_trip_distance_m,
        min_meaningful_stop_seconds=seg.min_meaningful_stop_seconds,
        suppress_midday_home_base_stops=seg.suppress_midday_home_base_stops,
    )


def custom_locations(config: AppConfig) -> list[CustomLocation]:
    return [
        CustomLocation(lat=float(c["lat"]), lon=float(c["lon"]), label=str(c["label"]))
        for c in config.resolver.custom_locations
    ]


async def _evict_free_geocode_periodically(cache: LocationCache, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        cache.evict_free_geocode()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global _config, _stats, _quota, _cache, _zones, _resolver
    global _fix_store, _timeline, _zone_source, _geocoder

    _config = load_config()
    _setup_logging(_config)

    log.info("server_starting",
             env=_config.server.env,
             fixes_dir=_config.storage.fixes_dir,
             cache_path=_config.storage.cache_path,
             timezone=_config.server.timezone)

    http_client = httpx.AsyncClient(timeout=_config.geocoding.timeout_seconds)

    # Create components
    _stats = ResolutionStats()
    _quota = DailyQuota(_config.geocoding.daily_places_quota, _config.server.timezone)
    _cache = LocationCache(FileLabelStore(_config.storage.cache_path),
                           precision=_config.resolver.cache_precision)
    _cache.load()

    _geocoder = NominatimGeocoder(http_client, _config.geocoding.nominatim_url,
                                  _config.geocoding.user_agent)
    finder = None
    if _config.geocoding.places_api_key:
        finder = GooglePlacesFinder(http_client, _config.geocoding.places_api_key,
                                    _config.geocoding.places_url)
    else:
        log.info("places_tier_disabled", reason="no api key")

    _zones = ZoneTable(mismatch_threshold_m=_config.resolver.mismatch_threshold_m,
                       sanity_ceiling_m=_config.resolver.sanity_ceiling_m,
                       stats=_stats)
    _zone_source = YamlZoneFile(_config.storage.zones_path)
    await load_zone_table(_zones, _zone_source, _geocoder)

    _resolver = GeofenceResolver(
        default_cascade(
            _zones, _cache,
            geocoder=_geocoder,
            finder=finder,
            quota=_quota,
            custom_locations=custom_locations(_config),
            custom_radius_m=_config.resolver.custom_match_radius_m,
            places_radius_m=_config.geocoding.places_radius_m,
        ),
        cache=_cache,
        stats=_stats,
    )
    _fix_store = FileFixStore(_config.storage.fixes_dir)
    _timeline = TimelineService(_fix_store, _resolver, _zones,
                                params=segmentation_params(_config),
                                stats=_stats,
                                tz_name=_config.server.timezone)

    eviction_task = asyncio.create_task(_evict_free_geocode_periodically(
        _cache, _config.geocoding.free_geocode_eviction_seconds))

    log.info("server_started",
             host=_config.server.host,
             port=_config.server.port,
             tiers=_resolver.tiers)

    yield

    # Shutdown
    eviction_task.cancel()
    try:
        await eviction_task
    except asyncio.CancelledError:
        pass
    _cache.flush()
    await http_client.aclose()
    log.info("server_stopped")


app = FastAPI(
    title="fleettrack",
    description="Vehicle trip/stop timelines with geofence location resolution",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(fixes_router)
app.include_router(timeline_router)
app.include_router(locations_router)
app.include_router(monitoring_router)

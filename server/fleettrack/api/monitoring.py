"""Health check and monitoring endpoints."""

from __future__ import annotations

import json
from pathlib import Path

from fastapi import APIRouter

router = APIRouter(prefix="/api/v1")

# Load build info once at import time.
_BUILD_INFO_PATH = Path(__file__).parent.parent / "build_info.json"
_BUILD_INFO: dict = {}
if _BUILD_INFO_PATH.exists():
    try:
        _BUILD_INFO = json.loads(_BUILD_INFO_PATH.read_text())
    except (json.JSONDecodeError, OSError):
        pass


@router.get("/health")
async def health() -> dict:
    """Basic health check."""
    from fleettrack.main import get_cache, get_config, get_stats, get_zones

    config = get_config()
    fixes_path = Path(config.storage.fixes_dir)

    result = {
        "status": "ok",
        "version": "0.1.0",
        "uptime_seconds": get_stats().snapshot()["uptime_seconds"],
        "fix_store_available": fixes_path.is_dir(),
        "zones": len(get_zones().zones),
        "cache_entries": len(get_cache()),
    }
    result.update(_BUILD_INFO)
    return result


@router.get("/stats")
async def stats() -> dict:
    """Resolution statistics.

    - ``resolutions_by_source``: which cascade tier produced each label
    - ``tier_failures``: external lookups that raised and were skipped
    - ``places_quota``: today's paid lookup usage in the operating timezone
    - ``cache``: in-memory vs durable entry counts
    """
    from fleettrack.main import get_cache, get_quota, get_stats

    snapshot = get_stats().snapshot()
    snapshot["places_quota"] = get_quota().snapshot()
    snapshot["cache"] = get_cache().snapshot()
    return snapshot

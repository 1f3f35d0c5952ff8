"""Resolution and timeline statistics.

Tracks in-memory counters for the resolver cascade and timeline queries.
No framework dependencies.
"""

from __future__ import annotations

import threading
import time


class ResolutionStats:
    """Thread-safe counters shared by the resolver and the timeline service."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()

        # Counters
        self.resolutions: int = 0
        self.distance_mismatches: int = 0
        self.rejected_matches: int = 0
        self.timelines_built: int = 0
        self.trips_emitted: int = 0
        self.stops_emitted: int = 0
        self.fixes_stored: int = 0
        self.fixes_rejected: int = 0

        # Tier name → count
        self._wins: dict[str, int] = {}
        self._failures: dict[str, int] = {}

    def record_resolution(self, source: str) -> None:
        """Record which tier produced a label."""
        with self._lock:
            self.resolutions += 1
            self._wins[source] = self._wins.get(source, 0) + 1

    def record_tier_failure(self, tier: str) -> None:
        with self._lock:
            self._failures[tier] = self._failures.get(tier, 0) + 1

    def record_mismatch(self) -> None:
        with self._lock:
            self.distance_mismatches += 1

    def record_rejected_match(self) -> None:
        with self._lock:
            self.rejected_matches += 1

    def record_timeline(self, trips: int, stops: int) -> None:
        with self._lock:
            self.timelines_built += 1
            self.trips_emitted += trips
            self.stops_emitted += stops

    def record_fixes(self, stored: int, rejected: int = 0) -> None:
        with self._lock:
            self.fixes_stored += stored
            self.fixes_rejected += rejected

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        with self._lock:
            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "resolutions": self.resolutions,
                "resolutions_by_source": dict(self._wins),
                "tier_failures": dict(self._failures),
                "distance_mismatches": self.distance_mismatches,
                "rejected_matches": self.rejected_matches,
                "timelines_built": self.timelines_built,
                "trips_emitted": self.trips_emitted,
                "stops_emitted": self.stops_emitted,
                "fixes_stored": self.fixes_stored,
                "fixes_rejected": self.fixes_rejected,
            }

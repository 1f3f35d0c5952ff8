#!/usr/bin/env python3
"""fleettrack workday simulator.

Generates a plausible service day per vehicle (leave the shop, visit a few
zones, park at each, drive back) and posts the fixes to the server. The
timeline for each vehicle is fetched and printed at the end.

Usage:
    # 3 vans, today's date, zones fetched from the server
    python -m tools.simulator.simulate --server http://localhost:8000 --vehicles 3

    # Backfill a specific day with longer visits
    python -m tools.simulator.simulate --date 2025-05-01 --visits 5 --visit-minutes 45
"""

from __future__ import annotations

import argparse
import asyncio
import json
import math
import random
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import httpx

# Sampling interval of the simulated tracker.
FIX_INTERVAL_S = 30
BATCH_SIZE = 200


@dataclass
class SimVehicle:
    vehicle_id: str
    lat: float
    lon: float
    battery: float
    fixes: list[dict] = field(default_factory=list)
    fixes_sent: int = 0
    errors: int = 0


def _fix(vehicle: SimVehicle, ts: datetime, moving: bool, speed_mph: float) -> dict:
    # Parked GPS wanders a few meters.
    jitter = 0.00002 if not moving else 0.0
    return {
        "latitude": round(vehicle.lat + random.uniform(-jitter, jitter), 6),
        "longitude": round(vehicle.lon + random.uniform(-jitter, jitter), 6),
        "timestamp": ts.isoformat(),
        "speed": round(speed_mph, 1),
        "battery_level": round(vehicle.battery, 1),
        "ignition_state": "on" if moving else "off",
        "moving": moving,
    }


def drive_to(vehicle: SimVehicle, lat: float, lon: float, start: datetime) -> datetime:
    """Append moving fixes along a straight line. Returns the arrival time."""
    dy = (lat - vehicle.lat) * 111_320
    dx = (lon - vehicle.lon) * 111_320 * math.cos(math.radians(vehicle.lat))
    distance_m = math.hypot(dx, dy)
    speed_mph = random.uniform(25, 40)
    seconds = distance_m / (speed_mph * 0.44704)
    steps = max(int(seconds // FIX_INTERVAL_S), 2)

    from_lat, from_lon = vehicle.lat, vehicle.lon
    ts = start
    for k in range(steps):
        f = k / steps
        vehicle.lat = from_lat + (lat - from_lat) * f
        vehicle.lon = from_lon + (lon - from_lon) * f
        vehicle.fixes.append(_fix(vehicle, ts, True, speed_mph + random.uniform(-5, 5)))
        vehicle.battery = max(vehicle.battery - 0.05, 0.0)
        ts += timedelta(seconds=FIX_INTERVAL_S)
    vehicle.lat, vehicle.lon = lat, lon
    return ts


def park_for(vehicle: SimVehicle, minutes: float, start: datetime) -> datetime:
    """Append stationary fixes. Returns the departure time."""
    ts = start
    end = start + timedelta(minutes=minutes)
    while ts < end:
        vehicle.fixes.append(_fix(vehicle, ts, False, 0.0))
        ts += timedelta(seconds=FIX_INTERVAL_S)
    return ts


def plan_day(vehicle: SimVehicle, home: dict, stops: list[dict], day_start: datetime,
             visit_minutes: float) -> None:
    ts = park_for(vehicle, 10, day_start)
    for zone in stops:
        ts = drive_to(vehicle, zone["lat"], zone["lon"], ts)
        ts = park_for(vehicle, visit_minutes * random.uniform(0.6, 1.4), ts)
    ts = drive_to(vehicle, home["lat"], home["lon"], ts)
    park_for(vehicle, 15, ts)


async def post_fixes(client: httpx.AsyncClient, server_url: str, vehicle: SimVehicle) -> None:
    for i in range(0, len(vehicle.fixes), BATCH_SIZE):
        batch = vehicle.fixes[i:i + BATCH_SIZE]
        payload = {"vehicle_id": vehicle.vehicle_id, "fixes": batch}
        try:
            resp = await client.post(
                f"{server_url}/api/v1/fixes",
                content=json.dumps(payload),
                headers={"content-type": "application/json"},
            )
            if resp.status_code == 200:
                vehicle.fixes_sent += resp.json()["fixes_stored"]
            else:
                vehicle.errors += 1
        except httpx.RequestError:
            vehicle.errors += 1


async def run_simulation(args: argparse.Namespace) -> None:
    """Run the full simulation."""
    tz = ZoneInfo(args.timezone)
    day = date.fromisoformat(args.date) if args.date else datetime.now(tz).date()

    async with httpx.AsyncClient(timeout=10.0) as client:
        resp = await client.get(f"{args.server}/api/v1/zones")
        resp.raise_for_status()
        zone_doc = resp.json()
        home = zone_doc["home_base"]
        candidates = [z for z in zone_doc["zones"] if z["type"] != "home_base"]
        if home is None or not candidates:
            print("Server has no usable zones; nothing to simulate.")
            return

        vehicles = [
            SimVehicle(vehicle_id=f"sim-van-{i + 1}", lat=home["lat"], lon=home["lon"],
                       battery=random.uniform(85, 100))
            for i in range(args.vehicles)
        ]

        print(f"Simulating {args.vehicles} vehicles on {day.isoformat()}")
        print(f"  Home base: {home['name']}")
        print(f"  Visits per vehicle: {args.visits} (~{args.visit_minutes} min each)")
        print(f"  Server: {args.server}")
        print()

        for i, vehicle in enumerate(vehicles):
            stops = random.sample(candidates, min(args.visits, len(candidates)))
            start = datetime.combine(day, time(7, 30), tzinfo=tz) + timedelta(minutes=10 * i)
            plan_day(vehicle, home, stops, start, args.visit_minutes)

        await asyncio.gather(*(post_fixes(client, args.server, v) for v in vehicles))

        for vehicle in vehicles:
            print(f"{vehicle.vehicle_id}: {vehicle.fixes_sent} fixes sent, {vehicle.errors} errors")
            resp = await client.get(f"{args.server}/api/v1/timeline/{vehicle.vehicle_id}",
                                    params={"date": day.isoformat()})
            if resp.status_code != 200:
                print(f"  timeline request failed: HTTP {resp.status_code}")
                continue
            timeline = resp.json()["timeline"]
            for trip in timeline["trips"]:
                print(f"  trip  {trip['start_time'][11:16]} {trip['start_location']['address']}"
                      f" -> {trip['end_location']['address']} ({trip['distance_miles']} mi)")
            for stop in timeline["stops"]:
                print(f"  stop  {stop['start_time'][11:16]} {stop['location']['address']}"
                      f" [{stop['classification']}] {stop['duration_minutes']} min")
            summary = timeline["summary"]
            print(f"  total {summary['total_distance']} mi, {summary['total_trips']} trips, "
                  f"{summary['client_visit_count']} client visits")

        resp = await client.get(f"{args.server}/api/v1/stats")
        if resp.status_code == 200:
            stats = resp.json()
            print("\nServer stats:")
            print(f"  Fixes stored: {stats['fixes_stored']}")
            print(f"  Resolutions by source: {stats['resolutions_by_source']}")
            print(f"  Places quota used: {stats['places_quota']['used']}/{stats['places_quota']['limit']}")


def main():
    parser = argparse.ArgumentParser(description="fleettrack workday simulator")
    parser.add_argument("--server", default="http://localhost:8000", help="Server URL")
    parser.add_argument("--vehicles", type=int, default=3, help="Number of simulated vehicles")
    parser.add_argument("--visits", type=int, default=3, help="Zone visits per vehicle")
    parser.add_argument("--visit-minutes", type=float, default=30, help="Mean minutes parked per visit")
    parser.add_argument("--date", type=str, default=None, help="Day to simulate (YYYY-MM-DD, default: today)")
    parser.add_argument("--timezone", type=str, default="America/Chicago", help="Operating timezone")

    args = parser.parse_args()
    asyncio.run(run_simulation(args))


if __name__ == "__main__":
    main()

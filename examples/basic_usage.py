#!/usr/bin/env python3
"""
Basic usage example of the navigation fusion engine.

This example replays a simulated survey line through an in-memory channel
store and queries the fused vessel state while the recording grows.
"""

import sys
import os
import calendar
import numpy as np

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from navfusion import (FusionEngine, FusionConfig, MemoryChannelStore, MemoryEditStore,
                       BulkRemove, Parameter, SourceKind, SourceDescriptor, QueryStatus,
                       NMEAParser, configure_logging)
from navfusion.math.constants import EARTH_RADIUS_M

US = 1000000
START = calendar.timegm((2024, 3, 1, 10, 0, 0))

_parser = NMEAParser()

def sentence(body):
    return f"${body}*{_parser.calculate_checksum(body)}"

def nmea_time(seconds_of_day):
    hours, rest = divmod(seconds_of_day % 86400, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{int(hours):02d}{int(minutes):02d}{seconds:05.2f}"

def nmea_coordinate(value, width, hemispheres):
    degrees = int(abs(value))
    minutes = (abs(value) - degrees) * 60
    return f"{degrees:0{width}d}{minutes:09.6f}", hemispheres[0] if value >= 0 else hemispheres[1]

def simulate_survey(duration=120, dt=1.0):
    """
    Simulate a vessel turning on a large circle.

    Args:
        duration: Simulation duration in seconds
        dt: Time step in seconds

    Yields:
        (store_time_us, seconds_of_day, latitude, longitude, heading, depth) tuples
    """
    speed = 3.0  # m/s
    turn_radius = 400.0  # meters
    angular_velocity = speed / turn_radius  # rad/s

    start_lat = 54.3233
    start_lon = 10.1228

    rng = np.random.default_rng(7)

    t = 0.0
    while t < duration:
        north = turn_radius * np.sin(angular_velocity * t)
        east = turn_radius * (1 - np.cos(angular_velocity * t))

        # Receiver noise of about half a meter
        north += rng.normal(0.0, 0.5)
        east += rng.normal(0.0, 0.5)

        latitude = start_lat + np.degrees(north / EARTH_RADIUS_M)
        longitude = start_lon + np.degrees(east / (EARTH_RADIUS_M * np.cos(np.radians(start_lat))))
        heading = np.degrees(angular_velocity * t) % 360.0
        depth = 20.0 + 5.0 * np.sin(t / 30.0)

        # Records reach the store 150 ms after their fix
        store_time = (START + int(t)) * US + 150000
        seconds_of_day = START % 86400 + t

        yield store_time, seconds_of_day, latitude, longitude, heading, depth

        t += dt

def record(store, store_time, seconds_of_day, latitude, longitude, heading, depth):
    """Write one second of NMEA traffic to the store channels."""
    lat, ns = nmea_coordinate(latitude, 2, "NS")
    lon, ew = nmea_coordinate(longitude, 3, "EW")
    stamp = nmea_time(seconds_of_day)

    store.append("gnss", store_time,
                 sentence(f"GPGGA,{stamp},{lat},{ns},{lon},{ew},1,10,0.8,1.5,M,40.1,M,,"))
    store.append("gnss_time", store_time, sentence(f"GPZDA,{stamp},01,03,2024,00,00"))
    store.append("gyro", store_time + 20000, sentence(f"HEHDT,{heading:.2f},T"))
    store.append("echo", store_time + 40000, sentence(f"SDDPT,{depth:.2f},0.5"))

def main():
    """Main example function."""
    config = FusionConfig(quality=0.7)
    configure_logging(config.log_level)

    print("Navigation Fusion Engine - Basic Usage Example")
    print("=" * 50)

    store = MemoryChannelStore()
    for channel in ("gnss", "gnss_time", "gyro", "echo"):
        store.create_channel(channel)

    edits = MemoryEditStore()
    engine = FusionEngine(store, edits=edits, config=config)

    engine.attach_source(SourceDescriptor("zda", Parameter.DATETIME, "gnss_time", nominal_rate=1.0))
    engine.attach_source(SourceDescriptor("gga", Parameter.LATLONG, "gnss", nominal_rate=1.0))
    engine.attach_source(SourceDescriptor("hdt", Parameter.TRACK, "gyro", nominal_rate=1.0))
    engine.attach_source(SourceDescriptor("dpt", Parameter.DEPTH, "echo", nominal_rate=1.0))
    engine.attach_source(SourceDescriptor("sog", Parameter.SPEED, "gnss", SourceKind.COMPUTED,
                                          base_source="gga"))

    print(f"Attached sources: {[descriptor.source_id for descriptor in engine.sources()]}")
    print()

    # Replay the survey in bursts, letting the engine catch up between them
    print("Replaying survey (120 seconds, bursts of 20 records)...")
    samples = list(simulate_survey(duration=120))
    for first in range(0, len(samples), 20):
        for values in samples[first:first + 20]:
            record(store, *values)

        engine.advance()
        print_status(engine, samples[first][0] + 5 * US)

    for channel in store.channels():
        store.close(channel)
    engine.advance()

    # Drop a stretch of the recording and let the engine rebuild it
    print("Removing seconds 40-50 of the recording...")
    edits.add(BulkRemove(samples[40][0], samples[50][0]))
    engine.advance()

    probe = samples[45][0]
    result = engine.query(Parameter.LATLONG, probe)
    print(f"  Position at t=45s: {result.status.value}")
    print()

    print("Final state:")
    print_status(engine, samples[100][0] + US // 2, offset=(2.0, -1.0, 0.5))

    stats = engine.get_statistics()
    print("Final Statistics:")
    print(f"Progress: {stats['progress']:.1f}%")
    print(f"Edit Count: {stats['mod_count']}")
    for source_id, source_stats in stats['sources'].items():
        print(f"  {source_id}: {source_stats['assembled']} assembled, "
              f"{source_stats['anchors']} anchors, {source_stats['invalid_samples']} invalid")
    print(f"NMEA Error Rate: {stats['parser']['error_rate']:.1%}")

def print_status(engine: FusionEngine, time: int, offset=None):
    """Print the fused vessel state at a store time."""
    location = engine.locate(time, offset=offset)

    print(f"Time: {(time - START * US) / US:.1f}s (progress {engine.progress():.0f}%)")
    if location.has_position:
        print(f"  Position: [{location.latitude:.6f}, {location.longitude:.6f}]")
    else:
        print(f"  Position: {location.validity(Parameter.LATLONG).value}")
    if location.track is not None:
        print(f"  Heading:  {location.track:6.1f}°")
    if location.speed is not None:
        print(f"  Speed:    {location.speed:5.2f} m/s")
    if location.depth is not None:
        print(f"  Depth:    {location.depth:5.2f} m")
    waiting = [parameter.value for parameter, status in location.status.items()
               if status is QueryStatus.NOT_YET_AVAILABLE]
    if waiting:
        print(f"  Waiting:  {', '.join(waiting)}")
    print()

if __name__ == "__main__":
    main()

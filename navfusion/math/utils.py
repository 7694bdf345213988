"""
Mathematical utility functions for navigation data fusion.
"""

import numpy as np
import math

from .constants import EARTH_RADIUS_M, METERS_PER_DEGREE, US_PER_SECOND

def rotation_matrix(angle):
    """
    Create a 2D rotation matrix for the given angle.

    Args:
        angle (float): Angle in radians

    Returns:
        np.ndarray: 2x2 rotation matrix
    """
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)

    return np.array([
        [cos_a, -sin_a],
        [sin_a,  cos_a]
    ])

def body_to_ned_matrix(track, roll, pitch):
    """
    Rotation from the vessel body frame to the local North-East-Down frame.

    Body axes: x to the bow, y to starboard, z to the keel.

    Args:
        track (float): Heading in radians, clockwise from north
        roll (float): Roll in radians, starboard down positive
        pitch (float): Pitch in radians, bow up positive

    Returns:
        np.ndarray: 3x3 rotation matrix
    """
    yaw = np.eye(3)
    yaw[:2, :2] = rotation_matrix(track)

    cos_p, sin_p = math.cos(pitch), math.sin(pitch)
    pitch_m = np.array([
        [cos_p, 0.0, sin_p],
        [0.0,   1.0, 0.0],
        [-sin_p, 0.0, cos_p]
    ])

    cos_r, sin_r = math.cos(roll), math.sin(roll)
    roll_m = np.array([
        [1.0, 0.0,    0.0],
        [0.0, cos_r, -sin_r],
        [0.0, sin_r,  cos_r]
    ])

    return yaw @ pitch_m @ roll_m

def normalize_angle(angle):
    """
    Normalize angle to [-pi, pi] range.

    Args:
        angle (float): Angle in radians

    Returns:
        float: Normalized angle in [-pi, pi]
    """
    while angle > math.pi:
        angle -= 2 * math.pi
    while angle < -math.pi:
        angle += 2 * math.pi
    return angle

def wrap_angle(angle):
    """
    Wrap angle to [0, 2*pi] range.

    Args:
        angle (float): Angle in radians

    Returns:
        float: Wrapped angle in [0, 2*pi]
    """
    return angle % (2 * math.pi)

def haversine_distance(lat1, lon1, lat2, lon2):
    """
    Calculate the great circle distance between two points on Earth.

    Args:
        lat1, lon1: Latitude and longitude of first point (degrees)
        lat2, lon2: Latitude and longitude of second point (degrees)

    Returns:
        float: Distance in meters
    """
    lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])

    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = math.sin(dlat/2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon/2)**2
    c = 2 * math.asin(min(1.0, math.sqrt(a)))

    return EARTH_RADIUS_M * c

def calculate_bearing(lat1, lon1, lat2, lon2):
    """
    Calculate the bearing between two GPS coordinates.

    Args:
        lat1, lon1: Starting latitude and longitude (degrees)
        lat2, lon2: Ending latitude and longitude (degrees)

    Returns:
        float: Bearing in radians [0, 2*pi], 0 is north
    """
    lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])

    dlon = lon2 - lon1

    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)

    return wrap_angle(math.atan2(y, x))

def local_offset(ref_lat, ref_lon, latitude, longitude):
    """
    Equirectangular projection of a point relative to a reference point.

    Accurate enough for the tens of meters the simplifier works with.

    Returns:
        (east, north) in meters
    """
    lat1 = math.radians(ref_lat)
    lat2 = math.radians(latitude)

    east = math.radians(longitude - ref_lon) * math.cos((lat1 + lat2) / 2) * EARTH_RADIUS_M
    north = (lat2 - lat1) * EARTH_RADIUS_M
    return (east, north)

def planar_distance(lat1, lon1, lat2, lon2):
    """Planar distance in meters between two nearby coordinates."""
    east, north = local_offset(lat1, lon1, lat2, lon2)
    return math.hypot(east, north)

def meters_to_degrees(north, east, latitude):
    """
    Convert a metric displacement to a latitude/longitude displacement.

    Returns:
        (dlat, dlon) in degrees
    """
    dlat = north / METERS_PER_DEGREE
    dlon = east / (METERS_PER_DEGREE * math.cos(math.radians(latitude)))
    return (dlat, dlon)

def bezier_weights(t):
    """
    Cubic Bezier (Bernstein) basis at parameter t.

    Args:
        t (float): Curve parameter in [0, 1]

    Returns:
        np.ndarray: Weights of the four control points
    """
    u = 1.0 - t
    return np.array([u ** 3, 3 * t * u ** 2, 3 * t * t * u, t ** 3])

def hermite_bezier(p1, p2, m1, m2, span, u):
    """
    Evaluate the cubic Bezier segment from p1 to p2 with end tangents m1, m2.

    Interior control points are p1 + m1*span/3 and p2 - m2*span/3, the
    unique pair giving the requested derivatives at both ends.

    Args:
        p1, p2: End points (np.ndarray)
        m1, m2: Derivatives at the end points per time unit (np.ndarray)
        span: Time between p1 and p2
        u: Normalized time fraction in [0, 1]

    Returns:
        np.ndarray: Point on the curve
    """
    controls = np.vstack([p1, p1 + m1 * span / 3.0, p2 - m2 * span / 3.0, p2])
    return bezier_weights(u) @ controls

def circular_mean_degrees(values):
    """Mean of angles given in degrees, result in [0, 360)."""
    radians = np.radians(np.asarray(values, dtype=float))
    mean = math.atan2(np.sin(radians).mean(), np.cos(radians).mean())
    return math.degrees(wrap_angle(mean))

def track_and_speed(lat1, lon1, time1, lat2, lon2, time2):
    """
    Course over ground and speed between two timed positions.

    Args:
        lat1, lon1, time1: Earlier position (degrees) and time (microseconds)
        lat2, lon2, time2: Later position (degrees) and time (microseconds)

    Returns:
        (track_degrees, speed_ms); speed is None when no time elapsed
    """
    track = math.degrees(calculate_bearing(lat1, lon1, lat2, lon2))
    dt = (time2 - time1) / US_PER_SECOND
    if dt <= 0:
        return (track, None)
    return (track, haversine_distance(lat1, lon1, lat2, lon2) / dt)

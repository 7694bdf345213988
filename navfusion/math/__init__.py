"""
Mathematical utilities for navigation data fusion.
"""

from .utils import (rotation_matrix, body_to_ned_matrix, normalize_angle, wrap_angle,
                    haversine_distance, calculate_bearing, local_offset, planar_distance,
                    meters_to_degrees, bezier_weights, hermite_bezier, circular_mean_degrees,
                    track_and_speed)
from .constants import *

__all__ = [
    "rotation_matrix",
    "body_to_ned_matrix",
    "normalize_angle",
    "wrap_angle",
    "haversine_distance",
    "calculate_bearing",
    "local_offset",
    "planar_distance",
    "meters_to_degrees",
    "bezier_weights",
    "hermite_bezier",
    "circular_mean_degrees",
    "track_and_speed"
]

"""
distance.py

Real-world and pixel-space distances, and the pixel → meter scale factor
estimated from the first two calibration points.
"""

import math
from typing import Optional, Sequence

from site_nav.models import CalibrationPoint, GeoCoordinate, PixelCoordinate

EARTH_RADIUS_M = 6371000.0


def distance_meters(a: GeoCoordinate, b: GeoCoordinate) -> float:
    """Haversine great-circle distance in meters."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlmb = math.radians(b.longitude - a.longitude)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    # rounding can push h just outside [0, 1]
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def pixel_distance(a: PixelCoordinate, b: PixelCoordinate) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


def meters_per_pixel(points: Sequence[CalibrationPoint]) -> Optional[float]:
    """
    Ratio of great-circle distance to pixel distance between the first two
    calibration points (insertion order).  Assumes one uniform, isotropic
    scale over the whole image; this is independent of the affine transform
    and may disagree with it on rotated or unevenly scaled maps.

    None with fewer than two points or when both sit on the same pixel.
    """
    if len(points) < 2:
        return None
    p1, p2 = points[0], points[1]
    d_pix = pixel_distance(p1.pixel_position, p2.pixel_position)
    if d_pix == 0:
        return None
    scale = distance_meters(p1.geo_position, p2.geo_position) / d_pix
    return scale if math.isfinite(scale) else None

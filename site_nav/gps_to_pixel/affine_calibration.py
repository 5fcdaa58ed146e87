#!/usr/bin/env python3
"""
affine_calibration.py

Closed-form affine mapping from GPS (lat, lng) to map-image pixels, derived
from the first three calibration points:

    pixel_x = A * lat + B * lng + C
    pixel_y = D * lat + E * lng + F

Only the first three points (in insertion order) are used.  Extra points are
stored by the site but never refine the fit; `calibration_residuals` reports
how far each of them lands from where the administrator clicked.

Known limitation: collinearity is detected with an ABSOLUTE tolerance on the
geographic determinant (|det| < 1e-9 deg^2).  Three points spread over less
than roughly 3e-5 degrees (a few meters) are rejected even if not collinear.

Usage:
    python -m site_nav.gps_to_pixel.affine_calibration site_data.json
"""

import json
import logging
import math
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from site_nav.gps_to_pixel.distance import meters_per_pixel
from site_nav.models import CalibrationPoint, GeoCoordinate, PixelCoordinate, SiteData

logger = logging.getLogger(__name__)

# ─── CONFIG ──────────────────────────────────────────────────────────────
MIN_CALIBRATION_POINTS = 3
DET_TOLERANCE = 1e-9
# ─────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AffineTransform:
    A: float
    B: float
    C: float
    D: float
    E: float
    F: float

    @property
    def matrix(self) -> np.ndarray:
        """2×3 matrix M with  [x, y] = M @ [lat, lng, 1]."""
        return np.array([[self.A, self.B, self.C],
                         [self.D, self.E, self.F]], dtype=float)

    def to_dict(self) -> dict:
        return {"A": self.A, "B": self.B, "C": self.C, "D": self.D, "E": self.E, "F": self.F}


def solve_affine(points: Sequence[CalibrationPoint]) -> Optional[AffineTransform]:
    """
    Solve the two 3-unknown systems  [lat, lng, 1]·[A, B, C]ᵗ = pixel_x  and
    [lat, lng, 1]·[D, E, F]ᵗ = pixel_y  over the first three points with
    Cramer's rule.

    The system is written relative to the first point, which leaves the
    determinant unchanged but keeps the lat/lng differences exact in floating
    point; C and F are then recovered from the first point.

    Returns None for fewer than three points, a (numerically) collinear
    triple, or coordinates that make the determinant non-finite.
    `points` is an ordered sequence: reordering changes the result.
    """
    if len(points) < MIN_CALIBRATION_POINTS:
        return None

    p1, p2, p3 = points[:MIN_CALIBRATION_POINTS]
    lat1, lng1 = p1.geo_position.latitude, p1.geo_position.longitude

    dlat2 = p2.geo_position.latitude - lat1
    dlng2 = p2.geo_position.longitude - lng1
    dlat3 = p3.geo_position.latitude - lat1
    dlng3 = p3.geo_position.longitude - lng1

    det = dlat2 * dlng3 - dlat3 * dlng2
    if not math.isfinite(det) or abs(det) < DET_TOLERANCE:
        logger.warning("Calibration points are collinear or non-finite (det=%g), projection unavailable", det)
        return None

    def cramer(v1, v2, v3):
        d2, d3 = v2 - v1, v3 - v1
        a = (d2 * dlng3 - d3 * dlng2) / det
        b = (dlat2 * d3 - dlat3 * d2) / det
        c = v1 - a * lat1 - b * lng1
        return a, b, c

    A, B, C = cramer(p1.pixel_position.x, p2.pixel_position.x, p3.pixel_position.x)
    D, E, F = cramer(p1.pixel_position.y, p2.pixel_position.y, p3.pixel_position.y)
    return AffineTransform(A, B, C, D, E, F)


def project(geo: GeoCoordinate, transform: Optional[AffineTransform]) -> Optional[PixelCoordinate]:
    """(lat, lng) → (x, y).  None when the map is not calibrated."""
    if transform is None:
        return None
    lat, lng = geo.latitude, geo.longitude
    return PixelCoordinate(
        transform.A * lat + transform.B * lng + transform.C,
        transform.D * lat + transform.E * lng + transform.F,
    )


def project_many(latlng: np.ndarray, transform: Optional[AffineTransform]) -> Optional[np.ndarray]:
    """
    Map a batch of (lat, lng) rows (N×2) → (N×2) pixel rows.
    """
    if transform is None:
        return None
    latlng = np.asarray(latlng, dtype=float).reshape(-1, 2)
    aug = np.hstack([latlng, np.ones((latlng.shape[0], 1))])
    return aug @ transform.matrix.T


def unproject(pixel: PixelCoordinate, transform: Optional[AffineTransform]) -> Optional[GeoCoordinate]:
    """
    Inverse mapping (x, y) → (lat, lng).  None when uncalibrated or when the
    pixel side of the calibration is degenerate (2×2 part not invertible).
    """
    if transform is None:
        return None
    M = np.array([[transform.A, transform.B],
                  [transform.D, transform.E]], dtype=float)
    if abs(np.linalg.det(M)) < 1e-12:
        return None
    rhs = np.array([pixel.x - transform.C, pixel.y - transform.F], dtype=float)
    lat, lng = np.linalg.solve(M, rhs)
    return GeoCoordinate(float(lat), float(lng))


def calibration_residuals(points: Sequence[CalibrationPoint],
                          transform: Optional[AffineTransform]) -> Optional[List[float]]:
    """
    Pixel distance between each calibration point's clicked position and
    where the transform puts its GPS position.  The first three are ~0 by
    construction; larger values on later points mean the map is not affine
    (or a point was placed badly).
    """
    if transform is None:
        return None
    if not points:
        return []
    latlng = np.array([[p.geo_position.latitude, p.geo_position.longitude] for p in points])
    clicked = np.array([[p.pixel_position.x, p.pixel_position.y] for p in points])
    projected = project_many(latlng, transform)
    return np.linalg.norm(projected - clicked, axis=1).tolist()


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print("Usage: python -m site_nav.gps_to_pixel.affine_calibration site_data.json")
        return 1

    with open(argv[0], "r") as f:
        site = SiteData.from_record(json.load(f))

    points = site.calibration_points
    transform = solve_affine(points)
    print(f"Calibration points: {len(points)} (first {MIN_CALIBRATION_POINTS} used)")
    if transform is None:
        print("No transform: need 3 non-collinear calibration points.")
        return 1

    for name, value in transform.to_dict().items():
        print(f"  {name} = {value:.6f}")

    print("\nResiduals (pixels):")
    for p, r in zip(points, calibration_residuals(points, transform)):
        print(f"  #{p.id}: {r:.3f}")

    scale = meters_per_pixel(points)
    print(f"\nMeters per pixel (first two points): {scale if scale is None else f'{scale:.4f}'}")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(main())

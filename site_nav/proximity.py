"""
proximity.py

Nearest-spot evaluation, auto-narration and check-in rules.

Spots are stored in pixel space only, so their real-world distance is
  pixel_distance(visitor, spot) * meters_per_pixel
with the scale taken from the first two calibration points.  That scale is
not derived from the affine transform that places the visitor, and the two
can disagree on a rotated or unevenly scaled map image.

All per-visitor mutable state (narrated spots, completed missions) lives in a
ProximitySession that is passed in and returned updated, never mutated.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial.distance import cdist

from site_nav.gps_to_pixel.affine_calibration import AffineTransform, project, solve_affine
from site_nav.gps_to_pixel.distance import meters_per_pixel, pixel_distance
from site_nav.models import GeoCoordinate, PixelCoordinate, PointOfInterest, SiteData, spot_pixels

logger = logging.getLogger(__name__)

# ─── CONFIG ──────────────────────────────────────────────────────────────
NARRATION_DISTANCE_M = 20.0   # auto-narration when nearest spot is closer
CHECK_IN_DISTANCE_M = 30.0    # manual check-in allowed when closer
# ─────────────────────────────────────────────────────────────────────────


class CheckInRejected(ValueError):
    pass


@dataclass(frozen=True)
class ProximitySession:
    """Monotonic per-visitor sets: ids are only ever added."""
    narrated: FrozenSet[str] = field(default_factory=frozenset)
    completed: FrozenSet[str] = field(default_factory=frozenset)

    def with_narrated(self, spot_id: str) -> "ProximitySession":
        return replace(self, narrated=self.narrated | {spot_id})

    def with_completed(self, spot_id: str) -> "ProximitySession":
        return replace(self, completed=self.completed | {spot_id})

    def to_dict(self) -> dict:
        return {"narrated": sorted(self.narrated), "completed": sorted(self.completed)}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ProximitySession":
        data = data or {}
        return cls(
            narrated=frozenset(data.get("narrated") or ()),
            completed=frozenset(data.get("completed") or ()),
        )


@dataclass(frozen=True)
class NarrationEvent:
    spot_id: str
    text: str
    distance_m: float


@dataclass(frozen=True)
class ProximityResult:
    visitor_pixel: Optional[PixelCoordinate]
    nearest: Optional[PointOfInterest] = None
    nearest_distance_m: Optional[float] = None
    distances_m: Dict[str, float] = field(default_factory=dict)
    narrations: Tuple[NarrationEvent, ...] = ()


def spot_distances(visitor_pixel: Optional[PixelCoordinate],
                   spots: Sequence[PointOfInterest],
                   scale: Optional[float]) -> Optional[np.ndarray]:
    """Approximate meters from the visitor to every spot, in spot order."""
    if visitor_pixel is None or scale is None or not spots:
        return None
    pix = cdist([[visitor_pixel.x, visitor_pixel.y]], spot_pixels(spots))[0]
    return pix * scale


def nearest_spot(visitor_pixel: Optional[PixelCoordinate],
                 spots: Sequence[PointOfInterest],
                 scale: Optional[float]) -> Tuple[Optional[PointOfInterest], Optional[float]]:
    """
    (spot, meters) of the closest spot, or (None, None) when no distance can
    be computed.  Ties keep the earliest spot (np.argmin returns the first
    occurrence of the minimum).
    """
    dist = spot_distances(visitor_pixel, spots, scale)
    if dist is None:
        return None, None
    idx = int(np.argmin(dist))
    return spots[idx], float(dist[idx])


def evaluate_proximity(visitor_pixel: Optional[PixelCoordinate],
                       spots: Sequence[PointOfInterest],
                       scale: Optional[float],
                       session: ProximitySession) -> Tuple[ProximityResult, ProximitySession]:
    """
    Distances, nearest spot and narration trigger for one position update.
    Safe to call on every update: a spot narrates at most once per session.
    """
    closest, min_dist = nearest_spot(visitor_pixel, spots, scale)
    if closest is None:
        return ProximityResult(visitor_pixel=visitor_pixel), session
    dist = spot_distances(visitor_pixel, spots, scale)

    narrations = ()
    if (min_dist < NARRATION_DISTANCE_M and closest.narration_text
            and closest.id not in session.narrated):
        logger.info("🔊 Narrating %s at %.1f m", closest.id, min_dist)
        narrations = (NarrationEvent(closest.id, closest.narration_text, min_dist),)
        session = session.with_narrated(closest.id)

    result = ProximityResult(
        visitor_pixel=visitor_pixel,
        nearest=closest,
        nearest_distance_m=min_dist,
        distances_m={s.id: float(d) for s, d in zip(spots, dist)},
        narrations=narrations,
    )
    return result, session


def is_check_in_eligible(spot: PointOfInterest, distance_m: Optional[float],
                         session: ProximitySession) -> bool:
    return (spot.has_task
            and spot.id not in session.completed
            and distance_m is not None
            and distance_m < CHECK_IN_DISTANCE_M)


class SiteEngine:
    """
    Transform and scale for one set of calibration points, computed once.
    Build a new engine whenever the calibration points change.
    """

    def __init__(self, site: SiteData):
        self.site = site
        self.transform: Optional[AffineTransform] = solve_affine(site.calibration_points)
        self.scale: Optional[float] = meters_per_pixel(site.calibration_points)

    @property
    def calibrated(self) -> bool:
        return self.transform is not None

    def locate(self, geo: Optional[GeoCoordinate]) -> Optional[PixelCoordinate]:
        if geo is None:
            return None
        return project(geo, self.transform)

    def update(self, geo: Optional[GeoCoordinate],
               session: ProximitySession) -> Tuple[ProximityResult, ProximitySession]:
        return evaluate_proximity(self.locate(geo), self.site.spots, self.scale, session)

    def spot_distance(self, spot: PointOfInterest, geo: Optional[GeoCoordinate]) -> Optional[float]:
        """On-demand distance for a spot's detail view."""
        visitor = self.locate(geo)
        if visitor is None or self.scale is None:
            return None
        return pixel_distance(visitor, spot.pixel_position) * self.scale

    def check_in(self, spot: PointOfInterest, geo: Optional[GeoCoordinate],
                 session: ProximitySession) -> ProximitySession:
        if not spot.has_task:
            raise CheckInRejected(f"{spot.id} has no mission")
        if spot.id in session.completed:
            raise CheckInRejected(f"{spot.id} already completed")
        distance = self.spot_distance(spot, geo)
        if not is_check_in_eligible(spot, distance, session):
            raise CheckInRejected(f"Too far from {spot.id} to check in")
        logger.info("✅ Mission %s completed at %.1f m", spot.id, distance)
        return session.with_completed(spot.id)

"""
models.py

Plain data records of the site map: geographic / pixel coordinates,
calibration points, points of interest ("spots") and the SiteData bundle
that is persisted as JSON.

Persisted shapes:
    calibration point: {"id", "pixel_x", "pixel_y", "lat", "lng"}
    spot:              {"id", "name", "desc", "speech_text", "pixel_x",
                        "pixel_y", "has_mission", "type"}
"""

import math
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class GeoCoordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class PixelCoordinate:
    """Position in the map image's natural (unscaled, untranslated) pixel space."""
    x: float
    y: float


class SpotKind(Enum):
    FACILITY = "facility"
    SCENERY = "scenery"
    LODGING = "tent"


def _now_ms():
    return int(time.time() * 1000)


def _fresh_id(taken, make):
    # two admin clicks inside the same millisecond must still get distinct ids
    stamp = _now_ms()
    while make(stamp) in taken:
        stamp += 1
    return make(stamp)


def parse_number(value, name):
    """Finite float from a JSON value; ValueError for anything else (NaN, inf, bools, text)."""
    if isinstance(value, bool):
        raise ValueError(f"Non-numeric {name!r}: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Non-numeric {name!r}: {value!r}")
    if not math.isfinite(number):
        raise ValueError(f"Non-finite {name!r}: {value!r}")
    return number


def parse_flag(value, name, default=False):
    """JSON boolean; strings such as "false" are rejected rather than read as truthy."""
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValueError(f"{name!r} must be true or false, got {value!r}")
    return value


def _number(entry, *keys):
    # first key present wins, so "lng" and its alias "lon" can share a slot
    for key in keys:
        if key in entry and entry[key] is not None:
            try:
                return parse_number(entry[key], key)
            except ValueError as e:
                raise ValueError(f"{e} in record: {entry}")
    raise ValueError(f"Missing {keys[0]!r} in record: {entry}")


@dataclass(frozen=True)
class CalibrationPoint:
    id: int
    pixel_position: PixelCoordinate
    geo_position: GeoCoordinate

    @classmethod
    def from_record(cls, entry: dict) -> "CalibrationPoint":
        if not isinstance(entry, dict):
            raise ValueError(f"Calibration entry is not an object: {entry!r}")
        return cls(
            id=int(entry.get("id") or 0),
            pixel_position=PixelCoordinate(_number(entry, "pixel_x"), _number(entry, "pixel_y")),
            geo_position=GeoCoordinate(_number(entry, "lat"), _number(entry, "lng", "lon")),
        )

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "pixel_x": self.pixel_position.x,
            "pixel_y": self.pixel_position.y,
            "lat": self.geo_position.latitude,
            "lng": self.geo_position.longitude,
        }


@dataclass(frozen=True)
class PointOfInterest:
    id: str
    pixel_position: PixelCoordinate
    kind: SpotKind = SpotKind.FACILITY
    has_task: bool = False
    narration_text: Optional[str] = None
    name: str = ""
    description: str = ""

    @classmethod
    def from_record(cls, entry: dict) -> "PointOfInterest":
        if not isinstance(entry, dict):
            raise ValueError(f"Spot entry is not an object: {entry!r}")
        if not entry.get("id"):
            raise ValueError(f"Missing 'id' in spot record: {entry}")
        try:
            kind = SpotKind(entry.get("type") or SpotKind.FACILITY.value)
        except ValueError:
            raise ValueError(f"Unknown spot type {entry.get('type')!r} in record: {entry}")
        return cls(
            id=str(entry["id"]),
            pixel_position=PixelCoordinate(_number(entry, "pixel_x"), _number(entry, "pixel_y")),
            kind=kind,
            has_task=parse_flag(entry.get("has_mission"), "has_mission"),
            narration_text=entry.get("speech_text") or None,
            name=entry.get("name") or "",
            description=entry.get("desc") or "",
        )

    def to_record(self) -> dict:
        record = {
            "id": self.id,
            "name": self.name,
            "desc": self.description,
            "pixel_x": self.pixel_position.x,
            "pixel_y": self.pixel_position.y,
            "has_mission": self.has_task,
            "type": self.kind.value,
        }
        if self.narration_text:
            record["speech_text"] = self.narration_text
        return record


@dataclass(frozen=True)
class SiteData:
    """
    Everything an administrator configures for one site.  Both tuples keep
    insertion order: the solver uses the first three calibration points and
    the scale estimator the first two.
    """
    calibration_points: Tuple[CalibrationPoint, ...] = field(default_factory=tuple)
    spots: Tuple[PointOfInterest, ...] = field(default_factory=tuple)

    @classmethod
    def from_record(cls, data: dict) -> "SiteData":
        if not isinstance(data, dict):
            raise ValueError(f"Site data is not an object: {data!r}")
        return cls(
            calibration_points=tuple(CalibrationPoint.from_record(e) for e in data.get("calibration_points") or []),
            spots=tuple(PointOfInterest.from_record(e) for e in data.get("spots") or []),
        )

    def to_record(self) -> dict:
        return {
            "calibration_points": [p.to_record() for p in self.calibration_points],
            "spots": [s.to_record() for s in self.spots],
        }

    def find_spot(self, spot_id: str) -> Optional[PointOfInterest]:
        for spot in self.spots:
            if spot.id == spot_id:
                return spot
        return None

    # ─── Admin workflows ────────────────────────────────────────────────
    def add_calibration_point(self, pixel: PixelCoordinate, geo: GeoCoordinate) -> "SiteData":
        point_id = _fresh_id({p.id for p in self.calibration_points}, int)
        point = CalibrationPoint(id=point_id, pixel_position=pixel, geo_position=geo)
        return replace(self, calibration_points=self.calibration_points + (point,))

    def clear_calibration(self) -> "SiteData":
        return replace(self, calibration_points=())

    def add_spot(self, pixel: PixelCoordinate, name: str, description: str = "",
                 kind: SpotKind = SpotKind.FACILITY, has_task: bool = False,
                 narration_text: Optional[str] = None) -> "SiteData":
        spot = PointOfInterest(
            id=_fresh_id({s.id for s in self.spots}, lambda stamp: f"spot_{stamp}"),
            pixel_position=pixel,
            kind=kind,
            has_task=has_task,
            narration_text=narration_text or None,
            name=name,
            description=description,
        )
        return replace(self, spots=self.spots + (spot,))


def spot_pixels(spots: List[PointOfInterest]) -> List[Tuple[float, float]]:
    return [(s.pixel_position.x, s.pixel_position.y) for s in spots]

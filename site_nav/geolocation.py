"""
geolocation.py

Live position stream handling.  A stream yields either LiveVisitorFix
objects or GeoFixError values; errors never clear the last known position.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional, Union

from site_nav.models import GeoCoordinate, parse_number
from site_nav.proximity import NarrationEvent, ProximityResult, ProximitySession, SiteEngine

logger = logging.getLogger(__name__)


class GeoFixError(Enum):
    NONE = "none"
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class LiveVisitorFix:
    geo_position: GeoCoordinate
    accuracy_m: Optional[float] = None

    @classmethod
    def from_request(cls, data: dict) -> "LiveVisitorFix":
        """Build from {lat, lng|lon, accuracy}; ValueError when malformed."""
        lat = data.get("lat")
        lng = data.get("lng", data.get("lon"))
        if lat is None or lng is None:
            raise ValueError("lat and lng are required")
        accuracy = data.get("accuracy")
        return cls(GeoCoordinate(parse_number(lat, "lat"), parse_number(lng, "lng")),
                   None if accuracy is None else parse_number(accuracy, "accuracy"))


StreamEvent = Union[LiveVisitorFix, GeoFixError]


class ProximityMonitor:
    """
    Single consumer of a position stream.  Every fix is projected and
    evaluated against the site; narration events go to `narrate` (speech
    playback lives outside the engine).  After unsubscribe() no further
    evaluation happens.
    """

    def __init__(self, engine: SiteEngine,
                 narrate: Optional[Callable[[NarrationEvent], None]] = None,
                 session: Optional[ProximitySession] = None):
        self.engine = engine
        self.narrate = narrate
        self.session = session or ProximitySession()
        self.last_fix: Optional[LiveVisitorFix] = None
        self.error = GeoFixError.NONE
        self.result: Optional[ProximityResult] = None
        self.active = True

    def set_engine(self, engine: SiteEngine):
        """Swap in an engine built from new calibration data."""
        self.engine = engine
        if self.active and self.last_fix is not None:
            self.on_fix(self.last_fix)

    def on_fix(self, fix: LiveVisitorFix) -> Optional[ProximityResult]:
        if not self.active:
            return None
        self.last_fix = fix
        self.error = GeoFixError.NONE
        self.result, self.session = self.engine.update(fix.geo_position, self.session)
        if self.narrate is not None:
            for event in self.result.narrations:
                self.narrate(event)
        return self.result

    def on_error(self, error: GeoFixError):
        if not self.active:
            return
        logger.warning("📍 Location source error: %s", error.value)
        self.error = error

    def unsubscribe(self):
        self.active = False

    def run(self, stream: Iterable[StreamEvent]):
        """Consume `stream` until it ends or the monitor is unsubscribed."""
        for event in stream:
            if not self.active:
                break
            if isinstance(event, GeoFixError):
                self.on_error(event)
            else:
                self.on_fix(event)

import json

import pytest

from site_nav.models import CalibrationPoint, GeoCoordinate, PixelCoordinate, PointOfInterest, SiteData, SpotKind
from site_nav.storage import SiteStore

# 0.002° of latitude / longitude spans 800 pixels on the test map:
#   x = 100 + (lng - 121.1) * 400000
#   y = 900 - (lat - 24.65) * 400000
CALIBRATION_RECORDS = [
    {"id": 1, "pixel_x": 100.0, "pixel_y": 900.0, "lat": 24.650, "lng": 121.100},
    {"id": 2, "pixel_x": 100.0, "pixel_y": 100.0, "lat": 24.652, "lng": 121.100},
    {"id": 3, "pixel_x": 900.0, "pixel_y": 900.0, "lat": 24.650, "lng": 121.102},
]

SPOT_RECORDS = [
    {"id": "spot_lake", "name": "Lake", "desc": "Quiet lake", "pixel_x": 500.0, "pixel_y": 500.0,
     "has_mission": True, "type": "scenery", "speech_text": "Welcome to the lake."},
    {"id": "spot_tent", "name": "Tent A", "desc": "", "pixel_x": 800.0, "pixel_y": 200.0,
     "has_mission": False, "type": "tent"},
]


def make_point(pid, x, y, lat, lng):
    return CalibrationPoint(pid, PixelCoordinate(x, y), GeoCoordinate(lat, lng))


def make_spot(sid, x, y, narration=None, has_task=False):
    return PointOfInterest(sid, PixelCoordinate(x, y), SpotKind.FACILITY, has_task, narration, sid)


@pytest.fixture
def calibration_points():
    return [CalibrationPoint.from_record(r) for r in CALIBRATION_RECORDS]


@pytest.fixture
def site():
    return SiteData.from_record({"calibration_points": CALIBRATION_RECORDS, "spots": SPOT_RECORDS})


@pytest.fixture
def local_store(tmp_path):
    path = tmp_path / "site_data.json"
    path.write_text(json.dumps({"calibration_points": CALIBRATION_RECORDS, "spots": SPOT_RECORDS}))
    return SiteStore(remote_url=None, local_path=str(path))

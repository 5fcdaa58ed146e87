"""
Tests for record parsing and admin workflows.
"""

import pytest

from site_nav.models import (
    CalibrationPoint,
    GeoCoordinate,
    PixelCoordinate,
    PointOfInterest,
    SiteData,
    SpotKind,
)

from conftest import CALIBRATION_RECORDS, SPOT_RECORDS


class TestRecords:
    """Tests for from_record / to_record."""

    def test_site_round_trip(self):
        record = {"calibration_points": CALIBRATION_RECORDS, "spots": SPOT_RECORDS}
        assert SiteData.from_record(record).to_record() == record

    def test_spot_defaults(self):
        spot = PointOfInterest.from_record({"id": "s1", "pixel_x": 1, "pixel_y": 2})
        assert spot.kind is SpotKind.FACILITY
        assert spot.has_task is False
        assert spot.narration_text is None
        assert spot.name == ""
        assert spot.description == ""

    def test_tent_is_lodging(self):
        spot = PointOfInterest.from_record({"id": "s1", "pixel_x": 1, "pixel_y": 2, "type": "tent"})
        assert spot.kind is SpotKind.LODGING

    def test_calibration_lon_alias(self):
        point = CalibrationPoint.from_record({"pixel_x": 1, "pixel_y": 2, "lat": 3, "lon": 4})
        assert point.geo_position == GeoCoordinate(3.0, 4.0)
        assert point.id == 0

    @pytest.mark.parametrize("entry", [
        {"pixel_x": 1, "pixel_y": 2, "lat": 3},
        {"pixel_x": "left", "pixel_y": 2, "lat": 3, "lng": 4},
        "not a record",
    ])
    def test_malformed_calibration(self, entry):
        with pytest.raises(ValueError):
            CalibrationPoint.from_record(entry)

    @pytest.mark.parametrize("entry", [
        {"pixel_x": 1, "pixel_y": 2},
        {"id": "s1", "pixel_y": 2},
        {"id": "s1", "pixel_x": 1, "pixel_y": 2, "type": "castle"},
    ])
    def test_malformed_spot(self, entry):
        with pytest.raises(ValueError):
            PointOfInterest.from_record(entry)

    @pytest.mark.parametrize("lat", [float("nan"), "nan", "inf", float("-inf"), True])
    def test_non_finite_coordinates_rejected(self, lat):
        with pytest.raises(ValueError):
            CalibrationPoint.from_record({"pixel_x": 1, "pixel_y": 2, "lat": lat, "lng": 4})

    def test_non_finite_spot_pixel_rejected(self):
        with pytest.raises(ValueError):
            PointOfInterest.from_record({"id": "s1", "pixel_x": "nan", "pixel_y": 2})

    @pytest.mark.parametrize("flag", ["false", "true", 0, 1])
    def test_has_mission_must_be_boolean(self, flag):
        """A string such as "false" is not silently read as a mission."""
        with pytest.raises(ValueError):
            PointOfInterest.from_record({"id": "s1", "pixel_x": 1, "pixel_y": 2, "has_mission": flag})

    @pytest.mark.parametrize("flag", [True, False])
    def test_has_mission_boolean(self, flag):
        spot = PointOfInterest.from_record({"id": "s1", "pixel_x": 1, "pixel_y": 2, "has_mission": flag})
        assert spot.has_task is flag

    def test_missing_collections(self):
        assert SiteData.from_record({}) == SiteData()


class TestAdminWorkflows:
    """Tests for SiteData admin edits."""

    def test_add_calibration_point_appends(self, site):
        updated = site.add_calibration_point(PixelCoordinate(1.0, 2.0), GeoCoordinate(3.0, 4.0))
        assert len(updated.calibration_points) == 4
        assert updated.calibration_points[:3] == site.calibration_points
        assert len(site.calibration_points) == 3

    def test_calibration_ids_unique(self):
        site = SiteData()
        for _ in range(5):
            site = site.add_calibration_point(PixelCoordinate(0.0, 0.0), GeoCoordinate(0.0, 0.0))
        assert len({p.id for p in site.calibration_points}) == 5

    def test_clear_calibration(self, site):
        cleared = site.clear_calibration()
        assert cleared.calibration_points == ()
        assert cleared.spots == site.spots

    def test_add_spot(self, site):
        updated = site.add_spot(PixelCoordinate(5.0, 6.0), name="Well", kind=SpotKind.SCENERY,
                                has_task=True, narration_text="")
        spot = updated.spots[-1]
        assert spot.id.startswith("spot_")
        assert spot.narration_text is None
        assert updated.find_spot(spot.id) == spot

    def test_spot_ids_unique(self):
        site = SiteData()
        for _ in range(5):
            site = site.add_spot(PixelCoordinate(0.0, 0.0), name="x")
        assert len({s.id for s in site.spots}) == 5

    def test_find_missing_spot(self, site):
        assert site.find_spot("nope") is None

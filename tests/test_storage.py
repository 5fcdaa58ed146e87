"""
Tests for the remote / local site data store.
"""

import json

import pytest
import requests

from site_nav import storage
from site_nav.models import SiteData
from site_nav.storage import SiteStore

from conftest import CALIBRATION_RECORDS, SPOT_RECORDS

URL = "https://example.test/basket/site"
REMOTE = {"calibration_points": CALIBRATION_RECORDS, "spots": SPOT_RECORDS}


class FakeResponse:

    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def offline(*args, **kwargs):
    raise requests.ConnectionError("offline")


class TestLoad:
    """Tests for SiteStore.load."""

    def test_remote_mirrored_locally(self, tmp_path, monkeypatch):
        calls = []

        def fake_get(url, **kwargs):
            calls.append((url, kwargs))
            return FakeResponse(200, REMOTE)

        monkeypatch.setattr(storage.requests, "get", fake_get)
        path = tmp_path / "site.json"
        store = SiteStore(URL, str(path), timeout=3)

        site = store.load()
        assert len(site.calibration_points) == 3
        assert calls[0][0] == URL
        assert calls[0][1]["timeout"] == 3
        assert json.loads(path.read_text()) == REMOTE

    def test_network_error_falls_back_to_local(self, local_store, monkeypatch):
        monkeypatch.setattr(storage.requests, "get", offline)
        local_store.remote_url = URL
        assert len(local_store.load().spots) == 2

    def test_http_error_falls_back_to_local(self, local_store, monkeypatch):
        monkeypatch.setattr(storage.requests, "get", lambda url, **kw: FakeResponse(500))
        local_store.remote_url = URL
        assert len(local_store.load().spots) == 2

    def test_nothing_anywhere_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setattr(storage.requests, "get", offline)
        store = SiteStore(URL, str(tmp_path / "missing.json"))
        assert store.load() == SiteData()

    def test_corrupt_local_file(self, tmp_path):
        path = tmp_path / "site.json"
        path.write_text("{not json")
        assert SiteStore(None, str(path)).load() == SiteData()

    def test_partial_remote_merged_with_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setattr(storage.requests, "get",
                            lambda url, **kw: FakeResponse(200, {"spots": SPOT_RECORDS}))
        record = SiteStore(URL, str(tmp_path / "site.json")).load_record()
        assert record["calibration_points"] == []
        assert len(record["spots"]) == 2

    def test_malformed_record_raises(self, tmp_path):
        path = tmp_path / "site.json"
        path.write_text(json.dumps({"calibration_points": [{"pixel_x": 1}]}))
        with pytest.raises(ValueError):
            SiteStore(None, str(path)).load()


class TestSave:
    """Tests for SiteStore.save."""

    def test_saved_remotely(self, tmp_path, monkeypatch, site):
        posted = []

        def fake_post(url, json=None, **kwargs):
            posted.append(json)
            return FakeResponse(200, {})

        monkeypatch.setattr(storage.requests, "post", fake_post)
        path = tmp_path / "site.json"
        assert SiteStore(URL, str(path)).save(site) is True
        assert posted == [site.to_record()]
        assert json.loads(path.read_text()) == site.to_record()

    def test_offline_still_saves_locally(self, tmp_path, monkeypatch, site):
        monkeypatch.setattr(storage.requests, "post", offline)
        path = tmp_path / "site.json"
        assert SiteStore(URL, str(path)).save(site) is False
        assert SiteData.from_record(json.loads(path.read_text())) == site

    def test_remote_rejects(self, tmp_path, monkeypatch, site):
        monkeypatch.setattr(storage.requests, "post", lambda url, **kw: FakeResponse(403))
        assert SiteStore(URL, str(tmp_path / "site.json")).save(site) is False

    def test_no_remote_configured(self, tmp_path, site):
        path = tmp_path / "site.json"
        assert SiteStore(None, str(path)).save(site) is False
        assert path.exists()

"""
storage.py

Site data persistence: a remote JSON blob (Pantry basket) with a local JSON
file as backup.

    load():  remote → (mirror to local) ; on failure → local file ; → defaults
    save():  local file first, then remote.  True only if the remote save worked.
"""

import json
import logging
import os
from typing import Optional

import requests

from site_nav import config
from site_nav.models import SiteData

logger = logging.getLogger(__name__)

DEFAULT_DATA = {"calibration_points": [], "spots": []}


class SiteStore:

    def __init__(self, remote_url: Optional[str] = None,
                 local_path: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.remote_url = remote_url
        self.local_path = local_path or config.LOCAL_DATA_FILE
        self.timeout = config.REMOTE_TIMEOUT if timeout is None else timeout

    @classmethod
    def from_config(cls) -> "SiteStore":
        return cls(config.remote_url(), config.LOCAL_DATA_FILE, config.REMOTE_TIMEOUT)

    def _fetch_remote(self) -> Optional[dict]:
        if not self.remote_url:
            return None
        try:
            response = requests.get(
                self.remote_url,
                headers={"Content-Type": "application/json", "Cache-Control": "no-store"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Network error fetching site data (%s), checking local backup", e)
            return None
        if not response.ok:
            logger.warning("Remote store returned %s, checking local backup", response.status_code)
            return None
        try:
            data = response.json()
        except ValueError:
            logger.warning("Remote store returned invalid JSON, checking local backup")
            return None
        return data if isinstance(data, dict) and data else None

    def _read_local(self) -> Optional[dict]:
        if not os.path.exists(self.local_path):
            return None
        try:
            with open(self.local_path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Failed to read local site data %s: %s", self.local_path, e)
            return None
        return data if isinstance(data, dict) else None

    def _write_local(self, data: dict) -> bool:
        try:
            with open(self.local_path, "w") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error("Failed to write local site data %s: %s", self.local_path, e)
            return False
        return True

    def load_record(self) -> dict:
        data = self._fetch_remote()
        if data is not None:
            self._write_local(data)
        else:
            data = self._read_local()
        return {**DEFAULT_DATA, **(data or {})}

    def load(self) -> SiteData:
        """Raises ValueError when a stored record is malformed."""
        return SiteData.from_record(self.load_record())

    def save(self, site: SiteData) -> bool:
        data = site.to_record()
        self._write_local(data)

        if not self.remote_url:
            return False
        try:
            response = requests.post(self.remote_url, json=data, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Remote save network error (%s), data saved locally", e)
            return False
        if not response.ok:
            logger.warning("Remote save failed (%s), data saved locally", response.status_code)
            return False
        logger.info("Site data saved to remote store")
        return True

"""
Deployment settings.  Every value can be overridden from the environment.
"""

import os

MAP_IMAGE = os.getenv("SITE_NAV_MAP_IMAGE", "site_map.png")
LOCAL_DATA_FILE = os.getenv("SITE_NAV_DATA_FILE", "site_data.json")

# Remote JSON blob store (Pantry basket).  Disabled when no pantry id is set.
PANTRY_ID = os.getenv("SITE_NAV_PANTRY_ID")
BASKET_NAME = os.getenv("SITE_NAV_BASKET", "site_nav_data")
REMOTE_TIMEOUT = float(os.getenv("SITE_NAV_REMOTE_TIMEOUT", "10"))

SECRET_KEY = os.getenv("SITE_NAV_SECRET_KEY", "site_nav_session_key")
SESSION_HOURS = float(os.getenv("SITE_NAV_SESSION_HOURS", "1"))

HOST = os.getenv("SITE_NAV_HOST", "0.0.0.0")
PORT = int(os.getenv("SITE_NAV_PORT", "5000"))


def remote_url():
    if not PANTRY_ID:
        return None
    return f"https://getpantry.cloud/apiv1/pantry/{PANTRY_ID}/basket/{BASKET_NAME}"

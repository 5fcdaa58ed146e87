#!/usr/bin/env python3
import logging
import os
import threading
from datetime import timedelta

from flask import (
    Flask,
    abort,
    jsonify,
    request,
    send_from_directory,
    session
)

from site_nav import config
from site_nav.geolocation import GeoFixError, LiveVisitorFix
from site_nav.models import GeoCoordinate, PixelCoordinate, SpotKind, parse_flag, parse_number
from site_nav.proximity import CheckInRejected, ProximitySession, SiteEngine, is_check_in_eligible
from site_nav.storage import SiteStore

logger = logging.getLogger(__name__)

# Messages shown for each location-source state (presentation concern).
STATUS_MESSAGES = {
    GeoFixError.NONE: None,
    GeoFixError.PERMISSION_DENIED: "Location permission denied",
    GeoFixError.POSITION_UNAVAILABLE: "Unable to get a GPS signal",
    GeoFixError.TIMEOUT: "Location request timed out",
    GeoFixError.UNSUPPORTED: "This device does not support geolocation",
}


# ─── Per-visitor session helpers ─────────────────────────────────────────────
def _current_geo():
    gps = session.get("gps")
    if not gps:
        return None
    return GeoCoordinate(gps["lat"], gps["lng"])


def _proximity_session():
    return ProximitySession.from_dict(session.get("proximity"))


def _store_proximity_session(state):
    session["proximity"] = state.to_dict()


def _status_message():
    error = GeoFixError(session.get("geo_error", GeoFixError.NONE.value))
    return STATUS_MESSAGES[error]


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Expected a JSON object")
    return data


def _pixel_from(data):
    try:
        return PixelCoordinate(parse_number(data.get("pixel_x"), "pixel_x"),
                               parse_number(data.get("pixel_y"), "pixel_y"))
    except ValueError:
        abort(400, description="pixel_x and pixel_y are required finite numbers")


def _geo_from(data):
    try:
        return GeoCoordinate(parse_number(data.get("lat"), "lat"),
                             parse_number(data.get("lng", data.get("lon")), "lng"))
    except ValueError:
        abort(400, description="lat and lng are required finite numbers")
# ────────────────────────────────────────────────────────────────────────────


def create_app(store=None):
    app = Flask(__name__)
    app.secret_key = config.SECRET_KEY
    app.permanent_session_lifetime = timedelta(hours=config.SESSION_HOURS)

    # ─── Site data + engine, rebuilt after every admin change ───────────────
    store = store or SiteStore.from_config()
    state = {"engine": SiteEngine(store.load())}
    app.extensions["site_nav"] = state

    def engine():
        return state["engine"]

    # admin edits are read-modify-write on the shared site; the dev server is threaded
    lock = threading.Lock()

    def commit(edit):
        with lock:
            site = edit(state["engine"].site)
            state["engine"] = SiteEngine(site)
            saved = store.save(site)
        return site, "saved" if saved else "offline"
    # ────────────────────────────────────────────────────────────────────────

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify(error=e.description), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify(error=e.description), 404

    # ─── Site ───────────────────────────────────────────────────────────────
    @app.route("/api/site")
    def site_info():
        eng = engine()
        return jsonify(
            calibrated=eng.calibrated,
            transform=eng.transform.to_dict() if eng.transform else None,
            meters_per_pixel=eng.scale,
            **eng.site.to_record()
        )

    @app.route("/map_image")
    def map_image():
        path = os.path.abspath(config.MAP_IMAGE)
        return send_from_directory(os.path.dirname(path), os.path.basename(path))

    # ─── Location ───────────────────────────────────────────────────────────
    @app.route("/update_location", methods=["POST"])
    def update_location():
        try:
            fix = LiveVisitorFix.from_request(_json_body())
        except ValueError as e:
            abort(400, description=str(e))

        geo = fix.geo_position
        session.permanent = True
        session["gps"] = {"lat": geo.latitude, "lng": geo.longitude, "accuracy": fix.accuracy_m}
        session["geo_error"] = GeoFixError.NONE.value
        logger.info("📍 Received GPS coords: lat=%s, lng=%s", geo.latitude, geo.longitude)

        result, prox = engine().update(geo, _proximity_session())
        _store_proximity_session(prox)

        pixel = result.visitor_pixel
        return jsonify(
            x=pixel.x if pixel else None,
            y=pixel.y if pixel else None,
            accuracy=fix.accuracy_m,
            nearest_spot=result.nearest.id if result.nearest else None,
            nearest_distance=result.nearest_distance_m,
            narrations=[{"spot_id": n.spot_id, "text": n.text} for n in result.narrations],
        )

    @app.route("/location_error", methods=["POST"])
    def location_error():
        data = _json_body()
        try:
            error = GeoFixError(data.get("code"))
        except ValueError:
            abort(400, description=f"Unknown location error code: {data.get('code')!r}")
        session["geo_error"] = error.value
        logger.warning("📍 Location error reported: %s", error.value)
        return jsonify(status=STATUS_MESSAGES[error])

    @app.route("/get_location")
    def get_location():
        gps = session.get("gps")
        pixel = engine().locate(_current_geo())
        return jsonify(
            x=pixel.x if pixel else None,
            y=pixel.y if pixel else None,
            accuracy=gps.get("accuracy") if gps else None,
            status=_status_message(),
        )

    # ─── Admin: calibration ─────────────────────────────────────────────────
    @app.route("/calibration", methods=["POST"])
    def add_calibration_point():
        data = _json_body()
        pixel = _pixel_from(data)
        if data.get("use_current_location"):
            geo = _current_geo()
            if geo is None:
                abort(400, description="No current GPS position to bind")
        else:
            geo = _geo_from(data)

        site, status = commit(lambda current: current.add_calibration_point(pixel, geo))
        return jsonify(status=status, calibration_points=len(site.calibration_points),
                       calibrated=SiteEngine(site).calibrated)

    @app.route("/calibration", methods=["DELETE"])
    def clear_calibration():
        _, status = commit(lambda current: current.clear_calibration())
        return jsonify(status=status, calibration_points=0, calibrated=False)

    # ─── Spots ──────────────────────────────────────────────────────────────
    @app.route("/spots", methods=["GET"])
    def list_spots():
        return jsonify(spots=[s.to_record() for s in engine().site.spots])

    @app.route("/spots", methods=["POST"])
    def add_spot():
        data = _json_body()
        pixel = _pixel_from(data)
        name = (data.get("name") or "").strip()
        if not name:
            abort(400, description="name is required")
        try:
            kind = SpotKind(data.get("type") or SpotKind.FACILITY.value)
        except ValueError:
            abort(400, description=f"Unknown spot type: {data.get('type')!r}")
        try:
            has_task = parse_flag(data.get("has_mission"), "has_mission")
        except ValueError as e:
            abort(400, description=str(e))

        site, status = commit(lambda current: current.add_spot(
            pixel,
            name=name,
            description=data.get("desc") or "",
            kind=kind,
            has_task=has_task,
            narration_text=data.get("speech_text"),
        ))
        return jsonify(status=status, spot=site.spots[-1].to_record()), 201

    @app.route("/spots/<spot_id>")
    def spot_detail(spot_id):
        eng = engine()
        spot = eng.site.find_spot(spot_id)
        if spot is None:
            abort(404, description=f"Unknown spot: {spot_id}")
        prox = _proximity_session()
        distance = eng.spot_distance(spot, _current_geo())
        return jsonify(
            spot=spot.to_record(),
            distance=distance,
            completed=spot.id in prox.completed,
            can_check_in=is_check_in_eligible(spot, distance, prox),
        )

    @app.route("/spots/<spot_id>/checkin", methods=["POST"])
    def check_in(spot_id):
        eng = engine()
        spot = eng.site.find_spot(spot_id)
        if spot is None:
            abort(404, description=f"Unknown spot: {spot_id}")
        try:
            prox = eng.check_in(spot, _current_geo(), _proximity_session())
        except CheckInRejected as e:
            return jsonify(error=str(e)), 409
        _store_proximity_session(prox)
        return jsonify(completed=sorted(prox.completed))

    return app


# ─── Main ──────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    # Note: we bind to 0.0.0.0 so phones on the same LAN can connect
    create_app().run(host=config.HOST, port=config.PORT, debug=True)

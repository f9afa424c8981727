import os
import sys
import time
import threading
from datetime import datetime, timezone

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

from data_loader import load_data
from normalizer import normalize_programme_ids
from planner import STATUS_HARD_ERROR, STATUS_INVALID_COMBINATION, run_pipeline
from processing_context import HARD_ERROR, INVALID_PROGRAMME_COMBINATION
from requirements import MAX_PROGRAMMES, PROGRAMME_TYPES
from store import DataStore

load_dotenv()

app = Flask(__name__)

APP_VERSION = "1.0.0"

# ── Paths ─────────────────────────────────────────────────────────────────────
BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)
_DEFAULT_DATA_PATH = os.path.join(PROJECT_ROOT, "data")
_env_data_path = os.environ.get("DATA_PATH")
if not _env_data_path:
    DATA_PATH = _DEFAULT_DATA_PATH
elif not os.path.isabs(_env_data_path):
    DATA_PATH = os.path.join(PROJECT_ROOT, _env_data_path)
else:
    DATA_PATH = _env_data_path
_data_lock = threading.Lock()
_data_mtime = None


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return default


_SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0, minimum=0.0)
_MAX_PROGRAMMES = _env_int("MAX_PROGRAMMES", MAX_PROGRAMMES, minimum=1)


def _data_file_mtime(path: str):
    try:
        if os.path.isdir(path):
            mtimes = [
                os.path.getmtime(os.path.join(path, f))
                for f in os.listdir(path)
                if f.endswith(".csv")
            ]
            return max(mtimes) if mtimes else None
        return os.path.getmtime(path)
    except OSError:
        return None


# ── Startup data load ──────────────────────────────────────────────────────────
try:
    _data = load_data(DATA_PATH)
    _data_mtime = _data_file_mtime(DATA_PATH)
    print(f"[OK] Loaded {len(_data['catalog_codes'])} modules from {DATA_PATH}")
except FileNotFoundError:
    # Stale DATA_PATH env var: fall back to the bundled data directory.
    if DATA_PATH != _DEFAULT_DATA_PATH and os.path.exists(_DEFAULT_DATA_PATH):
        print(
            f"[WARN] DATA_PATH not found ({DATA_PATH}); "
            f"falling back to default data ({_DEFAULT_DATA_PATH}).",
            file=sys.stderr,
        )
        DATA_PATH = _DEFAULT_DATA_PATH
        _data = load_data(DATA_PATH)
        _data_mtime = _data_file_mtime(DATA_PATH)
        print(f"[OK] Loaded {len(_data['catalog_codes'])} modules from {DATA_PATH}")
    else:
        print(f"[FATAL] Data file not found: {DATA_PATH}", file=sys.stderr)
        sys.exit(1)
except Exception as exc:
    print(f"[FATAL] Failed to load data: {exc}", file=sys.stderr)
    sys.exit(1)

_store = DataStore(_data)


def _reload_data_if_changed(force: bool = False) -> bool:
    """
    Hot-reload the dataset when DATA_PATH changes on disk.

    Returns True when a reload occurred, else False.
    """
    global _data, _store, _data_mtime

    candidate_mtime = _data_file_mtime(DATA_PATH)
    if not force:
        if candidate_mtime is None:
            return False
        if _data_mtime is not None and candidate_mtime <= _data_mtime:
            return False

    with _data_lock:
        latest_mtime = _data_file_mtime(DATA_PATH)
        if not force:
            if latest_mtime is None:
                return False
            if _data_mtime is not None and latest_mtime <= _data_mtime:
                return False

        try:
            new_data = load_data(DATA_PATH)
            new_store = DataStore(new_data)
        except Exception as exc:
            print(f"[WARN] Data reload failed; keeping previous dataset: {exc}", file=sys.stderr)
            return False

        _data = new_data
        _store = new_store
        _data_mtime = latest_mtime if latest_mtime is not None else candidate_mtime
        print(f"[OK] Reloaded {len(new_data['catalog_codes'])} modules from {DATA_PATH}")
        return True


def _refresh_data_if_needed() -> None:
    try:
        _reload_data_if_changed()
    except Exception as exc:
        print(f"[WARN] Data reload check failed: {exc}", file=sys.stderr)


# -- Security headers ------------------------------------------------------
@app.before_request
def _start_request_timer():
    g._request_start_time = time.perf_counter()


@app.after_request
def _add_security_headers(response):
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "same-origin"

    started = getattr(g, "_request_start_time", None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms >= _SLOW_REQUEST_LOG_MS:
            endpoint = request.endpoint or "unknown"
            print(
                f"[SLOW] {request.method} {request.path} "
                f"endpoint={endpoint} status={response.status_code} duration_ms={duration_ms:.1f}"
            )
    return response


# ── 500 handler ────────────────────────────────────────────────────────────────
@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return jsonify({"success": False, "error": e.name, "message": e.description}), e.code
    print(f"[WARN] Unhandled error on {request.path}: {e}", file=sys.stderr)
    return jsonify({
        "success": False,
        "error": "INTERNAL_SERVER_ERROR",
        "message": "An unexpected server error occurred.",
    }), 500


# -- Health endpoint --------------------------------------------------------
@app.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "version": APP_VERSION,
    })


# -- Programme catalog -----------------------------------------------------
@app.route("/programmes", methods=["GET"])
def get_programmes():
    """Programme catalog grouped by type for the programme selector."""
    _refresh_data_if_needed()
    grouped: dict[str, list[dict]] = {kind: [] for kind in PROGRAMME_TYPES}
    for programme in sorted(_store.get_programmes(), key=lambda p: p["id"]):
        kind = programme.get("type")
        if kind not in grouped:
            continue
        grouped[kind].append({
            "id": programme["id"],
            "name": programme["name"],
            "required_units": programme.get("required_units"),
            "double_count_cap": programme.get("double_count_cap"),
            "honours": bool(programme.get("honours")),
        })
    return jsonify({
        "majors": grouped["major"],
        "second_majors": grouped["secondMajor"],
        "minors": grouped["minor"],
    })


# -- Input validation ------------------------------------------------------
def _validate_generate_body(body):
    """Returns (programme_ids, None) on success, (None, (response, status)) on invalid input."""
    if body is None or not isinstance(body, dict):
        return None, _request_error("INVALID_REQUEST", "Request body must be a JSON object.", {"received": None})

    raw = body.get("programme_ids", body.get("programmeIds"))
    if not isinstance(raw, list) or len(raw) == 0:
        return None, _request_error(
            "INVALID_REQUEST",
            "programme_ids must be a non-empty array",
            {"received": raw},
        )

    programme_ids, rejected = normalize_programme_ids(raw)
    if rejected or not programme_ids:
        return None, _request_error(
            "INVALID_REQUEST",
            "programme_ids must contain non-empty strings only",
            {"rejected": [str(r) for r in rejected]},
        )

    if len(programme_ids) > _MAX_PROGRAMMES:
        return None, _request_error(
            "TOO_MANY_PROGRAMMES",
            f"Maximum {_MAX_PROGRAMMES} programmes allowed",
            {"count": len(programme_ids), "max": _MAX_PROGRAMMES},
        )
    return programme_ids, None


def _request_error(code: str, message: str, details: dict):
    return jsonify({
        "success": False,
        "error": code,
        "message": message,
        "details": details,
    }), 400


@app.route("/academic-plan/generate", methods=["POST"])
def generate_academic_plan():
    _refresh_data_if_needed()
    programme_ids, error_response = _validate_generate_body(request.get_json(silent=True))
    if error_response is not None:
        return error_response

    print(f"[INFO] Starting plan generation for programmes: {', '.join(programme_ids)}")
    result = run_pipeline(_store, programme_ids)
    errors = result["global_validation"]["errors"]

    if result["status"] == STATUS_HARD_ERROR:
        return jsonify({
            "success": False,
            "error": "INTERNAL_SERVER_ERROR",
            "message": "Academic plan generation failed",
            "conflicts": [e for e in errors if e["type"] == HARD_ERROR],
            "suggestion": "Please wait and try again later or contact support",
        }), 500

    if result["status"] == STATUS_INVALID_COMBINATION:
        return jsonify({
            "success": False,
            "error": "INVALID_PROGRAMME_COMBINATION",
            "message": "Selected programmes combination is invalid",
            "conflicts": [e for e in errors if e["type"] == INVALID_PROGRAMME_COMBINATION],
            "suggestion": "Please select a different combination of programmes",
        }), 422

    return jsonify({
        "success": True,
        "data": {
            "programmes": result["programmes"],
            "lookup_maps": result["lookup_maps"],
            "global_validation": result["global_validation"],
        },
        "metadata": {
            "programme_count": len(result["programmes"]),
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "processing_stats": result["stats"],
        },
    })


# -- Canonical API routes ----------------------------------------------------
app.add_url_rule("/api/health", endpoint="api_health", view_func=health_endpoint, methods=["GET"])
app.add_url_rule("/api/programmes", endpoint="api_programmes", view_func=get_programmes, methods=["GET"])
app.add_url_rule(
    "/api/academic-plan/generate",
    endpoint="api_generate_academic_plan",
    view_func=generate_academic_plan,
    methods=["POST"],
)


# -- API catch-all (404 for unknown /api/* routes) -------------------
@app.route("/api/<path:rest>", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
def api_catch_all(rest):
    return jsonify({"error": f"/api/{rest} not found"}), 404


if __name__ == "__main__":
    port = _env_int("PORT", 5000)
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)

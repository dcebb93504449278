# --- bazaar/utils/api.py ---
from datetime import datetime, timezone

from flask import jsonify


def _now_human():
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def api_ok(message, data=None):
    return {
        "status": True,
        "message": message,
        "data": data if data is not None else {},
        "server_time": _now_human(),
    }


def api_error(message, data=None):
    return {
        "status": False,
        "message": message,
        "data": data if data is not None else {},
        "server_time": _now_human(),
    }


# ---- standard API response format ------------------------------------------
def ok(msg, data=None, status=200):
    r = jsonify(api_ok(msg, data)); r.status_code = status; return r


def err(msg, status=400, data=None):
    r = jsonify(api_error(msg, data)); r.status_code = status; return r

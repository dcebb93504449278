# ------- bazaar/utils/decorators.py -------
from functools import wraps

from flask import request
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from pydantic import BaseModel

from ..extensions import db
from ..model.user import User
from ..utils.api import err

ROLE_LEVEL = {"user": 1, "vendor": 2, "admin": 3}


def current_user_id() -> int | None:
    verify_jwt_in_request()
    uid = get_jwt_identity()
    try:
        return int(uid)
    except (TypeError, ValueError):
        return None


def _current_user():
    uid = current_user_id()
    return db.session.get(User, uid) if uid else None


def login_required(fn):
    """Injects the authenticated User as the first positional argument."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        u = _current_user()
        if not u:
            return err("Unauthorized", 401)
        return fn(u, *args, **kwargs)
    return wrapper


def role_at_least(min_role: str, message: str | None = None):  # admin > vendor > user
    min_level = ROLE_LEVEL[min_role]
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            u = _current_user()
            if not u:
                return err("Unauthorized", 401)
            if ROLE_LEVEL.get(u.role, 0) < min_level:
                return err(message or "Forbidden", 403)
            return fn(u, *args, **kwargs)
        return wrapper
    return decorator


def parse_body(schema: type[BaseModel]) -> BaseModel:
    # pydantic.ValidationError is turned into a 422 by the app error handler
    data = request.get_json(silent=True) or {}
    return schema.model_validate(data)

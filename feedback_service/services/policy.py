from functools import wraps
from flask import g, jsonify
from flask_login import current_user
from .access import Principal

def current_principal() -> Principal:
    """Principal for the logged-in user; only valid inside a require_principal view."""
    return g.principal

def require_principal(fn):
    """
    Authentication gate for the JSON API. Role and ownership decisions are
    not made here; they belong to the access guards the lifecycle calls.
    """
    @wraps(fn)
    def _wrap(*args, **kwargs):
        if not getattr(current_user, "is_authenticated", False):
            return _unauthorized()
        if not getattr(current_user, "is_active", False):
            return _unauthorized()
        g.principal = Principal.from_user(current_user)
        return fn(*args, **kwargs)
    return _wrap

def _unauthorized():
    return jsonify({"error": "unauthorized", "code": 401}), 401

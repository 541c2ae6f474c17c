from __future__ import annotations

from functools import wraps

from flask import g, jsonify, request

from rizqdaan.extensions import db
from rizqdaan.models import User
from rizqdaan.utils.jwt_utils import decode_token, get_bearer_token
from rizqdaan.utils.observability import get_request_id


def _denied(code: str, message: str, status: int):
    payload = {"ok": False, "error": code, "message": message}
    rid = get_request_id()
    if rid:
        payload["trace_id"] = rid
    return jsonify(payload), status


def current_user() -> User | None:
    token = get_bearer_token(request.headers.get("Authorization", ""))
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    try:
        user_id = int(payload.get("sub"))
    except Exception:
        return None
    user = db.session.get(User, user_id)
    if user is None or user.is_banned:
        return None
    g.auth_user_id = user.id
    g.auth_role = user.role
    return user


def login_required(fn):
    @wraps(fn)
    def _wrapped(*args, **kwargs):
        user = current_user()
        if user is None:
            return _denied("UNAUTHORIZED", "Unauthorized", 401)
        return fn(user, *args, **kwargs)

    return _wrapped


def admin_required(fn):
    @wraps(fn)
    def _wrapped(*args, **kwargs):
        user = current_user()
        if user is None:
            return _denied("UNAUTHORIZED", "Unauthorized", 401)
        if not user.is_admin:
            return _denied("FORBIDDEN", "Admin only", 403)
        return fn(user, *args, **kwargs)

    return _wrapped

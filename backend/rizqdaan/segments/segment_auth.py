from flask import Blueprint, jsonify, request
from sqlalchemy.exc import IntegrityError

from rizqdaan.extensions import db
from rizqdaan.models import User
from rizqdaan.services import get_services
from rizqdaan.utils.auth import login_required
from rizqdaan.utils.events import log_event
from rizqdaan.utils.jwt_utils import create_access_token

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/auth")


def _user_payload(user: User) -> dict:
    return get_services().profiles.user_view(user.id)


@auth_bp.post("/signup")
def signup():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not name or not email or "@" not in email:
        return jsonify({"ok": False, "error": "INVALID_INPUT", "message": "Name and a valid email are required"}), 400
    if len(password) < 6:
        return jsonify({"ok": False, "error": "WEAK_PASSWORD", "message": "Password must be at least 6 characters"}), 400
    if User.query.filter_by(email=email).first():
        return jsonify({"ok": False, "error": "EMAIL_TAKEN", "message": "Email already in use"}), 409

    services = get_services()
    user = User(
        name=name,
        email=email,
        phone=(data.get("phone") or "").strip() or None,
        shop_name=(data.get("shop_name") or "").strip() or None,
        role="vendor",
        referral_code=services.referrals.unique_code(name),
    )
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"ok": False, "error": "EMAIL_TAKEN", "message": "Email already in use"}), 409

    referral = None
    code = (data.get("referral_code") or "").strip()
    if code:
        referral = services.referrals.apply_signup(user.to_doc(), code)
    log_event("user_signup", actor_user_id=user.id, subject_type="user", subject_id=user.id, metadata={"referral": bool(referral and referral.get("ok"))})

    return jsonify({
        "ok": True,
        "token": create_access_token(user.id),
        "user": _user_payload(user),
        "referral": referral,
    }), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    user = User.query.filter_by(email=email).first() if email else None
    if user is None or not user.check_password(password):
        return jsonify({"ok": False, "error": "INVALID_CREDENTIALS", "message": "Invalid email or password"}), 401
    if user.is_banned:
        return jsonify({"ok": False, "error": "ACCOUNT_BANNED", "message": "Account suspended"}), 403
    return jsonify({"ok": True, "token": create_access_token(user.id), "user": _user_payload(user)}), 200


@auth_bp.get("/me")
@login_required
def me(user):
    return jsonify({"ok": True, "user": _user_payload(user)}), 200

from flask import Blueprint, jsonify, request

from rizqdaan.services import get_services
from rizqdaan.utils.auth import admin_required, login_required

referral_bp = Blueprint("referral_bp", __name__, url_prefix="/api")


@referral_bp.get("/referral/code")
@login_required
def referral_code(user):
    code = get_services().referrals.ensure_code(user.id)
    return jsonify({"ok": bool(code), "referral_code": code}), 200


@referral_bp.get("/referral/stats")
@login_required
def referral_stats(user):
    return jsonify({"ok": True, **get_services().referrals.stats(user.id)}), 200


@referral_bp.get("/admin/referrals/settings")
@admin_required
def get_referral_settings(admin):
    return jsonify({"ok": True, "settings": get_services().settings.referrals()}), 200


@referral_bp.put("/admin/referrals/settings")
@admin_required
def save_referral_settings(admin):
    data = request.get_json(silent=True) or {}
    return jsonify(get_services().settings.save("referrals", data)), 200

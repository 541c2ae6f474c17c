from flask import Blueprint, jsonify, request

from rizqdaan.services import get_services
from rizqdaan.utils.auth import admin_required, login_required

campaigns_bp = Blueprint("campaigns_bp", __name__, url_prefix="/api/campaigns")
admin_campaigns_bp = Blueprint("admin_campaigns_bp", __name__, url_prefix="/api/admin/campaigns")


def _status_code(result: dict) -> int:
    return 200 if result.get("ok") else 503


# vendor

@campaigns_bp.get("")
@login_required
def my_campaigns(user):
    campaigns = get_services().campaigns
    return jsonify({"ok": True, "items": campaigns.list(vendor_id=user.id), "stats": campaigns.vendor_stats(user.id)}), 200


@campaigns_bp.get("/pricing")
@login_required
def pricing(user):
    return jsonify({"ok": True, "pricing": get_services().settings.ad_pricing()}), 200


@campaigns_bp.post("")
@login_required
def create_campaign(user):
    data = request.get_json(silent=True) or {}
    result = get_services().campaigns.create(
        user.id,
        listing_id=data.get("listing_id"),
        type=(data.get("type") or "").strip(),
        duration_days=data.get("duration_days"),
        goal=data.get("goal") or "traffic",
        target_location=data.get("target_location") or "",
        cached_wallet=user.wallet_dict(),
    )
    return jsonify(result), 201


@campaigns_bp.post("/<campaign_id>/pause")
@login_required
def toggle_pause(user, campaign_id):
    result = get_services().campaigns.toggle_pause(campaign_id, user.id)
    return jsonify(result), _status_code(result)


@campaigns_bp.post("/<campaign_id>/end")
@login_required
def end_campaign(user, campaign_id):
    result = get_services().campaigns.end(campaign_id, user.id)
    return jsonify(result), _status_code(result)


# admin

@admin_campaigns_bp.get("")
@admin_required
def admin_list(admin):
    campaigns = get_services().campaigns
    view = (request.args.get("view") or "queue").strip().lower()
    if view == "live":
        items = campaigns.live()
    elif view == "history":
        items = campaigns.history()
    elif view == "all":
        items = campaigns.list()
    else:
        items = campaigns.queue()
    return jsonify({"ok": True, "view": view, "items": items}), 200


@admin_campaigns_bp.get("/stats")
@admin_required
def admin_stats(admin):
    return jsonify({"ok": True, "stats": get_services().campaigns.revenue_stats()}), 200


@admin_campaigns_bp.post("/<campaign_id>/approve")
@admin_required
def approve(admin, campaign_id):
    result = get_services().campaigns.approve(campaign_id, admin_id=admin.id)
    return jsonify(result), _status_code(result)


@admin_campaigns_bp.post("/<campaign_id>/reject")
@admin_required
def reject(admin, campaign_id):
    data = request.get_json(silent=True) or {}
    result = get_services().campaigns.reject(campaign_id, data.get("reason") or "", admin_id=admin.id)
    return jsonify(result), _status_code(result)


@admin_campaigns_bp.post("/<campaign_id>/stop")
@admin_required
def stop(admin, campaign_id):
    data = request.get_json(silent=True) or {}
    result = get_services().campaigns.stop(campaign_id, data.get("listing_id"), admin_id=admin.id)
    return jsonify(result), _status_code(result)


@admin_campaigns_bp.post("/<campaign_id>/priority")
@admin_required
def toggle_priority(admin, campaign_id):
    result = get_services().campaigns.toggle_priority(campaign_id, admin_id=admin.id)
    return jsonify(result), _status_code(result)


@admin_campaigns_bp.get("/pricing")
@admin_required
def get_pricing(admin):
    return jsonify({"ok": True, "pricing": get_services().settings.ad_pricing()}), 200


@admin_campaigns_bp.put("/pricing")
@admin_required
def save_pricing(admin):
    data = request.get_json(silent=True) or {}
    return jsonify(get_services().settings.save("ad_pricing", data)), 200

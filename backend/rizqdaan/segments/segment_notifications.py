from flask import Blueprint, jsonify, request

from rizqdaan.services import get_services
from rizqdaan.utils.auth import login_required

notifications_bp = Blueprint("notifications_bp", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@login_required
def list_notifications(user):
    notifier = get_services().notifier
    try:
        limit = int(request.args.get("limit") or 80)
    except Exception:
        limit = 80
    result = notifier.list_for(user.id, limit=limit)
    if not result.ok:
        return jsonify({"ok": False, "error": result.error_code, "message": result.message, "items": []}), 503
    return jsonify({"ok": True, "items": result.value, "unread": sum(1 for n in result.value if not n.get("is_read"))}), 200


@notifications_bp.post("/<int:notification_id>/read")
@login_required
def mark_read(user, notification_id):
    result = get_services().notifier.mark_read(user.id, notification_id)
    if not result.ok:
        return jsonify(result.to_dict()), 503
    return jsonify({"ok": True, "notification": result.value}), 200


@notifications_bp.post("/read-all")
@login_required
def mark_all_read(user):
    result = get_services().notifier.mark_all_read(user.id)
    if not result.ok:
        return jsonify(result.to_dict()), 503
    return jsonify({"ok": True, "updated": result.value}), 200

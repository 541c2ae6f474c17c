from flask import Blueprint, jsonify, request

from rizqdaan.services import get_services
from rizqdaan.utils.auth import admin_required

admin_finance_bp = Blueprint("admin_finance_bp", __name__, url_prefix="/api/admin/finance")

_COLLECTIONS = {"deposits": "deposits", "withdrawals": "withdrawals"}


def _collection_or_404(kind: str):
    return _COLLECTIONS.get((kind or "").strip().lower())


@admin_finance_bp.get("/<kind>")
@admin_required
def list_requests(admin, kind):
    collection = _collection_or_404(kind)
    if collection is None:
        return jsonify({"ok": False, "error": "NOT_FOUND", "message": "Not found"}), 404
    status = (request.args.get("status") or "pending").strip().lower()
    rows = get_services().finance.list_requests(collection, status=None if status == "all" else status)
    return jsonify({"ok": True, "items": rows}), 200


@admin_finance_bp.post("/<kind>/<request_id>/<action>")
@admin_required
def resolve_request(admin, kind, request_id, action):
    collection = _collection_or_404(kind)
    if collection is None or action not in ("approve", "reject"):
        return jsonify({"ok": False, "error": "NOT_FOUND", "message": "Not found"}), 404
    data = request.get_json(silent=True) or {}
    finance = get_services().finance
    resolve = finance.resolve_deposit if collection == "deposits" else finance.resolve_withdrawal
    result = resolve(request_id, action, admin_id=admin.id, admin_note=data.get("admin_note"))
    return jsonify(result), 200 if result.get("ok") else 503


@admin_finance_bp.post("/users/<int:user_id>/adjust")
@admin_required
def adjust_funds(admin, user_id):
    data = request.get_json(silent=True) or {}
    result = get_services().finance.adjust_funds(
        user_id,
        data.get("type") or "",
        data.get("amount"),
        reason=data.get("reason"),
        admin_id=admin.id,
    )
    return jsonify(result), 200 if result.get("ok") else 503


@admin_finance_bp.get("/payment-info")
@admin_required
def get_payment_info(admin):
    return jsonify({"ok": True, "payment_info": get_services().settings.payment_info()}), 200


@admin_finance_bp.put("/payment-info")
@admin_required
def save_payment_info(admin):
    data = request.get_json(silent=True) or {}
    return jsonify(get_services().settings.save("payment_info", data)), 200

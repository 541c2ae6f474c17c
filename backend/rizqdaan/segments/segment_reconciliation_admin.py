from __future__ import annotations

from flask import Blueprint, jsonify, request

from rizqdaan.services import get_services
from rizqdaan.services.reconciliation_service import (
    mirror_drift_report,
    push_mirror_to_canonical,
    recompute_wallet_balances,
)
from rizqdaan.utils.auth import admin_required
from rizqdaan.utils.events import recent_events

recon_bp = Blueprint("recon_bp", __name__, url_prefix="/api/admin/reconcile")


@recon_bp.post("")
@admin_required
def run_recon(admin):
    services = get_services()
    data = request.get_json(silent=True) or {}
    mode = (data.get("mode") or "mirror").strip().lower()
    if mode == "wallet_ledger":
        summary = recompute_wallet_balances(services.store)
        return jsonify({"ok": bool(summary.get("ok")), "mode": mode, "summary": summary}), 200
    summary = mirror_drift_report(services.store, services.mirror)
    return jsonify({"ok": True, "mode": "mirror", "summary": summary}), 200


@recon_bp.post("/push")
@admin_required
def push_mirror(admin):
    services = get_services()
    summary = push_mirror_to_canonical(services.store, services.mirror, actor_user_id=admin.id)
    return jsonify(summary), 200 if summary.get("ok") else 207


@recon_bp.get("/events")
@admin_required
def audit_events(admin):
    try:
        limit = int(request.args.get("limit") or 50)
    except ValueError:
        limit = 50
    items = recent_events(
        subject_type=(request.args.get("subject_type") or "").strip() or None,
        subject_id=(request.args.get("subject_id") or "").strip() or None,
        mode=(request.args.get("mode") or "").strip() or None,
        limit=limit,
    )
    return jsonify({"ok": True, "items": items}), 200

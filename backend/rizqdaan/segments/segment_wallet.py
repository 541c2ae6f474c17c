from flask import Blueprint, jsonify, request

from rizqdaan.services import get_services
from rizqdaan.utils.auth import login_required

wallet_bp = Blueprint("wallet_bp", __name__, url_prefix="/api/wallet")


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


@wallet_bp.get("")
@login_required
def wallet_summary(user):
    ledger = get_services().ledger
    return jsonify({"ok": True, "wallet": ledger.wallet_view(user.id)}), 200


@wallet_bp.get("/history")
@login_required
def wallet_history(user):
    services = get_services()
    history = services.ledger.history_view(user.id)
    overrides = {}
    for kind, label in (("deposits", "deposit"), ("withdrawals", "withdrawal")):
        for row in services.finance.list_requests(kind, user_id=user.id):
            overrides[f"{label}:{row['id']}"] = row.get("status")
    return jsonify({"ok": True, "items": history, "requests": overrides}), 200


@wallet_bp.get("/payment-info")
@login_required
def payment_info(user):
    return jsonify({"ok": True, "payment_info": get_services().settings.payment_info()}), 200


@wallet_bp.get("/deposits")
@login_required
def my_deposits(user):
    rows = get_services().finance.list_requests("deposits", user_id=user.id)
    return jsonify({"ok": True, "items": rows}), 200


@wallet_bp.post("/deposits")
@login_required
def submit_deposit(user):
    data = _payload()
    result = get_services().finance.submit_deposit(
        user,
        data.get("amount"),
        transaction_id=data.get("transaction_id") or "",
        sender_phone=data.get("sender_phone") or "",
        method=data.get("method"),
        screenshot=request.files.get("screenshot"),
    )
    return jsonify(result), 201 if result.get("ok") else 503


@wallet_bp.get("/withdrawals")
@login_required
def my_withdrawals(user):
    rows = get_services().finance.list_requests("withdrawals", user_id=user.id)
    return jsonify({"ok": True, "items": rows}), 200


@wallet_bp.post("/withdrawals")
@login_required
def submit_withdrawal(user):
    data = _payload()
    result = get_services().finance.submit_withdrawal(
        user,
        data.get("amount"),
        method=data.get("method") or "",
        account_details=data.get("account_details") or "",
    )
    return jsonify(result), 201 if result.get("ok") else 503

from __future__ import annotations

import logging
from datetime import datetime

from rizqdaan.store import mirror as mirror_keys
from rizqdaan.store.documents import ArrayUnion
from rizqdaan.store.merge import WALLET_FIELDS, merge_wallet, wallet_differs
from rizqdaan.services.ledger import signed_amount
from rizqdaan.utils.events import log_event

logger = logging.getLogger(__name__)


def _user_ids(mirror) -> list[str]:
    ids = set(mirror.read_map(mirror_keys.WALLETS)) | set(mirror.read_map(mirror_keys.HISTORY))
    return sorted(ids, key=lambda x: (len(x), x))


def mirror_drift_report(store, mirror) -> dict:
    """Users whose mirror wallet or local-only history differs from canonical state."""
    drift_items = []
    unreadable = []
    for user_id in _user_ids(mirror):
        found = store.get("users", user_id)
        if not found.ok:
            unreadable.append({"user_id": user_id, "error": found.error_code})
            continue
        canonical_wallet = found.value.get("wallet") or {}
        override = mirror.wallet_override(user_id)
        canonical_ids = {tx.get("id") for tx in found.value.get("wallet_history") or []}
        local_only = [tx for tx in mirror.local_history(user_id) if tx.get("id") not in canonical_ids]
        if not wallet_differs(canonical_wallet, override) and not local_only:
            continue
        merged = merge_wallet(canonical_wallet, override)
        drift_items.append(
            {
                "user_id": int(user_id),
                "canonical_wallet": merge_wallet(canonical_wallet, None),
                "mirror_wallet": merged,
                "balance_drift": round(merged["balance"] - float(canonical_wallet.get("balance") or 0), 4),
                "local_only_transactions": [tx.get("id") for tx in local_only],
            }
        )
    return {
        "ok": True,
        "scope": "mirror_wallets",
        "user_count": len(_user_ids(mirror)),
        "drift_count": len(drift_items),
        "drift_items": drift_items,
        "unreadable": unreadable,
        "generated_at": datetime.utcnow().isoformat(),
    }


def recompute_wallet_balances(store, *, tolerance: float = 0.01) -> dict:
    """Compare canonical balances with the sum of signed completed transactions."""
    users = store.query("users")
    if not users.ok:
        return {"ok": False, "error": users.error_code, "message": users.message}
    drift_items = []
    for user in users.value:
        computed = 0.0
        for tx in user.get("wallet_history") or []:
            if tx.get("status") != "completed":
                continue
            computed += signed_amount(tx.get("type"), float(tx.get("amount") or 0))
        current = float((user.get("wallet") or {}).get("balance") or 0)
        drift = round(current - computed, 4)
        if abs(drift) > float(tolerance):
            drift_items.append(
                {
                    "user_id": int(user["id"]),
                    "stored_balance": current,
                    "computed_balance": round(computed, 4),
                    "drift": drift,
                }
            )
    return {
        "ok": True,
        "scope": "wallet_ledger",
        "user_count": len(users.value),
        "drift_count": len(drift_items),
        "drift_items": drift_items,
        "generated_at": datetime.utcnow().isoformat(),
    }


def push_mirror_to_canonical(store, mirror, *, actor_user_id: int | None = None) -> dict:
    """Write divergent mirror wallets and local-only history back; prune what landed."""
    pushed, failed = [], []
    for user_id in _user_ids(mirror):
        found = store.get("users", user_id)
        if not found.ok:
            failed.append({"user_id": user_id, "error": found.error_code})
            continue
        canonical_wallet = found.value.get("wallet") or {}
        override = mirror.wallet_override(user_id)
        canonical_ids = {tx.get("id") for tx in found.value.get("wallet_history") or []}
        local_only = [tx for tx in mirror.local_history(user_id) if tx.get("id") not in canonical_ids]

        fields = {}
        if wallet_differs(canonical_wallet, override):
            merged = merge_wallet(canonical_wallet, override)
            fields.update({f"wallet.{name}": merged[name] for name in WALLET_FIELDS})
        if local_only:
            # oldest first so canonical history keeps insertion order
            fields["wallet_history"] = ArrayUnion(*reversed(local_only))
        if fields:
            result = store.update("users", user_id, fields)
            if not result.ok:
                failed.append({"user_id": user_id, "error": result.error_code})
                continue
            pushed.append(int(user_id))
        mirror.drop_user(user_id)

    summary = {"ok": not failed, "pushed": pushed, "failed": failed, "generated_at": datetime.utcnow().isoformat()}
    if pushed or failed:
        logger.info("mirror_push_done pushed=%s failed=%s", len(pushed), len(failed))
        log_event(
            "mirror_pushed",
            actor_user_id=actor_user_id,
            subject_type="mirror",
            subject_id="wallets",
            severity="WARN" if failed else "INFO",
            metadata=summary,
        )
    return summary

"""Overlay local mirror overrides onto canonical documents.

Every function here is pure: ``(canonical, override) -> merged``. The policy
tables decide, per field, how a locally recorded value combines with the
canonical one.
"""

from __future__ import annotations

import copy
from enum import Enum


class Policy(str, Enum):
    OVERRIDE = "override"
    SUM = "sum"
    CONCAT_DEDUP_BY_ID = "concat_dedup_by_id"


WALLET_FIELDS = ("balance", "total_spend", "pending_deposit", "pending_withdrawal")

WALLET_POLICY = {name: Policy.OVERRIDE for name in WALLET_FIELDS}

USER_POLICY = {
    "wallet_history": Policy.CONCAT_DEDUP_BY_ID,
    "favorites": Policy.OVERRIDE,
}

LISTING_POLICY = {
    "is_promoted": Policy.OVERRIDE,
    "status": Policy.OVERRIDE,
    "views": Policy.SUM,
    "likes": Policy.SUM,
    "calls": Policy.SUM,
    "messages": Policy.SUM,
}

FINANCE_POLICY = {
    "status": Policy.OVERRIDE,
    "admin_note": Policy.OVERRIDE,
    "processed_at": Policy.OVERRIDE,
    "processed_date": Policy.OVERRIDE,
}


def _num(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def merge_history(canonical: list | None, local: list | None) -> list:
    """Canonical entries first, then local-only entries in discovery order."""
    merged = [dict(tx) for tx in (canonical or []) if isinstance(tx, dict)]
    seen = {tx.get("id") for tx in merged}
    for tx in local or []:
        if not isinstance(tx, dict):
            continue
        tx_id = tx.get("id")
        if tx_id in seen:
            continue
        seen.add(tx_id)
        merged.append(dict(tx))
    return merged


def merge_fields(canonical: dict | None, override: dict | None, policy: dict, default: Policy | None = None) -> dict:
    merged = copy.deepcopy(canonical or {})
    for field, local_value in (override or {}).items():
        rule = policy.get(field, default)
        if rule is None:
            continue
        if rule is Policy.OVERRIDE:
            if local_value is not None:
                merged[field] = copy.deepcopy(local_value)
        elif rule is Policy.SUM:
            base = _num(merged.get(field))
            total = base + _num(local_value)
            merged[field] = int(total) if float(total).is_integer() else total
        elif rule is Policy.CONCAT_DEDUP_BY_ID:
            merged[field] = merge_history(merged.get(field), local_value)
    return merged


def merge_wallet(canonical: dict | None, override: dict | None) -> dict:
    base = {name: _num((canonical or {}).get(name)) for name in WALLET_FIELDS}
    merged = merge_fields(base, override, WALLET_POLICY)
    return {name: _num(merged.get(name)) for name in WALLET_FIELDS}


def merge_user(user_doc: dict | None, wallet_override: dict | None = None, local_history: list | None = None, favorites: list | None = None) -> dict:
    merged = copy.deepcopy(user_doc or {})
    merged["wallet"] = merge_wallet(merged.get("wallet"), wallet_override)
    overlay = {"wallet_history": local_history or []}
    if favorites is not None:
        overlay["favorites"] = favorites
    merged = merge_fields(merged, overlay, USER_POLICY)
    merged.setdefault("wallet_history", [])
    merged.setdefault("favorites", [])
    return merged


def merge_listing(listing: dict | None, override: dict | None) -> dict:
    return merge_fields(listing, override, LISTING_POLICY)


def merge_campaign(campaign: dict | None, override: dict | None) -> dict:
    merged = merge_fields(campaign, override, {}, default=Policy.OVERRIDE)
    merged.pop("local_only", None)
    return merged


def merge_campaign_list(canonical: list, overrides: dict | None) -> list:
    """Merge every canonical campaign; append override entries with no canonical row."""
    overrides = dict(overrides or {})
    merged = []
    for campaign in canonical or []:
        key = str(campaign.get("id"))
        merged.append(merge_campaign(campaign, overrides.pop(key, None)))
    for key, entry in overrides.items():
        if isinstance(entry, dict) and entry.get("local_only"):
            local = dict(entry)
            local.setdefault("id", key)
            merged.append(merge_campaign({}, local))
    return merged


def merge_request(request: dict | None, override: dict | None) -> dict:
    return merge_fields(request, override, FINANCE_POLICY)


def merge_local_request(entry: dict) -> dict:
    """A request that only exists in the mirror; every stored field is taken as-is."""
    merged = merge_fields({}, entry, {}, default=Policy.OVERRIDE)
    merged.pop("local_only", None)
    return merged


def sort_history(history: list) -> list:
    """Newest first. Applied at read time only."""
    return sorted(
        history or [],
        key=lambda tx: (str(tx.get("date") or ""), str(tx.get("created_at") or "")),
        reverse=True,
    )


def wallet_differs(canonical: dict | None, override: dict | None) -> bool:
    if not override:
        return False
    base = merge_wallet(canonical, None)
    return any(
        name in override and abs(_num(override.get(name)) - base[name]) > 1e-9
        for name in WALLET_FIELDS
    )

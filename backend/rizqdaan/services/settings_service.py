from __future__ import annotations

import copy
import logging

from rizqdaan.store import channel as topics
from rizqdaan.store import mirror as mirror_keys
from rizqdaan.services.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULTS = {
    "referrals": {
        "inviter_bonus": 200,
        "invitee_bonus": 300,
        "badge_threshold": 5,
        "is_active": True,
    },
    "payment_info": {
        "bank_name": "",
        "account_title": "",
        "account_number": "",
        "instructions": "",
        "custom_note": "",
    },
    "ad_pricing": {
        "featured_listing": 100,
        "banner_ad": 500,
        "social_boost": 300,
    },
}

LOCAL_KEYS = {
    "referrals": mirror_keys.REFERRAL_SETTINGS,
    "payment_info": mirror_keys.PAYMENT_INFO,
    "ad_pricing": mirror_keys.AD_PRICING,
}


def _non_negative_number(name: str, value):
    if isinstance(value, bool):
        raise ValidationError("INVALID_SETTING", f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("INVALID_SETTING", f"{name} must be a number")
    if number < 0:
        raise ValidationError("INVALID_SETTING", f"{name} must not be negative")
    return int(number) if number.is_integer() else number


def _clean(name: str, data: dict) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("INVALID_SETTING", "Settings payload must be an object")
    defaults = DEFAULTS[name]
    unknown = set(data) - set(defaults) - {"id"}
    if unknown:
        raise ValidationError("INVALID_SETTING", f"Unknown fields: {', '.join(sorted(unknown))}")
    cleaned = {}
    for key, value in data.items():
        if key == "id":
            continue
        default = defaults[key]
        if isinstance(default, bool):
            cleaned[key] = bool(value)
        elif isinstance(default, (int, float)):
            cleaned[key] = _non_negative_number(key, value)
        else:
            cleaned[key] = str(value or "").strip()
    return cleaned


class PlatformSettings:
    """Settings documents with a local copy used while canonical writes are refused."""

    def __init__(self, store, mirror):
        self.store = store
        self.mirror = mirror

    def get(self, name: str) -> dict:
        if name not in DEFAULTS:
            raise ValidationError("UNKNOWN_SETTING", f"Unknown settings document: {name}")
        value = copy.deepcopy(DEFAULTS[name])
        canonical = self.store.get("settings", name)
        if canonical.ok:
            value.update({k: v for k, v in canonical.value.items() if k in value})
        local = self.mirror.settings_copy(LOCAL_KEYS[name])
        if local:
            value.update({k: v for k, v in local.items() if k in value})
        return value

    def save(self, name: str, data: dict) -> dict:
        if name not in DEFAULTS:
            raise ValidationError("UNKNOWN_SETTING", f"Unknown settings document: {name}")
        cleaned = _clean(name, data)
        merged = self.get(name)
        merged.update(cleaned)

        result = self.store.set("settings", name, merged, merge=True)
        local_key = LOCAL_KEYS[name]
        if result.ok:
            if self.mirror.settings_copy(local_key) is not None:
                self.mirror.backend.delete(local_key)
            if self.mirror.channel is not None:
                self.mirror.channel.emit(topics.SETTINGS_UPDATED, key=name, entity_id=None)
            return {"ok": True, "mode": "canonical", "settings": merged}

        logger.warning("settings_save_fallback name=%s err=%s", name, result.error_code)
        self.mirror.set_settings_copy(local_key, merged)
        return {"ok": True, "mode": "local_fallback", "error": result.error_code, "settings": merged}

    def ad_pricing(self) -> dict:
        return self.get("ad_pricing")

    def referrals(self) -> dict:
        return self.get("referrals")

    def payment_info(self) -> dict:
        return self.get("payment_info")

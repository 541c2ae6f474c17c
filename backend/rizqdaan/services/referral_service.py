from __future__ import annotations

import logging
import secrets

from rizqdaan.store.documents import Increment
from rizqdaan.store.results import ErrorKind
from rizqdaan.services.ledger import WalletDelta, format_rs
from rizqdaan.utils.events import log_event

logger = logging.getLogger(__name__)


def normalize_referral_code(value: str | None) -> str:
    return "".join(ch for ch in (value or "").strip().upper() if ch.isalnum() or ch == "-")[:32]


def generate_referral_code(name: str | None) -> str:
    letters = "".join(ch for ch in (name or "") if ch.isalpha())[:4].upper() or "USER"
    return f"{letters}-{secrets.randbelow(9000) + 1000}"


class ReferralProgram:
    def __init__(self, store, ledger, settings, notifier):
        self.store = store
        self.ledger = ledger
        self.settings = settings
        self.notifier = notifier

    def find_inviter(self, code: str) -> dict | None:
        normalized = normalize_referral_code(code)
        if not normalized:
            return None
        found = self.store.query("users", referral_code=normalized, limit=1)
        if not found.ok or not found.value:
            return None
        return found.value[0]

    def unique_code(self, name: str | None) -> str:
        for _ in range(20):
            code = generate_referral_code(name)
            if self.find_inviter(code) is None:
                return code
        return f"{generate_referral_code(name)}{secrets.token_hex(2).upper()}"

    def ensure_code(self, user_id) -> str:
        found = self.store.get("users", user_id)
        if not found.ok:
            return ""
        existing = found.value.get("referral_code")
        if existing:
            return existing
        code = self.unique_code(found.value.get("name"))
        updated = self.store.update("users", user_id, {"referral_code": code})
        if not updated.ok:
            logger.info("referral_code_assign_failed user_id=%s err=%s", user_id, updated.error_code)
            return ""
        return code

    def apply_signup(self, invitee: dict, code: str | None) -> dict:
        """Credit both sides of a referral for a freshly created account."""
        normalized = normalize_referral_code(code)
        if not normalized:
            return {"ok": False, "error": "INVALID_CODE", "message": "Referral code is required"}
        config = self.settings.referrals()
        if not config.get("is_active"):
            return {"ok": False, "error": "REFERRALS_DISABLED", "message": "Referral programme is paused"}
        inviter = self.find_inviter(normalized)
        if inviter is None:
            return {"ok": False, "error": "REFERRAL_NOT_FOUND", "message": "Referral code not found"}
        if int(inviter["id"]) == int(invitee["id"]):
            return {"ok": False, "error": "SELF_REFERRAL", "message": "You cannot refer yourself"}
        if invitee.get("referred_by"):
            return {"ok": False, "error": "ALREADY_REFERRED", "message": "Referral already applied"}

        linked = self.store.update("users", invitee["id"], {"referred_by": int(inviter["id"])}, expect={"referred_by": None})
        if not linked.ok:
            if linked.error is ErrorKind.CONFLICT:
                return {"ok": False, "error": "ALREADY_REFERRED", "message": "Referral already applied"}
            logger.warning("referral_link_failed invitee_id=%s err=%s", invitee["id"], linked.error_code)

        inviter_bonus = float(config.get("inviter_bonus") or 0)
        invitee_bonus = float(config.get("invitee_bonus") or 0)
        invitee_name = invitee.get("name") or "a new user"
        out = {"ok": True, "inviter_id": int(inviter["id"]), "inviter_credit": None, "invitee_credit": None}

        if inviter_bonus > 0:
            out["inviter_credit"] = self.ledger.apply_delta(
                inviter["id"],
                inviter_bonus,
                "referral_bonus",
                f"Referral Bonus: Invited {invitee_name}",
                WalletDelta(balance=inviter_bonus),
                purpose="ref",
            )
        stats = self.store.update(
            "users",
            inviter["id"],
            {
                "referral_stats.total_invited": Increment(1),
                "referral_stats.total_earned": Increment(inviter_bonus),
            },
        )
        if not stats.ok:
            logger.info("referral_stats_update_failed inviter_id=%s err=%s", inviter["id"], stats.error_code)

        if invitee_bonus > 0:
            out["invitee_credit"] = self.ledger.apply_delta(
                invitee["id"],
                invitee_bonus,
                "referral_bonus",
                f"Welcome Bonus: Used code {normalized}",
                WalletDelta(balance=invitee_bonus),
                purpose="ref",
            )

        self.notifier.emit(
            inviter["id"],
            "Referral Bonus! 🎉",
            f"{invitee_name} joined with your code. {format_rs(inviter_bonus)} has been added to your wallet.",
            "success",
            "wallet-history",
        )
        log_event(
            "referral_applied",
            actor_user_id=invitee["id"],
            subject_type="user",
            subject_id=inviter["id"],
            metadata={"code": normalized, "inviter_bonus": inviter_bonus, "invitee_bonus": invitee_bonus},
        )
        return out

    def stats(self, user_id) -> dict:
        code = self.ensure_code(user_id)
        found = self.store.get("users", user_id)
        referral_stats = found.value.get("referral_stats", {}) if found.ok else {}
        config = self.settings.referrals()
        invited = int(referral_stats.get("total_invited") or 0)
        threshold = int(config.get("badge_threshold") or 0)
        return {
            "referral_code": code,
            "total_invited": invited,
            "total_earned": float(referral_stats.get("total_earned") or 0),
            "badge_threshold": threshold,
            "has_badge": threshold > 0 and invited >= threshold,
            "inviter_bonus": config.get("inviter_bonus"),
            "invitee_bonus": config.get("invitee_bonus"),
            "is_active": bool(config.get("is_active")),
        }

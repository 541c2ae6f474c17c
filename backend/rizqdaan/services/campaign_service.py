from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timedelta

from rizqdaan.store import mirror as mirror_keys
from rizqdaan.store.merge import merge_campaign, merge_campaign_list, merge_listing
from rizqdaan.store.results import ErrorKind
from rizqdaan.services.errors import NotFoundError, TransitionError, ValidationError
from rizqdaan.services.ledger import ALWAYS_FALLBACK, WalletDelta, format_rs
from rizqdaan.utils.events import log_event

logger = logging.getLogger(__name__)

CAMPAIGN_TYPES = ("featured_listing", "banner_ad", "social_boost")
CAMPAIGN_GOALS = ("traffic", "calls", "awareness")
MAX_DURATION_DAYS = 90


class CampaignStatus:
    PENDING = "pending_approval"
    ACTIVE = "active"
    PAUSED = "paused"
    REJECTED = "rejected"
    COMPLETED = "completed"

    ALLOWED = {
        PENDING: {ACTIVE, REJECTED},
        ACTIVE: {PAUSED, COMPLETED},
        PAUSED: {ACTIVE, COMPLETED},
        REJECTED: set(),
        COMPLETED: set(),
    }
    TERMINAL = {REJECTED, COMPLETED}

    @classmethod
    def check(cls, current: str, target: str) -> None:
        if target not in cls.ALLOWED.get(current, set()):
            raise TransitionError(current, target)


def _label(campaign_type: str) -> str:
    return (campaign_type or "").replace("_", " ").title()


class CampaignLifecycle:
    def __init__(self, store, mirror, ledger, notifier, settings):
        self.store = store
        self.mirror = mirror
        self.ledger = ledger
        self.notifier = notifier
        self.settings = settings

    # reads

    def get(self, campaign_id) -> dict:
        return self._load(campaign_id)[0]

    def _load(self, campaign_id) -> tuple[dict, str | None]:
        """Merged campaign plus the status stored canonically (None when unreadable)."""
        override = self.mirror.campaign_override(campaign_id)
        canonical = self.store.get("campaigns", campaign_id)
        if canonical.ok:
            return merge_campaign(canonical.value, override), canonical.value.get("status")
        if override and (override.get("local_only") or canonical.error is not ErrorKind.NOT_FOUND):
            if override.get("vendor_id") is not None and override.get("status"):
                return merge_campaign({"id": campaign_id}, override), None
        raise NotFoundError("campaign", campaign_id)

    def list(self, *, vendor_id=None, status=None) -> list:
        canonical = self.store.query("campaigns")
        if not canonical.ok:
            logger.info("campaign_list_canonical_failed err=%s", canonical.error_code)
        rows = merge_campaign_list(canonical.unwrap_or([]), self.mirror.campaign_overrides())
        if vendor_id is not None:
            rows = [c for c in rows if str(c.get("vendor_id")) == str(vendor_id)]
        if status is not None:
            wanted = {status} if isinstance(status, str) else set(status)
            rows = [c for c in rows if c.get("status") in wanted]
        return sorted(rows, key=lambda c: str(c.get("created_at") or ""), reverse=True)

    def queue(self) -> list:
        return self.list(status=CampaignStatus.PENDING)

    def live(self) -> list:
        return self.list(status={CampaignStatus.ACTIVE, CampaignStatus.PAUSED})

    def history(self) -> list:
        return self.list(status=CampaignStatus.TERMINAL)

    def revenue_stats(self) -> dict:
        by_type = {t: 0.0 for t in CAMPAIGN_TYPES}
        total = 0.0
        for c in self.list():
            if c.get("status") in (CampaignStatus.PENDING, CampaignStatus.REJECTED):
                continue
            cost = float(c.get("total_cost") or 0)
            total += cost
            by_type[c.get("type")] = by_type.get(c.get("type"), 0.0) + cost
        return {
            "total_revenue": total,
            "by_type": by_type,
            "pending_count": len(self.queue()),
            "active_count": len(self.list(status=CampaignStatus.ACTIVE)),
        }

    def vendor_stats(self, vendor_id) -> dict:
        rows = self.list(vendor_id=vendor_id)
        charged = [c for c in rows if c.get("status") != CampaignStatus.REJECTED]
        ctrs = [float(c.get("ctr") or 0) for c in rows if c.get("status") in (CampaignStatus.ACTIVE, CampaignStatus.COMPLETED)]
        return {
            "total_spend": sum(float(c.get("total_cost") or 0) for c in charged),
            "impressions": sum(int(c.get("impressions") or 0) for c in rows),
            "clicks": sum(int(c.get("clicks") or 0) for c in rows),
            "average_ctr": round(sum(ctrs) / len(ctrs), 2) if ctrs else 0.0,
            "active_count": sum(1 for c in rows if c.get("status") == CampaignStatus.ACTIVE),
        }

    # vendor side

    def create(self, vendor_id, *, listing_id=None, type: str, duration_days, goal: str = "traffic", target_location: str = "", cached_wallet: dict | None = None) -> dict:
        if type not in CAMPAIGN_TYPES:
            raise ValidationError("INVALID_CAMPAIGN_TYPE", f"Unknown campaign type: {type}")
        goal = (goal or "traffic").strip().lower()
        if goal not in CAMPAIGN_GOALS:
            raise ValidationError("INVALID_GOAL", f"Unknown campaign goal: {goal}")
        try:
            days = int(duration_days)
        except (TypeError, ValueError):
            raise ValidationError("INVALID_DURATION", "Duration must be a whole number of days")
        if days < 1 or days > MAX_DURATION_DAYS:
            raise ValidationError("INVALID_DURATION", f"Duration must be between 1 and {MAX_DURATION_DAYS} days")

        listing = self._listing_for(vendor_id, listing_id) if listing_id is not None else None
        rate = float(self.settings.ad_pricing().get(type) or 0)
        cost = days * rate
        if cost <= 0:
            raise ValidationError("INVALID_PRICING", f"No price configured for {type}")
        wallet = self.ledger.wallet_view(vendor_id, cached_wallet)
        if wallet["balance"] < cost:
            raise ValidationError("INSUFFICIENT_BALANCE", f"Insufficient balance: {format_rs(cost)} required")

        doc = {
            "vendor_id": int(vendor_id),
            "listing_id": int(listing["id"]) if listing else None,
            "listing_title": (listing or {}).get("title") or "",
            "listing_image": (listing or {}).get("image_url") or "",
            "type": type,
            "goal": goal,
            "status": CampaignStatus.PENDING,
            "priority": "normal",
            "duration_days": days,
            "total_cost": cost,
            "target_location": (target_location or "").strip(),
        }
        added = self.store.add("campaigns", doc)
        if added.ok:
            campaign, mode = added.value, "canonical"
        else:
            local_id = f"local_{int(time.time() * 1000)}_{secrets.token_hex(3)}"
            campaign = dict(doc, id=local_id, created_at=datetime.utcnow().isoformat(), local_only=True)
            self.mirror.put_entry(mirror_keys.CAMPAIGN_OVERRIDES, local_id, campaign)
            campaign = merge_campaign({}, campaign)
            mode = "local_fallback"
            logger.warning("campaign_create_fallback vendor_id=%s err=%s", vendor_id, added.error_code)

        charge = self.ledger.apply_delta(
            vendor_id,
            cost,
            "promotion",
            f"Campaign: {_label(type)}",
            WalletDelta(balance=-cost, total_spend=cost),
            purpose="ad",
            cached_wallet=cached_wallet,
        )
        log_event(
            "campaign_created",
            actor_user_id=int(vendor_id),
            subject_type="campaign",
            subject_id=campaign.get("id"),
            metadata={"type": type, "cost": cost, "mode": mode},
        )
        return {"ok": True, "mode": mode, "campaign": campaign, "charge": charge}

    def _listing_for(self, vendor_id, listing_id) -> dict:
        found = self.store.get("listings", listing_id)
        if not found.ok:
            if found.error is ErrorKind.NOT_FOUND:
                raise NotFoundError("listing", listing_id)
            return {"id": int(listing_id)}
        listing = merge_listing(found.value, self.mirror.listing_override(listing_id))
        if str(listing.get("vendor_id")) != str(vendor_id):
            raise ValidationError("NOT_LISTING_OWNER", "You can only promote your own listings")
        return listing

    def toggle_pause(self, campaign_id, vendor_id) -> dict:
        campaign, stored_status = self._owned(campaign_id, vendor_id)
        status = campaign.get("status")
        if status == CampaignStatus.ACTIVE:
            target, promoted = CampaignStatus.PAUSED, False
        elif status == CampaignStatus.PAUSED:
            target, promoted = CampaignStatus.ACTIVE, True
        else:
            # pending campaigns go live through approve() only
            raise TransitionError(status, CampaignStatus.PAUSED, f"campaign is {status}")
        CampaignStatus.check(status, target)
        return self._transition(
            campaign, {"status": target}, stored_status=stored_status, promoted=promoted,
            event="campaign_paused" if target == CampaignStatus.PAUSED else "campaign_resumed", actor_id=vendor_id,
        )

    def end(self, campaign_id, vendor_id) -> dict:
        campaign, stored_status = self._owned(campaign_id, vendor_id)
        CampaignStatus.check(campaign.get("status"), CampaignStatus.COMPLETED)
        return self._transition(campaign, {"status": CampaignStatus.COMPLETED}, stored_status=stored_status, promoted=False, event="campaign_ended", actor_id=vendor_id)

    def _owned(self, campaign_id, vendor_id) -> tuple[dict, str | None]:
        campaign, stored_status = self._load(campaign_id)
        if str(campaign.get("vendor_id")) != str(vendor_id):
            raise NotFoundError("campaign", campaign_id)
        return campaign, stored_status

    # admin side

    def approve(self, campaign_id, *, admin_id=None) -> dict:
        campaign, stored_status = self._load(campaign_id)
        CampaignStatus.check(campaign.get("status"), CampaignStatus.ACTIVE)
        now = datetime.utcnow()
        days = int(campaign.get("duration_days") or 0)
        fields = {
            "status": CampaignStatus.ACTIVE,
            "start_date": now.isoformat(),
            "end_date": (now + timedelta(days=days)).isoformat(),
            "priority": "normal",
        }
        notice = (
            "Ad Request Approved! 🚀",
            f"Your {_label(campaign.get('type'))} campaign is now live.",
            "success",
            "vendor-dashboard",
        )
        return self._transition(campaign, fields, stored_status=stored_status, promoted=True, notice=notice, event="campaign_approved", actor_id=admin_id)

    def reject(self, campaign_id, reason: str, *, admin_id=None, cached_wallet: dict | None = None) -> dict:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("REASON_REQUIRED", "A rejection reason is required")
        campaign, stored_status = self._load(campaign_id)
        CampaignStatus.check(campaign.get("status"), CampaignStatus.REJECTED)

        cost = float(campaign.get("total_cost") or 0)
        refund = None
        if cost > 0:
            refund = self.ledger.prepare(
                campaign.get("vendor_id"),
                cost,
                "adjustment",
                f"Refund: Ad Rejected - {reason}",
                WalletDelta(balance=cost, total_spend=-cost),
                purpose="refund",
                cached_wallet=cached_wallet,
            )
        notice = (
            "Ad Request Rejected",
            f"Your campaign was rejected: {reason}. {format_rs(cost)} has been refunded to your wallet.",
            "error",
            "wallet-history",
        )
        return self._transition(
            campaign,
            {"status": CampaignStatus.REJECTED},
            stored_status=stored_status,
            promoted=False,
            notice=notice,
            refund=refund,
            event="campaign_rejected",
            actor_id=admin_id,
            metadata={"reason": reason, "refund": cost},
        )

    def stop(self, campaign_id, listing_id=None, *, admin_id=None) -> dict:
        """Complete a running campaign. The remaining budget is not refunded."""
        campaign, stored_status = self._load(campaign_id)
        CampaignStatus.check(campaign.get("status"), CampaignStatus.COMPLETED)
        if listing_id is not None:
            campaign = dict(campaign, listing_id=listing_id)
        return self._transition(campaign, {"status": CampaignStatus.COMPLETED}, stored_status=stored_status, promoted=False, event="campaign_stopped", actor_id=admin_id)

    def toggle_priority(self, campaign_id, *, admin_id=None) -> dict:
        campaign, stored_status = self._load(campaign_id)
        status = campaign.get("status")
        if status in CampaignStatus.TERMINAL:
            raise TransitionError(status, status, f"priority_locked status={status}")
        target = "normal" if campaign.get("priority") == "high" else "high"
        return self._transition(campaign, {"priority": target}, stored_status=stored_status, event="campaign_priority_changed", actor_id=admin_id)

    # shared write path

    def _transition(self, campaign, fields: dict, *, stored_status=None, promoted=None, notice=None, refund=None, event: str, actor_id=None, metadata=None) -> dict:
        campaign_id = campaign.get("id")
        listing_id = campaign.get("listing_id")
        vendor_id = campaign.get("vendor_id")

        # fields resolved locally during an outage ride along with this write
        override = self.mirror.campaign_override(campaign_id)
        pending = {}
        if override and not override.get("local_only"):
            pending = {k: v for k, v in override.items() if k not in ("id", "local_only", "created_at")}
        write = dict(pending, **fields)

        if refund is not None:
            self.ledger.record_local(refund)

        batch = self.store.batch()
        expected = stored_status if stored_status is not None else campaign.get("status")
        batch.update("campaigns", campaign_id, write, expect={"status": expected})
        if listing_id and promoted is not None:
            batch.update("listings", listing_id, {"is_promoted": promoted})
        if refund is not None:
            self.ledger.stage(batch, refund)
        if notice is not None and vendor_id is not None:
            title, message, kind, link = notice
            self.notifier.stage(batch, vendor_id, title, message, kind, link)
        result = batch.commit()

        if result.ok:
            mode = "canonical"
            if pending:
                self.mirror.drop_campaign(campaign_id)
                logger.info("campaign_override_pushed campaign_id=%s fields=%s", campaign_id, ",".join(sorted(pending)))
            if listing_id and promoted is not None and self.mirror.listing_override(listing_id) is not None:
                self.mirror.patch_listing(listing_id, {"is_promoted": promoted})
        elif result.error is ErrorKind.CONFLICT:
            if refund is not None:
                self.ledger.revert_local(refund)
            logger.warning("campaign_transition_conflict campaign_id=%s target=%s", campaign_id, fields.get("status"))
            raise TransitionError(campaign.get("status"), fields.get("status") or campaign.get("status"), "campaign changed concurrently")
        else:
            mode = "local_fallback"
            logger.warning("campaign_batch_failed campaign_id=%s event=%s err=%s", campaign_id, event, result.error_code)
            self.mirror.patch_campaign(campaign_id, fields)
            if listing_id and promoted is not None:
                self.mirror.patch_listing(listing_id, {"is_promoted": promoted})
            if notice is not None:
                logger.info("notification_dropped user_id=%s title=%s", vendor_id, notice[0])

        log_event(
            event,
            actor_user_id=actor_id,
            subject_type="campaign",
            subject_id=campaign_id,
            metadata=dict(metadata or {}, mode=mode, **fields),
        )
        out = {
            "ok": result.ok or self.ledger.fallback_policy == ALWAYS_FALLBACK,
            "mode": mode,
            "error": result.error_code,
            "campaign": merge_campaign(campaign, fields),
        }
        if refund is not None:
            out["refund"] = self.ledger.finish(refund, result, operation=event)
        return out

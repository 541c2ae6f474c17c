from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime

from rizqdaan.store.merge import merge_local_request, merge_request
from rizqdaan.store.results import ErrorKind
from rizqdaan.services.errors import NotFoundError, TransitionError, ValidationError
from rizqdaan.services.ledger import ALWAYS_FALLBACK, WalletDelta, format_rs, parse_amount
from rizqdaan.utils.events import log_event

logger = logging.getLogger(__name__)

WITHDRAWAL_METHODS = ("EasyPaisa", "JazzCash", "Bank Transfer")
LOCAL_FALLBACK_ERRORS = (ErrorKind.PERMISSION_DENIED, ErrorKind.UNAVAILABLE)
RESOLUTIONS = {"approve": "approved", "reject": "rejected"}
ADJUSTMENT_KINDS = ("bonus", "penalty")


def _action(raw: str) -> str:
    action = (raw or "").strip().lower()
    if action not in RESOLUTIONS:
        raise ValidationError("INVALID_ACTION", "Action must be approve or reject")
    return action


class FinanceDesk:
    """Deposit and withdrawal requests plus admin fund adjustments."""

    def __init__(self, store, mirror, ledger, notifier, assets=None):
        self.store = store
        self.mirror = mirror
        self.ledger = ledger
        self.notifier = notifier
        self.assets = assets

    # reads

    def get_request(self, collection: str, request_id) -> dict:
        found = self.store.get(collection, request_id)
        override = self.mirror.finance_override(collection, request_id)
        if found.ok:
            return merge_request(found.value, override)
        if override and override.get("local_only"):
            return merge_local_request(override)
        raise NotFoundError(collection[:-1], request_id)

    def list_requests(self, collection: str, *, status: str | None = None, user_id=None) -> list:
        filters = {"user_id": int(user_id)} if user_id is not None else {}
        found = self.store.query(collection, **filters)
        if not found.ok:
            logger.info("finance_list_failed collection=%s err=%s", collection, found.error_code)
        rows = [merge_request(row, self.mirror.finance_override(collection, row["id"])) for row in found.unwrap_or([])]
        for entry in self.mirror.finance_overrides(collection).values():
            if not (isinstance(entry, dict) and entry.get("local_only")):
                continue
            if user_id is not None and str(entry.get("user_id")) != str(user_id):
                continue
            rows.append(merge_local_request(entry))
        if status:
            rows = [r for r in rows if r.get("status") == status]
        return sorted(rows, key=lambda r: (str(r.get("date") or r.get("request_date") or ""), str(r["id"])), reverse=True)

    def _keep_local(self, collection: str, doc: dict) -> dict:
        local_id = f"local_{int(time.time() * 1000)}_{secrets.token_hex(3)}"
        entry = dict(doc, id=local_id, local_only=True, created_at=datetime.utcnow().isoformat())
        self.mirror.patch_finance(collection, local_id, entry)
        return merge_local_request(entry)

    def _submitted(self, collection: str, doc: dict, user_id) -> tuple[dict | None, str, object]:
        added = self.store.add(collection, doc)
        if added.ok:
            return added.value, "canonical", added
        if added.error in LOCAL_FALLBACK_ERRORS:
            logger.warning("finance_submit_fallback collection=%s user_id=%s err=%s", collection, user_id, added.error_code)
            return self._keep_local(collection, doc), "local_fallback", added
        logger.warning("finance_submit_failed collection=%s user_id=%s err=%s", collection, user_id, added.error_code)
        return None, "", added

    # deposits

    def submit_deposit(self, user, amount, *, transaction_id: str, sender_phone: str, method: str | None = None, screenshot=None) -> dict:
        value = parse_amount(amount)
        transaction_id = (transaction_id or "").strip()
        sender_phone = (sender_phone or "").strip()
        if not transaction_id:
            raise ValidationError("TRANSACTION_ID_REQUIRED", "Transaction ID is required")
        if not sender_phone:
            raise ValidationError("SENDER_PHONE_REQUIRED", "Sender phone is required")

        screenshot_url = ""
        if screenshot is not None:
            screenshot_url = self._upload_proof(user.id, screenshot)

        doc = {
            "user_id": int(user.id),
            "user_name": user.name or "",
            "amount": value,
            "method": (method or "Manual Transfer").strip(),
            "transaction_id": transaction_id,
            "sender_phone": sender_phone,
            "screenshot_url": screenshot_url,
            "status": "pending",
            "date": datetime.utcnow().date().isoformat(),
        }
        deposit, mode, added = self._submitted("deposits", doc, user.id)
        if deposit is None:
            return {"ok": False, "error": added.error_code, "message": added.message}

        ledger = self.ledger.apply_delta(
            user.id,
            value,
            "deposit",
            f"Deposit Request ({transaction_id})",
            WalletDelta(pending_deposit=value),
            status="pending",
            purpose="dep_req",
        )
        log_event("deposit_submitted", actor_user_id=user.id, subject_type="deposit", subject_id=deposit["id"], metadata={"amount": value, "mode": mode})
        return {"ok": True, "mode": mode, "deposit": deposit, "ledger": ledger}

    def _upload_proof(self, user_id, screenshot) -> str:
        if self.assets is None:
            raise ValidationError("UPLOADS_DISABLED", "Screenshot uploads are not available")
        filename = getattr(screenshot, "filename", None) or "deposit-proof.jpg"
        content_type = getattr(screenshot, "mimetype", None) or "image/jpeg"
        content = screenshot.read() if hasattr(screenshot, "read") else bytes(screenshot)
        uploaded = self.assets.upload(filename=filename, content=content, content_type=content_type, folder=f"deposits/{user_id}")
        if not uploaded.ok:
            logger.warning("deposit_proof_upload_failed user_id=%s code=%s", user_id, uploaded.code)
            raise ValidationError("UPLOAD_FAILED", "Screenshot upload failed")
        return uploaded.url

    def resolve_deposit(self, request_id, action: str, *, admin_id=None, admin_note: str | None = None) -> dict:
        action = _action(action)
        req = self.get_request("deposits", request_id)
        amount = float(req.get("amount") or 0)
        trx = req.get("transaction_id") or ""
        if action == "approve":
            prepared = self.ledger.prepare(
                req["user_id"], amount, "deposit", f"Deposit Confirmed ({trx})",
                WalletDelta(balance=amount, pending_deposit=-amount), purpose=f"dep_{request_id}",
            )
            notice = ("Funds Added! 💰", f"Your deposit of {format_rs(amount)} has been approved.", "success")
        else:
            prepared = self.ledger.prepare(
                req["user_id"], amount, "deposit", f"Deposit Rejected ({trx})",
                WalletDelta(pending_deposit=-amount), status="failed", purpose=f"dep_{request_id}",
            )
            notice = ("Deposit Rejected ❌", f"Your deposit of {format_rs(amount)} was rejected.", "error")
        return self._resolve("deposits", req, action, prepared, notice, admin_id=admin_id, admin_note=admin_note)

    # withdrawals

    def submit_withdrawal(self, user, amount, *, method: str, account_details: str) -> dict:
        value = parse_amount(amount)
        if method not in WITHDRAWAL_METHODS:
            raise ValidationError("INVALID_METHOD", f"Method must be one of: {', '.join(WITHDRAWAL_METHODS)}")
        account_details = (account_details or "").strip()
        if not account_details:
            raise ValidationError("ACCOUNT_DETAILS_REQUIRED", "Account details are required")
        wallet = self.ledger.wallet_view(user.id)
        available = wallet["balance"] - wallet["pending_withdrawal"]
        if value > available:
            raise ValidationError("INSUFFICIENT_BALANCE", f"Only {format_rs(available)} is available to withdraw")

        doc = {
            "user_id": int(user.id),
            "user_name": user.name or "",
            "amount": value,
            "method": method,
            "account_details": account_details,
            "status": "pending",
            "request_date": datetime.utcnow().date().isoformat(),
        }
        withdrawal, mode, added = self._submitted("withdrawals", doc, user.id)
        if withdrawal is None:
            return {"ok": False, "error": added.error_code, "message": added.message}

        ledger = self.ledger.apply_delta(
            user.id,
            value,
            "withdrawal",
            f"Withdrawal Request ({method})",
            WalletDelta(pending_withdrawal=value),
            status="pending",
            purpose="wd_req",
        )
        log_event("withdrawal_submitted", actor_user_id=user.id, subject_type="withdrawal", subject_id=withdrawal["id"], metadata={"amount": value, "mode": mode})
        return {"ok": True, "mode": mode, "withdrawal": withdrawal, "ledger": ledger}

    def resolve_withdrawal(self, request_id, action: str, *, admin_id=None, admin_note: str | None = None) -> dict:
        action = _action(action)
        req = self.get_request("withdrawals", request_id)
        amount = float(req.get("amount") or 0)
        method = req.get("method") or ""
        if action == "approve":
            prepared = self.ledger.prepare(
                req["user_id"], amount, "withdrawal", f"Withdrawal Processed ({method})",
                WalletDelta(balance=-amount, pending_withdrawal=-amount), purpose=f"wd_{request_id}",
            )
            notice = ("Withdrawal Approved", f"{format_rs(amount)} has been sent to your {method} account.", "success")
        else:
            prepared = self.ledger.prepare(
                req["user_id"], amount, "withdrawal", f"Withdrawal Rejected ({method})",
                WalletDelta(pending_withdrawal=-amount), status="failed", purpose=f"wd_{request_id}",
            )
            notice = ("Withdrawal Rejected", f"Your withdrawal of {format_rs(amount)} was rejected.", "error")
        return self._resolve("withdrawals", req, action, prepared, notice, admin_id=admin_id, admin_note=admin_note)

    # shared resolution path

    def _resolve(self, collection: str, req: dict, action: str, prepared, notice, *, admin_id=None, admin_note=None) -> dict:
        request_id = req["id"]
        if req.get("status") != "pending":
            raise TransitionError(req.get("status"), RESOLUTIONS[action], f"{collection[:-1]} already {req.get('status')}")
        status = RESOLUTIONS[action]
        now = datetime.utcnow()
        fields = {"status": status, "admin_note": (admin_note or "").strip()[:240] or None}
        if collection == "deposits":
            fields["processed_at"] = now
        else:
            fields["processed_date"] = now.date().isoformat()

        self.ledger.record_local(prepared)
        batch = self.store.batch()
        batch.update(collection, request_id, fields, expect={"status": "pending"})
        self.ledger.stage(batch, prepared)
        title, message, kind = notice
        self.notifier.stage(batch, req["user_id"], title, message, kind, "wallet-history")
        result = batch.commit()

        if result.ok:
            mode = "canonical"
        elif result.error is ErrorKind.CONFLICT:
            self.ledger.revert_local(prepared)
            logger.warning("finance_resolution_conflict collection=%s id=%s", collection, request_id)
            raise TransitionError("pending", status, f"{collection[:-1]} {request_id} was resolved concurrently")
        else:
            mode = "local_fallback"
            logger.warning("finance_batch_failed collection=%s id=%s err=%s", collection, request_id, result.error_code)
            override = dict(fields)
            if isinstance(override.get("processed_at"), datetime):
                override["processed_at"] = override["processed_at"].isoformat()
            self.mirror.patch_finance(collection, request_id, override)

        log_event(
            f"{collection[:-1]}_{status}",
            actor_user_id=admin_id,
            subject_type=collection[:-1],
            subject_id=request_id,
            metadata={"amount": req.get("amount"), "user_id": req.get("user_id"), "mode": mode},
        )
        return {
            "ok": result.ok or self.ledger.fallback_policy == ALWAYS_FALLBACK,
            "mode": mode,
            "error": result.error_code,
            "request": merge_request(req, fields),
            "ledger": self.ledger.finish(prepared, result, operation=f"resolve_{collection}"),
        }

    # admin adjustments

    def adjust_funds(self, user_id, kind: str, amount, *, reason: str | None = None, admin_id=None, cached_wallet: dict | None = None) -> dict:
        kind = (kind or "").strip().lower()
        if kind not in ADJUSTMENT_KINDS:
            raise ValidationError("INVALID_KIND", "Adjustment must be bonus or penalty")
        value = parse_amount(amount)
        target = self.store.get("users", user_id)
        if not target.ok and target.error is ErrorKind.NOT_FOUND:
            raise NotFoundError("user", user_id)

        description = (reason or "").strip() or ("Admin Bonus" if kind == "bonus" else "Admin Penalty")
        ledger = self.ledger.apply_delta(
            user_id,
            value,
            kind,
            description,
            WalletDelta.for_kind(kind, value),
            purpose="admin",
            cached_wallet=cached_wallet,
        )
        if kind == "bonus":
            self.notifier.emit(user_id, "Funds Added", f"Admin has added {format_rs(value)} to your wallet.", "success", "wallet-history")
        else:
            self.notifier.emit(user_id, "Funds Deducted", f"Admin has deducted {format_rs(value)} from your wallet.", "warning", "wallet-history")
        log_event(
            f"wallet_{kind}",
            actor_user_id=admin_id,
            subject_type="user",
            subject_id=user_id,
            metadata={"amount": value, "mode": ledger["mode"]},
        )
        return ledger

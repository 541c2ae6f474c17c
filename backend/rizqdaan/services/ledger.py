"""Wallet ledger: signed balance deltas plus an append-only transaction history.

Every change is written to the local mirror first (and signalled), then to the
canonical store. What happens when the canonical write fails is decided by the
fallback policy, not by the call site.
"""

from __future__ import annotations

import logging
import math
import secrets
import time
from dataclasses import dataclass, fields as dataclass_fields
from datetime import datetime

from rizqdaan.store import mirror as mirror_keys
from rizqdaan.store.documents import ArrayUnion
from rizqdaan.store.merge import WALLET_FIELDS, merge_history, merge_wallet, sort_history
from rizqdaan.store.results import StoreResult
from rizqdaan.services.errors import ValidationError

logger = logging.getLogger(__name__)

CREDIT_KINDS = frozenset({"deposit", "adjustment", "bonus", "referral_bonus"})
DEBIT_KINDS = frozenset({"withdrawal", "penalty", "fee", "commission", "promotion"})
TX_KINDS = CREDIT_KINDS | DEBIT_KINDS
TX_STATUSES = ("completed", "pending", "failed")

ALWAYS_FALLBACK = "always_fallback"
SURFACE = "surface"

# Fields that never drop below zero; balance may (penalties).
_FLOORED = ("total_spend", "pending_deposit", "pending_withdrawal")


def parse_amount(raw) -> float:
    if isinstance(raw, bool):
        raise ValidationError("INVALID_AMOUNT", "Amount must be a number")
    try:
        value = float(str(raw).strip()) if isinstance(raw, str) else float(raw)
    except (TypeError, ValueError):
        raise ValidationError("INVALID_AMOUNT", "Amount must be a number")
    if not math.isfinite(value) or value <= 0:
        raise ValidationError("INVALID_AMOUNT", "Amount must be greater than zero")
    return value


def signed_amount(kind: str, amount: float) -> float:
    if kind in DEBIT_KINDS:
        return -abs(float(amount))
    return abs(float(amount))


def format_rs(amount) -> str:
    value = float(amount or 0)
    if value.is_integer():
        return f"Rs. {int(value):,}"
    return f"Rs. {value:,.2f}"


@dataclass(frozen=True)
class WalletDelta:
    """Signed change per wallet field."""

    balance: float = 0.0
    total_spend: float = 0.0
    pending_deposit: float = 0.0
    pending_withdrawal: float = 0.0

    @classmethod
    def for_kind(cls, kind: str, amount: float) -> "WalletDelta":
        signed = signed_amount(kind, amount)
        if kind == "promotion":
            return cls(balance=signed, total_spend=abs(signed))
        return cls(balance=signed)

    def changed(self) -> dict:
        return {f.name: getattr(self, f.name) for f in dataclass_fields(self) if getattr(self, f.name)}


@dataclass
class PreparedDelta:
    user_id: int
    transaction: dict
    before: dict
    after: dict
    delta: WalletDelta
    prior_override: dict | None = None
    recorded: bool = False

    def canonical_fields(self) -> dict:
        out = {f"wallet.{name}": self.after[name] for name in self.delta.changed()}
        out["wallet_history"] = ArrayUnion(self.transaction)
        return out


class WalletLedger:
    def __init__(self, store, mirror, fallback_policy: str = ALWAYS_FALLBACK):
        if fallback_policy not in (ALWAYS_FALLBACK, SURFACE):
            raise ValueError(f"unknown ledger fallback policy: {fallback_policy}")
        self.store = store
        self.mirror = mirror
        self.fallback_policy = fallback_policy

    # read path

    def wallet_view(self, user_id, cached_wallet: dict | None = None) -> dict:
        canonical = self.store.get("users", user_id)
        base = canonical.value.get("wallet") if canonical.ok else cached_wallet
        return merge_wallet(base, self.mirror.wallet_override(user_id))

    def history_view(self, user_id) -> list:
        canonical = self.store.get("users", user_id)
        base = canonical.value.get("wallet_history") if canonical.ok else []
        return sort_history(merge_history(base, self.mirror.local_history(user_id)))

    # write primitives

    @staticmethod
    def new_transaction_id(purpose: str) -> str:
        return f"tx_{purpose}_{int(time.time() * 1000)}_{secrets.token_hex(3)}"

    def prepare(
        self,
        user_id,
        amount,
        kind: str,
        description: str,
        affects: WalletDelta,
        *,
        status: str = "completed",
        purpose: str | None = None,
        cached_wallet: dict | None = None,
    ) -> PreparedDelta:
        if kind not in TX_KINDS:
            raise ValidationError("INVALID_KIND", f"Unknown transaction type: {kind}")
        if status not in TX_STATUSES:
            raise ValidationError("INVALID_STATUS", f"Unknown transaction status: {status}")
        value = parse_amount(amount)

        before = self.wallet_view(user_id, cached_wallet)
        after = dict(before)
        for name in WALLET_FIELDS:
            after[name] = before[name] + float(getattr(affects, name) or 0.0)
        for name in _FLOORED:
            after[name] = max(0.0, after[name])

        now = datetime.utcnow()
        tx = {
            "id": self.new_transaction_id(purpose or kind),
            "type": kind,
            "amount": value,
            "date": now.date().isoformat(),
            "created_at": now.isoformat(),
            "status": status,
            "description": (description or "").strip(),
        }
        return PreparedDelta(user_id=int(user_id), transaction=tx, before=before, after=after, delta=affects)

    def record_local(self, prepared: PreparedDelta) -> None:
        prepared.prior_override = self.mirror.wallet_override(prepared.user_id)
        self.mirror.set_wallet_override(prepared.user_id, prepared.after)
        self.mirror.prepend_history(prepared.user_id, prepared.transaction)
        prepared.recorded = True

    def revert_local(self, prepared: PreparedDelta) -> None:
        if not prepared.recorded:
            return
        if prepared.prior_override is None:
            self.mirror.remove_entry(mirror_keys.WALLETS, prepared.user_id)
        else:
            self.mirror.set_wallet_override(prepared.user_id, prepared.prior_override)
        self.mirror.remove_history_entry(prepared.user_id, prepared.transaction["id"])
        prepared.recorded = False

    def stage(self, batch, prepared: PreparedDelta) -> None:
        batch.update("users", prepared.user_id, prepared.canonical_fields())

    def finish(self, prepared: PreparedDelta, result: StoreResult, *, operation: str = "apply_delta") -> dict:
        tx = prepared.transaction
        if result.ok:
            mode = "canonical"
            ok = True
        else:
            mode = "local_fallback"
            ok = self.fallback_policy == ALWAYS_FALLBACK
            logger.warning(
                "ledger_remote_write_failed op=%s user_id=%s kind=%s tx_id=%s err=%s",
                operation,
                prepared.user_id,
                tx["type"],
                tx["id"],
                result.error.value if result.error else "unknown",
            )
        return {
            "ok": ok,
            "mode": mode,
            "error": result.error_code,
            "transaction": dict(tx),
            "wallet": dict(prepared.after),
        }

    # the operation

    def apply_delta(
        self,
        user_id,
        amount,
        kind: str,
        description: str,
        affects: WalletDelta | None = None,
        *,
        status: str = "completed",
        purpose: str | None = None,
        cached_wallet: dict | None = None,
    ) -> dict:
        """Apply ``affects`` to the wallet and append one transaction.

        Not idempotent: two calls produce two transactions.
        """
        if affects is None:
            affects = WalletDelta.for_kind(kind, parse_amount(amount))
        prepared = self.prepare(
            user_id,
            amount,
            kind,
            description,
            affects,
            status=status,
            purpose=purpose,
            cached_wallet=cached_wallet,
        )
        self.record_local(prepared)
        result = self.store.update("users", prepared.user_id, prepared.canonical_fields())
        return self.finish(prepared, result)

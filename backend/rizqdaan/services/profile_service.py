from __future__ import annotations

import copy
import logging
import threading

from rizqdaan.store import channel as topics
from rizqdaan.store.documents import ArrayRemove, ArrayUnion, Increment
from rizqdaan.store.merge import merge_listing, merge_user
from rizqdaan.store.results import ErrorKind
from rizqdaan.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

INTERACTION_FIELDS = ("views", "likes", "calls", "messages")


class ProfileViews:
    """Merged (canonical + mirror) user and listing views, cached until a change signal."""

    def __init__(self, store, mirror, channel):
        self.store = store
        self.mirror = mirror
        self._lock = threading.Lock()
        self._users: dict[str, dict] = {}
        self._listings: dict[str, dict] = {}
        self._watched: dict[tuple, object] = {}
        channel.subscribe(topics.WALLET_UPDATED, self._on_wallet_signal)
        channel.subscribe(topics.LISTINGS_UPDATED, self._on_listing_signal)

    # invalidation

    def _on_wallet_signal(self, topic, key=None, entity_id=None, **_):
        self._invalidate(self._users, entity_id)

    def _on_listing_signal(self, topic, key=None, entity_id=None, **_):
        self._invalidate(self._listings, entity_id)

    def _invalidate(self, cache: dict, entity_id) -> None:
        with self._lock:
            if entity_id is None:
                cache.clear()
            else:
                cache.pop(str(entity_id), None)

    def _watch(self, collection: str, entity_id, cache: dict) -> None:
        key = (collection, str(entity_id))
        if key in self._watched:
            return

        def _changed(_snapshot):
            self._invalidate(cache, entity_id)

        self._watched[key] = self.store.watch(collection, _changed, doc_id=entity_id, on_error=lambda _r: None)

    # users

    def user_view(self, user_id) -> dict:
        """Merged user document. Callers get their own copy of the cached value."""
        cache_key = str(user_id)
        with self._lock:
            cached = self._users.get(cache_key)
        if cached is not None:
            return copy.deepcopy(cached)
        found = self.store.get("users", user_id)
        if not found.ok:
            raise NotFoundError("user", user_id)
        self._watch("users", user_id, self._users)
        merged = merge_user(
            found.value,
            self.mirror.wallet_override(user_id),
            self.mirror.local_history(user_id),
            self.mirror.favorites(user_id),
        )
        with self._lock:
            self._users[cache_key] = merged
        return copy.deepcopy(merged)

    def toggle_favorite(self, user_id, listing_id) -> dict:
        listing_id = int(listing_id)
        current = list(self.user_view(user_id).get("favorites") or [])
        if listing_id in current:
            favorites = [x for x in current if x != listing_id]
            change = ArrayRemove(listing_id)
        else:
            favorites = current + [listing_id]
            change = ArrayUnion(listing_id)
        self.mirror.set_favorites(user_id, favorites)
        result = self.store.update("users", user_id, {"favorites": change})
        if not result.ok:
            logger.info("favorite_remote_write_failed user_id=%s err=%s", user_id, result.error_code)
        return {
            "ok": True,
            "mode": "canonical" if result.ok else "local_fallback",
            "favorited": listing_id in favorites,
            "favorites": favorites,
        }

    # listings

    def listing_view(self, listing_id) -> dict:
        cache_key = str(listing_id)
        with self._lock:
            cached = self._listings.get(cache_key)
        if cached is not None:
            return copy.deepcopy(cached)
        found = self.store.get("listings", listing_id)
        if not found.ok:
            raise NotFoundError("listing", listing_id)
        self._watch("listings", listing_id, self._listings)
        merged = merge_listing(found.value, self.mirror.listing_override(listing_id))
        with self._lock:
            self._listings[cache_key] = merged
        return copy.deepcopy(merged)

    def listings(self, *, category: str | None = None, vendor_id=None, include_inactive: bool = False) -> list:
        filters = {}
        if category:
            filters["category"] = category
        if vendor_id is not None:
            filters["vendor_id"] = int(vendor_id)
        found = self.store.query("listings", **filters)
        if not found.ok:
            logger.info("listing_query_failed err=%s", found.error_code)
            return []
        rows = [merge_listing(row, self.mirror.listing_override(row["id"])) for row in found.value]
        if not include_inactive:
            rows = [r for r in rows if r.get("status") == "active"]
        # promoted first, then newest
        rows.sort(key=lambda r: str(r.get("created_at") or ""), reverse=True)
        rows.sort(key=lambda r: not r.get("is_promoted"))
        return rows

    def record_interaction(self, listing_id, field: str) -> dict:
        if field not in INTERACTION_FIELDS:
            raise ValidationError("INVALID_INTERACTION", f"Unknown interaction: {field}")
        result = self.store.update("listings", listing_id, {field: Increment(1)})
        if result.ok:
            return {"ok": True, "mode": "canonical"}
        if result.error is ErrorKind.NOT_FOUND:
            raise NotFoundError("listing", listing_id)
        self.mirror.bump_listing_counter(listing_id, field, 1)
        return {"ok": True, "mode": "local_fallback"}

from __future__ import annotations

import json
import logging
import threading
import uuid

import redis

from rizqdaan.store import channel as topics

logger = logging.getLogger(__name__)

WALLETS = "demo_user_wallets"
HISTORY = "demo_user_history"
FAVORITES = "demo_user_favorites"
LISTING_OVERRIDES = "demo_listings_overrides"
CAMPAIGN_OVERRIDES = "admin_campaign_overrides"
FINANCE_OVERRIDES = "finance_overrides"
AD_PRICING = "ad_pricing"
PAYMENT_INFO = "admin_payment_info"
REFERRAL_SETTINGS = "referral_settings"

KEY_TOPICS = {
    WALLETS: topics.WALLET_UPDATED,
    HISTORY: topics.WALLET_UPDATED,
    FAVORITES: topics.WALLET_UPDATED,
    LISTING_OVERRIDES: topics.LISTINGS_UPDATED,
    CAMPAIGN_OVERRIDES: topics.CAMPAIGNS_UPDATED,
    FINANCE_OVERRIDES: topics.FINANCE_UPDATED,
    AD_PRICING: topics.SETTINGS_UPDATED,
    PAYMENT_INFO: topics.SETTINGS_UPDATED,
    REFERRAL_SETTINGS: topics.SETTINGS_UPDATED,
}


class MemoryMirrorBackend:
    """Single-process string store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, raw: str) -> bool:
        with self._lock:
            self._data[key] = raw
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            self._data.pop(key, None)
        return True

    def poll_changes(self) -> list[str]:
        return []


class RedisMirrorBackend:
    """Redis-backed store shared across processes.

    Writes publish the changed key so other processes can re-merge; this is the
    counterpart of a browser's cross-tab ``storage`` event.
    """

    def __init__(self, client, namespace: str = "rizqdaan"):
        self._client = client
        self._namespace = (namespace or "rizqdaan").strip()
        self._origin = uuid.uuid4().hex
        self._pubsub = None

    @classmethod
    def from_url(cls, url: str, namespace: str = "rizqdaan") -> "RedisMirrorBackend":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=0.75,
            socket_connect_timeout=0.75,
            health_check_interval=30,
        )
        return cls(client, namespace)

    @property
    def changes_channel(self) -> str:
        return f"{self._namespace}:mirror:changes"

    def _key(self, key: str) -> str:
        return f"{self._namespace}:mirror:{key}"

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(self._key(key))
        except Exception as e:
            logger.warning("mirror_redis_get_failed key=%s err=%s", key, e)
            return None

    def set(self, key: str, raw: str) -> bool:
        try:
            self._client.set(self._key(key), raw)
        except Exception as e:
            logger.warning("mirror_redis_set_failed key=%s err=%s", key, e)
            return False
        try:
            self._client.publish(self.changes_channel, json.dumps({"key": key, "origin": self._origin}))
        except Exception as e:
            logger.info("mirror_redis_publish_failed key=%s err=%s", key, e)
        return True

    def delete(self, key: str) -> bool:
        try:
            self._client.delete(self._key(key))
            return True
        except Exception as e:
            logger.warning("mirror_redis_delete_failed key=%s err=%s", key, e)
            return False

    def poll_changes(self) -> list[str]:
        """Keys changed by other processes since the last poll."""
        try:
            if self._pubsub is None:
                self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
                self._pubsub.subscribe(self.changes_channel)
            changed: list[str] = []
            while True:
                message = self._pubsub.get_message(timeout=0)
                if not message:
                    break
                try:
                    payload = json.loads(message.get("data") or "{}")
                except Exception:
                    continue
                if payload.get("origin") == self._origin:
                    continue
                key = payload.get("key")
                if key and key not in changed:
                    changed.append(key)
            return changed
        except Exception as e:
            logger.warning("mirror_redis_poll_failed err=%s", e)
            return []


class LocalMirrorStore:
    """Key -> JSON map store shadowing canonical records per entity id.

    Writes are synchronous and signal the change channel before returning.
    """

    def __init__(self, backend=None, channel=None):
        self.backend = backend or MemoryMirrorBackend()
        self.channel = channel

    # raw maps

    def read_map(self, key: str) -> dict:
        raw = self.backend.get(key)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except Exception:
            logger.warning("mirror_corrupt_map key=%s", key)
            return {}
        return data if isinstance(data, dict) else {}

    def write_map(self, key: str, data: dict, *, entity_id=None) -> None:
        self.backend.set(key, json.dumps(data or {}, separators=(",", ":"), default=str))
        self._signal(key, entity_id)

    def _signal(self, key: str, entity_id=None) -> None:
        if self.channel is None:
            return
        topic = KEY_TOPICS.get(key)
        if topic:
            self.channel.emit(topic, key=key, entity_id=None if entity_id is None else str(entity_id))

    def get_entry(self, key: str, entity_id):
        return self.read_map(key).get(str(entity_id))

    def put_entry(self, key: str, entity_id, value) -> None:
        data = self.read_map(key)
        data[str(entity_id)] = value
        self.write_map(key, data, entity_id=entity_id)

    def patch_entry(self, key: str, entity_id, fields: dict) -> dict:
        data = self.read_map(key)
        current = data.get(str(entity_id))
        entry = dict(current) if isinstance(current, dict) else {}
        entry.update(fields or {})
        data[str(entity_id)] = entry
        self.write_map(key, data, entity_id=entity_id)
        return entry

    def remove_entry(self, key: str, entity_id) -> bool:
        data = self.read_map(key)
        if str(entity_id) not in data:
            return False
        data.pop(str(entity_id), None)
        self.write_map(key, data, entity_id=entity_id)
        return True

    def drain_remote_changes(self) -> int:
        """Re-emit changes made by other processes as local signals."""
        keys = self.backend.poll_changes()
        for key in keys:
            self._signal(key)
        return len(keys)

    # wallets

    def wallet_override(self, user_id) -> dict | None:
        entry = self.get_entry(WALLETS, user_id)
        return dict(entry) if isinstance(entry, dict) else None

    def set_wallet_override(self, user_id, wallet: dict) -> None:
        self.put_entry(WALLETS, user_id, dict(wallet))

    def local_history(self, user_id) -> list:
        entry = self.get_entry(HISTORY, user_id)
        return list(entry) if isinstance(entry, list) else []

    def set_local_history(self, user_id, history: list) -> None:
        self.put_entry(HISTORY, user_id, list(history or []))

    def prepend_history(self, user_id, tx: dict) -> None:
        self.set_local_history(user_id, [tx] + self.local_history(user_id))

    def remove_history_entry(self, user_id, tx_id: str) -> None:
        history = [tx for tx in self.local_history(user_id) if tx.get("id") != tx_id]
        self.set_local_history(user_id, history)

    def favorites(self, user_id) -> list | None:
        entry = self.get_entry(FAVORITES, user_id)
        return list(entry) if isinstance(entry, list) else None

    def set_favorites(self, user_id, favorites: list) -> None:
        self.put_entry(FAVORITES, user_id, list(favorites or []))

    def drop_user(self, user_id) -> None:
        self.remove_entry(WALLETS, user_id)
        self.remove_entry(HISTORY, user_id)

    # listings / campaigns / requests

    def listing_override(self, listing_id) -> dict | None:
        return self.get_entry(LISTING_OVERRIDES, listing_id)

    def patch_listing(self, listing_id, fields: dict) -> dict:
        return self.patch_entry(LISTING_OVERRIDES, listing_id, fields)

    def bump_listing_counter(self, listing_id, field: str, amount: int = 1) -> dict:
        current = self.listing_override(listing_id) or {}
        return self.patch_listing(listing_id, {field: int(current.get(field) or 0) + int(amount)})

    def campaign_overrides(self) -> dict:
        return self.read_map(CAMPAIGN_OVERRIDES)

    def campaign_override(self, campaign_id) -> dict | None:
        return self.get_entry(CAMPAIGN_OVERRIDES, campaign_id)

    def patch_campaign(self, campaign_id, fields: dict) -> dict:
        return self.patch_entry(CAMPAIGN_OVERRIDES, campaign_id, fields)

    def drop_campaign(self, campaign_id) -> bool:
        return self.remove_entry(CAMPAIGN_OVERRIDES, campaign_id)

    def finance_overrides(self, collection: str) -> dict:
        prefix = f"{collection}:"
        return {key[len(prefix):]: entry for key, entry in self.read_map(FINANCE_OVERRIDES).items() if key.startswith(prefix)}

    def finance_override(self, collection: str, request_id) -> dict | None:
        return self.get_entry(FINANCE_OVERRIDES, f"{collection}:{request_id}")

    def patch_finance(self, collection: str, request_id, fields: dict) -> dict:
        return self.patch_entry(FINANCE_OVERRIDES, f"{collection}:{request_id}", fields)

    # settings copies

    def settings_copy(self, key: str) -> dict | None:
        raw = self.backend.get(key)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except Exception:
            return None
        return data if isinstance(data, dict) else None

    def set_settings_copy(self, key: str, data: dict) -> None:
        self.write_map(key, data)


def build_mirror(config, channel=None) -> LocalMirrorStore:
    backend_name = (config.get("LOCAL_MIRROR_BACKEND") or "").strip().lower()
    redis_url = (config.get("LOCAL_MIRROR_REDIS_URL") or "").strip()
    if backend_name == "redis" or (not backend_name and redis_url):
        if not redis_url:
            logger.warning("mirror_redis_url_missing falling back to memory backend")
            return LocalMirrorStore(MemoryMirrorBackend(), channel)
        backend = RedisMirrorBackend.from_url(redis_url, config.get("LOCAL_MIRROR_NAMESPACE") or "rizqdaan")
        return LocalMirrorStore(backend, channel)
    return LocalMirrorStore(MemoryMirrorBackend(), channel)

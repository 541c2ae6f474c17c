from __future__ import annotations

import logging
from datetime import datetime

from rizqdaan.store.results import ErrorKind, StoreResult
from rizqdaan.services.errors import NotFoundError

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("info", "success", "warning", "error")


class NotificationEmitter:
    """Fire-and-forget notification records.

    There is no local mirror path: a failed write means the notification is
    never shown.
    """

    def __init__(self, store):
        self.store = store

    @staticmethod
    def build(user_id, title: str, message: str, type: str = "info", link: str | None = None) -> dict:
        kind = (type or "info").strip().lower()
        if kind not in NOTIFICATION_TYPES:
            kind = "info"
        return {
            "user_id": int(user_id),
            "title": (title or "").strip()[:160],
            "message": (message or "").strip(),
            "type": kind,
            "is_read": False,
            "link": (link or "").strip()[:80] or None,
            "created_at": datetime.utcnow(),
        }

    def emit(self, user_id, title: str, message: str, type: str = "info", link: str | None = None) -> StoreResult:
        result = self.store.add("notifications", self.build(user_id, title, message, type, link))
        if not result.ok:
            logger.info("notification_dropped user_id=%s title=%s err=%s", user_id, title, result.error_code)
        return result

    def stage(self, batch, user_id, title: str, message: str, type: str = "info", link: str | None = None) -> int:
        return batch.add("notifications", self.build(user_id, title, message, type, link))

    def list_for(self, user_id, limit: int = 80) -> StoreResult:
        return self.store.query(
            "notifications",
            user_id=int(user_id),
            order_by="created_at",
            descending=True,
            limit=max(1, min(int(limit or 80), 200)),
        )

    def unread_count(self, user_id) -> int:
        result = self.store.query("notifications", user_id=int(user_id), is_read=False)
        return len(result.value) if result.ok else 0

    def mark_read(self, user_id, notification_id) -> StoreResult:
        found = self.store.get("notifications", notification_id)
        if not found.ok and found.error is ErrorKind.NOT_FOUND:
            raise NotFoundError("notification", notification_id)
        if not found.ok:
            return found
        if int(found.value.get("user_id") or 0) != int(user_id):
            raise NotFoundError("notification", notification_id)
        if found.value.get("is_read"):
            return found
        return self.store.update("notifications", notification_id, {"is_read": True})

    def mark_all_read(self, user_id) -> StoreResult:
        unread = self.store.query("notifications", user_id=int(user_id), is_read=False)
        if not unread.ok:
            return unread
        if not unread.value:
            return StoreResult.success(0)
        batch = self.store.batch()
        for row in unread.value:
            batch.update("notifications", row["id"], {"is_read": True})
        committed = batch.commit()
        return StoreResult.success(len(unread.value)) if committed.ok else committed

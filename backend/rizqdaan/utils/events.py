from __future__ import annotations

import json
import logging
from datetime import date, datetime
from enum import Enum

from rizqdaan.extensions import db
from rizqdaan.models import PlatformEvent
from rizqdaan.utils.observability import get_request_id

logger = logging.getLogger(__name__)

FALLBACK_MODE = "local_fallback"


def _jsonable(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, tuple)):
        return list(value)
    return str(value)


def log_event(
    event_type: str,
    *,
    actor_user_id: int | None = None,
    subject_type: str | None = None,
    subject_id=None,
    severity: str | None = None,
    metadata: dict | None = None,
) -> PlatformEvent | None:
    """Write one audit row. Failures are logged and swallowed.

    Actions that only reached the local mirror are recorded at WARN unless a
    severity is given.
    """
    details = dict(metadata or {})
    mode = details.get("mode")
    if severity is None:
        severity = "WARN" if mode == FALLBACK_MODE else "INFO"
    try:
        event = PlatformEvent(
            event_type=(event_type or "unknown")[:80],
            actor_user_id=int(actor_user_id) if actor_user_id is not None else None,
            subject_type=subject_type[:40] if subject_type else None,
            subject_id=None if subject_id is None else str(subject_id)[:120],
            mode=str(mode)[:24] if mode else None,
            request_id=get_request_id()[:80] or None,
            severity=severity.upper()[:16],
            metadata_json=json.dumps(details, default=_jsonable, separators=(",", ":")),
        )
        db.session.add(event)
        db.session.commit()
        return event
    except Exception as e:
        logger.info("log_event_failed event_type=%s err=%s", event_type, e)
        db.session.rollback()
        return None


def recent_events(*, subject_type: str | None = None, subject_id=None, mode: str | None = None, limit: int = 50) -> list[dict]:
    q = PlatformEvent.query
    if subject_type:
        q = q.filter(PlatformEvent.subject_type == subject_type)
    if subject_id is not None:
        q = q.filter(PlatformEvent.subject_id == str(subject_id))
    if mode:
        q = q.filter(PlatformEvent.mode == mode)
    rows = q.order_by(PlatformEvent.id.desc()).limit(max(1, min(int(limit), 200))).all()
    return [row.to_dict() for row in rows]

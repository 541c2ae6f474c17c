import json
from datetime import datetime

from rizqdaan.extensions import db
from rizqdaan.models.base import iso


class PlatformEvent(db.Model):
    """Audit row for wallet, campaign, finance and mirror actions.

    ``mode`` records whether the action reached canonical storage or only the
    local mirror.
    """

    __tablename__ = "platform_events"

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    event_type = db.Column(db.String(80), nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, nullable=True, index=True)
    subject_type = db.Column(db.String(40), nullable=True, index=True)
    subject_id = db.Column(db.String(120), nullable=True, index=True)
    mode = db.Column(db.String(24), nullable=True, index=True)  # canonical | local_fallback
    request_id = db.Column(db.String(80), nullable=True)
    severity = db.Column(db.String(16), nullable=False, default="INFO")
    metadata_json = db.Column(db.Text, nullable=True)

    @property
    def details(self) -> dict:
        try:
            parsed = json.loads(self.metadata_json or "{}")
        except ValueError:
            return {"raw": self.metadata_json}
        return parsed if isinstance(parsed, dict) else {"raw": parsed}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": iso(self.created_at),
            "event_type": self.event_type,
            "actor_user_id": self.actor_user_id,
            "subject": f"{self.subject_type}:{self.subject_id}" if self.subject_type else None,
            "mode": self.mode,
            "request_id": self.request_id,
            "severity": self.severity,
            "details": self.details,
        }

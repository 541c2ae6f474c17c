import json
from datetime import datetime

from rizqdaan.extensions import db
from rizqdaan.models.base import DocumentMixin


class PlatformSetting(db.Model, DocumentMixin):
    """One settings document (``referrals``, ``payment_info``, ``ad_pricing``)."""

    __tablename__ = "platform_settings"

    id = db.Column(db.String(64), primary_key=True)
    value_json = db.Column(db.Text, nullable=False, default="{}")
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def value_dict(self) -> dict:
        try:
            data = json.loads(self.value_json or "{}")
            return data if isinstance(data, dict) else {}
        except Exception:
            return {}

    @classmethod
    def resolve_field(cls, path: str) -> str:
        # Settings documents are free-form; every field lives inside value_json.
        if not path or path == "id":
            raise KeyError(path)
        return path

    def get_field(self, path: str):
        return self.value_dict().get(self.resolve_field(path))

    def set_field(self, path: str, value) -> None:
        data = self.value_dict()
        data[self.resolve_field(path)] = value
        self.value_json = json.dumps(data, separators=(",", ":"), default=str)
        self.updated_at = datetime.utcnow()

    @classmethod
    def flatten_doc(cls, data: dict, prefix: str = "") -> dict:
        return dict(data or {})

    def to_doc(self) -> dict:
        doc = self.value_dict()
        doc["id"] = self.id
        return doc

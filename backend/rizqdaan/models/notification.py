from datetime import datetime

from rizqdaan.extensions import db
from rizqdaan.models.base import DocumentMixin, iso


class Notification(db.Model, DocumentMixin):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(160), nullable=False, default="")
    message = db.Column(db.Text, nullable=False, default="")
    type = db.Column(db.String(16), nullable=False, default="info")  # info | success | warning | error
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    link = db.Column(db.String(80), nullable=True)  # client view to open

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_doc(self) -> dict:
        return {
            "id": self.id,
            "user_id": int(self.user_id),
            "title": self.title or "",
            "message": self.message or "",
            "type": self.type or "info",
            "is_read": bool(self.is_read),
            "link": self.link or "",
            "created_at": iso(self.created_at),
        }

from datetime import datetime

from rizqdaan.extensions import db
from rizqdaan.models.base import DocumentMixin, iso


class Listing(db.Model, DocumentMixin):
    __tablename__ = "listings"

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    vendor_name = db.Column(db.String(160), nullable=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(24), nullable=False, default="Product")  # Business | Product | Service
    category = db.Column(db.String(80), nullable=True, index=True)
    price = db.Column(db.Float, nullable=False, default=0.0)
    original_price = db.Column(db.Float, nullable=True)
    image_url = db.Column(db.String(1024), nullable=True)
    location = db.Column(db.String(160), nullable=True)

    status = db.Column(db.String(24), nullable=False, default="active", index=True)
    is_promoted = db.Column(db.Boolean, nullable=False, default=False)

    views = db.Column(db.Integer, nullable=False, default=0)
    likes = db.Column(db.Integer, nullable=False, default=0)
    calls = db.Column(db.Integer, nullable=False, default=0)
    messages = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_doc(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": int(self.vendor_id) if self.vendor_id is not None else None,
            "vendor_name": self.vendor_name or "",
            "title": self.title or "",
            "description": self.description or "",
            "type": self.type or "Product",
            "category": self.category or "",
            "price": float(self.price or 0.0),
            "original_price": float(self.original_price) if self.original_price is not None else None,
            "image_url": self.image_url or "",
            "location": self.location or "",
            "status": self.status or "active",
            "is_promoted": bool(self.is_promoted),
            "views": int(self.views or 0),
            "likes": int(self.likes or 0),
            "calls": int(self.calls or 0),
            "messages": int(self.messages or 0),
            "created_at": iso(self.created_at),
        }

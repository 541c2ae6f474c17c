from datetime import datetime

from rizqdaan.extensions import db
from rizqdaan.models.base import DocumentMixin, iso


class AdCampaign(db.Model, DocumentMixin):
    __tablename__ = "campaigns"

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    listing_id = db.Column(db.Integer, nullable=True, index=True)
    listing_title = db.Column(db.String(200), nullable=True)
    listing_image = db.Column(db.String(1024), nullable=True)

    type = db.Column(db.String(32), nullable=False, default="featured_listing")  # featured_listing | banner_ad | social_boost
    goal = db.Column(db.String(24), nullable=False, default="traffic")  # traffic | calls | awareness
    status = db.Column(db.String(24), nullable=False, default="pending_approval", index=True)
    priority = db.Column(db.String(16), nullable=False, default="normal")  # normal | high

    # ISO-8601 strings, as stored in the campaign documents
    start_date = db.Column(db.String(40), nullable=True)
    end_date = db.Column(db.String(40), nullable=True)
    duration_days = db.Column(db.Integer, nullable=False, default=1)
    total_cost = db.Column(db.Float, nullable=False, default=0.0)
    target_location = db.Column(db.String(160), nullable=True)

    impressions = db.Column(db.Integer, nullable=False, default=0)
    clicks = db.Column(db.Integer, nullable=False, default=0)
    ctr = db.Column(db.Float, nullable=False, default=0.0)
    cpc = db.Column(db.Float, nullable=False, default=0.0)
    conversions = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_doc(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": int(self.vendor_id) if self.vendor_id is not None else None,
            "listing_id": int(self.listing_id) if self.listing_id is not None else None,
            "listing_title": self.listing_title or "",
            "listing_image": self.listing_image or "",
            "type": self.type or "featured_listing",
            "goal": self.goal or "traffic",
            "status": self.status or "pending_approval",
            "priority": self.priority or "normal",
            "start_date": self.start_date or "",
            "end_date": self.end_date or "",
            "duration_days": int(self.duration_days or 0),
            "total_cost": float(self.total_cost or 0.0),
            "target_location": self.target_location or "",
            "impressions": int(self.impressions or 0),
            "clicks": int(self.clicks or 0),
            "ctr": float(self.ctr or 0.0),
            "cpc": float(self.cpc or 0.0),
            "conversions": int(self.conversions or 0),
            "created_at": iso(self.created_at),
        }

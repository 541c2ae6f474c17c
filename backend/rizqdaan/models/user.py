from datetime import datetime

from werkzeug.security import check_password_hash, generate_password_hash

from rizqdaan.extensions import db
from rizqdaan.models.base import DocumentMixin, dump_json, iso, load_json_list


class User(db.Model, DocumentMixin):
    __tablename__ = "users"

    FIELD_PATHS = {
        "wallet.balance": "wallet_balance",
        "wallet.total_spend": "wallet_total_spend",
        "wallet.pending_deposit": "wallet_pending_deposit",
        "wallet.pending_withdrawal": "wallet_pending_withdrawal",
        "referral_stats.total_invited": "referral_total_invited",
        "referral_stats.total_earned": "referral_total_earned",
    }
    READONLY_FIELDS = frozenset({"id", "password_hash", "is_admin"})

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False, default="")

    shop_name = db.Column(db.String(160), nullable=True)
    shop_address = db.Column(db.String(255), nullable=True)
    profile_picture_url = db.Column(db.String(1024), nullable=True)
    bio = db.Column(db.Text, nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)

    role = db.Column(db.String(32), nullable=False, default="vendor")  # vendor | admin
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    is_banned = db.Column(db.Boolean, nullable=False, default=False)

    referral_code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    referred_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    referral_total_invited = db.Column(db.Integer, nullable=False, default=0)
    referral_total_earned = db.Column(db.Float, nullable=False, default=0.0)

    wallet_balance = db.Column(db.Float, nullable=False, default=0.0)
    wallet_total_spend = db.Column(db.Float, nullable=False, default=0.0)
    wallet_pending_deposit = db.Column(db.Float, nullable=False, default=0.0)
    wallet_pending_withdrawal = db.Column(db.Float, nullable=False, default=0.0)
    wallet_history_json = db.Column(db.Text, nullable=True)  # JSON list of transactions

    favorites_json = db.Column(db.Text, nullable=True)  # JSON list of listing ids

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def wallet_history(self) -> list:
        return load_json_list(self.wallet_history_json)

    @wallet_history.setter
    def wallet_history(self, value) -> None:
        self.wallet_history_json = dump_json(list(value or []))

    @property
    def favorites(self) -> list:
        return load_json_list(self.favorites_json)

    @favorites.setter
    def favorites(self, value) -> None:
        self.favorites_json = dump_json(list(value or []))

    @property
    def is_admin(self) -> bool:
        return (self.role or "").strip().lower() == "admin"

    def set_password(self, raw_password: str) -> None:
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, raw_password)

    def wallet_dict(self) -> dict:
        return {
            "balance": float(self.wallet_balance or 0.0),
            "total_spend": float(self.wallet_total_spend or 0.0),
            "pending_deposit": float(self.wallet_pending_deposit or 0.0),
            "pending_withdrawal": float(self.wallet_pending_withdrawal or 0.0),
        }

    def to_doc(self) -> dict:
        return {
            "id": self.id,
            "name": self.name or "",
            "email": self.email or "",
            "phone": self.phone or "",
            "shop_name": self.shop_name or "",
            "shop_address": self.shop_address or "",
            "profile_picture_url": self.profile_picture_url or "",
            "bio": self.bio or "",
            "role": self.role or "vendor",
            "is_admin": self.is_admin,
            "is_verified": bool(self.is_verified),
            "is_banned": bool(self.is_banned),
            "referral_code": self.referral_code or "",
            "referred_by": int(self.referred_by) if self.referred_by else None,
            "referral_stats": {
                "total_invited": int(self.referral_total_invited or 0),
                "total_earned": float(self.referral_total_earned or 0.0),
            },
            "wallet": self.wallet_dict(),
            "wallet_history": self.wallet_history,
            "favorites": self.favorites,
            "created_at": iso(self.created_at),
        }

from datetime import datetime

from rizqdaan.extensions import db
from rizqdaan.models.base import DocumentMixin, iso


class DepositRequest(db.Model, DocumentMixin):
    __tablename__ = "deposits"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_name = db.Column(db.String(120), nullable=True)

    amount = db.Column(db.Float, nullable=False)
    method = db.Column(db.String(64), nullable=False, default="Manual Transfer")
    transaction_id = db.Column(db.String(120), nullable=False)  # sender's bank/wallet reference
    sender_phone = db.Column(db.String(32), nullable=True)
    screenshot_url = db.Column(db.String(1024), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending | approved | rejected
    date = db.Column(db.String(10), nullable=False)
    admin_note = db.Column(db.String(240), nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True)

    def to_doc(self) -> dict:
        return {
            "id": self.id,
            "user_id": int(self.user_id),
            "user_name": self.user_name or "",
            "amount": float(self.amount or 0.0),
            "method": self.method or "",
            "transaction_id": self.transaction_id or "",
            "sender_phone": self.sender_phone or "",
            "screenshot_url": self.screenshot_url or "",
            "status": self.status or "pending",
            "date": self.date or "",
            "admin_note": self.admin_note or "",
            "processed_at": iso(self.processed_at),
        }


class WithdrawalRequest(db.Model, DocumentMixin):
    __tablename__ = "withdrawals"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_name = db.Column(db.String(120), nullable=True)

    amount = db.Column(db.Float, nullable=False)
    method = db.Column(db.String(32), nullable=False)  # EasyPaisa | JazzCash | Bank Transfer
    account_details = db.Column(db.String(240), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    request_date = db.Column(db.String(10), nullable=False)
    processed_date = db.Column(db.String(10), nullable=True)
    admin_note = db.Column(db.String(240), nullable=True)

    def to_doc(self) -> dict:
        return {
            "id": self.id,
            "user_id": int(self.user_id),
            "user_name": self.user_name or "",
            "amount": float(self.amount or 0.0),
            "method": self.method or "",
            "account_details": self.account_details or "",
            "status": self.status or "pending",
            "request_date": self.request_date or "",
            "processed_date": self.processed_date or "",
            "admin_note": self.admin_note or "",
        }

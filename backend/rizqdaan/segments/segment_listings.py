from flask import Blueprint, jsonify, request

from rizqdaan.services import get_services
from rizqdaan.services.errors import ValidationError
from rizqdaan.services.ledger import parse_amount
from rizqdaan.utils.auth import login_required

listings_bp = Blueprint("listings_bp", __name__, url_prefix="/api/listings")

LISTING_TYPES = ("Business", "Product", "Service")


@listings_bp.get("")
def list_listings():
    vendor_id = request.args.get("vendor_id", type=int)
    rows = get_services().profiles.listings(
        category=(request.args.get("category") or "").strip() or None,
        vendor_id=vendor_id,
    )
    return jsonify({"ok": True, "items": rows}), 200


@listings_bp.get("/<int:listing_id>")
def listing_detail(listing_id):
    return jsonify({"ok": True, "listing": get_services().profiles.listing_view(listing_id)}), 200


@listings_bp.post("")
@login_required
def create_listing(user):
    data = request.get_json(silent=True) or {}
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("TITLE_REQUIRED", "Title is required")
    listing_type = (data.get("type") or "Product").strip()
    if listing_type not in LISTING_TYPES:
        raise ValidationError("INVALID_LISTING_TYPE", f"Type must be one of: {', '.join(LISTING_TYPES)}")
    doc = {
        "vendor_id": user.id,
        "vendor_name": user.shop_name or user.name,
        "title": title,
        "description": (data.get("description") or "").strip(),
        "type": listing_type,
        "category": (data.get("category") or "").strip(),
        "price": parse_amount(data.get("price")),
        "image_url": (data.get("image_url") or "").strip(),
        "location": (data.get("location") or "").strip(),
        "status": "active",
    }
    result = get_services().store.add("listings", doc)
    if not result.ok:
        return jsonify(result.to_dict()), 503
    return jsonify({"ok": True, "listing": result.value}), 201


@listings_bp.post("/<int:listing_id>/favorite")
@login_required
def toggle_favorite(user, listing_id):
    profiles = get_services().profiles
    profiles.listing_view(listing_id)
    return jsonify(profiles.toggle_favorite(user.id, listing_id)), 200


@listings_bp.post("/<int:listing_id>/interactions/<field>")
def record_interaction(listing_id, field):
    return jsonify(get_services().profiles.record_interaction(listing_id, field)), 200

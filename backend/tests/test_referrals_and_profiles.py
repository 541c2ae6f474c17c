from __future__ import annotations

import time
import unittest

from rizqdaan import create_app
from rizqdaan.extensions import db
from rizqdaan.models import User
from rizqdaan.services.errors import NotFoundError, ValidationError
from rizqdaan.services.referral_service import generate_referral_code, normalize_referral_code


class ReferralProgramTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app(
            {
                "TESTING": True,
                "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
                "LOCAL_MIRROR_BACKEND": "memory",
                "ASSET_UPLOAD_PROVIDER": "mock",
            }
        )
        with cls.app.app_context():
            db.create_all()
        cls.services = cls.app.extensions["rizqdaan"]
        cls.referrals = cls.services.referrals

    def setUp(self):
        self.ctx = self.app.app_context()
        self.ctx.push()

    def tearDown(self):
        db.session.remove()
        self.ctx.pop()

    def _seed_user(self, name: str = "Ayesha") -> User:
        suffix = str(time.time_ns())
        user = User(name=name, email=f"user-{suffix}@rizqdaan.test")
        user.set_password("Passw0rd!")
        db.session.add(user)
        db.session.commit()
        return user

    def _doc(self, user_id) -> dict:
        return self.services.store.get("users", user_id).value

    def test_code_helpers(self):
        self.assertEqual(normalize_referral_code("  ayes-1234 !"), "AYES-1234")
        code = generate_referral_code("Ali Raza")
        self.assertTrue(code.startswith("ALIR-"))
        self.assertTrue(generate_referral_code("").startswith("USER-"))

    def test_ensure_code_is_stable(self):
        user = self._seed_user()
        code = self.referrals.ensure_code(user.id)
        self.assertTrue(code.startswith("AYES-"))
        self.assertEqual(self.referrals.ensure_code(user.id), code)

    def test_signup_credits_both_sides_once(self):
        inviter = self._seed_user("Bilal")
        invitee = self._seed_user("Sana")
        code = self.referrals.ensure_code(inviter.id)

        result = self.referrals.apply_signup(self._doc(invitee.id), code.lower())
        self.assertTrue(result["ok"])
        self.assertEqual(self.services.ledger.wallet_view(inviter.id)["balance"], 200.0)
        self.assertEqual(self.services.ledger.wallet_view(invitee.id)["balance"], 300.0)

        inviter_doc = self._doc(inviter.id)
        self.assertEqual(inviter_doc["referral_stats"]["total_invited"], 1)
        self.assertEqual(inviter_doc["referral_stats"]["total_earned"], 200.0)
        self.assertEqual(inviter_doc["wallet_history"][0]["description"], "Referral Bonus: Invited Sana")
        self.assertEqual(self._doc(invitee.id)["referred_by"], inviter.id)

        again = self.referrals.apply_signup(self._doc(invitee.id), code)
        self.assertEqual(again["error"], "ALREADY_REFERRED")
        self.assertEqual(self.services.ledger.wallet_view(invitee.id)["balance"], 300.0)

    def test_signup_rejections(self):
        user = self._seed_user()
        code = self.referrals.ensure_code(user.id)
        self.assertEqual(self.referrals.apply_signup(self._doc(user.id), code)["error"], "SELF_REFERRAL")
        self.assertEqual(self.referrals.apply_signup(self._doc(user.id), "NOPE-0000")["error"], "REFERRAL_NOT_FOUND")
        self.assertEqual(self.referrals.apply_signup(self._doc(user.id), "")["error"], "INVALID_CODE")

    def test_paused_programme(self):
        inviter = self._seed_user()
        invitee = self._seed_user()
        code = self.referrals.ensure_code(inviter.id)
        self.services.settings.save("referrals", {"is_active": False})
        try:
            result = self.referrals.apply_signup(self._doc(invitee.id), code)
        finally:
            self.services.settings.save("referrals", {"is_active": True})
        self.assertEqual(result["error"], "REFERRALS_DISABLED")

    def test_stats_badge(self):
        user = self._seed_user()
        self.services.store.update("users", user.id, {"referral_stats.total_invited": 5})
        stats = self.referrals.stats(user.id)
        self.assertTrue(stats["has_badge"])
        self.assertEqual(stats["badge_threshold"], 5)


class ProfileViewsTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app(
            {
                "TESTING": True,
                "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
                "LOCAL_MIRROR_BACKEND": "memory",
                "ASSET_UPLOAD_PROVIDER": "mock",
            }
        )
        with cls.app.app_context():
            db.create_all()
        cls.services = cls.app.extensions["rizqdaan"]
        cls.profiles = cls.services.profiles

    def setUp(self):
        self.ctx = self.app.app_context()
        self.ctx.push()

    def tearDown(self):
        self.services.store.policy.readonly.clear()
        db.session.remove()
        self.ctx.pop()

    def _seed_user(self) -> User:
        suffix = str(time.time_ns())
        user = User(name=f"User {suffix[-4:]}", email=f"user-{suffix}@rizqdaan.test")
        user.set_password("Passw0rd!")
        db.session.add(user)
        db.session.commit()
        return user

    def _seed_listing(self, vendor_id, **extra) -> dict:
        doc = {"vendor_id": vendor_id, "title": "Lawn Suit", "category": "Fashion", "price": 3500}
        doc.update(extra)
        return self.services.store.add("listings", doc).value

    def test_user_view_refreshes_after_ledger_write(self):
        user = self._seed_user()
        self.assertEqual(self.profiles.user_view(user.id)["wallet"]["balance"], 0.0)
        self.services.ledger.apply_delta(user.id, 75, "bonus", "Welcome")
        view = self.profiles.user_view(user.id)
        self.assertEqual(view["wallet"]["balance"], 75.0)
        self.assertEqual(len(view["wallet_history"]), 1)

    def test_user_view_missing(self):
        with self.assertRaises(NotFoundError):
            self.profiles.user_view(999999)

    def test_missing_entities_are_not_watched(self):
        watches = len(self.services.store._watches)
        for missing in (888881, 888882):
            with self.assertRaises(NotFoundError):
                self.profiles.listing_view(missing)
            with self.assertRaises(NotFoundError):
                self.profiles.user_view(missing)
        self.assertEqual(len(self.services.store._watches), watches)

    def test_views_hand_out_copies(self):
        user = self._seed_user()
        listing = self._seed_listing(user.id)
        view = self.profiles.listing_view(listing["id"])
        view["title"] = "Tampered"
        self.assertEqual(self.profiles.listing_view(listing["id"])["title"], "Lawn Suit")

        profile = self.profiles.user_view(user.id)
        profile["wallet"]["balance"] = 1e6
        profile["favorites"].append(42)
        fresh = self.profiles.user_view(user.id)
        self.assertEqual(fresh["wallet"]["balance"], 0.0)
        self.assertEqual(fresh["favorites"], [])

    def test_toggle_favorite_round_trip(self):
        user = self._seed_user()
        listing = self._seed_listing(user.id)
        first = self.profiles.toggle_favorite(user.id, listing["id"])
        self.assertTrue(first["favorited"])
        self.assertEqual(self.services.store.get("users", user.id).value["favorites"], [listing["id"]])
        second = self.profiles.toggle_favorite(user.id, listing["id"])
        self.assertFalse(second["favorited"])
        self.assertEqual(self.profiles.user_view(user.id)["favorites"], [])

    def test_interactions_fall_back_to_mirror_counters(self):
        user = self._seed_user()
        listing = self._seed_listing(user.id)
        self.assertEqual(self.profiles.record_interaction(listing["id"], "views")["mode"], "canonical")
        self.services.store.policy.readonly.add("listings")
        self.assertEqual(self.profiles.record_interaction(listing["id"], "views")["mode"], "local_fallback")
        self.assertEqual(self.profiles.listing_view(listing["id"])["views"], 2)
        with self.assertRaises(ValidationError):
            self.profiles.record_interaction(listing["id"], "shares")

    def test_interaction_on_missing_listing(self):
        with self.assertRaises(NotFoundError):
            self.profiles.record_interaction(999999, "likes")

    def test_promoted_listings_first(self):
        user = self._seed_user()
        plain = self._seed_listing(user.id, title="Plain")
        promoted = self._seed_listing(user.id, title="Boosted", is_promoted=True)
        self._seed_listing(user.id, title="Hidden", status="paused")
        rows = self.profiles.listings(vendor_id=user.id)
        self.assertEqual([r["id"] for r in rows], [promoted["id"], plain["id"]])


if __name__ == "__main__":
    unittest.main()

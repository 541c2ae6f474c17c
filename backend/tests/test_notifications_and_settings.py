from __future__ import annotations

import time
import unittest

from rizqdaan import create_app
from rizqdaan.extensions import db
from rizqdaan.models import User
from rizqdaan.services.errors import NotFoundError, ValidationError
from rizqdaan.store import channel as topics


class NotificationEmitterTestCase(unittest.TestCase):
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

    def test_emit_and_read_flow(self):
        notifier = self.services.notifier
        user = self._seed_user()
        first = notifier.emit(user.id, "Welcome", "Hello there", "success", "wallet-history")
        notifier.emit(user.id, "Reminder", "Finish your profile", "shout")
        self.assertTrue(first.ok)
        self.assertEqual(notifier.unread_count(user.id), 2)

        items = notifier.list_for(user.id).value
        self.assertEqual(len(items), 2)
        self.assertEqual({n["type"] for n in items}, {"success", "info"})

        notifier.mark_read(user.id, first.value["id"])
        self.assertEqual(notifier.unread_count(user.id), 1)
        self.assertEqual(notifier.mark_all_read(user.id).value, 1)
        self.assertEqual(notifier.unread_count(user.id), 0)
        self.assertEqual(notifier.mark_all_read(user.id).value, 0)

    def test_mark_read_is_scoped_to_owner(self):
        notifier = self.services.notifier
        owner = self._seed_user()
        stranger = self._seed_user()
        note = notifier.emit(owner.id, "Private", "For the owner").value
        with self.assertRaises(NotFoundError):
            notifier.mark_read(stranger.id, note["id"])
        with self.assertRaises(NotFoundError):
            notifier.mark_read(owner.id, 999999)

    def test_denied_write_drops_notification(self):
        user = self._seed_user()
        self.services.store.policy.readonly.add("notifications")
        result = self.services.notifier.emit(user.id, "Lost", "Never stored")
        self.assertFalse(result.ok)
        self.assertEqual(result.error_code, "PERMISSION_DENIED")
        self.services.store.policy.readonly.clear()
        self.assertEqual(self.services.notifier.unread_count(user.id), 0)


class PlatformSettingsTestCase(unittest.TestCase):
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

    def setUp(self):
        self.ctx = self.app.app_context()
        self.ctx.push()

    def tearDown(self):
        self.services.store.policy.readonly.clear()
        db.session.remove()
        self.ctx.pop()

    def test_defaults_when_nothing_saved(self):
        referrals = self.services.settings.referrals()
        self.assertEqual(referrals["inviter_bonus"], 200)
        self.assertEqual(referrals["invitee_bonus"], 300)
        self.assertTrue(referrals["is_active"])

    def test_save_persists_and_signals(self):
        seen = []
        unsubscribe = self.services.channel.subscribe(topics.SETTINGS_UPDATED, lambda topic, **payload: seen.append(payload["key"]))
        try:
            result = self.services.settings.save("payment_info", {"bank_name": " Meezan ", "account_number": "0123"})
        finally:
            unsubscribe()
        self.assertEqual(result["mode"], "canonical")
        self.assertEqual(self.services.store.get("settings", "payment_info").value["bank_name"], "Meezan")
        self.assertEqual(self.services.settings.payment_info()["account_number"], "0123")
        self.assertEqual(seen, ["payment_info"])

    def test_denied_save_keeps_local_copy_until_canonical_write(self):
        settings = self.services.settings
        self.services.store.policy.readonly.add("settings")
        result = settings.save("ad_pricing", {"banner_ad": 750})
        self.assertEqual(result["mode"], "local_fallback")
        self.assertEqual(settings.ad_pricing()["banner_ad"], 750)
        self.assertFalse(self.services.store.get("settings", "ad_pricing").ok)

        self.services.store.policy.readonly.clear()
        result = settings.save("ad_pricing", {"social_boost": 350})
        self.assertEqual(result["mode"], "canonical")
        stored = self.services.store.get("settings", "ad_pricing").value
        self.assertEqual(stored["banner_ad"], 750)
        self.assertEqual(stored["social_boost"], 350)
        self.assertIsNone(self.services.mirror.settings_copy("ad_pricing"))

    def test_invalid_settings_rejected(self):
        with self.assertRaises(ValidationError):
            self.services.settings.save("ad_pricing", {"banner_ad": -5})
        with self.assertRaises(ValidationError):
            self.services.settings.save("ad_pricing", {"popup": 5})
        with self.assertRaises(ValidationError):
            self.services.settings.get("shipping")


if __name__ == "__main__":
    unittest.main()

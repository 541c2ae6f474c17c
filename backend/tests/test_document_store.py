from __future__ import annotations

import time
import unittest

from rizqdaan import create_app
from rizqdaan.extensions import db
from rizqdaan.models import User
from rizqdaan.store.documents import ArrayRemove, ArrayUnion, Increment
from rizqdaan.store.results import ErrorKind


class DocumentStoreTestCase(unittest.TestCase):
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
        cls.store = cls.app.extensions["rizqdaan"].store

    def setUp(self):
        self.ctx = self.app.app_context()
        self.ctx.push()

    def tearDown(self):
        self.store.policy.readonly.clear()
        self.store.policy.unreadable.clear()
        self.store.policy.offline = False
        db.session.remove()
        self.ctx.pop()

    def _seed_user(self, **extra) -> User:
        suffix = str(time.time_ns())
        user = User(name=f"User {suffix[-4:]}", email=f"user-{suffix}@rizqdaan.test", **extra)
        user.set_password("Passw0rd!")
        db.session.add(user)
        db.session.commit()
        return user

    def test_get_missing_document(self):
        result = self.store.get("users", 999999)
        self.assertFalse(result.ok)
        self.assertIs(result.error, ErrorKind.NOT_FOUND)
        self.assertEqual(result.error_code, "NOT_FOUND")

    def test_unknown_collection_is_validation_error(self):
        result = self.store.get("orders", 1)
        self.assertIs(result.error, ErrorKind.VALIDATION)

    def test_dotted_update_and_increment(self):
        user = self._seed_user(wallet_balance=10)
        result = self.store.update("users", user.id, {"wallet.balance": Increment(15), "referral_stats.total_invited": Increment()})
        self.assertTrue(result.ok)
        self.assertEqual(result.value["wallet"]["balance"], 25.0)
        self.assertEqual(result.value["referral_stats"]["total_invited"], 1)

    def test_nested_document_update_is_flattened(self):
        user = self._seed_user()
        result = self.store.update("users", user.id, {"wallet": {"pending_deposit": 40}})
        self.assertTrue(result.ok)
        self.assertEqual(result.value["wallet"]["pending_deposit"], 40.0)

    def test_unknown_field_rejected(self):
        user = self._seed_user()
        result = self.store.update("users", user.id, {"wallet.bogus": 1})
        self.assertFalse(result.ok)
        self.assertIs(result.error, ErrorKind.VALIDATION)

    def test_readonly_fields_are_ignored(self):
        user = self._seed_user()
        result = self.store.update("users", user.id, {"password_hash": "x", "name": "Renamed"})
        self.assertTrue(result.ok)
        self.assertEqual(result.value["name"], "Renamed")
        self.assertTrue(db.session.get(User, user.id).check_password("Passw0rd!"))

    def test_array_union_dedupes_by_id(self):
        user = self._seed_user()
        tx = {"id": "tx_a", "amount": 1}
        self.store.update("users", user.id, {"wallet_history": ArrayUnion(tx)})
        result = self.store.update("users", user.id, {"wallet_history": ArrayUnion(dict(tx, amount=2), {"id": "tx_b"})})
        history = result.value["wallet_history"]
        self.assertEqual([row["id"] for row in history], ["tx_a", "tx_b"])
        self.assertEqual(history[0]["amount"], 1)

    def test_array_remove(self):
        user = self._seed_user()
        self.store.update("users", user.id, {"favorites": ArrayUnion(3, 4, 5)})
        result = self.store.update("users", user.id, {"favorites": ArrayRemove(4)})
        self.assertEqual(result.value["favorites"], [3, 5])

    def test_expect_mismatch_is_conflict(self):
        user = self._seed_user(role="vendor")
        result = self.store.update("users", user.id, {"name": "Nope"}, expect={"role": "admin"})
        self.assertFalse(result.ok)
        self.assertIs(result.error, ErrorKind.CONFLICT)
        self.assertNotEqual(self.store.get("users", user.id).value["name"], "Nope")

    def test_batch_is_all_or_nothing(self):
        user = self._seed_user(wallet_balance=5)
        batch = self.store.batch()
        batch.update("users", user.id, {"wallet.balance": 500})
        batch.add("notifications", {"user_id": user.id, "title": "Hello", "message": "World"})
        batch.update("listings", 987654, {"views": Increment(1)})
        result = batch.commit()
        self.assertFalse(result.ok)
        self.assertIs(result.error, ErrorKind.NOT_FOUND)
        self.assertFalse(batch.committed)
        self.assertEqual(self.store.get("users", user.id).value["wallet"]["balance"], 5.0)
        self.assertEqual(self.store.query("notifications", user_id=user.id).value, [])

    def test_batch_commit_returns_docs_in_order(self):
        user = self._seed_user()
        batch = self.store.batch()
        index = batch.add("notifications", {"user_id": user.id, "title": "A", "message": "B"})
        batch.update("users", user.id, {"bio": "hi"})
        result = batch.commit()
        self.assertTrue(result.ok)
        self.assertEqual(result.value[index]["title"], "A")
        self.assertEqual(result.value[1]["bio"], "hi")

    def test_permission_denied_on_readonly_collection(self):
        user = self._seed_user()
        self.store.policy.readonly.add("users")
        result = self.store.update("users", user.id, {"name": "Denied"})
        self.assertIs(result.error, ErrorKind.PERMISSION_DENIED)
        self.assertTrue(self.store.get("users", user.id).ok)

        self.store.policy.unreadable.add("*")
        self.assertIs(self.store.get("users", user.id).error, ErrorKind.PERMISSION_DENIED)

    def test_offline_store_is_unavailable(self):
        self.store.policy.offline = True
        self.assertIs(self.store.query("users").error, ErrorKind.UNAVAILABLE)

    def test_settings_documents_are_free_form(self):
        result = self.store.set("settings", "ad_pricing", {"banner_ad": 650}, merge=True)
        self.assertTrue(result.ok)
        result = self.store.update("settings", "ad_pricing", {"social_boost": 320})
        self.assertEqual(result.value, {"id": "ad_pricing", "banner_ad": 650, "social_boost": 320})

    def test_query_filters_and_limits(self):
        user = self._seed_user()
        for n in range(3):
            self.store.add("notifications", {"user_id": user.id, "title": f"N{n}", "message": "m"})
        found = self.store.query("notifications", user_id=user.id, descending=True, limit=2)
        self.assertTrue(found.ok)
        self.assertEqual([row["title"] for row in found.value], ["N2", "N1"])

    def test_watch_delivers_initial_and_after_commit(self):
        user = self._seed_user()
        snapshots = []
        unsubscribe = self.store.watch("users", snapshots.append, doc_id=user.id)
        self.assertEqual(len(snapshots), 1)

        self.store.update("users", user.id, {"bio": "changed"})
        self.assertEqual(len(snapshots), 2)
        self.assertEqual(snapshots[-1]["bio"], "changed")

        other = self._seed_user()
        self.store.update("users", other.id, {"bio": "elsewhere"})
        self.assertEqual(len(snapshots), 2)

        unsubscribe()
        self.store.update("users", user.id, {"bio": "again"})
        self.assertEqual(len(snapshots), 2)

    def test_watch_reports_errors(self):
        user = self._seed_user()
        self.store.policy.unreadable.add("users")
        errors = []
        unsubscribe = self.store.watch("users", lambda _doc: None, doc_id=user.id, on_error=errors.append)
        unsubscribe()
        self.assertEqual(len(errors), 1)
        self.assertIs(errors[0].error, ErrorKind.PERMISSION_DENIED)


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import time
import unittest

from rizqdaan import create_app
from rizqdaan.celery_app import create_celery_app
from rizqdaan.extensions import db
from rizqdaan.models import PlatformEvent, User
from rizqdaan.services.reconciliation_service import (
    mirror_drift_report,
    push_mirror_to_canonical,
    recompute_wallet_balances,
)
from rizqdaan.tasks.mirror_tasks import audit_wallet_ledger, run_mirror_reconciliation


class MirrorReconciliationTestCase(unittest.TestCase):
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

    def _seed_user(self, balance: float = 0.0) -> User:
        suffix = str(time.time_ns())
        user = User(name=f"User {suffix[-4:]}", email=f"user-{suffix}@rizqdaan.test", wallet_balance=balance)
        user.set_password("Passw0rd!")
        db.session.add(user)
        db.session.commit()
        return user

    def _drift_for(self, report: dict, user_id) -> dict | None:
        return next((item for item in report["drift_items"] if item["user_id"] == user_id), None)

    def test_denied_writes_show_as_drift_then_push_clears_it(self):
        user = self._seed_user(balance=100)
        self.services.store.policy.readonly.add("users")
        self.services.ledger.apply_delta(user.id, 40, "bonus", "Offline bonus")
        self.services.store.policy.readonly.clear()

        item = self._drift_for(mirror_drift_report(self.services.store, self.services.mirror), user.id)
        self.assertIsNotNone(item)
        self.assertEqual(item["balance_drift"], 40.0)
        self.assertEqual(len(item["local_only_transactions"]), 1)

        summary = push_mirror_to_canonical(self.services.store, self.services.mirror)
        self.assertIn(user.id, summary["pushed"])
        doc = self.services.store.get("users", user.id).value
        self.assertEqual(doc["wallet"]["balance"], 140.0)
        self.assertEqual(doc["wallet_history"][0]["description"], "Offline bonus")
        self.assertIsNone(self.services.mirror.wallet_override(user.id))
        self.assertIsNone(self._drift_for(mirror_drift_report(self.services.store, self.services.mirror), user.id))
        self.assertIsNotNone(PlatformEvent.query.filter_by(event_type="mirror_pushed").first())

    def test_canonical_writes_do_not_drift(self):
        user = self._seed_user(balance=0)
        self.services.ledger.apply_delta(user.id, 10, "bonus", "Synced")
        report = mirror_drift_report(self.services.store, self.services.mirror)
        self.assertIsNone(self._drift_for(report, user.id))

    def test_push_keeps_mirror_when_canonical_still_denied(self):
        user = self._seed_user(balance=0)
        self.services.store.policy.readonly.add("users")
        self.services.ledger.apply_delta(user.id, 15, "bonus", "Still offline")
        summary = push_mirror_to_canonical(self.services.store, self.services.mirror)
        self.assertFalse(summary["ok"])
        self.assertEqual(self.services.mirror.wallet_override(user.id)["balance"], 15.0)

    def test_ledger_recompute_flags_balances_without_history(self):
        user = self._seed_user(balance=500)
        clean = self._seed_user(balance=0)
        self.services.ledger.apply_delta(clean.id, 20, "bonus", "Accounted")
        report = recompute_wallet_balances(self.services.store)
        flagged = {item["user_id"] for item in report["drift_items"]}
        self.assertIn(user.id, flagged)
        self.assertNotIn(clean.id, flagged)

    def test_task_body_pushes_when_asked(self):
        user = self._seed_user(balance=0)
        self.services.store.policy.readonly.add("users")
        self.services.ledger.apply_delta(user.id, 5, "bonus", "Queued")
        self.services.store.policy.readonly.clear()

        dry = run_mirror_reconciliation(push=False)
        self.assertGreaterEqual(dry["drift_count"], 1)
        self.assertEqual(dry["pushed"], [])
        pushed = run_mirror_reconciliation(push=True)
        self.assertIn(user.id, pushed["pushed"])

    def test_celery_beat_schedule(self):
        celery = create_celery_app(self.app)
        entry = celery.conf.beat_schedule["mirror-reconcile"]
        self.assertEqual(entry["task"], "rizqdaan.tasks.mirror_tasks.reconcile_mirror")
        self.assertEqual(entry["schedule"], float(self.app.config["MIRROR_RECONCILE_INTERVAL_SECONDS"]))
        self.assertIn("wallet-ledger-audit", celery.conf.beat_schedule)

    def test_ledger_audit_task_body(self):
        user = self._seed_user(balance=75)
        result = audit_wallet_ledger.run()
        self.assertTrue(result["ok"])
        self.assertIn(user.id, [item["user_id"] for item in result["drift_items"]])


if __name__ == "__main__":
    unittest.main()

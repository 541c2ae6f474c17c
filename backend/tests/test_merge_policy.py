from __future__ import annotations

import unittest

from rizqdaan.store.merge import (
    merge_campaign_list,
    merge_history,
    merge_listing,
    merge_request,
    merge_user,
    merge_wallet,
    sort_history,
    wallet_differs,
)


class MergePolicyTestCase(unittest.TestCase):
    def test_wallet_override_replaces_only_present_fields(self):
        canonical = {"balance": 1000, "total_spend": 50, "pending_deposit": 200, "pending_withdrawal": 0}
        merged = merge_wallet(canonical, {"balance": 800})
        self.assertEqual(merged["balance"], 800.0)
        self.assertEqual(merged["total_spend"], 50.0)
        self.assertEqual(merged["pending_deposit"], 200.0)

    def test_wallet_missing_canonical_defaults_to_zero(self):
        merged = merge_wallet(None, None)
        self.assertEqual(merged, {"balance": 0.0, "total_spend": 0.0, "pending_deposit": 0.0, "pending_withdrawal": 0.0})

    def test_history_dedupes_by_id_canonical_wins(self):
        canonical = [{"id": "tx_a", "amount": 100}, {"id": "tx_b", "amount": 200}]
        local = [{"id": "tx_c", "amount": 5}, {"id": "tx_a", "amount": 999}, {"id": "tx_d", "amount": 7}]
        merged = merge_history(canonical, local)
        self.assertEqual([tx["id"] for tx in merged], ["tx_a", "tx_b", "tx_c", "tx_d"])
        self.assertEqual(merged[0]["amount"], 100)

    def test_history_merge_is_not_sorted(self):
        canonical = [{"id": "old", "date": "2024-01-01"}]
        local = [{"id": "new", "date": "2025-01-01"}]
        self.assertEqual([tx["id"] for tx in merge_history(canonical, local)], ["old", "new"])
        self.assertEqual([tx["id"] for tx in sort_history(merge_history(canonical, local))], ["new", "old"])

    def test_merge_user_overlays_wallet_history_and_favorites(self):
        user = {
            "id": 3,
            "wallet": {"balance": 10},
            "wallet_history": [{"id": "tx_1"}],
            "favorites": [1, 2],
        }
        merged = merge_user(user, {"balance": 40}, [{"id": "tx_2"}, {"id": "tx_1"}], [9])
        self.assertEqual(merged["wallet"]["balance"], 40.0)
        self.assertEqual([tx["id"] for tx in merged["wallet_history"]], ["tx_1", "tx_2"])
        self.assertEqual(merged["favorites"], [9])
        self.assertEqual(user["wallet"]["balance"], 10)

    def test_listing_counters_sum_and_flags_override(self):
        listing = {"id": 1, "views": 10, "likes": 2, "is_promoted": False, "title": "Chair"}
        merged = merge_listing(listing, {"views": 3, "is_promoted": True, "title": "ignored"})
        self.assertEqual(merged["views"], 13)
        self.assertEqual(merged["likes"], 2)
        self.assertTrue(merged["is_promoted"])
        self.assertEqual(merged["title"], "Chair")

    def test_campaign_list_surfaces_local_only_entries(self):
        canonical = [{"id": 1, "status": "pending_approval", "priority": "normal"}]
        overrides = {
            "1": {"status": "active"},
            "local_1": {"status": "pending_approval", "vendor_id": 4, "local_only": True},
            "99": {"status": "rejected"},
        }
        merged = merge_campaign_list(canonical, overrides)
        self.assertEqual(len(merged), 2)
        self.assertEqual(merged[0]["status"], "active")
        self.assertEqual(merged[1]["id"], "local_1")
        self.assertNotIn("local_only", merged[1])

    def test_request_status_override(self):
        merged = merge_request({"id": 5, "status": "pending", "amount": 100}, {"status": "approved"})
        self.assertEqual(merged["status"], "approved")
        self.assertEqual(merged["amount"], 100)

    def test_wallet_differs(self):
        self.assertFalse(wallet_differs({"balance": 5}, None))
        self.assertFalse(wallet_differs({"balance": 5}, {"balance": 5.0}))
        self.assertTrue(wallet_differs({"balance": 5}, {"balance": 6}))


if __name__ == "__main__":
    unittest.main()

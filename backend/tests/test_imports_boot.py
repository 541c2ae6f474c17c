from __future__ import annotations

import importlib
import unittest


class ImportsBootTestCase(unittest.TestCase):
    def test_import_create_app(self):
        module = importlib.import_module("rizqdaan")
        create_app = getattr(module, "create_app", None)
        self.assertTrue(callable(create_app))

    def test_import_main_app(self):
        module = importlib.import_module("main")
        app = getattr(module, "app", None)
        self.assertIsNotNone(app)
        self.assertIn("rizqdaan", app.extensions)

    def test_import_campaign_segment(self):
        module = importlib.import_module("rizqdaan.segments.segment_campaigns")
        self.assertIsNotNone(module)

    def test_import_mirror_tasks(self):
        module = importlib.import_module("rizqdaan.tasks.mirror_tasks")
        self.assertTrue(hasattr(module, "reconcile_mirror"))


if __name__ == "__main__":
    unittest.main()

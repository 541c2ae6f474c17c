from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from flask import Flask

from rizqdaan.utils.observability import get_request_id, init_sentry


class SentryOptionalInitTestCase(unittest.TestCase):
    def test_sentry_init_is_noop_without_dsn(self):
        app = Flask(__name__)
        with patch.dict(os.environ, {"SENTRY_DSN": ""}, clear=False):
            init_sentry(app)

    def test_request_id_empty_outside_request(self):
        self.assertEqual(get_request_id(), "")


if __name__ == "__main__":
    unittest.main()

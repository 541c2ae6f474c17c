from __future__ import annotations

import unittest
from unittest import mock

import requests

from rizqdaan.integrations.assets.cloudinary_provider import CloudinaryAssetUploadProvider
from rizqdaan.integrations.assets.factory import assets_health, build_asset_provider
from rizqdaan.integrations.assets.mock_provider import MockAssetUploadProvider
from rizqdaan.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError


class AssetProvidersTestCase(unittest.TestCase):
    def test_factory_selection(self):
        self.assertIsInstance(build_asset_provider({"ASSET_UPLOAD_PROVIDER": "mock"}), MockAssetUploadProvider)
        with self.assertRaises(IntegrationDisabledError):
            build_asset_provider({"ASSET_UPLOAD_PROVIDER": "disabled"})
        with self.assertRaises(IntegrationMisconfiguredError):
            build_asset_provider({"ASSET_UPLOAD_PROVIDER": "cloudinary"})
        provider = build_asset_provider(
            {"ASSET_UPLOAD_PROVIDER": "cloudinary", "CLOUDINARY_CLOUD_NAME": "demo", "CLOUDINARY_UPLOAD_PRESET": "unsigned"}
        )
        self.assertEqual(provider.endpoint, "https://api.cloudinary.com/v1_1/demo/image/upload")

    def test_health(self):
        self.assertEqual(assets_health({"ASSET_UPLOAD_PROVIDER": "disabled"})["status"], "disabled")
        self.assertEqual(assets_health({"ASSET_UPLOAD_PROVIDER": "cloudinary"})["status"], "misconfigured")
        self.assertEqual(assets_health({"ASSET_UPLOAD_PROVIDER": "mock"})["provider"], "mock")

    def test_mock_provider_is_deterministic(self):
        provider = MockAssetUploadProvider()
        a = provider.upload(filename="proof.png", content=b"abc", folder="deposits/1")
        b = provider.upload(filename="proof.png", content=b"abc", folder="deposits/1")
        self.assertTrue(a.ok)
        self.assertEqual(a.url, b.url)
        self.assertEqual(len(provider.uploads), 2)
        self.assertFalse(provider.upload(filename="[FAIL].png", content=b"abc").ok)

    def test_cloudinary_success(self):
        provider = CloudinaryAssetUploadProvider(cloud_name="demo", upload_preset="unsigned")
        response = mock.Mock(status_code=200, content=b"{}")
        response.json.return_value = {"secure_url": "https://res.cloudinary.com/demo/proof.jpg"}
        with mock.patch("requests.post", return_value=response) as post:
            result = provider.upload(filename="proof.jpg", content=b"jpeg", content_type="image/jpeg", folder="deposits/3")
        self.assertTrue(result.ok)
        self.assertEqual(result.url, "https://res.cloudinary.com/demo/proof.jpg")
        self.assertEqual(post.call_args.kwargs["data"], {"upload_preset": "unsigned", "folder": "deposits/3"})

    def test_cloudinary_errors(self):
        provider = CloudinaryAssetUploadProvider(cloud_name="demo", upload_preset="unsigned")
        response = mock.Mock(status_code=401, content=b"{}")
        response.json.return_value = {"error": {"message": "Invalid preset"}}
        with mock.patch("requests.post", return_value=response):
            result = provider.upload(filename="a.jpg", content=b"x")
        self.assertFalse(result.ok)
        self.assertEqual(result.code, "UPLOAD_AUTH_FAILED")
        self.assertEqual(result.message, "Invalid preset")

        with mock.patch("requests.post", side_effect=requests.Timeout()):
            result = provider.upload(filename="a.jpg", content=b"x")
        self.assertEqual(result.code, "UPLOAD_PROVIDER_DOWN")
        self.assertEqual(result.message, "timeout")


if __name__ == "__main__":
    unittest.main()

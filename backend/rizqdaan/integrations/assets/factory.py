from __future__ import annotations

from rizqdaan.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from rizqdaan.integrations.assets.base import AssetUploadProvider
from rizqdaan.integrations.assets.cloudinary_provider import CloudinaryAssetUploadProvider
from rizqdaan.integrations.assets.mock_provider import MockAssetUploadProvider


def build_asset_provider(config) -> AssetUploadProvider:
    provider = (config.get("ASSET_UPLOAD_PROVIDER") or "mock").strip().lower()
    if provider == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:assets")
    if provider == "mock":
        return MockAssetUploadProvider()
    if provider != "cloudinary":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:unknown provider {provider}")

    cloud_name = (config.get("CLOUDINARY_CLOUD_NAME") or "").strip()
    preset = (config.get("CLOUDINARY_UPLOAD_PRESET") or "").strip()
    missing = []
    if not cloud_name:
        missing.append("CLOUDINARY_CLOUD_NAME")
    if not preset:
        missing.append("CLOUDINARY_UPLOAD_PRESET")
    if missing:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing {', '.join(missing)}")
    return CloudinaryAssetUploadProvider(cloud_name=cloud_name, upload_preset=preset)


def assets_health(config) -> dict:
    try:
        provider = build_asset_provider(config)
    except IntegrationDisabledError:
        return {"status": "disabled", "provider": None, "missing": []}
    except IntegrationMisconfiguredError as e:
        return {"status": "misconfigured", "provider": None, "detail": str(e)}
    return {"status": "configured", "provider": provider.name}

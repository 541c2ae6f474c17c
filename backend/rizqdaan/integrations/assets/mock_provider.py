from __future__ import annotations

import hashlib

from rizqdaan.integrations.assets.base import AssetUploadProvider, UploadResult


class MockAssetUploadProvider(AssetUploadProvider):
    """Deterministic URLs from the content hash; ``[fail]`` in the filename forces a failure."""

    name = "mock"

    def __init__(self, base_url: str = "https://assets.invalid/rizqdaan"):
        self.base_url = base_url.rstrip("/")
        self.uploads: list[dict] = []

    def upload(self, *, filename: str, content: bytes, content_type: str = "application/octet-stream", folder: str = "") -> UploadResult:
        if "[fail]" in (filename or "").lower():
            return UploadResult(ok=False, code="UPLOAD_PROVIDER_DOWN", message="mock forced failure")
        digest = hashlib.sha256(content or b"").hexdigest()[:16]
        name = (filename or "upload").strip().replace(" ", "_")
        path = f"{folder.strip('/')}/{digest}_{name}" if folder else f"{digest}_{name}"
        url = f"{self.base_url}/{path}"
        self.uploads.append({"filename": filename, "url": url, "size": len(content or b"")})
        return UploadResult(ok=True, url=url, code="OK", message="mock_uploaded")

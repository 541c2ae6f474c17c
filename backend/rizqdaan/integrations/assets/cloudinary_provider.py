from __future__ import annotations

import requests

from rizqdaan.integrations.assets.base import AssetUploadProvider, UploadResult

CLOUDINARY_BASE = "https://api.cloudinary.com/v1_1"


def _map_cloudinary_error(status: int) -> str:
    if status in (401, 403):
        return "UPLOAD_AUTH_FAILED"
    if status == 429:
        return "UPLOAD_RATE_LIMITED"
    if status in (400, 413, 415, 422):
        return "UPLOAD_REJECTED"
    return "UPLOAD_PROVIDER_DOWN"


class CloudinaryAssetUploadProvider(AssetUploadProvider):
    """Unsigned uploads through an upload preset."""

    name = "cloudinary"

    def __init__(self, *, cloud_name: str, upload_preset: str, timeout: float = 20):
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.timeout = timeout

    @property
    def endpoint(self) -> str:
        return f"{CLOUDINARY_BASE}/{self.cloud_name}/image/upload"

    def upload(self, *, filename: str, content: bytes, content_type: str = "application/octet-stream", folder: str = "") -> UploadResult:
        data = {"upload_preset": self.upload_preset}
        if folder:
            data["folder"] = folder
        try:
            r = requests.post(
                self.endpoint,
                data=data,
                files={"file": (filename or "upload", content or b"", content_type)},
                timeout=self.timeout,
            )
            payload = r.json() if r.content else {}
        except requests.Timeout:
            return UploadResult(ok=False, code="UPLOAD_PROVIDER_DOWN", message="timeout")
        except Exception as e:
            return UploadResult(ok=False, code="UPLOAD_PROVIDER_DOWN", message=str(e)[:200])

        if not isinstance(payload, dict):
            payload = {"payload": payload}
        if 200 <= r.status_code < 300 and payload.get("secure_url"):
            return UploadResult(ok=True, url=str(payload["secure_url"]), code="OK", message="uploaded", raw=payload)
        detail = ""
        if isinstance(payload.get("error"), dict):
            detail = str(payload["error"].get("message") or "")
        return UploadResult(
            ok=False,
            code=_map_cloudinary_error(r.status_code),
            message=(detail or f"http_{r.status_code}")[:200],
            raw=payload,
        )

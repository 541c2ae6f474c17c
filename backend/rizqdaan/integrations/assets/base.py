from __future__ import annotations

from dataclasses import dataclass


@dataclass
class UploadResult:
    ok: bool
    url: str = ""
    code: str = ""
    message: str = ""
    raw: dict | None = None


class AssetUploadProvider:
    name = "unknown"

    def upload(self, *, filename: str, content: bytes, content_type: str = "application/octet-stream", folder: str = "") -> UploadResult:
        raise NotImplementedError

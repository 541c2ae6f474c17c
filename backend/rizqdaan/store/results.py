from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    CONFLICT = "conflict"
    VALIDATION = "validation"


@dataclass(frozen=True)
class StoreResult:
    """Outcome of one persistence call. Callers decide whether to fall back."""

    ok: bool
    value: Any = None
    error: ErrorKind | None = None
    message: str = ""

    @classmethod
    def success(cls, value: Any = None) -> "StoreResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str = "") -> "StoreResult":
        return cls(ok=False, error=kind, message=message or kind.value)

    @property
    def error_code(self) -> str | None:
        return self.error.value.upper() if self.error else None

    def unwrap_or(self, default: Any) -> Any:
        return self.value if self.ok else default

    def to_dict(self) -> dict:
        return {"ok": self.ok, "error": self.error_code, "message": self.message}

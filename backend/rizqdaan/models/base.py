from __future__ import annotations

import json
from datetime import datetime


def load_json_list(raw) -> list:
    text = (raw or "").strip() if isinstance(raw, str) else ""
    if not text:
        return []
    try:
        data = json.loads(text)
        return data if isinstance(data, list) else []
    except Exception:
        return []


def dump_json(value) -> str:
    try:
        return json.dumps(value, separators=(",", ":"), default=str)
    except Exception:
        return "[]" if isinstance(value, list) else "{}"


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class DocumentMixin:
    """Maps a model row onto a document with optional dotted sub-document paths.

    ``FIELD_PATHS`` maps a dotted document path (``wallet.balance``) to the model
    attribute holding it. Undotted names are plain attributes.
    """

    FIELD_PATHS: dict[str, str] = {}
    READONLY_FIELDS: frozenset = frozenset({"id"})

    @classmethod
    def resolve_field(cls, path: str) -> str:
        attr = cls.FIELD_PATHS.get(path, path)
        if "." in attr or attr in cls.READONLY_FIELDS or not hasattr(cls, attr):
            raise KeyError(path)
        return attr

    def get_field(self, path: str):
        return getattr(self, self.resolve_field(path))

    def set_field(self, path: str, value) -> None:
        setattr(self, self.resolve_field(path), value)

    @classmethod
    def flatten_doc(cls, data: dict, prefix: str = "") -> dict:
        flat: dict = {}
        for key, value in (data or {}).items():
            path = f"{prefix}{key}"
            nested_prefix = f"{path}."
            if isinstance(value, dict) and any(p.startswith(nested_prefix) for p in cls.FIELD_PATHS):
                flat.update(cls.flatten_doc(value, nested_prefix))
            else:
                flat[path] = value
        return flat

    def to_doc(self) -> dict:
        raise NotImplementedError

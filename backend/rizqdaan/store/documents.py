"""Canonical document store over the SQLAlchemy models.

Every call returns a ``StoreResult``; store-level failures never raise. Writes
run in one database transaction, so a batch lands completely or not at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from rizqdaan.models import (
    AdCampaign,
    DepositRequest,
    Listing,
    Notification,
    PlatformSetting,
    User,
    WithdrawalRequest,
)
from rizqdaan.store.results import ErrorKind, StoreResult

logger = logging.getLogger(__name__)

COLLECTIONS = {
    "users": User,
    "listings": Listing,
    "campaigns": AdCampaign,
    "deposits": DepositRequest,
    "withdrawals": WithdrawalRequest,
    "notifications": Notification,
    "settings": PlatformSetting,
}


@dataclass(frozen=True)
class Increment:
    amount: float = 1


class ArrayUnion:
    def __init__(self, *items):
        self.items = list(items)


class ArrayRemove:
    def __init__(self, *items):
        self.items = list(items)


def _same_item(a, b) -> bool:
    if isinstance(a, dict) and isinstance(b, dict) and "id" in a and "id" in b:
        return a.get("id") == b.get("id")
    return a == b


def _apply_value(row, path: str, value) -> None:
    if isinstance(value, Increment):
        current = row.get_field(path) or 0
        row.set_field(path, current + value.amount)
    elif isinstance(value, ArrayUnion):
        current = list(row.get_field(path) or [])
        for item in value.items:
            if not any(_same_item(existing, item) for existing in current):
                current.append(item)
        row.set_field(path, current)
    elif isinstance(value, ArrayRemove):
        current = list(row.get_field(path) or [])
        row.set_field(path, [x for x in current if not any(_same_item(x, item) for item in value.items)])
    else:
        row.set_field(path, value)


class _Abort(Exception):
    def __init__(self, kind: ErrorKind, message: str = ""):
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value


class AccessPolicy:
    """Stand-in for backend security rules: which collections refuse access."""

    def __init__(self, readonly=(), unreadable=(), offline: bool = False):
        self.readonly = {c.strip().lower() for c in readonly if c and c.strip()}
        self.unreadable = {c.strip().lower() for c in unreadable if c and c.strip()}
        self.offline = bool(offline)

    @classmethod
    def from_config(cls, config) -> "AccessPolicy":
        return cls(
            readonly=config.get("DOCUMENT_STORE_READONLY_COLLECTIONS") or (),
            unreadable=config.get("DOCUMENT_STORE_UNREADABLE_COLLECTIONS") or (),
        )

    def can_read(self, collection: str) -> bool:
        return not ({"*", collection} & self.unreadable)

    def can_write(self, collection: str) -> bool:
        return not ({"*", collection} & self.readonly)

    def check(self, collection: str, *, write: bool) -> None:
        if self.offline:
            raise _Abort(ErrorKind.UNAVAILABLE, "document store offline")
        if write and not self.can_write(collection):
            raise _Abort(ErrorKind.PERMISSION_DENIED, f"missing or insufficient permissions: {collection}")
        if not write and not self.can_read(collection):
            raise _Abort(ErrorKind.PERMISSION_DENIED, f"missing or insufficient permissions: {collection}")


@dataclass
class _Op:
    action: str
    collection: str
    doc_id: Any = None
    data: dict = field(default_factory=dict)
    merge: bool = False
    expect: dict | None = None


@dataclass
class _Watch:
    collection: str
    callback: Callable
    doc_id: Any = None
    where: dict | None = None
    on_error: Callable | None = None


class WriteBatch:
    """Collects writes and commits them as one unit."""

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._ops: list[_Op] = []
        self.committed = False

    def __len__(self):
        return len(self._ops)

    def add(self, collection: str, data: dict) -> int:
        self._ops.append(_Op("add", collection, data=dict(data or {})))
        return len(self._ops) - 1

    def set(self, collection: str, doc_id, data: dict, merge: bool = False) -> "WriteBatch":
        self._ops.append(_Op("set", collection, doc_id, dict(data or {}), merge=merge))
        return self

    def update(self, collection: str, doc_id, fields: dict, expect: dict | None = None) -> "WriteBatch":
        self._ops.append(_Op("update", collection, doc_id, dict(fields or {}), expect=expect))
        return self

    def delete(self, collection: str, doc_id) -> "WriteBatch":
        self._ops.append(_Op("delete", collection, doc_id))
        return self

    def commit(self) -> StoreResult:
        result = self._store._commit(self._ops)
        self.committed = result.ok
        return result


class DocumentStore:
    def __init__(self, db, policy: AccessPolicy | None = None):
        self.db = db
        self.policy = policy or AccessPolicy()
        self._watches: list[_Watch] = []

    # helpers

    @staticmethod
    def _model(collection: str):
        model = COLLECTIONS.get(collection)
        if model is None:
            raise _Abort(ErrorKind.VALIDATION, f"unknown collection: {collection}")
        return model

    @staticmethod
    def _pk(model, doc_id):
        if model is PlatformSetting:
            return str(doc_id)
        try:
            return int(doc_id)
        except (TypeError, ValueError):
            raise _Abort(ErrorKind.NOT_FOUND, f"no document {doc_id}")

    def _load(self, model, doc_id, *, lock: bool = False):
        pk = self._pk(model, doc_id)
        if lock:
            return self.db.session.get(model, pk, with_for_update=True)
        return self.db.session.get(model, pk)

    @staticmethod
    def _assign(row, model, data: dict) -> None:
        for path, value in model.flatten_doc(data).items():
            if path in model.READONLY_FIELDS:
                continue
            try:
                _apply_value(row, path, value)
            except KeyError:
                raise _Abort(ErrorKind.VALIDATION, f"unknown field: {path}")

    def _failure(self, exc: Exception, action: str, collection: str) -> StoreResult:
        if isinstance(exc, _Abort):
            kind, message = exc.kind, exc.message
        elif isinstance(exc, IntegrityError):
            kind, message = ErrorKind.CONFLICT, "integrity error"
        elif isinstance(exc, (OperationalError, DBAPIError)):
            kind, message = ErrorKind.UNAVAILABLE, "database unavailable"
        elif isinstance(exc, (ValueError, TypeError)):
            kind, message = ErrorKind.VALIDATION, str(exc)
        else:
            raise exc
        logger.info("document_store_failed action=%s collection=%s kind=%s msg=%s", action, collection, kind.value, message)
        return StoreResult.failure(kind, message)

    # reads

    def get(self, collection: str, doc_id) -> StoreResult:
        try:
            self.policy.check(collection, write=False)
            row = self._load(self._model(collection), doc_id)
            if row is None:
                raise _Abort(ErrorKind.NOT_FOUND, f"no document {collection}/{doc_id}")
            return StoreResult.success(row.to_doc())
        except Exception as e:
            return self._failure(e, "get", collection)

    def query(self, collection: str, *, order_by: str | None = None, descending: bool = False, limit: int | None = None, **equals) -> StoreResult:
        try:
            self.policy.check(collection, write=False)
            model = self._model(collection)
            q = model.query
            for name, value in equals.items():
                try:
                    column = getattr(model, model.resolve_field(name))
                except KeyError:
                    raise _Abort(ErrorKind.VALIDATION, f"unknown field: {name}")
                q = q.filter(column == value)
            if order_by:
                column = getattr(model, order_by)
                q = q.order_by(column.desc() if descending else column.asc())
            q = q.order_by(model.id.desc() if descending else model.id.asc())
            if limit:
                q = q.limit(int(limit))
            return StoreResult.success([row.to_doc() for row in q.all()])
        except Exception as e:
            return self._failure(e, "query", collection)

    # writes

    def add(self, collection: str, data: dict) -> StoreResult:
        result = self._commit([_Op("add", collection, data=dict(data or {}))])
        return StoreResult.success(result.value[0]) if result.ok else result

    def set(self, collection: str, doc_id, data: dict, merge: bool = False) -> StoreResult:
        result = self._commit([_Op("set", collection, doc_id, dict(data or {}), merge=merge)])
        return StoreResult.success(result.value[0]) if result.ok else result

    def update(self, collection: str, doc_id, fields: dict, expect: dict | None = None) -> StoreResult:
        result = self._commit([_Op("update", collection, doc_id, dict(fields or {}), expect=expect)])
        return StoreResult.success(result.value[0]) if result.ok else result

    def delete(self, collection: str, doc_id) -> StoreResult:
        result = self._commit([_Op("delete", collection, doc_id)])
        return StoreResult.success(None) if result.ok else result

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def _apply(self, op: _Op):
        model = self._model(op.collection)
        if op.action == "add":
            row = model()
            self._assign(row, model, op.data)
            self.db.session.add(row)
            self.db.session.flush()
            return row
        row = self._load(model, op.doc_id, lock=op.expect is not None)
        if op.action == "delete":
            if row is not None:
                self.db.session.delete(row)
            return None
        if op.action == "set":
            if row is not None and not op.merge:
                self.db.session.delete(row)
                self.db.session.flush()
                row = None
            if row is None:
                row = model(id=self._pk(model, op.doc_id))
                self.db.session.add(row)
            self._assign(row, model, op.data)
            self.db.session.flush()
            return row
        if row is None:
            raise _Abort(ErrorKind.NOT_FOUND, f"no document {op.collection}/{op.doc_id}")
        for path, expected in (op.expect or {}).items():
            try:
                actual = row.get_field(path)
            except KeyError:
                raise _Abort(ErrorKind.VALIDATION, f"unknown field: {path}")
            if actual != expected:
                raise _Abort(ErrorKind.CONFLICT, f"{op.collection}/{op.doc_id} {path} is {actual!r}, expected {expected!r}")
        self._assign(row, model, op.data)
        self.db.session.flush()
        return row

    def _commit(self, ops: list[_Op]) -> StoreResult:
        if not ops:
            return StoreResult.success([])
        first = ops[0].collection
        try:
            for op in ops:
                self.policy.check(op.collection, write=True)
                self._model(op.collection)
            rows = [self._apply(op) for op in ops]
            docs = [row.to_doc() if row is not None else None for row in rows]
            self.db.session.commit()
        except Exception as e:
            self.db.session.rollback()
            return self._failure(e, ops[0].action if len(ops) == 1 else "batch", first)

        touched = [(op.collection, op.doc_id if op.doc_id is not None else (doc or {}).get("id")) for op, doc in zip(ops, docs)]
        self._notify(touched)
        return StoreResult.success(docs)

    # change feed

    def watch(self, collection: str, callback: Callable, doc_id=None, where: dict | None = None, on_error: Callable | None = None) -> Callable[[], None]:
        """Push snapshots to ``callback`` now and after every committed write touching them."""
        watch = _Watch(collection, callback, doc_id=doc_id, where=dict(where or {}), on_error=on_error)
        self._watches.append(watch)
        self._deliver(watch)

        def _unsubscribe() -> None:
            if watch in self._watches:
                self._watches.remove(watch)

        return _unsubscribe

    def _deliver(self, watch: _Watch) -> None:
        if watch.doc_id is not None:
            result = self.get(watch.collection, watch.doc_id)
            if not result.ok and result.error is ErrorKind.NOT_FOUND:
                result = StoreResult.success(None)
        else:
            result = self.query(watch.collection, **(watch.where or {}))
        try:
            if result.ok:
                watch.callback(result.value)
            elif watch.on_error is not None:
                watch.on_error(result)
        except Exception as e:
            logger.warning("document_watch_callback_failed collection=%s err=%s", watch.collection, e)

    def _notify(self, touched: list[tuple]) -> None:
        for watch in list(self._watches):
            for collection, doc_id in touched:
                if collection != watch.collection:
                    continue
                if watch.doc_id is not None and str(watch.doc_id) != str(doc_id):
                    continue
                self._deliver(watch)
                break

from __future__ import annotations

import hashlib
import json
import os
import time
import uuid
from datetime import datetime

from flask import g, has_request_context, request

REQUEST_ID_HEADER = "X-Request-Id"

# request body / header keys never shipped to error reporting
_SCRUB_KEYS = frozenset({"authorization", "cookie", "set-cookie", "password", "account_details", "sender_phone"})


def get_request_id() -> str:
    if not has_request_context():
        return ""
    return getattr(g, "request_id", "")


def _scrub(mapping):
    if not isinstance(mapping, dict):
        return mapping
    return {k: ("[REDACTED]" if str(k).lower() in _SCRUB_KEYS else v) for k, v in mapping.items()}


def _scrub_event(event, hint):
    req = event.get("request") or {}
    req["headers"] = _scrub(req.get("headers") or {})
    if isinstance(req.get("data"), dict):
        req["data"] = _scrub(req["data"])
    event["request"] = req
    return event


def _sample_rate(raw: str | None) -> float:
    try:
        return max(0.0, min(float((raw or "0").strip()), 1.0))
    except ValueError:
        return 0.0


def init_sentry(app) -> None:
    """Error reporting is optional; without SENTRY_DSN nothing is imported."""
    dsn = (os.getenv("SENTRY_DSN") or "").strip()
    if not dsn:
        app.logger.info("sentry_disabled_no_dsn")
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=dsn,
            environment=(os.getenv("SENTRY_ENVIRONMENT") or os.getenv("RIZQDAAN_ENV") or "dev"),
            release=(os.getenv("GIT_SHA") or "unknown"),
            integrations=[FlaskIntegration()],
            send_default_pii=False,
            traces_sample_rate=_sample_rate(os.getenv("SENTRY_TRACES_SAMPLE_RATE")),
            before_send=_scrub_event,
        )
        sentry_sdk.set_tag("service", "rizqdaan-backend")
        app.logger.info("sentry_enabled")
    except Exception as e:
        app.logger.warning("sentry_init_failed err=%s", e)


def _client_fingerprint(salt: str) -> str:
    ip = request.headers.get("X-Forwarded-For", request.remote_addr or "")
    return hashlib.sha256(f"{salt}:{ip}".encode("utf-8")).hexdigest()[:16]


def install_request_observers(app) -> None:
    """Request ids in and out, plus one JSON access-log line per request."""

    @app.before_request
    def _begin():
        g.request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip() or uuid.uuid4().hex
        g.request_started_at = time.perf_counter()

    @app.after_request
    def _end(response):
        rid = getattr(g, "request_id", "") or uuid.uuid4().hex
        response.headers[REQUEST_ID_HEADER] = rid
        started = getattr(g, "request_started_at", None)
        app.logger.info(
            json.dumps(
                {
                    "ts": datetime.utcnow().isoformat(),
                    "request_id": rid,
                    "method": request.method,
                    "path": request.path,
                    "status": int(response.status_code),
                    "latency_ms": round((time.perf_counter() - started) * 1000.0, 2) if started is not None else None,
                    "user_id": getattr(g, "auth_user_id", None),
                    "role": getattr(g, "auth_role", None),
                    "client": _client_fingerprint(app.config.get("SECRET_KEY") or "rizqdaan"),
                }
            )
        )
        return response

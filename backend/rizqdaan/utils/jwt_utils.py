import os
import time
import logging
from typing import Optional, Dict, Any

import jwt
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)


def _secret() -> str:
    if has_app_context():
        key = current_app.config.get("SECRET_KEY")
        if key:
            return key
    return os.getenv("SECRET_KEY") or "dev-secret"


def _default_ttl() -> int:
    if has_app_context():
        return int(current_app.config.get("JWT_TTL_SECONDS") or 60 * 60 * 24 * 7)
    return 60 * 60 * 24 * 7


def create_access_token(user_id: int, ttl_seconds: Optional[int] = None) -> str:
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + int(ttl_seconds or _default_ttl()),
        "type": "access",
    }
    return jwt.encode(payload, _secret(), algorithm="HS256")


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, _secret(), algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        logger.info("jwt_expired")
        return None
    except Exception:
        return None


def get_bearer_token(auth_header: str) -> Optional[str]:
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None

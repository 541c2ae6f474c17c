from __future__ import annotations

import os


def _normalize_database_url(url: str) -> str:
    # Render/Heroku sometimes provide postgres:// which SQLAlchemy expects as postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except Exception:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


def _env_list(name: str) -> list[str]:
    raw = (os.getenv(name) or "").strip()
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


def current_env() -> str:
    return (os.getenv("RIZQDAAN_ENV", "dev") or "dev").strip().lower()


def is_production(env: str | None = None) -> bool:
    return (env or current_env()) in ("prod", "production")


class Config:
    """Snapshot of environment configuration taken when the app is created."""

    def __init__(self):
        self.ENV = current_env()
        self.BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
        self.INSTANCE_DIR = os.path.join(self.BACKEND_DIR, "instance")

        self.SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False
        default_sqlite = os.path.join(self.INSTANCE_DIR, "rizqdaan.db").replace("\\", "/")
        db_url = (
            os.getenv("SQLALCHEMY_DATABASE_URI")
            or os.getenv("DATABASE_URL")
            or f"sqlite:///{default_sqlite}"
        )
        self.SQLALCHEMY_DATABASE_URI = _normalize_database_url(db_url)
        self.DB_POOL_RECYCLE_SECONDS = _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400)
        self.DB_POOL_SIZE = _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200)
        self.DB_MAX_OVERFLOW = _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500)

        # comma-separated origins for web builds
        self.CORS_ORIGINS = (os.getenv("CORS_ORIGINS") or "").strip()

        # Backend "security rules": collections the canonical store refuses.
        self.DOCUMENT_STORE_READONLY_COLLECTIONS = _env_list("DOCUMENT_STORE_READONLY_COLLECTIONS")
        self.DOCUMENT_STORE_UNREADABLE_COLLECTIONS = _env_list("DOCUMENT_STORE_UNREADABLE_COLLECTIONS")

        self.LOCAL_MIRROR_BACKEND = (os.getenv("LOCAL_MIRROR_BACKEND") or "").strip().lower()
        self.LOCAL_MIRROR_REDIS_URL = (
            os.getenv("LOCAL_MIRROR_REDIS_URL") or os.getenv("REDIS_URL") or ""
        ).strip()
        self.LOCAL_MIRROR_NAMESPACE = (os.getenv("LOCAL_MIRROR_NAMESPACE") or "rizqdaan").strip()

        self.LEDGER_FALLBACK_POLICY = (
            os.getenv("LEDGER_FALLBACK_POLICY") or "always_fallback"
        ).strip().lower()

        self.ASSET_UPLOAD_PROVIDER = (os.getenv("ASSET_UPLOAD_PROVIDER") or "mock").strip().lower()
        self.CLOUDINARY_CLOUD_NAME = (os.getenv("CLOUDINARY_CLOUD_NAME") or "").strip()
        self.CLOUDINARY_UPLOAD_PRESET = (os.getenv("CLOUDINARY_UPLOAD_PRESET") or "").strip()

        self.MIRROR_RECONCILE_INTERVAL_SECONDS = _env_int(
            "MIRROR_RECONCILE_INTERVAL_SECONDS", 900, minimum=60, maximum=86400
        )
        self.MIRROR_RECONCILE_PUSH = _env_bool("MIRROR_RECONCILE_PUSH", False)

        self.JWT_TTL_SECONDS = _env_int("JWT_TTL_SECONDS", 60 * 60 * 24 * 7, minimum=60, maximum=60 * 60 * 24 * 90)

    def as_flask_config(self) -> dict:
        return {k: v for k, v in vars(self).items() if k.isupper()}

    def validate(self) -> None:
        if not is_production(self.ENV):
            return
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
            raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")

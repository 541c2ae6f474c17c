from __future__ import annotations

import json
import os
from datetime import datetime

from celery import Celery
from celery.signals import task_failure

_FAILURE_OBSERVER_BOUND = False


def _redis_url(config, *names: str) -> str:
    for name in names:
        value = (os.getenv(name) or config.get(name) or "").strip()
        if value:
            return value
    return "redis://localhost:6379/0"


def _beat_schedule(config) -> dict:
    interval = float(config.get("MIRROR_RECONCILE_INTERVAL_SECONDS") or 900)
    return {
        "mirror-reconcile": {
            "task": "rizqdaan.tasks.mirror_tasks.reconcile_mirror",
            "schedule": interval,
            "kwargs": {"push": bool(config.get("MIRROR_RECONCILE_PUSH"))},
        },
        "wallet-ledger-audit": {
            "task": "rizqdaan.tasks.mirror_tasks.audit_wallet_ledger",
            "schedule": interval * 4,
        },
    }


def _observe_failures(flask_app) -> None:
    global _FAILURE_OBSERVER_BOUND
    if _FAILURE_OBSERVER_BOUND:
        return

    @task_failure.connect(weak=False)
    def _on_failure(sender=None, task_id=None, exception=None, **_):
        flask_app.logger.error(
            json.dumps(
                {
                    "event": "celery_task_failure",
                    "task_name": getattr(sender, "name", ""),
                    "task_id": str(task_id or ""),
                    "exception": str(exception or ""),
                    "timestamp": datetime.utcnow().isoformat(),
                }
            )
        )

    _FAILURE_OBSERVER_BOUND = True


def create_celery_app(flask_app) -> Celery:
    """Celery bound to ``flask_app``: every task body runs inside its app context."""
    config = flask_app.config
    broker = _redis_url(config, "CELERY_BROKER_URL", "REDIS_URL", "LOCAL_MIRROR_REDIS_URL")
    backend = _redis_url(config, "CELERY_RESULT_BACKEND", "CELERY_BROKER_URL", "REDIS_URL", "LOCAL_MIRROR_REDIS_URL")
    celery = Celery(flask_app.import_name, broker=broker, backend=backend)
    celery.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        broker_connection_retry_on_startup=True,
        timezone="UTC",
        enable_utc=True,
        beat_schedule=_beat_schedule(config),
    )

    class FlaskContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with flask_app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = FlaskContextTask
    celery.autodiscover_tasks(["rizqdaan.tasks"], related_name="mirror_tasks")
    _observe_failures(flask_app)
    return celery

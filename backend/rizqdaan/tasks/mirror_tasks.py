from __future__ import annotations

import json
import time
from datetime import datetime

from celery import shared_task
from flask import current_app

from rizqdaan.services import get_services
from rizqdaan.services.reconciliation_service import (
    mirror_drift_report,
    push_mirror_to_canonical,
    recompute_wallet_balances,
)


def _task_log(task_name: str, *, status: str, started_at: float, **extra):
    payload = {
        "task_name": task_name,
        "status": status,
        "duration_ms": int(max(0.0, time.perf_counter() - float(started_at)) * 1000.0),
        "timestamp": datetime.utcnow().isoformat(),
    }
    payload.update(extra or {})
    current_app.logger.info(json.dumps(payload))


def run_mirror_reconciliation(*, push: bool = False) -> dict:
    services = get_services()
    services.mirror.drain_remote_changes()
    report = mirror_drift_report(services.store, services.mirror)
    result = {"ok": True, "drift_count": report["drift_count"], "pushed": [], "failed": []}
    if push and report["drift_count"]:
        summary = push_mirror_to_canonical(services.store, services.mirror)
        result.update({"ok": summary["ok"], "pushed": summary["pushed"], "failed": summary["failed"]})
    return result


@shared_task(name="rizqdaan.tasks.mirror_tasks.reconcile_mirror")
def reconcile_mirror(push: bool = False) -> dict:
    started = time.perf_counter()
    result = run_mirror_reconciliation(push=bool(push))
    _task_log(
        "reconcile_mirror",
        status="ok" if result["ok"] else "partial",
        started_at=started,
        drift_count=result["drift_count"],
        pushed=len(result["pushed"]),
        failed=len(result["failed"]),
    )
    return result


@shared_task(name="rizqdaan.tasks.mirror_tasks.audit_wallet_ledger")
def audit_wallet_ledger(tolerance: float = 0.01) -> dict:
    started = time.perf_counter()
    report = recompute_wallet_balances(get_services().store, tolerance=tolerance)
    _task_log(
        "audit_wallet_ledger",
        status="ok" if report.get("ok") else "failed",
        started_at=started,
        drift_count=report.get("drift_count"),
        error=report.get("error"),
    )
    return {"ok": bool(report.get("ok")), "drift_count": report.get("drift_count", 0), "drift_items": report.get("drift_items", [])}

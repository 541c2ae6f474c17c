from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _bootstrap_app():
    from rizqdaan import create_app

    app = create_app()
    app.app_context().push()
    return app


def main() -> int:
    parser = argparse.ArgumentParser(description="Report wallet drift between the local mirror and canonical records.")
    parser.add_argument("--push", action="store_true", help="Write divergent mirror state back and prune it.")
    parser.add_argument("--ledger", action="store_true", help="Also recompute balances from transaction history.")
    args = parser.parse_args()

    app = _bootstrap_app()
    from rizqdaan.services.reconciliation_service import (
        mirror_drift_report,
        push_mirror_to_canonical,
        recompute_wallet_balances,
    )

    services = app.extensions["rizqdaan"]
    summary = {"mirror": mirror_drift_report(services.store, services.mirror)}
    if args.ledger:
        summary["ledger"] = recompute_wallet_balances(services.store)
    if args.push and summary["mirror"]["drift_count"]:
        summary["push"] = push_mirror_to_canonical(services.store, services.mirror)

    print(json.dumps(summary, indent=2))
    drift = int(summary["mirror"].get("drift_count") or 0)
    drift += int((summary.get("ledger") or {}).get("drift_count") or 0)
    if args.push and (summary.get("push") or {}).get("ok"):
        return 0
    return 0 if drift == 0 else 2


if __name__ == "__main__":
    sys.exit(main())

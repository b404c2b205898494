#!/usr/bin/env python3
"""
Verify every cached stock position against its event history.

Without --apply, prints the inconsistent positions and exits 1 if any were
found.  With --apply, rebuilds them from the event store (clearing holds);
positions whose history projects negative stay on hold.

Usage:
    python3 scripts/rebuild_positions.py
    python3 scripts/rebuild_positions.py --apply
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(description="Replay-verify stock positions")
    parser.add_argument("--apply", action="store_true", help="Rebuild inconsistent positions")
    parser.add_argument("--config", default=None, help="Configuration set path")
    args = parser.parse_args()

    from stock_services import StockLedger

    ledger = StockLedger.from_config(args.config)
    checks = ledger.rebuild_all() if args.apply else ledger.verify_all()

    if not checks:
        print("All positions match their event history.")
        return 0

    for check in checks:
        print(
            f"  {check.item_id:<20} {check.outlet_id or 'central':<20} "
            f"cached={check.cached} projected={check.projected} events={check.event_count}"
        )
    verb = "Rebuilt" if args.apply else "Found"
    print(f"{verb} {len(checks)} inconsistent position(s).")
    return 0 if args.apply else 1


if __name__ == "__main__":
    sys.exit(main())

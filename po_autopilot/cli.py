"""
Command‑line interface for PO Autopilot.

Sub-commands cover the day-to-day operator tasks: run the API server, seed
the demo database, drive the fulfilment simulator on a timer, trigger the
invoice → PO automation for one invoice, and close automation runs that
were orphaned by a crash.
"""

from __future__ import annotations

import argparse
import datetime as _dt
import os
import random
import time
from typing import List, Optional

from .automation import AutomationEngine
from .config import get_config
from .errors import AutomationFailed, Conflict, NotFound
from .events import EventBus
from .seed import seed_database
from .simulator import Simulator
from .store import create_store
from .utils import setup_logging


def cmd_serve(args, config) -> int:
    import uvicorn

    from .api import create_app

    app = create_app(config=config, store=create_store(args.database_url))
    uvicorn.run(app, host=args.host, port=args.port, log_level=config.LOG_LEVEL.lower())
    return 0


def cmd_seed(args, config) -> int:
    store = create_store(args.database_url)
    rng = random.Random(args.random_seed) if args.random_seed is not None else None
    counts = seed_database(store, rng=rng)
    print(
        f"Seeded {counts['purchase_orders']} purchase orders, {counts['invoices']} invoices, "
        f"{counts['automation_runs']} automation runs"
    )
    return 0


def cmd_simulate(args, config) -> int:
    simulator = Simulator(create_store(args.database_url), EventBus())
    runs = 0
    try:
        while args.count is None or runs < args.count:
            result = simulator.advance()
            if result.advanced:
                print(f"{result.purchase_order.id}: {result.from_status} -> {result.to_status}")
            else:
                print(result.message)
            runs += 1
            if args.count is None or runs < args.count:
                time.sleep(args.interval)
    except KeyboardInterrupt:
        pass
    return 0


def cmd_generate_po(args, config) -> int:
    engine = AutomationEngine(create_store(args.database_url), EventBus(), approved_vendors=config.APPROVED_VENDORS)
    try:
        result = engine.generate_purchase_order_from_invoice(args.invoice_id)
    except (NotFound, Conflict) as exc:
        print(f"Invoice {args.invoice_id}: {exc}")
        return 1
    except AutomationFailed as exc:
        print(f"Automation run {exc.run_id} failed: {exc.message}")
        return 2
    print(
        f"Invoice {args.invoice_id} -> purchase order {result.purchase_order.id} "
        f"(run {result.run.id}, {result.run.duration} ms)"
    )
    return 0


def cmd_reap(args, config) -> int:
    engine = AutomationEngine(create_store(args.database_url), EventBus())
    reaped = engine.reap_orphaned_runs(_dt.timedelta(seconds=args.older_than))
    print(f"Closed {len(reaped)} orphaned automation run(s)")
    for run_id in reaped:
        print(f"  {run_id}")
    return 0


def build_parser(config) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="po-autopilot", description="Purchase order and invoice automation")
    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL", config.DATABASE_URL),
        help="SQLAlchemy database URL",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=config.API_HOST)
    serve.add_argument("--port", type=int, default=config.API_PORT)
    serve.set_defaults(func=cmd_serve)

    seed = sub.add_parser("seed", help="Reset the database and load demo data")
    seed.add_argument("--random-seed", type=int, default=None, help="Seed for reproducible demo data")
    seed.set_defaults(func=cmd_seed)

    simulate = sub.add_parser("simulate", help="Advance random purchase orders on a timer")
    simulate.add_argument("--interval", type=float, default=config.SIMULATOR_INTERVAL, help="Seconds between steps")
    simulate.add_argument("--count", type=int, default=None, help="Stop after this many steps")
    simulate.set_defaults(func=cmd_simulate)

    generate = sub.add_parser("generate-po", help="Generate a purchase order from an invoice")
    generate.add_argument("invoice_id")
    generate.set_defaults(func=cmd_generate_po)

    reap = sub.add_parser("reap", help="Fail automation runs left in 'processing' by a crash")
    reap.add_argument("--older-than", type=float, default=300.0, help="Minimum run age in seconds")
    reap.set_defaults(func=cmd_reap)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    config = get_config()
    setup_logging(config.LOG_LEVEL, config.LOG_FORMAT)
    args = build_parser(config).parse_args(argv)
    return args.func(args, config)


if __name__ == "__main__":
    raise SystemExit(main())

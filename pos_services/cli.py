"""
pos-register -- command-line front end for the register.

Usage:
  pos-register init-db
  pos-register open --details '{"bills": {"100": 1}, "coins": {"0.25": 4}}'
  pos-register sale --cart '[{"name": "Coffee", "price": "3.50", "quantity": 2}]' \\
      --method cash --tendered 10
  pos-register close --amount 112.00
  pos-register transactions --start 2024-01-01 --end 2024-01-31

Every command prints one JSON document on stdout.  Exit status is 0 on
success, 1 when the register refuses the request, and 2 when the database
could not be reached or written.
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any

from pos_config import get_active_config
from pos_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from pos_kernel.exceptions import PersistenceError, PosKernelError
from pos_kernel.logging_config import configure_logging
from pos_services.point_of_sale import PointOfSaleService

EXIT_OK = 0
EXIT_REFUSED = 1
EXIT_STORAGE = 2


def _bound(value: str) -> date | datetime:
    """``YYYY-MM-DD`` is a whole day; anything longer is an ISO timestamp."""
    try:
        if len(value) == 10:
            return date.fromisoformat(value)
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO date or timestamp: {value!r}") from exc


def _json_arg(value: str) -> Any:
    """Inline JSON, or ``@path`` to read it from a file."""
    try:
        if value.startswith("@"):
            return json.loads(Path(value[1:]).read_text())
        return json.loads(value)
    except (OSError, json.JSONDecodeError) as exc:
        raise argparse.ArgumentTypeError(f"invalid JSON argument: {exc}") from exc


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pos-register",
        description="Point-of-sale register sessions and sales ledger",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Configuration YAML (default: POS_CONFIG_PATH or the packaged default)",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (overrides the configuration file)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the schema")
    sub.add_parser("status", help="Is the register open?")
    sub.add_parser("current", help="The open session and its running sales")
    sub.add_parser("prefill", help="Suggested breakdown of the default opening float")

    p = sub.add_parser("open", help="Open the register")
    p.add_argument("--amount", default=None, help="Opening float")
    p.add_argument("--details", type=_json_arg, default=None, help="Denomination count (JSON)")

    p = sub.add_parser("close", help="Close the register")
    p.add_argument("--amount", default=None, help="Counted closing amount")
    p.add_argument("--details", type=_json_arg, default=None, help="Denomination count (JSON)")

    p = sub.add_parser("sale", help="Record a sale")
    p.add_argument("--cart", type=_json_arg, required=True, help="Cart lines (JSON list)")
    p.add_argument("--method", choices=["cash", "card"], required=True)
    p.add_argument("--tendered", required=True, help="Amount tendered")
    p.add_argument("--receipt", default=None, help="Receipt number (default: generated)")

    p = sub.add_parser("transactions", help="List sales, newest first")
    p.add_argument("--start", type=_bound, default=None)
    p.add_argument("--end", type=_bound, default=None)

    p = sub.add_parser("session-sales", help="Sales total for one register session")
    p.add_argument("session_id")

    p = sub.add_parser("sessions", help="Register sessions opened in a range")
    p.add_argument("--start", type=_bound, default=None)
    p.add_argument("--end", type=_bound, default=None)

    return parser.parse_args(argv)


def _run(service: PointOfSaleService, args: argparse.Namespace) -> Any:
    command = args.command
    if command == "status":
        return service.register_status().to_dict()
    if command == "current":
        current = service.current_session()
        return current.to_dict() if current is not None else None
    if command == "prefill":
        count = service.opening_prefill()
        return {
            "details": count.to_details(service.currency),
            "total": str(count.total(service.currency).amount),
            "remainder": str(count.remainder.amount) if count.remainder is not None else "0",
        }
    if command == "open":
        return service.open_register(args.amount, args.details).to_dict()
    if command == "close":
        return service.close_register(args.amount, args.details).to_dict()
    if command == "sale":
        return service.record_sale(
            args.cart, args.method, args.tendered, receipt_number=args.receipt
        ).to_dict()
    if command == "transactions":
        return [t.to_dict() for t in service.list_transactions(args.start, args.end)]
    if command == "session-sales":
        info = service.get_register_session(args.session_id)
        sales = service.session_sales(args.session_id)
        return {"session": info.to_dict(), "sales": str(sales.amount)}
    if command == "sessions":
        return [s.to_dict() for s in service.register_sessions_report(args.start, args.end)]
    raise ValueError(f"Unknown command: {command}")


def _emit(payload: Any) -> None:
    json.dump(payload, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    config = get_active_config(args.config)
    configure_logging(level=config.logging.level)
    init_engine_from_url(
        args.db_url or config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )

    if args.command == "init-db":
        create_tables()
        _emit({"ok": True})
        return EXIT_OK

    service = PointOfSaleService(get_session_factory(), config=config)
    try:
        result = _run(service, args)
    except PersistenceError as exc:
        _emit({"error": exc.code, "message": str(exc)})
        return EXIT_STORAGE
    except PosKernelError as exc:
        _emit({"error": exc.code, "message": str(exc)})
        return EXIT_REFUSED

    _emit(result)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

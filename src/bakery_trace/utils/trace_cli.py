"""
Production Traceability CLI

Command-line boundary for the production run lifecycle and lot decoding.
Every command checks a capability before calling the service layer; the
services themselves never look at permissions.

Usage Examples:
    # Start production of recipe 12 by operator 3
    bakery-trace start 12 --operator 3

    # Start with a backdated start instant
    bakery-trace start 12 --operator 3 --started-at 2024-01-10T08:00:00+00:00

    # Finish run 41 of recipe 12
    bakery-trace finish 12 41 --notes "second oven"

    # Abort a run that will never finish
    bakery-trace abort 41 --notes "power cut"

    # Mark a completed run as loaded (or back to completed)
    bakery-trace status 41 loaded

    # Decode a printed lot code
    bakery-trace decode PEMI9DPC9DTI

    # Show production history
    bakery-trace history --recipe 12
"""

import argparse
import json
import sys
from datetime import datetime
from typing import Callable, List, Optional

from bakery_trace.services.database import close_connections, initialize_app_database
from bakery_trace.services.exceptions import CapabilityDenied, ServiceError
from bakery_trace.services import lot_reconciliation_service, production_run_service

# Capability names, as granted by the permission model
CAP_PRODUCTION_START = "production.start"
CAP_PRODUCTION_FINISH = "production.finish"
CAP_PRODUCTION_ADMIN = "admin.production.history"
CAP_PRODUCTION_HISTORY = "production.history.view"
CAP_LOT_DECODE = "production.lot.decode"

CapabilityCheck = Callable[[str], bool]


def allow_all(capability: str) -> bool:
    """Capability check that grants everything (single-user installs)."""
    return True


def require_capability(check: CapabilityCheck, capability: str) -> None:
    """
    Raise CapabilityDenied unless check grants capability.

    Args:
        check: Injected capability check
        capability: Capability name
    """
    if not check(capability):
        raise CapabilityDenied(capability)


def _parse_instant(value: str) -> datetime:
    """argparse type for ISO-8601 instants."""
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date format: {value}")


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def start_cmd(
    recipe_id: int,
    operator_id: int,
    started_at: Optional[datetime],
    notes: Optional[str],
    check: CapabilityCheck,
) -> int:
    """Start a production run."""
    require_capability(check, CAP_PRODUCTION_START)
    result = production_run_service.start_production(
        recipe_id, operator_id, started_at=started_at, notes=notes
    )
    print(
        f"Started production run {result['production_run_id']} "
        f"(recipe version {result['version_number']})"
    )
    return 0


def finish_cmd(
    recipe_id: int,
    production_run_id: int,
    notes: Optional[str],
    check: CapabilityCheck,
) -> int:
    """Finish a production run and print its lot code."""
    require_capability(check, CAP_PRODUCTION_FINISH)
    run = production_run_service.finish_production(
        production_run_id, recipe_id=recipe_id, notes=notes
    )
    print(f"Finished production run {run['id']}")
    print(f"Lot: {run['production_lot']}")
    return 0


def abort_cmd(production_run_id: int, notes: Optional[str], check: CapabilityCheck) -> int:
    """Abort an in-progress production run."""
    require_capability(check, CAP_PRODUCTION_ADMIN)
    production_run_service.abort_production(production_run_id, notes=notes)
    print(f"Aborted production run {production_run_id}")
    return 0


def status_cmd(production_run_id: int, status: str, check: CapabilityCheck) -> int:
    """Override the status of a finished production run."""
    require_capability(check, CAP_PRODUCTION_ADMIN)
    run = production_run_service.set_production_status(production_run_id, status)
    print(f"Production run {run['id']} is now {run['status']}")
    return 0


def decode_cmd(lot: str, as_json: bool, check: CapabilityCheck) -> int:
    """Decode a lot code and reconcile it with the database."""
    require_capability(check, CAP_LOT_DECODE)
    resolution = lot_reconciliation_service.resolve_lot(lot)

    if as_json:
        _print_json(resolution.to_dict())
        return 0

    decoded = resolution.decoded
    print(f"Lot:               {resolution.lot}")
    print(f"Recipe initials:   {decoded.recipe_initials}")
    print(f"Operator initials: {decoded.operator_initials}")
    print(f"Started at:        {decoded.started_at.isoformat()}")
    print(f"Finished at:       {decoded.finished_at.isoformat()}")

    if resolution.is_exact:
        print(f"Recipe:            {resolution.recipe_name}")
        print(f"Operator:          {resolution.operator_name}")
        print(f"Production run:    {resolution.production_run_id}")
        return 0

    print("No exact production match.")
    print("Possible recipes:   " + (", ".join(resolution.candidate_recipes) or "-"))
    print("Possible operators: " + (", ".join(resolution.candidate_operators) or "-"))
    return 0


def history_cmd(recipe_id: Optional[int], as_json: bool, check: CapabilityCheck) -> int:
    """Print production history, newest first."""
    require_capability(check, CAP_PRODUCTION_HISTORY)
    history = production_run_service.get_production_history(recipe_id)

    if as_json:
        _print_json(history)
        return 0

    for entry in history:
        run = entry["production"]
        print(
            f"{run['id']:>6}  {run['status']:<11}  {run['production_lot']:<12}  "
            f"v{run['version_number']}  {run['recipe_name']}  ({run['operator_name']})  "
            f"{run['started_at']} -> {run['finished_at'] or '...'}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="bakery-trace",
        description="Production traceability for Bakery Trace",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    start_parser = subparsers.add_parser("start", help="Start a production run")
    start_parser.add_argument("recipe_id", type=int, help="Recipe ID")
    start_parser.add_argument("--operator", dest="operator_id", type=int, required=True,
                              help="Operator ID")
    start_parser.add_argument("--started-at", dest="started_at", type=_parse_instant,
                              help="Start instant (ISO-8601, default: now)")
    start_parser.add_argument("--notes", help="Production notes")

    finish_parser = subparsers.add_parser("finish", help="Finish a production run")
    finish_parser.add_argument("recipe_id", type=int, help="Recipe ID")
    finish_parser.add_argument("production_run_id", type=int, help="Production run ID")
    finish_parser.add_argument("--notes", help="Production notes (replace existing)")

    abort_parser = subparsers.add_parser("abort", help="Abort an in-progress run")
    abort_parser.add_argument("production_run_id", type=int, help="Production run ID")
    abort_parser.add_argument("--notes", help="Reason")

    status_parser = subparsers.add_parser("status", help="Set completed/loaded status")
    status_parser.add_argument("production_run_id", type=int, help="Production run ID")
    status_parser.add_argument("status", choices=["completed", "loaded"], help="New status")

    decode_parser = subparsers.add_parser("decode", help="Decode a lot code")
    decode_parser.add_argument("lot", help="12-character lot code")
    decode_parser.add_argument("--json", dest="as_json", action="store_true",
                               help="Print JSON")

    history_parser = subparsers.add_parser("history", help="Show production history")
    history_parser.add_argument("--recipe", dest="recipe_id", type=int,
                                help="Only runs of this recipe")
    history_parser.add_argument("--json", dest="as_json", action="store_true",
                                help="Print JSON")

    return parser


def main(
    argv: Optional[List[str]] = None,
    capability_check: CapabilityCheck = allow_all,
) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    initialize_app_database()

    try:
        if args.command == "start":
            return start_cmd(args.recipe_id, args.operator_id, args.started_at, args.notes,
                             capability_check)
        elif args.command == "finish":
            return finish_cmd(args.recipe_id, args.production_run_id, args.notes,
                              capability_check)
        elif args.command == "abort":
            return abort_cmd(args.production_run_id, args.notes, capability_check)
        elif args.command == "status":
            return status_cmd(args.production_run_id, args.status, capability_check)
        elif args.command == "decode":
            return decode_cmd(args.lot, args.as_json, capability_check)
        elif args.command == "history":
            return history_cmd(args.recipe_id, args.as_json, capability_check)
        else:
            print(f"Unknown command: {args.command}")
            return 1
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1
    finally:
        close_connections()


if __name__ == "__main__":
    sys.exit(main())

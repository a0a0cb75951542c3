"""
Main entry point for the Production Batch Tracker.

Command-line interface over the service layer. Intended for operations and
support work: creating the database, seeding the directories, inspecting
batches and checking lot ledgers.

Usage Examples:
    # Create the database and tables
    batch-tracker init-db

    # Insert default units and produced goods tags, plus an operator
    batch-tracker seed --operator "Asha Patel"

    # List locked, approved batches
    batch-tracker list-batches --qa-status approved --locked

    # Show one batch with its consumption records and outputs
    batch-tracker show-batch BATCH-0007

    # Check the closed-ledger identity of every lot
    batch-tracker verify-ledger
"""

import argparse
import logging
import sys
from typing import List, Optional

from src.services import batch_service, directory_service, lot_service
from src.services.database import initialize_app_database
from src.services.exceptions import ServiceError
from src.utils.config import get_config


def configure_logging(level: Optional[int] = None) -> None:
    """Configure root logging for command-line use."""
    logging.basicConfig(
        level=level if level is not None else get_config().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def init_db_cmd() -> int:
    """Create the database and its tables."""
    config = get_config()
    print(f"{config.app_name} {config.app_version} (schema {config.database_version})")
    print(f"Initializing database ({config.environment})...")
    initialize_app_database()
    print(f"Database ready: {config.database_url}")
    return 0


def seed_cmd(operator_name: Optional[str] = None) -> int:
    """Seed default directories and optionally register an operator."""
    counts = directory_service.seed_default_directories()
    print(f"Units created: {counts['units']}")
    print(f"Produced goods tags created: {counts['tags']}")
    if operator_name:
        operator = directory_service.create_operator(operator_name)
        print(f"Operator created: {operator.full_name} (id {operator.id})")
    return 0


def list_batches_cmd(qa_status: Optional[str], is_locked: Optional[bool], limit: Optional[int]) -> int:
    """Print one line per batch."""
    batches = batch_service.list_batches(qa_status=qa_status, is_locked=is_locked, limit=limit)
    if not batches:
        print("No batches found")
        return 0

    print(f"{'Code':<14} {'Date':<12} {'State':<8} {'QA':<10} Operator")
    for batch in batches:
        print(
            f"{batch['batch_code']:<14} {batch['batch_date']:<12} {batch['state']:<8} "
            f"{batch['qa_status']:<10} {batch['responsible_operator_name'] or '-'}"
        )
    return 0


def show_batch_cmd(batch_code: str) -> int:
    """Print a batch with its consumption records and outputs."""
    batch = batch_service.get_batch_by_code(batch_code)

    print(f"Batch {batch['batch_code']} ({batch['state']})")
    print(f"  Date:        {batch['batch_date']}")
    print(f"  Operator:    {batch['responsible_operator_name'] or '-'}")
    print(f"  QA status:   {batch['qa_status']}")
    if batch["qa_reason"]:
        print(f"  QA reason:   {batch['qa_reason']}")
    print(
        f"  Production:  {batch['production_start_date'] or '?'} to "
        f"{batch['production_end_date'] or '?'}"
    )
    for field in batch["custom_fields"]:
        print(f"  {field['key']}: {field['value']}")

    print(f"\nConsumption ({len(batch['consumptions'])}):")
    for consumption in batch["consumptions"]:
        print(
            f"  {consumption['lot_code']:<16} {consumption['item_name']:<30} "
            f"{consumption['quantity_consumed']} {consumption['unit']}"
        )

    print(f"\nOutputs ({len(batch['outputs'])}):")
    for output in batch["outputs"]:
        size = ""
        if output["output_size"] is not None:
            size = f" ({output['output_size']} {output['output_size_unit']})"
        print(
            f"  {output['output_name']}{size}: {output['produced_quantity']} "
            f"{output['produced_unit']} [{output['produced_goods_tag_name']}]"
        )

    if batch["materialized"]:
        print("\nOutputs materialized into finished goods inventory")
    return 0


def verify_ledger_cmd(lot_code: Optional[str] = None) -> int:
    """Check lot ledgers; exit status 1 if any lot is out of balance."""
    if lot_code:
        lots = [lot_service.get_lot_by_code(lot_code)]
    else:
        lots = lot_service.list_lots()

    failures = 0
    for lot in lots:
        report = lot_service.verify_lot_ledger(lot["id"])
        status = "OK" if report["is_balanced"] else "IMBALANCED"
        print(
            f"{report['lot_code']:<16} received {report['quantity_received']:>12} "
            f"available {report['quantity_available']:>12} "
            f"consumed {report['quantity_consumed']:>12}  {status}"
        )
        if not report["is_balanced"]:
            failures += 1

    print(f"\n{len(lots)} lot(s) checked, {failures} imbalanced")
    return 1 if failures else 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="batch-tracker",
        description="Production Batch Tracker command-line utility",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Create the database:
    batch-tracker init-db

  Seed directories and register an operator:
    batch-tracker seed --operator "Asha Patel"

  List draft batches on hold:
    batch-tracker list-batches --qa-status hold --draft

  Show a batch:
    batch-tracker show-batch BATCH-0007

  Verify one lot:
    batch-tracker verify-ledger --lot-code RM-2026-001
""",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create the database and tables")

    seed_parser = subparsers.add_parser("seed", help="Insert default units and tags")
    seed_parser.add_argument("--operator", dest="operator_name", help="Also register an operator")

    list_parser = subparsers.add_parser("list-batches", help="List production batches")
    list_parser.add_argument(
        "--qa-status",
        choices=["pending", "approved", "rejected", "hold"],
        help="Only batches with this QA status",
    )
    lock_group = list_parser.add_mutually_exclusive_group()
    lock_group.add_argument("--locked", dest="is_locked", action="store_true", default=None)
    lock_group.add_argument("--draft", dest="is_locked", action="store_false")
    list_parser.add_argument("--limit", type=int, help="Maximum number of batches")

    show_parser = subparsers.add_parser("show-batch", help="Show one batch")
    show_parser.add_argument("batch_code", help="Batch code, e.g. BATCH-0007")

    verify_parser = subparsers.add_parser("verify-ledger", help="Check lot ledger balances")
    verify_parser.add_argument("--lot-code", help="Only check this lot")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    configure_logging(logging.DEBUG if args.verbose else None)

    try:
        initialize_app_database()

        if args.command == "init-db":
            return init_db_cmd()
        elif args.command == "seed":
            return seed_cmd(args.operator_name)
        elif args.command == "list-batches":
            return list_batches_cmd(args.qa_status, args.is_locked, args.limit)
        elif args.command == "show-batch":
            return show_batch_cmd(args.batch_code)
        elif args.command == "verify-ledger":
            return verify_ledger_cmd(args.lot_code)
        else:
            print(f"Unknown command: {args.command}")
            return 1
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""
Command-line entry point for batchflow.

Operational commands for the workflow database. No UI required - designed
for cron jobs, maintenance and quick inspection.

Usage Examples:
    # Create the database and tables
    batchflow init-db

    # Deliver queued role notifications (run periodically)
    batchflow deliver-notifications

    # Packing area stock summary
    batchflow stock-summary

    # Packing stock expiring within 14 days
    batchflow expiry-alerts --days 14

    # Dispatches waiting for the FG Store to claim them
    batchflow pending-dispatches
"""

import argparse
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from batchflow.services import dispatch_service, notification_service, packing_stock_service
from batchflow.services.database import initialize_app_database
from batchflow.services.exceptions import ServiceError
from batchflow.utils.config import get_config
from batchflow.utils.constants import DEFAULT_EXPIRY_LOOKAHEAD_DAYS

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure root logging from the BATCHFLOW_LOG_LEVEL setting."""
    logging.basicConfig(
        level=getattr(logging, get_config().log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def init_db():
    """Create the database file and tables."""
    print(f"Database: {get_config().database_url}")
    print("Database ready.")
    return 0


def deliver_notifications():
    """Deliver pending outbox notifications."""
    counts = notification_service.deliver_pending_notifications()
    print(
        f"Delivered: {counts['delivered']}  Retrying: {counts['retrying']}  "
        f"Failed: {counts['failed']}  Notifications created: {counts['notifications']}"
    )
    return 0


def stock_summary():
    """Print the packing area stock summary."""
    summary = packing_stock_service.get_stock_summary()
    print(f"Stock entries: {summary['total_items']}")
    print(f"Total quantity: {summary['total_quantity']}")
    for status, count in sorted(summary["by_status"].items()):
        print(f"  {status}: {count}")
    print(f"Expiring soon: {summary['expiring_soon']}")
    print(f"Expired: {summary['expired']}")
    return 0


def expiry_alerts(days: int):
    """Print packing stock expiring within `days` days."""
    alerts = packing_stock_service.get_expiry_alerts(days_ahead=days)
    if not alerts:
        print(f"No stock expiring within {days} days.")
        return 0

    for alert in alerts:
        print(
            f"[{alert['alert_level'].upper():8}] {alert['product_name']} "
            f"({alert['batch_number']}) {alert['quantity']} {alert['unit']} "
            f"at {alert['location']}: {alert['days_to_expiry']} day(s)"
        )
    return 0


def pending_dispatches():
    """Print dispatches awaiting a claim."""
    dispatches = dispatch_service.get_pending_fg_dispatches()
    if not dispatches:
        print("No dispatches awaiting claim.")
        return 0

    for dispatch in dispatches:
        if dispatch["dispatch_type"] == "packaged_units":
            amount = f"{dispatch['total_units']} unit(s)"
        else:
            amount = f"quantity {dispatch['total_quantity']}"
        print(
            f"{dispatch['release_code']}  {dispatch['dispatch_type']:14}  "
            f"{dispatch['total_items']} item(s), {amount}  "
            f"by {dispatch['dispatched_by_name']}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="batchflow",
        description="Manufacturing workflow: production batches, packing stock and FG dispatch",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  batchflow init-db
  batchflow deliver-notifications
  batchflow expiry-alerts --days 14
""",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create the database and tables")
    subparsers.add_parser("deliver-notifications", help="Deliver pending role notifications")
    subparsers.add_parser("stock-summary", help="Show the packing area stock summary")

    alerts_parser = subparsers.add_parser("expiry-alerts", help="List stock nearing expiry")
    alerts_parser.add_argument(
        "--days",
        type=int,
        default=DEFAULT_EXPIRY_LOOKAHEAD_DAYS,
        help=f"Look-ahead window in days (default: {DEFAULT_EXPIRY_LOOKAHEAD_DAYS})",
    )

    subparsers.add_parser("pending-dispatches", help="List dispatches awaiting a claim")
    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    configure_logging()

    try:
        # Initialize database (required for all operations)
        initialize_app_database()

        if args.command == "init-db":
            return init_db()
        elif args.command == "deliver-notifications":
            return deliver_notifications()
        elif args.command == "stock-summary":
            return stock_summary()
        elif args.command == "expiry-alerts":
            return expiry_alerts(args.days)
        elif args.command == "pending-dispatches":
            return pending_dispatches()
        else:
            print(f"Unknown command: {args.command}")
            return 1
    except ServiceError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"ERROR: {e}")
        return 1
    except SQLAlchemyError as e:
        logger.error(f"{args.command} failed: database error: {e}")
        print(f"ERROR: Database error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

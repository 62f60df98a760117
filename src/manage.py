"""Bazaarline fulfillment management CLI.

Database schema management plus the scheduled jobs the hosting runtime
triggers (cron, queue worker, ...).

Usage:
    python src/manage.py setup-db                  # Create all tables
    python src/manage.py drop-db                   # Drop all tables
    python src/manage.py sync-couriers             # One reconciliation sweep
    python src/manage.py sync-couriers --batch 50  # Smaller sweep
    python src/manage.py purge                     # Purge records hidden by both parties
"""

import argparse
import sys


def _domain():
    from fulfillment.domain import fulfillment

    fulfillment.init()
    return fulfillment


def setup_database():
    from fulfillment.utils.db import setup_db

    domain = _domain()
    print("Creating fulfillment database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    from fulfillment.utils.db import drop_db

    domain = _domain()
    print("Dropping fulfillment database schema...")
    drop_db(domain)
    print("Done.")


def sync_couriers(batch_size: int) -> dict:
    """Run a single courier reconciliation sweep and print its summary."""
    from fulfillment.order.reconciliation import sync_courier_statuses
    from fulfillment.utils.logging import add_context

    domain = _domain()
    add_context(job="sync-couriers", batch_size=batch_size)
    with domain.domain_context():
        summary = sync_courier_statuses(batch_size=batch_size)
    print(f"Checked {summary['checked']}, updated {summary['updated']}, failed {summary['failed']}.")
    return summary


def purge_hidden(actor_id: str | None = None) -> dict:
    from fulfillment.order.visibility import purge_hidden_orders
    from fulfillment.returns.visibility import purge_hidden_returns
    from fulfillment.utils.logging import add_context

    domain = _domain()
    add_context(job="purge")
    with domain.domain_context():
        result = {
            "orders": purge_hidden_orders(actor_id=actor_id),
            "returns": purge_hidden_returns(actor_id=actor_id),
        }
    print(f"Purged {result['orders']} orders and {result['returns']} return requests.")
    return result


def main(argv=None):
    from fulfillment.order.reconciliation import SYNC_BATCH_SIZE

    parser = argparse.ArgumentParser(description="Bazaarline fulfillment management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    sync_parser = subparsers.add_parser("sync-couriers", help="Reconcile outstanding shipments with the courier")
    sync_parser.add_argument("--batch", type=int, default=SYNC_BATCH_SIZE, help="Maximum orders per sweep")

    purge_parser = subparsers.add_parser("purge", help="Permanently delete records hidden by customer and admin")
    purge_parser.add_argument("--actor", default=None, help="Actor id recorded in the audit trail")

    args = parser.parse_args(argv)

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "sync-couriers":
        sync_couriers(args.batch)
    elif args.command == "purge":
        purge_hidden(args.actor)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()

"""
Maintenance commands.

    python -m manage indexes    create MongoDB indexes
    python -m manage migrate    upgrade stored users and meetings to the current schema
"""

import argparse
import sys

import structlog

import database
from logging_config import configure_logging
from migrations import migrate_meetings, migrate_users

logger = structlog.get_logger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="manage", description="Meeting Scheduler maintenance")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("indexes", help="Create MongoDB indexes")
    subparsers.add_parser("migrate", help="Upgrade stored documents to the current schema")
    args = parser.parse_args(argv)

    configure_logging()
    if database.db is None:
        logger.error("database.not_configured", hint="set DATABASE_URL and DATABASE_NAME")
        return 1

    if args.command == "indexes":
        database.ensure_indexes()
    elif args.command == "migrate":
        users = migrate_users()
        meetings = migrate_meetings()
        print(f"Migrated {users} users and {meetings} meetings")
    return 0


if __name__ == "__main__":
    sys.exit(main())

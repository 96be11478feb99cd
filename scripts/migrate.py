"""Run appointment store migrations.

Usage:
    python scripts/migrate.py                    # upgrade to head
    python scripts/migrate.py downgrade -1
    python scripts/migrate.py create "add column"
"""

import argparse
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

ALEMBIC_INI = Path(__file__).parent.parent / "alembic.ini"


def alembic_config() -> Config:
    """Load the alembic configuration from the project root."""
    config = Config(str(ALEMBIC_INI))
    config.set_main_option("script_location", str(ALEMBIC_INI.parent / "alembic"))
    return config


def main() -> None:
    """Dispatch the requested migration command."""
    parser = argparse.ArgumentParser(description="Appointment store migrations")
    subparsers = parser.add_subparsers(dest="action")
    upgrade = subparsers.add_parser("upgrade", help="Upgrade to a revision")
    upgrade.add_argument("revision", nargs="?", default="head")
    downgrade = subparsers.add_parser("downgrade", help="Downgrade to a revision")
    downgrade.add_argument("revision")
    create = subparsers.add_parser("create", help="Autogenerate a new revision")
    create.add_argument("message", nargs="+")
    args = parser.parse_args()

    config = alembic_config()
    action = args.action or "upgrade"

    try:
        if action == "upgrade":
            command.upgrade(config, getattr(args, "revision", "head"))
        elif action == "downgrade":
            command.downgrade(config, args.revision)
        else:
            command.revision(config, message=" ".join(args.message), autogenerate=True)
        print(f"✓ Migration {action} completed successfully!")
    except Exception as e:
        print(f"✗ Migration {action} failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

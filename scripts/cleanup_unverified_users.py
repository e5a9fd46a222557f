"""
Remove accounts that never finished email signup.

An account is stale when its email is unverified, or when it has neither a
password nor an OAuth provider. OAuth accounts are never removed.

Usage:
    python scripts/cleanup_unverified_users.py --dry-run
    python scripts/cleanup_unverified_users.py
"""

import argparse
import asyncio
import logging
import sys

from lawpal.core.config import settings
from lawpal.services.database import Database

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("lawpal.cleanup")


async def main() -> int:
    parser = argparse.ArgumentParser(description="Delete unverified / unfinished LawPal accounts")
    parser.add_argument("--dry-run", action="store_true", help="Only count the accounts that would be removed")
    args = parser.parse_args()

    db = Database(settings)
    if not await db.connect():
        logger.error("Could not connect to %s", settings.sanitize_url(settings.DATABASE_URL))
        return 1

    try:
        if args.dry_run:
            count = await db.count_stale_users()
            logger.info("Would remove %d user(s)", count)
        else:
            removed = await db.delete_stale_users()
            logger.info("Removed %d user(s)", removed)
    finally:
        await db.close()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

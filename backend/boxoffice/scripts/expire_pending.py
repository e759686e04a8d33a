"""
Fail purchases left pending past PENDING_PURCHASE_TTL_MINUTES.

    python -m boxoffice.scripts.expire_pending [--ttl-minutes N] [--limit N]

Safe to run from cron on several hosts at once: every purchase goes
through the idempotent `fail` (or `complete`, when the processor reports
it paid after all), so overlapping runs never release stock twice.
"""

import argparse
import asyncio

from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger, setup_logging
from boxoffice.db.session import get_engine, get_sessionmaker
from boxoffice.infrastructure.redis_client import close_redis
from boxoffice.services.checkout import SweepResult
from boxoffice.services.context import build_context, make_notifier
from boxoffice.stores.sql_store import SqlTicketingStore


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Expire abandoned pending purchases.")
    parser.add_argument("--ttl-minutes", type=int, default=None, help="override PENDING_PURCHASE_TTL_MINUTES")
    parser.add_argument("--limit", type=int, default=500, help="max purchases handled per run")
    return parser.parse_args(argv)


async def run(ttl_minutes=None, limit: int = 500) -> SweepResult:
    settings = get_settings()
    ctx = build_context(
        SqlTicketingStore(get_sessionmaker()),
        notifier=make_notifier(settings),
        settings=settings,
    )
    try:
        return await ctx.checkout.expire_pending(ttl_minutes=ttl_minutes, limit=limit)
    finally:
        await close_redis()
        await get_engine().dispose()


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging()
    logger = get_logger("boxoffice.scripts.expire_pending")

    result = asyncio.run(run(args.ttl_minutes, args.limit))
    logger.info(
        "sweep_summary",
        failed=result.failed,
        completed=result.completed,
        skipped=result.skipped,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

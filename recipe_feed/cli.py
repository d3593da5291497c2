"""
Operator maintenance commands (console script: recipe-feed-admin).

  recipe-feed-admin clear-feed USER_ID      — delete one user's feed entries
  recipe-feed-admin clear-feed --all        — delete every feed partition
  recipe-feed-admin republish ACTIVITY_ID   — re-run fan-out for an activity
  recipe-feed-admin recount-follows [USER_ID] — repair follow counters

Exit status is 0 on success and 1 on missing configuration, store
connectivity failures, unknown activities or a partially failed republish.
"""
import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from recipe_feed.clients.redis_client import FeedPartitions, create_redis
from recipe_feed.config import settings
from recipe_feed.database import AsyncSessionLocal, close_db
from recipe_feed.engine.activities import ActivityStore
from recipe_feed.engine.dispatcher import FanOutDispatcher
from recipe_feed.engine.graph import FollowGraph
from recipe_feed.engine.sweeper import RetentionSweeper
from recipe_feed.errors import FeedError
from recipe_feed.telemetry import LOG_FORMAT

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    pass


def _require(value: Optional[str], name: str) -> None:
    if not value:
        raise ConfigurationError(f"{name} is not configured")


def _print_progress(user_id: str, deleted: int) -> None:
    print(f"  Deleted {deleted} entries from {user_id}'s feed...")


async def clear_feed(args: argparse.Namespace) -> int:
    _require(settings.redis_host, "REDIS_HOST")
    redis = create_redis()
    try:
        await redis.ping()
        sweeper = RetentionSweeper(
            FeedPartitions(redis),
            max_batch=settings.fanout_max_batch,
            on_progress=_print_progress,
        )
        if args.all:
            summary = await sweeper.clear_all()
            print(f"Cleared {summary.partitions} feeds, {summary.deleted} entries deleted")
        else:
            print(f"Clearing feed for {args.user_id}")
            deleted = await sweeper.clear_feed(args.user_id)
            print(f"Deleted {deleted} feed entries for {args.user_id}")
    finally:
        await redis.aclose()
    return 0


async def republish(args: argparse.Namespace) -> int:
    _require(settings.redis_host, "REDIS_HOST")
    _require(settings.tidb_url, "DATABASE_URL")
    redis = create_redis()
    try:
        await redis.ping()
        async with AsyncSessionLocal() as session:
            dispatcher = FanOutDispatcher(
                FollowGraph(session),
                ActivityStore(session),
                FeedPartitions(redis),
                max_batch=settings.fanout_max_batch,
                parallelism=settings.fanout_parallelism,
            )
            result = await dispatcher.republish(args.activity_id)
    finally:
        await redis.aclose()
        await close_db()

    print(
        f"Activity {args.activity_id}: delivered to {result.delivered}/"
        f"{result.follower_count} followers in {len(result.batches)} batches"
    )
    for batch in result.failed_batches:
        print(
            f"  Batch {batch.index} failed ({batch.error}): {', '.join(batch.follower_ids)}",
            file=sys.stderr,
        )
    return 0 if result.complete else 1


async def recount_follows(args: argparse.Namespace) -> int:
    _require(settings.tidb_url, "DATABASE_URL")
    try:
        async with AsyncSessionLocal() as session:
            corrected = await FollowGraph(session).recount(args.user_id)
    finally:
        await close_db()
    print(f"Corrected follow counters for {corrected} users")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recipe-feed-admin",
        description="Maintenance commands for the recipe activity feed",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    clear = sub.add_parser("clear-feed", help="Delete all entries from a user's feed")
    clear.add_argument("user_id", nargs="?", help="Feed owner")
    clear.add_argument("--all", action="store_true", help="Clear every user's feed")
    clear.set_defaults(handler=clear_feed)

    repub = sub.add_parser("republish", help="Re-deliver an activity to current followers")
    repub.add_argument("activity_id")
    repub.set_defaults(handler=republish)

    recount = sub.add_parser("recount-follows", help="Recompute follow counters from the graph")
    recount.add_argument("user_id", nargs="?", default=None)
    recount.set_defaults(handler=recount_follows)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "clear-feed" and not args.all and not args.user_id:
        parser.error("clear-feed needs a USER_ID or --all")

    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT)

    try:
        return asyncio.run(args.handler(args))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
    except (RedisError, SQLAlchemyError, OSError) as exc:
        print(f"Store unavailable: {exc}", file=sys.stderr)
    except FeedError as exc:
        print(f"Error: {exc}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())

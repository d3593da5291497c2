"""
Follow graph store.

One `follows` row is both `B ∈ following(A)` and `A ∈ followers(B)`, so the
relation is symmetric by construction. The denormalized counters on `users`
change only inside the same transaction as the edge row and only as
`count ± 1`, which keeps concurrent follows of one user from losing updates.
"""
import logging

from opentelemetry import trace
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_feed.errors import GraphMutationError, SelfFollowError, UserNotFoundError
from recipe_feed.models import Follow, User
from recipe_feed.telemetry import FOLLOW_MUTATIONS_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class FollowGraph:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def follow(self, actor_id: str, target_id: str) -> bool:
        """
        Make `actor_id` follow `target_id`.

        Returns True if the edge was created, False if it already existed.
        Raises SelfFollowError, UserNotFoundError or GraphMutationError; in
        every error case the graph is left untouched.
        """
        if actor_id == target_id:
            raise SelfFollowError(actor_id)

        with tracer.start_as_current_span("graph.follow") as span:
            span.set_attribute("follow.actor_id", actor_id)
            span.set_attribute("follow.target_id", target_id)
            await self._require_users(actor_id, target_id)

            try:
                if await self._edge_exists(actor_id, target_id):
                    return False
                self.session.add(Follow(follower_id=actor_id, followee_id=target_id))
                await self.session.flush()
                await self._shift_counts(actor_id, target_id, 1)
                await self.session.commit()
            except IntegrityError:
                # Lost a race against an identical follow; the edge exists
                await self.session.rollback()
                logger.info("%s already follows %s (concurrent insert)", actor_id, target_id)
                return False
            except SQLAlchemyError as exc:
                await self.session.rollback()
                raise GraphMutationError(
                    f"follow {actor_id} -> {target_id} failed: {exc}"
                ) from exc

        FOLLOW_MUTATIONS_TOTAL.labels(action="follow").inc()
        logger.info("%s followed %s", actor_id, target_id)
        return True

    async def unfollow(self, actor_id: str, target_id: str) -> bool:
        """Remove the edge; False (no-op) when it did not exist."""
        with tracer.start_as_current_span("graph.unfollow") as span:
            span.set_attribute("follow.actor_id", actor_id)
            span.set_attribute("follow.target_id", target_id)

            try:
                result = await self.session.execute(
                    delete(Follow).where(
                        Follow.follower_id == actor_id,
                        Follow.followee_id == target_id,
                    )
                )
                if result.rowcount == 0:
                    await self.session.rollback()
                    return False
                await self._shift_counts(actor_id, target_id, -1)
                await self.session.commit()
            except SQLAlchemyError as exc:
                await self.session.rollback()
                raise GraphMutationError(
                    f"unfollow {actor_id} -> {target_id} failed: {exc}"
                ) from exc

        FOLLOW_MUTATIONS_TOTAL.labels(action="unfollow").inc()
        logger.info("%s unfollowed %s", actor_id, target_id)
        return True

    async def get_followers(self, user_id: str) -> set[str]:
        rows = await self.session.execute(
            select(Follow.follower_id).where(Follow.followee_id == user_id)
        )
        return set(rows.scalars().all())

    async def get_following(self, user_id: str) -> set[str]:
        rows = await self.session.execute(
            select(Follow.followee_id).where(Follow.follower_id == user_id)
        )
        return set(rows.scalars().all())

    async def is_following(self, actor_id: str, target_id: str) -> bool:
        return await self._edge_exists(actor_id, target_id)

    async def recount(self, user_id: str | None = None) -> int:
        """
        Recompute the denormalized counters from the edge table.

        Returns how many users had drifted counters. This is a repair tool;
        normal follow/unfollow traffic never needs it.
        """
        following = (
            select(func.count())
            .select_from(Follow)
            .where(Follow.follower_id == User.user_id)
            .scalar_subquery()
        )
        followers = (
            select(func.count())
            .select_from(Follow)
            .where(Follow.followee_id == User.user_id)
            .scalar_subquery()
        )
        query = select(User.user_id, following, followers).where(
            (User.following_count != following) | (User.followers_count != followers)
        )
        if user_id is not None:
            query = query.where(User.user_id == user_id)

        drifted = (await self.session.execute(query)).all()
        for uid, following_count, followers_count in drifted:
            await self.session.execute(
                update(User)
                .where(User.user_id == uid)
                .values(following_count=following_count, followers_count=followers_count)
            )
            logger.warning(
                "Corrected counters for %s: following=%d followers=%d",
                uid, following_count, followers_count,
            )
        await self.session.commit()
        return len(drifted)

    # ── helpers ───────────────────────────────────────────────────────────

    async def _require_users(self, *user_ids: str) -> None:
        rows = await self.session.execute(
            select(User.user_id).where(User.user_id.in_(user_ids))
        )
        found = set(rows.scalars().all())
        for uid in user_ids:
            if uid not in found:
                raise UserNotFoundError(uid)

    async def _edge_exists(self, actor_id: str, target_id: str) -> bool:
        row = await self.session.execute(
            select(Follow.follower_id).where(
                Follow.follower_id == actor_id,
                Follow.followee_id == target_id,
            )
        )
        return row.first() is not None

    async def _shift_counts(self, actor_id: str, target_id: str, delta: int) -> None:
        await self.session.execute(
            update(User)
            .where(User.user_id == actor_id)
            .values(following_count=User.following_count + delta)
        )
        await self.session.execute(
            update(User)
            .where(User.user_id == target_id)
            .values(followers_count=User.followers_count + delta)
        )

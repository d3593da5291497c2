from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from recipe_feed.database import Base
from recipe_feed.engine.graph import FollowGraph
from recipe_feed.errors import GraphMutationError, SelfFollowError, UserNotFoundError
from recipe_feed.models import Follow, User


async def _counts(session, user_id: str) -> tuple[int, int]:
    row = await session.execute(
        select(User.following_count, User.followers_count).where(User.user_id == user_id)
    )
    return tuple(row.one())


@pytest.mark.asyncio
async def test_follow_is_symmetric_and_counted(graph, make_user, db_session):
    alice = await make_user("alice")
    bob = await make_user("bob")

    assert await graph.follow(alice.user_id, bob.user_id) is True

    assert bob.user_id in await graph.get_following(alice.user_id)
    assert alice.user_id in await graph.get_followers(bob.user_id)
    assert await _counts(db_session, alice.user_id) == (1, 0)
    assert await _counts(db_session, bob.user_id) == (0, 1)


@pytest.mark.asyncio
async def test_follow_twice_is_noop(graph, make_user, db_session):
    alice = await make_user("alice")
    bob = await make_user("bob")

    assert await graph.follow(alice.user_id, bob.user_id) is True
    assert await graph.follow(alice.user_id, bob.user_id) is False

    assert await graph.get_followers(bob.user_id) == {alice.user_id}
    assert await _counts(db_session, alice.user_id) == (1, 0)
    assert await _counts(db_session, bob.user_id) == (0, 1)


@pytest.mark.asyncio
async def test_self_follow_rejected_without_change(graph, make_user, db_session):
    alice = await make_user("alice")

    with pytest.raises(SelfFollowError):
        await graph.follow(alice.user_id, alice.user_id)

    assert await graph.get_followers(alice.user_id) == set()
    assert await _counts(db_session, alice.user_id) == (0, 0)


@pytest.mark.asyncio
async def test_follow_unknown_user(graph, make_user):
    alice = await make_user("alice")

    with pytest.raises(UserNotFoundError) as excinfo:
        await graph.follow(alice.user_id, "missing")
    assert excinfo.value.user_id == "missing"
    assert await graph.get_following(alice.user_id) == set()


@pytest.mark.asyncio
async def test_unfollow_removes_both_sides(graph, make_user, db_session):
    alice = await make_user("alice")
    bob = await make_user("bob")
    await graph.follow(alice.user_id, bob.user_id)

    assert await graph.unfollow(alice.user_id, bob.user_id) is True
    assert await graph.unfollow(alice.user_id, bob.user_id) is False

    assert await graph.get_following(alice.user_id) == set()
    assert await graph.get_followers(bob.user_id) == set()
    assert await _counts(db_session, alice.user_id) == (0, 0)
    assert await _counts(db_session, bob.user_id) == (0, 0)


@pytest.mark.asyncio
async def test_unfollow_never_followed_is_noop(graph, make_user, db_session):
    alice = await make_user("alice")
    bob = await make_user("bob")

    assert await graph.unfollow(alice.user_id, bob.user_id) is False
    assert await _counts(db_session, bob.user_id) == (0, 0)


@pytest.mark.asyncio
async def test_get_followers_of_unknown_user_is_empty(graph):
    assert await graph.get_followers("nobody") == set()


@pytest.mark.asyncio
async def test_counters_track_many_followers(graph, make_user, db_session):
    star = await make_user("star")
    fans = [await make_user(f"fan{i}") for i in range(5)]

    for fan in fans:
        await graph.follow(fan.user_id, star.user_id)
    await graph.unfollow(fans[0].user_id, star.user_id)

    assert await _counts(db_session, star.user_id) == (0, 4)
    assert await graph.get_followers(star.user_id) == {f.user_id for f in fans[1:]}


@pytest.mark.asyncio
async def test_recount_repairs_drifted_counters(graph, make_user, db_session):
    alice = await make_user("alice")
    bob = await make_user("bob")
    carol = await make_user("carol")
    await graph.follow(alice.user_id, bob.user_id)
    await graph.follow(carol.user_id, bob.user_id)

    await db_session.execute(
        update(User).where(User.user_id == bob.user_id).values(followers_count=7)
    )
    await db_session.commit()

    assert await graph.recount() == 1
    assert await _counts(db_session, bob.user_id) == (0, 2)
    assert await graph.recount() == 0


@pytest.mark.asyncio
async def test_recount_single_user(graph, make_user, db_session):
    alice = await make_user("alice")
    bob = await make_user("bob")
    await db_session.execute(
        update(User).values(following_count=3)
    )
    await db_session.commit()

    assert await graph.recount(alice.user_id) == 1
    assert await _counts(db_session, alice.user_id) == (0, 0)
    assert await _counts(db_session, bob.user_id) == (3, 0)


def _failing_counter_update(graph, monkeypatch):
    async def _boom(actor_id, target_id, delta):
        raise OperationalError("UPDATE users", {}, Exception("lost connection"))

    monkeypatch.setattr(graph, "_shift_counts", _boom)


@pytest.mark.asyncio
async def test_follow_rolls_back_edge_when_counter_update_fails(
    graph, make_user, db_session, monkeypatch
):
    alice = await make_user("alice")
    bob = await make_user("bob")
    # Rollback expires the ORM instances
    alice_id, bob_id = alice.user_id, bob.user_id
    _failing_counter_update(graph, monkeypatch)

    with pytest.raises(GraphMutationError):
        await graph.follow(alice_id, bob_id)

    assert await graph.get_followers(bob_id) == set()
    assert await graph.get_following(alice_id) == set()
    assert await _counts(db_session, alice_id) == (0, 0)
    assert await _counts(db_session, bob_id) == (0, 0)


@pytest.mark.asyncio
async def test_unfollow_keeps_edge_when_counter_update_fails(
    graph, make_user, db_session, monkeypatch
):
    alice = await make_user("alice")
    bob = await make_user("bob")
    alice_id, bob_id = alice.user_id, bob.user_id
    await graph.follow(alice_id, bob_id)
    _failing_counter_update(graph, monkeypatch)

    with pytest.raises(GraphMutationError):
        await graph.unfollow(alice_id, bob_id)

    assert await graph.get_followers(bob_id) == {alice_id}
    assert await _counts(db_session, alice_id) == (1, 0)
    assert await _counts(db_session, bob_id) == (0, 1)


@pytest.mark.asyncio
async def test_concurrent_follows_keep_every_increment(tmp_path):
    # A file database with a real pool gives each session its own connection
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'graph.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with factory() as session:
            star = User(username="star", display_name="Star")
            fans = [User(username=f"fan{i}", display_name=f"Fan {i}") for i in range(10)]
            session.add_all([star, *fans])
            await session.commit()
            star_id = star.user_id
            fan_ids = [fan.user_id for fan in fans]

        async def _follow(fan_id: str) -> bool:
            async with factory() as session:
                return await FollowGraph(session).follow(fan_id, star_id)

        results = await asyncio.gather(*(_follow(fan_id) for fan_id in fan_ids))

        assert all(results)
        async with factory() as session:
            edges = await session.scalar(
                select(func.count()).select_from(Follow).where(Follow.followee_id == star_id)
            )
            assert await _counts(session, star_id) == (0, len(fan_ids))
            assert edges == len(fan_ids)
    finally:
        await engine.dispose()

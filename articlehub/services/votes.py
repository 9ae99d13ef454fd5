"""
Vote ledger — per-user up/down vote sets and the article counters
derived from them.

The ``article_upvotes`` / ``article_downvotes`` tables are the source of
truth.  ``Article.upvotes_count`` and ``Article.downvotes_count`` are
denormalised copies that are recomputed with a COUNT over the ledger
after every change; they are never incremented or decremented in place,
so a stale value is corrected by the next recount.
"""
import logging

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from articlehub.errors import AlreadyVoted, Forbidden, VoteNotFound
from articlehub.models import Article, User, article_downvotes, article_upvotes

logger = logging.getLogger(__name__)


async def _has_vote(db: AsyncSession, table, user_id: int, article_id: int) -> bool:
    q = select(table.c.user_id).where(
        table.c.user_id == user_id, table.c.article_id == article_id
    )
    return (await db.execute(q)).first() is not None


async def _count(db: AsyncSession, table, article_id: int) -> int:
    q = select(func.count()).select_from(table).where(table.c.article_id == article_id)
    return (await db.execute(q)).scalar_one()


async def recount(db: AsyncSession, article: Article, up: bool = True, down: bool = True) -> Article:
    """Re-derive the requested counters of *article* from the ledger."""
    if up:
        article.upvotes_count = await _count(db, article_upvotes, article.id)
    if down:
        article.downvotes_count = await _count(db, article_downvotes, article.id)
    await db.flush()
    return article


async def _cast(db: AsyncSession, user: User, article: Article, table, opposite) -> Article:
    if user.id == article.user_id:
        raise Forbidden({"Unauthorized error": "You are not allowed to vote on your own article."})
    if await _has_vote(db, table, user.id, article.id):
        raise AlreadyVoted()

    try:
        await db.execute(insert(table).values(user_id=user.id, article_id=article.id))
    except IntegrityError:
        # A concurrent request recorded the same vote first.
        raise AlreadyVoted()
    await db.execute(
        delete(opposite).where(
            opposite.c.user_id == user.id, opposite.c.article_id == article.id
        )
    )
    return await recount(db, article)


async def upvote(db: AsyncSession, user: User, article: Article) -> Article:
    """
    Record an upvote by *user* on *article*, dropping any downvote the
    user had on it, and recompute both counters.

    Raises ``Forbidden`` for the article's author and ``AlreadyVoted``
    when the upvote is already recorded.
    """
    result = await _cast(db, user, article, article_upvotes, article_downvotes)
    logger.info("User %s upvoted article %s", user.id, article.slug)
    return result


async def downvote(db: AsyncSession, user: User, article: Article) -> Article:
    """Mirror image of :func:`upvote`."""
    result = await _cast(db, user, article, article_downvotes, article_upvotes)
    logger.info("User %s downvoted article %s", user.id, article.slug)
    return result


async def _cancel(db: AsyncSession, user: User, article: Article, table) -> None:
    if not await _has_vote(db, table, user.id, article.id):
        raise VoteNotFound()
    await db.execute(
        delete(table).where(table.c.user_id == user.id, table.c.article_id == article.id)
    )


async def cancel_upvote(db: AsyncSession, user: User, article: Article) -> Article:
    """Remove *user*'s upvote on *article*; only the upvote counter is recomputed."""
    await _cancel(db, user, article, article_upvotes)
    logger.info("User %s cancelled upvote on article %s", user.id, article.slug)
    return await recount(db, article, down=False)


async def cancel_downvote(db: AsyncSession, user: User, article: Article) -> Article:
    await _cancel(db, user, article, article_downvotes)
    logger.info("User %s cancelled downvote on article %s", user.id, article.slug)
    return await recount(db, article, up=False)


async def viewer_votes(
    db: AsyncSession, viewer: User | None, article_ids: list[int]
) -> tuple[set[int], set[int]]:
    """
    Return the subsets of *article_ids* that *viewer* has upvoted and
    downvoted.  Two queries regardless of how many articles are asked for.
    """
    if viewer is None or not article_ids:
        return set(), set()
    sets = []
    for table in (article_upvotes, article_downvotes):
        q = select(table.c.article_id).where(
            table.c.user_id == viewer.id, table.c.article_id.in_(article_ids)
        )
        sets.append(set((await db.execute(q)).scalars().all()))
    return sets[0], sets[1]


async def purge_article_votes(db: AsyncSession, article_id: int) -> None:
    """Remove *article_id* from every user's vote sets, both directions."""
    for table in (article_upvotes, article_downvotes):
        await db.execute(delete(table).where(table.c.article_id == article_id))

"""
Comment service — the association between an article and its comments.

A comment is only ever created against an existing article and never
outlives it: deleting the article destroys its comments, never the other
way round.  The article's comment list is the set of rows whose
``article_id`` points at it, so attaching is "persist the comment, then
persist the article" and both writes share the request transaction.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from articlehub.errors import EntityNotFound, Forbidden, ValidationError
from articlehub.models import Article, ArticleComment, User
from articlehub.services.serializers import comment_to_dict

logger = logging.getLogger(__name__)


def _touch(article: Article) -> None:
    article.updated_at = datetime.now(timezone.utc)


async def attach(db: AsyncSession, article: Article, author: User, body: str | None) -> dict:
    """
    Create a comment by *author* on *article* and record it on the
    article.  Returns the serialised comment.
    """
    if not body or not body.strip():
        raise ValidationError({"body": "can't be blank"})

    comment = ArticleComment(body=body, article_id=article.id, user_id=author.id)
    db.add(comment)
    await db.flush()

    _touch(article)
    await db.flush()

    comment.author = author
    logger.info("User %s added comment %s to article %s", author.id, comment.id, article.slug)
    return comment_to_dict(comment)


async def get_comment(db: AsyncSession, article: Article, comment_id: int) -> ArticleComment:
    q = select(ArticleComment).where(
        ArticleComment.id == comment_id, ArticleComment.article_id == article.id
    )
    comment = (await db.execute(q)).scalar_one_or_none()
    if comment is None:
        raise EntityNotFound({"articleComment": "not found"})
    return comment


async def detach(db: AsyncSession, article: Article, comment: ArticleComment, actor: User) -> None:
    """
    Remove *comment* from *article* and destroy it.  Only the comment's
    author may do this.
    """
    if comment.user_id != actor.id:
        raise Forbidden({"articleComment": "can only be removed by its author"})

    _touch(article)
    await db.flush()
    await db.delete(comment)
    await db.flush()
    logger.info("User %s removed comment %s from article %s", actor.id, comment.id, article.slug)


async def cascade_on_article_deletion(db: AsyncSession, article: Article) -> int:
    """Destroy every comment whose back-reference is *article*; returns the count."""
    result = await db.execute(
        delete(ArticleComment)
        .where(ArticleComment.article_id == article.id)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount or 0


async def list_comments(db: AsyncSession, article: Article) -> list[dict]:
    """Comments on *article*, newest first, with author profiles."""
    q = (
        select(ArticleComment)
        .where(ArticleComment.article_id == article.id)
        .options(selectinload(ArticleComment.author))
        .order_by(ArticleComment.created_at.desc(), ArticleComment.id.desc())
    )
    result = await db.execute(q)
    return [comment_to_dict(c) for c in result.scalars().all()]

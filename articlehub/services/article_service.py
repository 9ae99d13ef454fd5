"""
Article service — the Article aggregate.

Design notes
------------
- The aggregate composes the slug generator, the vote ledger, the
  comment service and the asset manager; routers call only the
  functions in this module and in ``votes`` / ``comment_service``.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
- Files and rows are sequenced so that a stored filename always names
  an existing file:
    * a new upload is moved into place before the flush that records
      it, and moved out again if that flush fails;
    * an old file is queued with ``after_commit`` and removed only once
      the transaction that drops its reference has committed.
  The filesystem is not part of the transaction, so a failed removal
  after the commit leaves an unreferenced file behind, never a
  reference to a missing file.
- Eager loading via ``joinedload`` (author) and ``selectinload`` (tags)
  is explicit everywhere because every relationship is ``noload``.
"""
import logging

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from articlehub.cache import TAGS_KEY, cache
from articlehub.config import settings
from articlehub.database import after_commit
from articlehub.errors import EntityNotFound, Forbidden, ValidationError
from articlehub.models import (
    Article,
    Tag,
    User,
    article_downvotes,
    article_tags,
    article_upvotes,
)
from articlehub.schemas import ArticlePatch
from articlehub.services import comment_service, votes
from articlehub.services.assets import AssetManager, UploadedFile
from articlehub.services.serializers import article_to_dict
from articlehub.services.slugs import generate_unique_slug

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _resolve_tags(db: AsyncSession, tag_names: list[str]) -> list[Tag]:
    """
    Return Tag ORM instances for each distinct name in *tag_names*,
    creating any that do not yet exist.
    """
    tags: list[Tag] = []
    for name in dict.fromkeys(n.strip() for n in tag_names if n and n.strip()):
        result = await db.execute(select(Tag).where(Tag.name == name))
        tag = result.scalar_one_or_none()
        if not tag:
            tag = Tag(name=name)
            db.add(tag)
            await db.flush()
        tags.append(tag)
    return tags


def _ensure_author(article: Article, actor: User) -> None:
    if article.user_id != actor.id:
        raise Forbidden({"article": "can only be changed by its author"})


async def _flush_or_release(db: AsyncSession, release, filename: str | None) -> None:
    """Flush; if that fails, remove the freshly accepted *filename* and re-raise."""
    try:
        await db.flush()
    except Exception:
        if filename:
            logger.warning("Flush failed, releasing newly stored file %s", filename)
            await release(filename)
        raise


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_article(db: AsyncSession, slug: str) -> Article:
    """Return the article with *slug* (author and tags loaded) or raise ``EntityNotFound``."""
    q = (
        select(Article)
        .where(Article.slug == slug)
        .options(joinedload(Article.author), selectinload(Article.tags))
    )
    result = await db.execute(q)
    article = result.unique().scalar_one_or_none()
    if article is None:
        raise EntityNotFound({"article": "not found"})
    return article


async def article_view(db: AsyncSession, article: Article, viewer: User | None) -> dict:
    """Projection of *article* as seen by *viewer* (None for anonymous)."""
    upvoted, downvoted = await votes.viewer_votes(db, viewer, [article.id])
    return article_to_dict(article, article.id in upvoted, article.id in downvoted)


async def list_articles(
    db: AsyncSession,
    viewer: User | None = None,
    tag: str | None = None,
    author: str | None = None,
    upvoted: str | None = None,
    downvoted: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> dict:
    """
    Return ``{"articles": [...], "articlesCount": n}``, newest first.

    *author*, *upvoted* and *downvoted* are usernames; an unknown
    username matches nothing.
    """
    conditions = []
    if tag:
        conditions.append(Article.tags.any(Tag.name == tag))
    if author:
        conditions.append(Article.author.has(User.username == author))
    for username, table in ((upvoted, article_upvotes), (downvoted, article_downvotes)):
        if username:
            voted_ids = (
                select(table.c.article_id)
                .join(User, User.id == table.c.user_id)
                .where(User.username == username)
            )
            conditions.append(Article.id.in_(voted_ids))

    count_q = select(func.count()).select_from(Article).where(*conditions)
    total: int = (await db.execute(count_q)).scalar_one()

    articles_q = (
        select(Article)
        .where(*conditions)
        .options(joinedload(Article.author), selectinload(Article.tags))
        .order_by(desc(Article.created_at), desc(Article.id))
        .offset(offset)
        .limit(limit)
    )
    result = await db.execute(articles_q)
    articles = result.unique().scalars().all()

    up_ids, down_ids = await votes.viewer_votes(db, viewer, [a.id for a in articles])
    return {
        "articles": [article_to_dict(a, a.id in up_ids, a.id in down_ids) for a in articles],
        "articlesCount": total,
    }


async def get_tags(db: AsyncSession) -> list[str]:
    """Sorted distinct tags in use, served cache-aside from Redis."""

    async def load() -> list[str]:
        q = (
            select(Tag.name)
            .join(article_tags, article_tags.c.tag_id == Tag.id)
            .distinct()
            .order_by(Tag.name)
        )
        return list((await db.execute(q)).scalars().all())

    return await cache.get_or_load(TAGS_KEY, load, ttl=settings.CACHE_TTL_TAGS)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_article(
    db: AsyncSession,
    assets: AssetManager,
    author: User,
    title: str | None,
    body: str | None,
    description: str | None = None,
    tag_list: list[str] | None = None,
    cover: UploadedFile | None = None,
) -> Article:
    """
    Create an article by *author*.

    The cover upload, if any, is stored before the insert so the row is
    written with its final filename.
    """
    if not title or not body:
        if cover is not None:
            await assets.discard(cover)
        missing = {f: "can't be blank" for f, v in (("title", title), ("body", body)) if not v}
        raise ValidationError(missing)

    cover_name = await assets.accept_cover_image(cover) if cover is not None else None

    try:
        slug = await generate_unique_slug(db, title)
        article = Article(
            slug=slug,
            title=title,
            body=body,
            description=description,
            image=cover_name,
            imgs=[],
            user_id=author.id,
        )
        if tag_list:
            article.tags.extend(await _resolve_tags(db, tag_list))
        db.add(article)
    except Exception:
        if cover_name:
            await assets.release_cover_image(cover_name)
        raise

    await _flush_or_release(db, assets.release_cover_image, cover_name)
    article.author = author

    await cache.invalidate_tags()
    logger.info("User %s created article %s", author.id, article.slug)
    return article


async def update_article(
    db: AsyncSession,
    assets: AssetManager,
    article: Article,
    actor: User,
    patch: ArticlePatch,
    cover: UploadedFile | None = None,
    remove_cover: bool = False,
    retained_imgs: list[str] | None = None,
) -> Article:
    """
    Partially update *article*.

    Only fields explicitly present in *patch* change; present-but-empty
    values clear the field.  The slug is not regenerated on title change.

    Cover image: a new upload replaces the previous file; otherwise
    *remove_cover* clears it.  Body images: when *retained_imgs* is
    given, stored images missing from it are deleted and ``imgs``
    becomes the retained names, in the client's order.
    """
    try:
        _ensure_author(article, actor)
    except Forbidden:
        if cover is not None:
            await assets.discard(cover)
        raise

    # Upload policy is checked here, before any field is touched.
    new_cover = await assets.accept_cover_image(cover) if cover is not None else None

    previous_cover = article.image
    current_imgs = list(article.imgs or [])

    update_data = patch.model_dump(exclude_unset=True)
    tag_names: list[str] | None = update_data.pop("tag_list", None)
    try:
        for field, value in update_data.items():
            setattr(article, field, value if value is not None else "")

        if tag_names is not None:
            article.tags.clear()
            article.tags.extend(await _resolve_tags(db, tag_names))

        if new_cover:
            article.image = new_cover
        elif remove_cover and previous_cover:
            article.image = None

        if retained_imgs is not None:
            stored = set(current_imgs)
            article.imgs = [name for name in dict.fromkeys(retained_imgs) if name in stored]
    except Exception:
        if new_cover:
            await assets.release_cover_image(new_cover)
        raise

    await _flush_or_release(db, assets.release_cover_image, new_cover)

    if previous_cover and article.image != previous_cover:
        after_commit(db, assets.release_cover_image, previous_cover)
    if retained_imgs is not None:
        after_commit(db, assets.reconcile_body_images, current_imgs, list(article.imgs))

    await cache.invalidate_tags()
    logger.info("User %s updated article %s", actor.id, article.slug)
    return article


async def delete_article(
    db: AsyncSession, assets: AssetManager, article: Article, actor: User
) -> None:
    """
    Delete *article* with everything it owns: its comments, its vote
    references in every user's ledger and its cover and body image files.

    Rows go first (one flush).  Files are removed once the request has
    committed; a missing file is not an error.
    """
    _ensure_author(article, actor)

    cover = article.image
    imgs = list(article.imgs or [])

    removed = await comment_service.cascade_on_article_deletion(db, article)
    await votes.purge_article_votes(db, article.id)
    await db.delete(article)
    await db.flush()

    if cover:
        after_commit(db, assets.release_cover_image, cover)
    if imgs:
        after_commit(db, assets.release_body_images, imgs)

    await cache.invalidate_tags()
    logger.info(
        "User %s deleted article %s (%d comments, %d files)",
        actor.id,
        article.slug,
        removed,
        len(imgs) + (1 if cover else 0),
    )


async def attach_body_image(
    db: AsyncSession,
    assets: AssetManager,
    article: Article,
    actor: User,
    upload: UploadedFile,
) -> str:
    """
    Store an image for use inside the article body and append it to
    ``imgs``.  The returned filename is what the editor tracks until the
    next save reconciles the list.
    """
    if article.user_id != actor.id:
        await assets.discard(upload)
        raise Forbidden({"article": "can only be changed by its author"})

    filename = await assets.accept_body_image(upload)
    article.imgs = [*(article.imgs or []), filename]
    try:
        await db.flush()
    except Exception:
        await assets.release_body_images([filename])
        raise
    logger.info("User %s attached body image %s to article %s", actor.id, filename, article.slug)
    return filename

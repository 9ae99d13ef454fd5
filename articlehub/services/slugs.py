"""
Slug generation for articles.

A slug is the normalised title plus a six character base-36 suffix drawn
from a high-entropy random source, e.g. ``hello-world-k3x09a``.  Slugs are
generated once, when an article is first persisted, and never change when
the title is edited afterwards.
"""
import logging
import re
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from articlehub.config import settings
from articlehub.errors import ValidationError
from articlehub.models import Article

logger = logging.getLogger(__name__)

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
SUFFIX_LENGTH = 6


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def random_suffix(length: int = SUFFIX_LENGTH) -> str:
    """Base-36 rendering of a random integer below ``36 ** length``, zero-padded."""
    n = secrets.randbelow(36 ** length)
    digits = []
    for _ in range(length):
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def make_slug(title: str) -> str:
    base = slugify(title) or "article"
    return f"{base}-{random_suffix()}"


async def generate_unique_slug(db: AsyncSession, title: str) -> str:
    """
    Return a slug for *title* that is not taken by any stored article.

    A collision on the random suffix is unlikely, so each retry simply
    draws a new suffix.  After ``settings.SLUG_MAX_ATTEMPTS`` collisions
    the caller gets a ``ValidationError`` keyed on ``slug``; the unique
    index on ``articles.slug`` still guards the race between this check
    and the insert.
    """
    for attempt in range(1, settings.SLUG_MAX_ATTEMPTS + 1):
        candidate = make_slug(title)
        result = await db.execute(select(Article.id).where(Article.slug == candidate))
        if result.scalar_one_or_none() is None:
            return candidate
        logger.warning("Slug collision on %r (attempt %d)", candidate, attempt)
    raise ValidationError({"slug": "is already taken"})

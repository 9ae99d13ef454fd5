"""
Public JSON projections.

Field names and nesting here are the contract clients are built
against; keep them stable.
"""
from articlehub.models import Article, ArticleComment, User


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def profile_to_dict(user: User | None) -> dict | None:
    if user is None:
        return None
    return {
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
    }


def user_to_dict(user: User) -> dict:
    """The current user's own view, which also exposes the email address."""
    data = profile_to_dict(user)
    data["email"] = user.email
    return data


def comment_to_dict(comment: ArticleComment) -> dict:
    return {
        "id": comment.id,
        "body": comment.body,
        "createdAt": _iso(comment.created_at),
        "updatedAt": _iso(comment.updated_at),
        "author": profile_to_dict(comment.author),
    }


def article_to_dict(article: Article, upvoted: bool = False, downvoted: bool = False) -> dict:
    """
    Serialise *article* for a particular viewer.  *upvoted* / *downvoted*
    say whether that viewer's vote sets contain the article.
    """
    return {
        "slug": article.slug,
        "title": article.title,
        "image": article.image,
        "imgs": list(article.imgs or []),
        "description": article.description,
        "body": article.body,
        "createdAt": _iso(article.created_at),
        "updatedAt": _iso(article.updated_at),
        "tagList": sorted(t.name for t in article.tags),
        "upvoted": upvoted,
        "downvoted": downvoted,
        "upvotesCount": article.upvotes_count,
        "downvotesCount": article.downvotes_count,
        "author": profile_to_dict(article.author),
    }

"""
Comment endpoint tests — attaching comments to an article, listing them,
author-only removal and the cascade when the article goes away.
"""
import pytest
from httpx import AsyncClient

from articlehub.models import ArticleComment


async def _article(client: AsyncClient, headers: dict) -> str:
    resp = await client.post(
        "/api/articles", data={"title": "Commented", "body": "Body"}, headers=headers
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["article"]["slug"]


async def _comment(client: AsyncClient, slug: str, headers: dict, body: str = "Nice post") -> dict:
    resp = await client.post(
        f"/api/articles/{slug}/articleComments",
        json={"articleComment": {"body": body}},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["articleComment"]


# ---------------------------------------------------------------------------
# Attach
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_add_comment(async_client: AsyncClient, register):
    alice = await register("alice")
    bob = await register("bob")
    slug = await _article(async_client, alice)

    comment = await _comment(async_client, slug, bob, "First!")

    assert comment["body"] == "First!"
    assert comment["author"]["username"] == "bob"
    assert isinstance(comment["id"], int)
    assert comment["createdAt"]


@pytest.mark.asyncio
async def test_add_comment_touches_article(async_client: AsyncClient, register):
    alice = await register("alice")
    slug = await _article(async_client, alice)
    before = (await async_client.get(f"/api/articles/{slug}")).json()["article"]["updatedAt"]

    await _comment(async_client, slug, alice)

    after = (await async_client.get(f"/api/articles/{slug}")).json()["article"]["updatedAt"]
    assert after != before


@pytest.mark.asyncio
async def test_add_blank_comment(async_client: AsyncClient, register):
    alice = await register("alice")
    slug = await _article(async_client, alice)

    resp = await async_client.post(
        f"/api/articles/{slug}/articleComments",
        json={"articleComment": {"body": "   "}},
        headers=alice,
    )
    assert resp.status_code == 422
    assert resp.json()["errors"] == {"body": "can't be blank"}


@pytest.mark.asyncio
async def test_add_comment_to_missing_article(async_client: AsyncClient, register, count_rows):
    alice = await register("alice")
    resp = await async_client.post(
        "/api/articles/nope/articleComments",
        json={"articleComment": {"body": "hello"}},
        headers=alice,
    )
    assert resp.status_code == 404
    assert await count_rows(ArticleComment) == 0


@pytest.mark.asyncio
async def test_add_comment_requires_identity(async_client: AsyncClient, register):
    alice = await register("alice")
    slug = await _article(async_client, alice)
    resp = await async_client.post(
        f"/api/articles/{slug}/articleComments", json={"articleComment": {"body": "anon"}}
    )
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_comments_newest_first(async_client: AsyncClient, register):
    alice = await register("alice")
    slug = await _article(async_client, alice)
    for body in ("one", "two", "three"):
        await _comment(async_client, slug, alice, body)

    resp = await async_client.get(f"/api/articles/{slug}/articleComments")
    assert resp.status_code == 200
    assert [c["body"] for c in resp.json()["articleComments"]] == ["three", "two", "one"]


@pytest.mark.asyncio
async def test_comments_are_scoped_to_their_article(async_client: AsyncClient, register):
    alice = await register("alice")
    first = await _article(async_client, alice)
    second = await _article(async_client, alice)
    await _comment(async_client, first, alice, "on first")

    resp = await async_client.get(f"/api/articles/{second}/articleComments")
    assert resp.json()["articleComments"] == []


# ---------------------------------------------------------------------------
# Detach
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_own_comment(async_client: AsyncClient, register):
    alice = await register("alice")
    bob = await register("bob")
    slug = await _article(async_client, alice)
    comment = await _comment(async_client, slug, bob)

    resp = await async_client.delete(f"/api/articles/{slug}/articleComments/{comment['id']}", headers=bob)
    assert resp.status_code == 204

    listing = (await async_client.get(f"/api/articles/{slug}/articleComments")).json()
    assert listing["articleComments"] == []


@pytest.mark.asyncio
async def test_delete_others_comment_is_forbidden(async_client: AsyncClient, register):
    """The article's author cannot remove someone else's comment either."""
    alice = await register("alice")
    bob = await register("bob")
    slug = await _article(async_client, alice)
    comment = await _comment(async_client, slug, bob)

    resp = await async_client.delete(f"/api/articles/{slug}/articleComments/{comment['id']}", headers=alice)
    assert resp.status_code == 403

    listing = (await async_client.get(f"/api/articles/{slug}/articleComments")).json()
    assert len(listing["articleComments"]) == 1


@pytest.mark.asyncio
async def test_delete_comment_through_wrong_article(async_client: AsyncClient, register):
    alice = await register("alice")
    first = await _article(async_client, alice)
    second = await _article(async_client, alice)
    comment = await _comment(async_client, first, alice)

    resp = await async_client.delete(f"/api/articles/{second}/articleComments/{comment['id']}", headers=alice)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_deleting_article_removes_only_its_comments(async_client: AsyncClient, register, count_rows):
    alice = await register("alice")
    doomed = await _article(async_client, alice)
    kept = await _article(async_client, alice)
    await _comment(async_client, doomed, alice, "a")
    await _comment(async_client, doomed, alice, "b")
    await _comment(async_client, kept, alice, "c")

    resp = await async_client.delete(f"/api/articles/{doomed}", headers=alice)
    assert resp.status_code == 204

    assert await count_rows(ArticleComment) == 1
    listing = (await async_client.get(f"/api/articles/{kept}/articleComments")).json()
    assert [c["body"] for c in listing["articleComments"]] == ["c"]

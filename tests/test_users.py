"""
User endpoint tests — registration, the current-user view, public
profiles and profile updates including avatar replacement.
"""
import pytest
from httpx import AsyncClient

from articlehub.services.assets import AssetManager


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_user(async_client: AsyncClient):
    """Creating a user with all fields returns 201 and the provided data."""
    resp = await async_client.post("/api/users", json={"user": {
        "username": "newuser",
        "email": "newuser@example.com",
        "bio": "I am new here",
    }})
    assert resp.status_code == 201
    user = resp.json()["user"]
    assert user == {
        "username": "newuser",
        "email": "newuser@example.com",
        "bio": "I am new here",
        "image": None,
    }


@pytest.mark.asyncio
async def test_create_user_missing_email(async_client: AsyncClient):
    resp = await async_client.post("/api/users", json={"user": {"username": "noemail"}})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_create_duplicate_user(async_client: AsyncClient, register):
    """Username and email are unique; a clash returns 409."""
    await register("taken")
    resp = await async_client.post("/api/users", json={"user": {
        "username": "taken",
        "email": "other@example.com",
    }})
    assert resp.status_code == 409


# ---------------------------------------------------------------------------
# Current user & profiles
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_current_user(async_client: AsyncClient, register):
    headers = await register("alice")
    resp = await async_client.get("/api/user", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["user"]["email"] == "alice@example.com"


@pytest.mark.asyncio
async def test_current_user_requires_identity(async_client: AsyncClient):
    resp = await async_client.get("/api/user")
    assert resp.status_code == 401
    assert "errors" in resp.json()


@pytest.mark.asyncio
async def test_profile_hides_email(async_client: AsyncClient, register):
    await register("alice")
    resp = await async_client.get("/api/profiles/alice")
    assert resp.status_code == 200
    assert resp.json() == {"profile": {"username": "alice", "bio": None, "image": None}}


@pytest.mark.asyncio
async def test_missing_profile(async_client: AsyncClient):
    resp = await async_client.get("/api/profiles/ghost")
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_bio(async_client: AsyncClient, register):
    headers = await register("alice")
    resp = await async_client.put("/api/user", data={"bio": "Writer"}, headers=headers)
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["bio"] == "Writer"
    assert user["username"] == "alice"


@pytest.mark.asyncio
async def test_update_rejects_empty_username(async_client: AsyncClient, register):
    headers = await register("alice")
    resp = await async_client.put("/api/user", data={"username": ""}, headers=headers)
    assert resp.status_code == 422
    assert "username" in resp.json()["errors"]


@pytest.mark.asyncio
async def test_update_to_taken_username(async_client: AsyncClient, register):
    await register("alice")
    bob = await register("bob")
    resp = await async_client.put("/api/user", data={"username": "alice"}, headers=bob)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_avatar_upload_replace_and_remove(
    async_client: AsyncClient, register, assets: AssetManager, image_file
):
    headers = await register("alice")

    resp = await async_client.put("/api/user", files={"uploadFile": image_file("me.png")}, headers=headers)
    first = resp.json()["user"]["image"]
    assert first.startswith("ava-")
    assert (assets.avatar_dir / first).exists()

    resp = await async_client.put("/api/user", files={"uploadFile": image_file("me2.png")}, headers=headers)
    second = resp.json()["user"]["image"]
    assert second != first
    assert not (assets.avatar_dir / first).exists()
    assert (assets.avatar_dir / second).exists()

    resp = await async_client.put("/api/user", data={"removePhoto": "true"}, headers=headers)
    assert resp.json()["user"]["image"] is None
    assert not (assets.avatar_dir / second).exists()


@pytest.mark.asyncio
async def test_avatar_with_wrong_type(async_client: AsyncClient, register, assets: AssetManager):
    headers = await register("alice")
    resp = await async_client.put(
        "/api/user", files={"uploadFile": ("me.bmp", b"BM", "image/bmp")}, headers=headers
    )
    assert resp.status_code == 422
    assert list(assets.avatar_dir.iterdir()) == []

"""
Test infrastructure for articlehub.

Strategy
--------
- SQLite in-memory via aiosqlite with a StaticPool, so every session in a
  test shares the one connection that holds the database.
- The app's get_db dependency is overridden with the test session factory.
- All tables are created fresh before each test and dropped after.
- Redis is disabled by setting cache._redis = None; the CacheManager then
  falls through to the database on every read.
- Upload storage lives under pytest's tmp_path through an AssetManager
  injected in place of the settings-built one.
"""
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from articlehub.cache import cache
from articlehub.database import Base, discard_after_commit, get_db, run_after_commit
from articlehub.dependencies import get_asset_manager
from articlehub.main import app
from articlehub.middleware import install_query_counter
from articlehub.models import User
from articlehub.services.assets import AssetManager, UploadedFile

# 1x1 transparent GIF
GIF_BYTES = (
    b"GIF89a\x01\x00\x01\x00\x80\x00\x00\x00\x00\x00\xff\xff\xff!\xf9\x04\x01\x00"
    b"\x00\x00\x00,\x00\x00\x00\x00\x01\x00\x01\x00\x00\x02\x02D\x01\x00;"
)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            discard_after_commit(session)
            await session.rollback()
            raise
        await run_after_commit(session)


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def assets(tmp_path: Path) -> AssetManager:
    manager = AssetManager(
        cover_dir=tmp_path / "articles" / "images",
        body_dir=tmp_path / "articles" / "imgs",
        avatar_dir=tmp_path / "avatars",
        tmp_dir=tmp_path / "tmp",
        max_bytes=1024 * 1024,
    )
    manager.ensure_directories()
    return manager


@pytest.fixture
def make_upload(assets: AssetManager):
    """
    Factory that writes a file into the transport's temp directory and
    returns the ``UploadedFile`` the asset manager consumes.
    """
    counter = {"n": 0}

    def _make(
        name: str = "photo.gif",
        mime_type: str = "image/gif",
        content: bytes = GIF_BYTES,
    ) -> UploadedFile:
        counter["n"] += 1
        path = assets.tmp_dir / f"upload-{counter['n']}"
        path.write_bytes(content)
        return UploadedFile(
            temp_path=path,
            original_filename=name,
            mime_type=mime_type,
            size_bytes=len(content),
        )

    return _make


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live AsyncSession for service-level tests (flushes, never commits)."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    async def _make(username: str) -> User:
        user = User(username=username, email=f"{username}@example.com")
        db_session.add(user)
        await db_session.flush()
        return user

    return _make


@pytest_asyncio.fixture
async def async_client(assets: AssetManager) -> AsyncClient:
    """
    An httpx.AsyncClient wired to the FastAPI app via ASGITransport, with
    Redis disabled and uploads stored under tmp_path.
    """
    cache._redis = None
    app.dependency_overrides[get_asset_manager] = lambda: assets
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_asset_manager, None)


@pytest.fixture
def image_file():
    """Build an httpx multipart file tuple carrying a tiny valid image."""

    def _image(name: str = "cover.png", mime_type: str = "image/png") -> tuple:
        return (name, GIF_BYTES, mime_type)

    return _image


@pytest.fixture
def count_rows():
    """Count rows of a table or mapped class, outside any request."""

    async def _count(target) -> int:
        async with async_session_test() as session:
            result = await session.execute(select(func.count()).select_from(target))
            return result.scalar_one()

    return _count


@pytest.fixture
def register(async_client: AsyncClient):
    """Create a user through the API and return the identity headers for it."""

    async def _register(username: str) -> dict:
        resp = await async_client.post(
            "/api/users",
            json={"user": {"username": username, "email": f"{username}@example.com"}},
        )
        assert resp.status_code == 201, resp.text
        async with async_session_test() as session:
            result = await session.execute(select(User.id).where(User.username == username))
            return {"X-User-Id": str(result.scalar_one())}

    return _register

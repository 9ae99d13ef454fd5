import logging

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from articlehub.config import settings
from articlehub.errors import AssetRemovalError
from articlehub.middleware import install_query_counter

logger = logging.getLogger(__name__)

# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

install_query_counter(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

_AFTER_COMMIT_KEY = "after_commit"


class Base(DeclarativeBase):
    pass


def after_commit(session: AsyncSession, callback, *args) -> None:
    """
    Queue ``await callback(*args)`` to run once *session* has committed.

    File removals go through here: a file may only disappear after the
    row that referenced it is gone for good, and a rolled-back request
    drops the queue untouched.
    """
    session.info.setdefault(_AFTER_COMMIT_KEY, []).append((callback, args))


def discard_after_commit(session: AsyncSession) -> None:
    session.info.pop(_AFTER_COMMIT_KEY, None)


async def run_after_commit(session: AsyncSession) -> None:
    """
    Run the callbacks queued on *session*.  The transaction is already
    committed, so a removal failure is logged and the file left behind
    unreferenced.
    """
    for callback, args in session.info.pop(_AFTER_COMMIT_KEY, []):
        try:
            await callback(*args)
        except AssetRemovalError as exc:
            logger.error("Post-commit file removal failed: %s", exc)


async def get_db():
    """
    Yield one session per request.

    The whole request is a single transaction: services only flush, and
    every document touched by a vote, a comment attach or an article
    delete is committed (or rolled back) together here.  Work queued with
    :func:`after_commit` runs only after a successful commit.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            discard_after_commit(session)
            await session.rollback()
            raise
        await run_after_commit(session)

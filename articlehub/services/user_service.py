"""
User service — registration, profiles and avatar replacement.

Credentials are handled upstream; a user here is the identity that
authors articles and comments and owns a pair of vote sets.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from articlehub.database import after_commit
from articlehub.errors import EntityNotFound
from articlehub.models import User
from articlehub.schemas import UserCreate, UserPatch
from articlehub.services.assets import AssetManager, UploadedFile

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: int) -> User | None:
    return await db.get(User, user_id)


async def get_by_username(db: AsyncSession, username: str) -> User:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None:
        raise EntityNotFound({"profile": "not found"})
    return user


async def create_user(db: AsyncSession, data: UserCreate) -> User:
    """
    Create a new user.

    Email and username uniqueness is enforced at the database level; the
    router translates the ``IntegrityError`` into a 409 response.
    """
    user = User(username=data.username, email=data.email, bio=data.bio)
    db.add(user)
    await db.flush()
    logger.info("Registered user %s (%s)", user.id, user.username)
    return user


async def update_user(
    db: AsyncSession,
    assets: AssetManager,
    user: User,
    patch: UserPatch,
    avatar: UploadedFile | None = None,
    remove_photo: bool = False,
) -> User:
    """
    Apply *patch* to *user* and replace or clear the avatar.

    Same file ordering as article covers: the new avatar is stored before
    the flush, the old one removed once the request has committed.
    """
    new_avatar = await assets.accept_avatar(avatar) if avatar is not None else None
    previous = user.image

    for field, value in patch.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(user, field, value)

    if new_avatar:
        user.image = new_avatar
    elif remove_photo and previous:
        user.image = None

    try:
        await db.flush()
    except Exception:
        if new_avatar:
            await assets.release_avatar(new_avatar)
        raise

    if previous and user.image != previous:
        after_commit(db, assets.release_avatar, previous)
    return user

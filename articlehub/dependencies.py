import asyncio
import shutil
import tempfile
from functools import lru_cache
from pathlib import Path

from fastapi import Depends, Header, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from articlehub.config import settings
from articlehub.database import get_db
from articlehub.errors import Unauthorized
from articlehub.models import User
from articlehub.services import user_service
from articlehub.services.assets import AssetManager, UploadedFile


class PaginationParams:
    """
    Reusable FastAPI dependency that parses ``limit`` / ``offset`` query
    parameters.

    Attributes
    ----------
    limit:
        Number of items to return, clamped to ``settings.MAX_LIMIT``
        regardless of the value supplied by the caller.
    offset:
        Number of items to skip.
    """

    def __init__(
        self,
        limit: int = Query(settings.DEFAULT_LIMIT, ge=1, description="Number of items to return."),
        offset: int = Query(0, ge=0, description="Number of items to skip."),
    ) -> None:
        self.limit = min(limit, settings.MAX_LIMIT)
        self.offset = offset


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

async def get_optional_user(
    x_user_id: int | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """
    Resolve the acting user from the ``X-User-Id`` header set by the
    authenticating gateway in front of this service.
    """
    if x_user_id is None:
        return None
    user = await user_service.get_user(db, x_user_id)
    if user is None:
        raise Unauthorized({"identity": "does not match a user"})
    return user


async def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    if user is None:
        raise Unauthorized()
    return user


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------

@lru_cache
def get_asset_manager() -> AssetManager:
    assets = AssetManager(
        cover_dir=settings.COVER_IMAGE_DIR,
        body_dir=settings.BODY_IMAGE_DIR,
        avatar_dir=settings.AVATAR_DIR,
        tmp_dir=settings.UPLOAD_TMP_DIR,
        max_bytes=settings.MAX_UPLOAD_BYTES,
    )
    assets.ensure_directories()
    return assets


def _copy_to_temp(upload: UploadFile, directory: Path) -> tuple[Path, int]:
    directory.mkdir(parents=True, exist_ok=True)
    upload.file.seek(0)
    with tempfile.NamedTemporaryFile(dir=directory, delete=False) as fh:
        shutil.copyfileobj(upload.file, fh)
        size = fh.tell()
    return Path(fh.name), size


async def spool_upload(upload: UploadFile | None, directory: Path) -> UploadedFile | None:
    """
    Write a multipart file to *directory* and describe it as an
    ``UploadedFile``.  An absent or empty file field yields None.
    """
    if upload is None or not upload.filename:
        return None
    temp_path, size = await asyncio.to_thread(_copy_to_temp, upload, directory)
    return UploadedFile(
        temp_path=temp_path,
        original_filename=upload.filename,
        mime_type=upload.content_type or "",
        size_bytes=size,
    )

"""
Asset lifecycle manager — moves uploaded images into permanent storage
and removes files that no document references any more.

The manager only touches the filesystem.  Callers record the returned
filenames on the owning document and flush it; a filename is returned
only once the file exists under that name.

Three storage areas are managed, each with its own filename prefix:

- cover images of articles   (``a<ms>-<original name>``)
- images embedded in a body  (``b<ms>-<original name>``)
- user avatars               (``ava-<ms>-<original name>``)

Directories are passed in at construction so tests can point the
manager at a temporary tree.
"""
import asyncio
import logging
import os
import re
import secrets
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

from articlehub.errors import AssetRemovalError, FileTooLarge, InvalidFileType

logger = logging.getLogger(__name__)

_ALLOWED_TYPES_RE = re.compile(r"jpeg|jpg|png|gif")
ALLOWED_EXTENSIONS: frozenset[str] = frozenset({".jpeg", ".jpg", ".png", ".gif"})


@dataclass(frozen=True)
class UploadedFile:
    """A file the upload transport has already written to temporary storage."""

    temp_path: Path
    original_filename: str
    mime_type: str
    size_bytes: int


class AssetManager:
    def __init__(
        self,
        cover_dir: Path,
        body_dir: Path,
        avatar_dir: Path,
        tmp_dir: Path | None = None,
        max_bytes: int = 1024 * 1024,
    ) -> None:
        self.cover_dir = Path(cover_dir)
        self.body_dir = Path(body_dir)
        self.avatar_dir = Path(avatar_dir)
        # Where the upload transport spools incoming files; kept on the
        # same filesystem as the storage areas so accepting is a rename.
        self.tmp_dir = Path(tmp_dir) if tmp_dir else self.cover_dir.parent / "tmp"
        self.max_bytes = max_bytes

    def ensure_directories(self) -> None:
        for directory in (self.cover_dir, self.body_dir, self.avatar_dir, self.tmp_dir):
            directory.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Upload policy
    # ------------------------------------------------------------------

    def check(self, upload: UploadedFile) -> None:
        """
        Raise ``InvalidFileType`` or ``FileTooLarge`` when *upload*
        violates the upload policy.  Both the extension of the original
        name and the MIME type must name an allowed image type.
        """
        ext = os.path.splitext(upload.original_filename)[1].lower()
        if ext not in ALLOWED_EXTENSIONS or not _ALLOWED_TYPES_RE.search(upload.mime_type or ""):
            logger.info(
                "Rejected upload %r: type %r not allowed", upload.original_filename, upload.mime_type
            )
            raise InvalidFileType()
        if upload.size_bytes > self.max_bytes:
            logger.info(
                "Rejected upload %r: %d bytes exceeds %d",
                upload.original_filename,
                upload.size_bytes,
                self.max_bytes,
            )
            raise FileTooLarge(
                {"File size": f"is too large. Max limit is {self.max_bytes // (1024 * 1024) or 1} MB."}
            )

    async def discard(self, upload: UploadedFile) -> None:
        """Remove the temporary file of an upload that will not be stored."""
        await asyncio.to_thread(_unlink_quietly, Path(upload.temp_path))

    # ------------------------------------------------------------------
    # Accept
    # ------------------------------------------------------------------

    async def accept_cover_image(self, upload: UploadedFile) -> str:
        return await self._accept(upload, self.cover_dir, "a")

    async def accept_body_image(self, upload: UploadedFile) -> str:
        return await self._accept(upload, self.body_dir, "b")

    async def accept_avatar(self, upload: UploadedFile) -> str:
        return await self._accept(upload, self.avatar_dir, "ava-")

    async def _accept(self, upload: UploadedFile, directory: Path, prefix: str) -> str:
        try:
            self.check(upload)
        except (InvalidFileType, FileTooLarge):
            await self.discard(upload)
            raise
        filename = await asyncio.to_thread(_move_into, upload, directory, prefix)
        logger.info("Stored upload %r as %s", upload.original_filename, directory / filename)
        return filename

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    async def release_cover_image(self, filename: str) -> bool:
        return await self._release(self.cover_dir, filename)

    async def release_avatar(self, filename: str) -> bool:
        return await self._release(self.avatar_dir, filename)

    async def release_body_images(self, filenames: list[str]) -> None:
        """
        Delete every file in *filenames*.  All deletions are attempted;
        afterwards an ``AssetRemovalError`` lists the ones that failed
        for a reason other than the file already being gone.
        """
        failed: list[str] = []
        for filename in filenames:
            try:
                await self._release(self.body_dir, filename)
            except AssetRemovalError:
                failed.append(filename)
        if failed:
            raise AssetRemovalError(failed)

    async def reconcile_body_images(
        self, current: list[str], retained: list[str]
    ) -> list[str]:
        """
        Delete body images in *current* that are not in *retained* and
        return them.

        Image uploads and the article save are separate requests, so an
        image uploaded while editing but dropped from the final body
        would otherwise stay on disk.
        """
        keep = set(retained)
        extraneous = [name for name in dict.fromkeys(current) if name not in keep]
        if extraneous:
            await self.release_body_images(extraneous)
        return extraneous

    async def _release(self, directory: Path, filename: str) -> bool:
        """Return True if a file was removed, False if it was already absent."""
        path = directory / Path(filename).name
        try:
            await asyncio.to_thread(os.remove, path)
        except FileNotFoundError:
            logger.info("File %s doesn't exist, won't remove it", path)
            return False
        except OSError as exc:
            logger.error("Error occurred while trying to remove %s: %s", path, exc)
            raise AssetRemovalError([filename]) from exc
        logger.info("Removed file %s", path)
        return True


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def _claim(path: Path) -> bool:
    """Atomically create an empty placeholder at *path*; False if it exists."""
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError:
        return False
    os.close(fd)
    return True


def _move_into(upload: UploadedFile, directory: Path, prefix: str) -> str:
    directory.mkdir(parents=True, exist_ok=True)
    original = Path(upload.original_filename).name
    stamp = _timestamp_ms()
    filename = f"{prefix}{stamp}-{original}"
    while not _claim(directory / filename):
        filename = f"{prefix}{stamp}-{secrets.token_hex(3)}-{original}"
    try:
        shutil.move(str(upload.temp_path), str(directory / filename))
    except OSError:
        _unlink_quietly(directory / filename)
        raise
    return filename


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass

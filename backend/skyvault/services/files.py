"""
File Store Service

All file and folder operations for one authenticated user:

  list / upload / create folder / rename / move
  star / trash / restore / delete / empty trash
  recents / usage stats / chat document lookup

Ownership invariant:
  Every statement is built from `_owned()`, which filters on
  `user_id = <TokenPayload.sub>`. Another user's record is indistinguishable
  from a missing one (404), so ids cannot be probed across accounts.

CDN objects are removed on permanent delete on a best-effort basis: a CDN
failure is logged and the database record is still removed.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import UploadFile
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from skyvault.models.files import FOLDER_TYPE, File, utcnow
from skyvault.processing.pipeline import DocumentReference
from skyvault.schemas.errors import FileErrors
from skyvault.schemas.files import (
    MAX_UPLOAD_BYTES,
    RECENTS_DEFAULT_LIMIT,
    UserStats,
    is_allowed_upload_type,
)
from skyvault.storage.imagekit import ImageKitStorage, StorageError, unique_file_name

logger = logging.getLogger(__name__)

_BYTE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_bytes(size: int) -> str:
    """1024-based, one decimal at most: 0 → '0 KB', 1536 → '1.5 KB', 1048576 → '1 MB'."""
    if size <= 0:
        return "0 KB"
    exponent = 0
    while exponent < len(_BYTE_UNITS) - 1 and size >= 1024 ** (exponent + 1):
        exponent += 1
    value = ("%.1f" % (size / 1024 ** exponent)).rstrip("0").rstrip(".")
    return f"{value} {_BYTE_UNITS[exponent]}"


class FileService:
    """
    Constructor args:
        db       : request-scoped AsyncSession (transaction managed by get_db)
        user_id  : TokenPayload.sub of the caller
        storage  : ImageKitStorage; required only for upload and delete
    """

    def __init__(
        self,
        db:      AsyncSession,
        user_id: str,
        storage: ImageKitStorage | None = None,
    ) -> None:
        self._db      = db
        self._user_id = user_id
        self._storage = storage

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def _owned(self) -> Select:
        return select(File).where(File.user_id == self._user_id)

    async def _first(self, stmt: Select) -> File | None:
        result = await self._db.execute(stmt)
        return result.scalars().first()

    async def _all(self, stmt: Select) -> list[File]:
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def get_owned_file(self, file_id: uuid.UUID) -> File:
        file = await self._first(self._owned().where(File.id == file_id))
        if file is None:
            raise FileErrors.file_not_found(file_id)
        return file

    async def _get_owned_folder(self, folder_id: uuid.UUID) -> File:
        folder = await self._first(
            self._owned().where(
                File.id == folder_id,
                File.is_folder.is_(True),
                File.is_trashed.is_(False),
            )
        )
        if folder is None:
            raise FileErrors.folder_not_found(folder_id)
        return folder

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_files(
        self,
        parent_id: uuid.UUID | None = None,
        starred:   bool = False,
        trashed:   bool = False,
    ) -> list[File]:
        """Children of a folder (or the root), or every starred / trashed item."""
        stmt = self._owned()
        if trashed:
            stmt = stmt.where(File.is_trashed.is_(True))
        else:
            stmt = stmt.where(File.is_trashed.is_(False))
            if starred:
                stmt = stmt.where(File.is_starred.is_(True))
            elif parent_id is not None:
                stmt = stmt.where(File.parent_id == parent_id)
            else:
                stmt = stmt.where(File.parent_id.is_(None))
        return await self._all(stmt.order_by(File.created_at.desc()))

    async def recents(self, limit: int = RECENTS_DEFAULT_LIMIT) -> list[File]:
        stmt = (
            self._owned()
            .where(File.is_trashed.is_(False), File.is_folder.is_(False))
            .order_by(File.created_at.desc())
            .limit(limit)
        )
        return await self._all(stmt)

    async def stats(self) -> UserStats:
        result = await self._db.execute(
            select(File.size, File.is_folder, File.parent_id).where(
                File.user_id == self._user_id,
                File.is_trashed.is_(False),
            )
        )
        files = [row for row in result.all() if not row.is_folder]
        total_bytes = sum(row.size or 0 for row in files)
        return UserStats(
            file_count=len(files),
            total_bytes=total_bytes,
            total_storage=format_bytes(total_bytes),
            shared_count=sum(1 for row in files if row.parent_id is not None),
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_folder(self, name: str, parent_id: uuid.UUID | None = None) -> File:
        name = name.strip()
        if not name:
            raise FileErrors.invalid_name()

        parent_path = ""
        if parent_id is not None:
            parent = await self._get_owned_folder(parent_id)
            parent_path = parent.path.rstrip("/")

        now = utcnow()
        folder = File(
            id=uuid.uuid4(),
            name=name,
            path=f"{parent_path}/{name}",
            size=0,
            type=FOLDER_TYPE,
            file_url="",
            user_id=self._user_id,
            parent_id=parent_id,
            is_folder=True,
            is_starred=False,
            is_trashed=False,
            created_at=now,
            updated_at=now,
        )
        self._db.add(folder)
        await self._db.flush()
        logger.info("Folder created | user=%s folder=%s", self._user_id, folder.id)
        return folder

    async def upload(self, upload: UploadFile | None, parent_id: uuid.UUID | None = None) -> File:
        if upload is None or not upload.filename:
            raise FileErrors.missing_file()

        content_type = upload.content_type or "application/octet-stream"
        if not is_allowed_upload_type(content_type):
            raise FileErrors.unsupported_file_type(upload.filename, content_type)

        if parent_id is not None:
            await self._get_owned_folder(parent_id)

        if self._storage is None or not self._storage.is_configured:
            raise FileErrors.storage_not_configured()

        data = await upload.read()
        if not data:
            raise FileErrors.missing_file()
        if len(data) > MAX_UPLOAD_BYTES:
            raise FileErrors.file_too_large(len(data), MAX_UPLOAD_BYTES)

        folder = self._storage.config.folder_for(self._user_id, parent_id)
        try:
            stored = await self._storage.upload(
                data, unique_file_name(upload.filename), folder, content_type
            )
        except StorageError as exc:
            raise FileErrors.storage_error(str(exc)) from exc

        now = utcnow()
        record = File(
            id=uuid.uuid4(),
            name=upload.filename,
            path=stored.file_path,
            size=stored.size,
            type=content_type,
            file_url=stored.url,
            thumbnail_url=stored.thumbnail_url,
            file_id_remote=stored.file_id,
            user_id=self._user_id,
            parent_id=parent_id,
            is_folder=False,
            is_starred=False,
            is_trashed=False,
            created_at=now,
            updated_at=now,
        )
        self._db.add(record)
        await self._db.flush()
        logger.info(
            "File uploaded | user=%s file=%s type=%s size=%d",
            self._user_id, record.id, content_type, record.size,
        )
        return record

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    async def rename(self, file_id: uuid.UUID, name: str) -> File:
        name = name.strip()
        if not name:
            raise FileErrors.invalid_name()
        file = await self.get_owned_file(file_id)
        file.name = name
        file.updated_at = utcnow()
        await self._db.flush()
        return file

    async def _ensure_not_below(self, folder: File, destination: File) -> None:
        """Reject a destination inside `folder`'s own subtree."""
        seen: set[uuid.UUID] = {destination.id}
        parent_id = destination.parent_id
        while parent_id is not None and parent_id not in seen:
            if parent_id == folder.id:
                raise FileErrors.move_into_descendant()
            seen.add(parent_id)
            ancestor = await self._first(self._owned().where(File.id == parent_id))
            if ancestor is None:
                break
            parent_id = ancestor.parent_id

    async def move(
        self,
        file_id:   uuid.UUID,
        parent_id: uuid.UUID | None,
    ) -> tuple[File, File | None]:
        if parent_id is not None and parent_id == file_id:
            raise FileErrors.move_into_self()

        file = await self.get_owned_file(file_id)
        destination = None
        if parent_id is not None:
            destination = await self._get_owned_folder(parent_id)
            if file.is_folder:
                await self._ensure_not_below(file, destination)

        file.parent_id = parent_id
        file.updated_at = utcnow()
        await self._db.flush()
        logger.info("File moved | user=%s file=%s parent=%s", self._user_id, file_id, parent_id)
        return file, destination

    async def toggle_star(self, file_id: uuid.UUID) -> File:
        file = await self.get_owned_file(file_id)
        file.is_starred = not file.is_starred
        file.updated_at = utcnow()
        await self._db.flush()
        return file

    async def toggle_trash(self, file_id: uuid.UUID) -> File:
        file = await self.get_owned_file(file_id)
        file.is_trashed = not file.is_trashed
        file.updated_at = utcnow()
        await self._db.flush()
        return file

    async def restore(self, file_id: uuid.UUID) -> File:
        file = await self._first(
            self._owned().where(File.id == file_id, File.is_trashed.is_(True))
        )
        if file is None:
            raise FileErrors.trashed_file_not_found()
        file.is_trashed = False
        file.updated_at = utcnow()
        await self._db.flush()
        return file

    # ------------------------------------------------------------------
    # Permanent deletion
    # ------------------------------------------------------------------

    async def _descendants(self, root: File) -> list[File]:
        """Every item nested below a folder, breadth first. Each id is visited once."""
        found: list[File] = []
        seen: set[uuid.UUID] = {root.id}
        frontier = [root.id]
        while frontier:
            children = await self._all(self._owned().where(File.parent_id.in_(frontier)))
            children = [c for c in children if c.id not in seen]
            seen.update(c.id for c in children)
            found.extend(children)
            frontier = [c.id for c in children if c.is_folder]
        return found

    async def _remove(self, items: list[File]) -> None:
        for item in items:
            if item.file_id_remote and self._storage is not None:
                try:
                    await self._storage.delete(item.file_id_remote)
                except StorageError as exc:
                    logger.warning(
                        "CDN delete failed, removing record anyway | file=%s error=%s",
                        item.id, exc,
                    )
            await self._db.delete(item)

    async def delete(self, file_id: uuid.UUID) -> None:
        file = await self.get_owned_file(file_id)
        subtree = await self._descendants(file) if file.is_folder else []
        await self._remove([file, *subtree])
        await self._db.flush()
        logger.info("File deleted | user=%s file=%s", self._user_id, file_id)

    async def empty_trash(self) -> int:
        """Purge every trashed item; returns how many were trashed at top level."""
        trashed = await self._all(self._owned().where(File.is_trashed.is_(True)))
        subtrees = {
            f.id: (await self._descendants(f) if f.is_folder else []) for f in trashed
        }
        nested = {item.id for items in subtrees.values() for item in items}
        top_level = [f for f in trashed if f.id not in nested]

        for file in top_level:
            await self._remove([file, *subtrees[file.id]])
        await self._db.flush()
        logger.info("Trash emptied | user=%s count=%d", self._user_id, len(top_level))
        return len(top_level)

    # ------------------------------------------------------------------
    # Chat lookup
    # ------------------------------------------------------------------

    async def get_chat_document(self, file_id: uuid.UUID) -> DocumentReference:
        """Owned, not trashed, not a folder → reference for the Q&A pipeline."""
        file = await self._first(
            self._owned().where(File.id == file_id, File.is_trashed.is_(False))
        )
        if file is None:
            raise FileErrors.file_not_found(file_id)
        if file.is_folder:
            raise FileErrors.is_folder(file_id)
        return DocumentReference(
            remote_url=file.file_url,
            media_type=file.type,
            display_name=file.name,
        )

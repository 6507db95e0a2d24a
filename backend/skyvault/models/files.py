"""
SQLAlchemy ORM Models — Files & Folders

Files and folders share one table:
  - folders are rows with is_folder = true and type = "folder"
  - nesting uses parent_id (NULL for items at the user's root)
  - ownership is the identity provider's opaque user id (TokenPayload.sub)

The ORM models do NOT scope queries by owner; FileService adds the
`user_id = :sub` filter to every statement it issues.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Index, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

FOLDER_TYPE = "folder"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Declarative base: shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# File model: files
# ---------------------------------------------------------------------------

class File(Base):
    """
    One stored file or folder.

    Flags:
        is_starred — shown under Favorites
        is_trashed — soft-deleted; restorable until the trash is emptied

    file_id_remote holds the CDN's own file id so the object can be removed
    from the CDN when the record is permanently deleted.
    """

    __tablename__ = "files"
    __table_args__ = (
        Index("idx_files_user_parent",  "user_id", "parent_id"),
        Index("idx_files_user_trashed", "user_id", "is_trashed"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )

    name: Mapped[str] = mapped_column(Text, nullable=False)
    path: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="CDN path for files; logical /<parent>/<name> path for folders",
    )
    size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    type: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment='MIME type for files, "folder" for folders',
    )

    # Storage
    file_url: Mapped[str]                 = mapped_column(Text, nullable=False, default="")
    thumbnail_url: Mapped[Optional[str]]  = mapped_column(Text, nullable=True)
    file_id_remote: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Ownership and hierarchy
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Flags
    is_folder: Mapped[bool]  = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_starred: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_trashed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        kind = "folder" if self.is_folder else self.type
        return f"<File id={self.id} user={self.user_id} {kind} name={self.name!r}>"

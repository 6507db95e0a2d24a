"""
File Store — Pydantic Request/Response Schemas

Covers the file/folder management routes:
  GET /files, POST /files/upload, POST /folders,
  PATCH /files/{id}/rename|move|star|trash|restore,
  DELETE /files/{id}, DELETE /files/trash,
  GET /recents, GET /user/stats, GET /storage/auth

Design decisions:
  - ids are server-generated UUIDs; user_id always comes from the JWT.
  - upload accepts images, any text/*, PDF and the two Word formats.
  - All timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from skyvault.processing.extractor import PDF_MEDIA_TYPE, WORD_MEDIA_TYPES

# 100 MB ceiling for a single upload
MAX_UPLOAD_BYTES: int = 100 * 1024 * 1024

RECENTS_DEFAULT_LIMIT = 4
RECENTS_MAX_LIMIT = 50


def is_allowed_upload_type(content_type: str) -> bool:
    """image/*, text/*, PDF, .doc and .docx."""
    normalized = content_type.split(";", 1)[0].strip().lower()
    return (
        normalized.startswith("image/")
        or normalized.startswith("text/")
        or normalized == PDF_MEDIA_TYPE
        or normalized in WORD_MEDIA_TYPES
    )


# ---------------------------------------------------------------------------
# File record
# ---------------------------------------------------------------------------

class FileOut(BaseModel):
    """A file or folder as returned to the dashboard."""
    model_config = ConfigDict(from_attributes=True)

    id:            UUID
    name:          str
    path:          str
    size:          int
    type:          str
    file_url:      str
    thumbnail_url: str | None = None
    user_id:       str
    parent_id:     UUID | None = None
    is_folder:     bool
    is_starred:    bool
    is_trashed:    bool
    created_at:    datetime
    updated_at:    datetime


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class CreateFolderRequest(BaseModel):
    name:      str = Field(..., max_length=255)
    parent_id: UUID | None = None


class RenameRequest(BaseModel):
    name: str = Field(..., max_length=255)


class MoveRequest(BaseModel):
    parent_id: UUID | None = Field(None, description="Destination folder; null moves to the root")


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class MoveResponse(BaseModel):
    success:     bool = True
    file:        FileOut
    destination: FileOut | None = None


class DeleteResponse(BaseModel):
    success: bool = True
    id:      UUID


class EmptyTrashResponse(BaseModel):
    success: bool = True
    deleted: int


class UserStats(BaseModel):
    file_count:    int
    total_bytes:   int
    total_storage: str = Field(..., description='Human readable, e.g. "1.5 MB"')
    shared_count:  int = Field(..., description="Files stored inside a folder")


class StorageAuthResponse(BaseModel):
    """Parameters a browser needs to upload straight to the CDN."""
    token:        str
    expire:       int
    signature:    str
    public_key:   str
    url_endpoint: str

"""
File Store API Router

  GET    /api/v1/files                  list (parent_id | starred | trashed)
  POST   /api/v1/files/upload           multipart upload to the CDN
  POST   /api/v1/folders                create a folder
  PATCH  /api/v1/files/{id}/rename
  PATCH  /api/v1/files/{id}/move
  PATCH  /api/v1/files/{id}/star        toggle
  PATCH  /api/v1/files/{id}/trash       toggle
  PATCH  /api/v1/files/{id}/restore     trashed items only
  DELETE /api/v1/files/trash            empty the trash
  DELETE /api/v1/files/{id}             permanent delete
  GET    /api/v1/recents
  GET    /api/v1/user/stats
  GET    /api/v1/storage/auth           signed params for browser uploads

Every route is authenticated; the owner is always TokenPayload.sub.
"""

from __future__ import annotations

import logging
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, File, Form, Query, UploadFile, status

from skyvault.auth.dependencies import CurrentUser, Files, Storage
from skyvault.schemas.errors import ErrorResponse, FileErrors
from skyvault.schemas.files import (
    RECENTS_DEFAULT_LIMIT,
    RECENTS_MAX_LIMIT,
    CreateFolderRequest,
    DeleteResponse,
    EmptyTrashResponse,
    FileOut,
    MoveRequest,
    MoveResponse,
    RenameRequest,
    StorageAuthResponse,
    UserStats,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Files"])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "File not found in your drive"}}


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

@router.get("/files", response_model=list[FileOut], summary="List files and folders")
async def list_files(
    files:     Files,
    parent_id: Optional[UUID] = Query(None, description="Folder to list; omit for the root"),
    starred:   bool = Query(False, description="Only starred items, any folder"),
    trashed:   bool = Query(False, description="Only trashed items, any folder"),
) -> list[FileOut]:
    items = await files.list_files(parent_id=parent_id, starred=starred, trashed=trashed)
    return [FileOut.model_validate(f) for f in items]


@router.get("/recents", response_model=list[FileOut], summary="Most recently added files")
async def recents(
    files: Files,
    limit: int = Query(RECENTS_DEFAULT_LIMIT, ge=1, le=RECENTS_MAX_LIMIT),
) -> list[FileOut]:
    return [FileOut.model_validate(f) for f in await files.recents(limit)]


@router.get("/user/stats", response_model=UserStats, summary="Storage usage for the caller")
async def user_stats(files: Files) -> UserStats:
    return await files.stats()


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

@router.post(
    "/files/upload",
    response_model=FileOut,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a file",
    description="Accepts images, text, PDF and Word documents.",
    responses={
        400: {"model": ErrorResponse, "description": "Missing file or unsupported type"},
        413: {"model": ErrorResponse, "description": "File too large"},
        502: {"model": ErrorResponse, "description": "CDN rejected the upload"},
        503: {"model": ErrorResponse, "description": "CDN not configured"},
        **_NOT_FOUND,
    },
)
async def upload_file(
    files:     Files,
    file:      Annotated[UploadFile, File(description="File to store")],
    parent_id: Annotated[Optional[UUID], Form()] = None,
) -> FileOut:
    return FileOut.model_validate(await files.upload(file, parent_id))


@router.post(
    "/folders",
    response_model=FileOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a folder",
    responses={400: {"model": ErrorResponse}, **_NOT_FOUND},
)
async def create_folder(body: CreateFolderRequest, files: Files) -> FileOut:
    return FileOut.model_validate(await files.create_folder(body.name, body.parent_id))


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------

@router.patch(
    "/files/{file_id}/rename",
    response_model=FileOut,
    responses={400: {"model": ErrorResponse}, **_NOT_FOUND},
)
async def rename_file(file_id: UUID, body: RenameRequest, files: Files) -> FileOut:
    return FileOut.model_validate(await files.rename(file_id, body.name))


@router.patch(
    "/files/{file_id}/move",
    response_model=MoveResponse,
    responses={400: {"model": ErrorResponse}, **_NOT_FOUND},
)
async def move_file(file_id: UUID, body: MoveRequest, files: Files) -> MoveResponse:
    file, destination = await files.move(file_id, body.parent_id)
    return MoveResponse(
        file=FileOut.model_validate(file),
        destination=FileOut.model_validate(destination) if destination else None,
    )


@router.patch("/files/{file_id}/star", response_model=FileOut, responses=_NOT_FOUND)
async def toggle_star(file_id: UUID, files: Files) -> FileOut:
    return FileOut.model_validate(await files.toggle_star(file_id))


@router.patch("/files/{file_id}/trash", response_model=FileOut, responses=_NOT_FOUND)
async def toggle_trash(file_id: UUID, files: Files) -> FileOut:
    return FileOut.model_validate(await files.toggle_trash(file_id))


@router.patch("/files/{file_id}/restore", response_model=FileOut, responses=_NOT_FOUND)
async def restore_file(file_id: UUID, files: Files) -> FileOut:
    return FileOut.model_validate(await files.restore(file_id))


# ---------------------------------------------------------------------------
# Permanent deletion ("/files/trash" must be registered before "/files/{id}")
# ---------------------------------------------------------------------------

@router.delete("/files/trash", response_model=EmptyTrashResponse, summary="Empty the trash")
async def empty_trash(files: Files) -> EmptyTrashResponse:
    return EmptyTrashResponse(deleted=await files.empty_trash())


@router.delete("/files/{file_id}", response_model=DeleteResponse, responses=_NOT_FOUND)
async def delete_file(file_id: UUID, files: Files) -> DeleteResponse:
    await files.delete(file_id)
    return DeleteResponse(id=file_id)


# ---------------------------------------------------------------------------
# Browser upload signature
# ---------------------------------------------------------------------------

@router.get(
    "/storage/auth",
    response_model=StorageAuthResponse,
    summary="Signed parameters for direct CDN uploads",
    responses={503: {"model": ErrorResponse, "description": "CDN not configured"}},
)
async def storage_auth(user: CurrentUser, storage: Storage) -> StorageAuthResponse:
    if not storage.is_configured:
        raise FileErrors.storage_not_configured()
    params = storage.authentication_parameters()
    logger.debug("Storage auth issued | user=%s expire=%d", user.sub, params["expire"])
    return StorageAuthResponse(
        **params,
        public_key=storage.config.public_key,
        url_endpoint=storage.config.url_endpoint,
    )

"""
Composed FastAPI Dependencies

Combines auth + DB session + shared outbound clients into injectable objects.
Route handlers import from here — never from auth/token, db/session or the
client modules directly.

Process-wide objects (CDN client, Q&A pipeline) are built once
in the application lifespan and stored on `app.state`; these dependencies
only hand them out. Tests replace them with `app.dependency_overrides`.
"""

from __future__ import annotations

from typing import Annotated, AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from skyvault.auth.token import TokenPayload, get_current_user
from skyvault.core.config import Settings, get_settings
from skyvault.db.session import get_db
from skyvault.processing.pipeline import DocumentQAPipeline
from skyvault.services.files import FileService
from skyvault.storage.imagekit import ImageKitStorage


# ---------------------------------------------------------------------------
# 1. Authenticated DB session
# ---------------------------------------------------------------------------

async def get_user_db(
    user: Annotated[TokenPayload, Depends(get_current_user)],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Yields a transactional session, only after the caller is authenticated.
    Ownership filtering happens in FileService using user.sub.
    """
    async for session in get_db():
        yield session


# ---------------------------------------------------------------------------
# 2. Shared outbound clients (built in lifespan)
# ---------------------------------------------------------------------------

def get_storage(request: Request) -> ImageKitStorage:
    return request.app.state.storage


def get_pipeline(request: Request) -> DocumentQAPipeline:
    return request.app.state.pipeline


# ---------------------------------------------------------------------------
# 3. Per-request file service
# ---------------------------------------------------------------------------

def get_file_service(
    user:    Annotated[TokenPayload, Depends(get_current_user)],
    db:      Annotated[AsyncSession, Depends(get_user_db)],
    storage: Annotated[ImageKitStorage, Depends(get_storage)],
) -> FileService:
    return FileService(db=db, user_id=user.sub, storage=storage)


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

CurrentUser = Annotated[TokenPayload,       Depends(get_current_user)]
UserDB      = Annotated[AsyncSession,       Depends(get_user_db)]
Storage     = Annotated[ImageKitStorage,    Depends(get_storage)]
Pipeline    = Annotated[DocumentQAPipeline, Depends(get_pipeline)]
Files       = Annotated[FileService,        Depends(get_file_service)]
AppSettings = Annotated[Settings,           Depends(get_settings)]

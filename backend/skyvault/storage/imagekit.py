"""
ImageKit Storage Client — CDN-backed blob storage

Layout:
  Every object is stored under a folder derived server-side from the
  authenticated user, never from client input:

      <root>/<user_id>                       files at the drive root
      <root>/<user_id>/folders/<parent_id>   files inside a folder

  File names are replaced with <uuid4>.<original extension> so uploads never
  collide and user-supplied names never reach the CDN path.

Endpoints (all HTTP basic auth with the private key as username):
  POST   <upload_url>            multipart: file, fileName, folder
  DELETE <api_url>/<file_id>

Browser uploads use `authentication_parameters()`:
  signature = HMAC-SHA1(private_key, token + expire)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
import uuid
from dataclasses import dataclass

import httpx

from skyvault.core.config import Settings

logger = logging.getLogger(__name__)

# Signed browser-upload parameters stay valid for 40 minutes
AUTH_EXPIRE_SECONDS = 2400


class StorageError(Exception):
    """The CDN rejected or failed a storage operation."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImageKitConfig:
    public_key:   str
    private_key:  str
    url_endpoint: str
    upload_url:   str = "https://upload.imagekit.io/api/v1/files/upload"
    api_url:      str = "https://api.imagekit.io/v1/files"
    root_folder:  str = "/skyvault"

    @classmethod
    def from_settings(cls, settings: Settings) -> "ImageKitConfig":
        return cls(
            public_key=settings.imagekit_public_key,
            private_key=settings.imagekit_private_key,
            url_endpoint=settings.imagekit_url_endpoint,
            upload_url=settings.imagekit_upload_url,
            api_url=settings.imagekit_api_url,
            root_folder=settings.imagekit_root_folder,
        )

    def folder_for(self, user_id: str, parent_id: uuid.UUID | str | None = None) -> str:
        base = f"{self.root_folder.rstrip('/')}/{user_id}"
        return f"{base}/folders/{parent_id}" if parent_id else base


@dataclass(frozen=True)
class StoredObject:
    """Represents an uploaded CDN object — returned by upload()."""
    file_id:       str
    url:           str
    file_path:     str
    thumbnail_url: str | None
    size:          int


def unique_file_name(original_name: str) -> str:
    """<uuid4>.<ext>, keeping the original extension when there is one."""
    _, dot, ext = original_name.rpartition(".")
    suffix = f".{ext.lower()}" if dot and ext and "/" not in ext else ""
    return f"{uuid.uuid4()}{suffix}"


# ---------------------------------------------------------------------------
# ImageKit Service
# ---------------------------------------------------------------------------

class ImageKitStorage:
    """
    Async ImageKit operations over the application's shared httpx client.

    Stateless apart from configuration; one instance serves every request.
    """

    def __init__(self, config: ImageKitConfig, http_client: httpx.AsyncClient) -> None:
        self._cfg  = config
        self._http = http_client

    @property
    def config(self) -> ImageKitConfig:
        return self._cfg

    @property
    def is_configured(self) -> bool:
        return bool(self._cfg.public_key and self._cfg.private_key and self._cfg.url_endpoint)

    def _auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(self._cfg.private_key, "")

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload(
        self,
        data:         bytes,
        file_name:    str,
        folder:       str,
        content_type: str = "application/octet-stream",
    ) -> StoredObject:
        if not self.is_configured:
            raise StorageError("ImageKit is not configured")

        try:
            resp = await self._http.post(
                self._cfg.upload_url,
                auth=self._auth(),
                data={"fileName": file_name, "folder": folder, "useUniqueFileName": "false"},
                files={"file": (file_name, data, content_type)},
            )
        except httpx.RequestError as exc:
            logger.error("ImageKit upload network error | folder=%s error=%s", folder, exc)
            raise StorageError(f"Upload failed: {exc}") from exc

        if not resp.is_success:
            logger.error("ImageKit upload failed | status=%d folder=%s", resp.status_code, folder)
            raise StorageError(f"Upload rejected with status {resp.status_code}")

        try:
            body = resp.json()
            stored = StoredObject(
                file_id=body["fileId"],
                url=body["url"],
                file_path=body.get("filePath") or f"{folder}/{file_name}",
                thumbnail_url=body.get("thumbnailUrl"),
                size=int(body.get("size") or len(data)),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.error("ImageKit upload returned an unusable body | folder=%s error=%r", folder, exc)
            raise StorageError("Upload response missing file id or url") from exc
        logger.info("ImageKit upload | path=%s size=%d", stored.file_path, stored.size)
        return stored

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(self, file_id: str) -> None:
        try:
            resp = await self._http.delete(f"{self._cfg.api_url.rstrip('/')}/{file_id}", auth=self._auth())
        except httpx.RequestError as exc:
            raise StorageError(f"Delete failed: {exc}") from exc

        if resp.status_code == 404:
            logger.info("ImageKit delete | file_id=%s already gone", file_id)
            return
        if not resp.is_success:
            raise StorageError(f"Delete rejected with status {resp.status_code}")
        logger.info("ImageKit delete | file_id=%s", file_id)

    # ------------------------------------------------------------------
    # Browser upload signature
    # ------------------------------------------------------------------

    def authentication_parameters(
        self,
        token:  str | None = None,
        expire: int | None = None,
    ) -> dict:
        token  = token or str(uuid.uuid4())
        expire = expire or int(time.time()) + AUTH_EXPIRE_SECONDS
        signature = hmac.new(
            self._cfg.private_key.encode(),
            f"{token}{expire}".encode(),
            hashlib.sha1,
        ).hexdigest()
        return {"token": token, "expire": expire, "signature": signature}

"""
Configuration Diagnostics API

GET /api/v1/diagnostics       → which integrations are configured / reachable
GET /api/v1/check-env?key=    → whether one allow-listed secret is set

Both endpoints are authenticated and never return secret values, only
presence flags and lengths.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Query
from pydantic import BaseModel

from skyvault.auth.dependencies import AppSettings, CurrentUser
from skyvault.db.session import check_db_health
from skyvault.schemas.errors import ErrorResponse, FileErrors

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Diagnostics"])

# Environment keys whose presence may be inspected; values are never returned
CHECKABLE_ENV_KEYS: dict[str, str] = {
    "OCR_SPACE_API_KEY": "ocr_space_api_key",
}


class ImageKitDiagnostics(BaseModel):
    public_key:   bool
    private_key:  bool
    url_endpoint: bool
    configured:   bool


class Diagnostics(BaseModel):
    user_id:        str
    environment:    str
    imagekit:       ImageKitDiagnostics
    ocr_configured: bool
    database_ok:    bool
    timestamp:      datetime


class EnvKeyStatus(BaseModel):
    key:          str
    status:       str    # configured | missing
    has_value:    bool
    value_length: int


@router.get("/diagnostics", response_model=Diagnostics, summary="Integration configuration flags")
async def diagnostics(user: CurrentUser, cfg: AppSettings) -> Diagnostics:
    db_status = await check_db_health()
    return Diagnostics(
        user_id=user.sub,
        environment=cfg.app_env,
        imagekit=ImageKitDiagnostics(
            public_key=bool(cfg.imagekit_public_key),
            private_key=bool(cfg.imagekit_private_key),
            url_endpoint=bool(cfg.imagekit_url_endpoint),
            configured=cfg.imagekit_configured,
        ),
        ocr_configured=bool(cfg.ocr_space_api_key),
        database_ok=db_status["status"] == "ok",
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/check-env",
    response_model=EnvKeyStatus,
    summary="Check whether an allow-listed secret is configured",
    responses={403: {"model": ErrorResponse, "description": "Key is not inspectable"}},
)
async def check_env(
    user: CurrentUser,
    cfg:  AppSettings,
    key:  str = Query(..., min_length=1),
) -> EnvKeyStatus:
    field_name = CHECKABLE_ENV_KEYS.get(key)
    if field_name is None:
        logger.warning("check-env denied | user=%s key=%s", user.sub, key)
        raise FileErrors.forbidden_env_key(key)

    value = getattr(cfg, field_name) or ""
    return EnvKeyStatus(
        key=key,
        status="configured" if value else "missing",
        has_value=bool(value),
        value_length=len(value),
    )

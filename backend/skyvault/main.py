"""
SkyVault API: application entry point.

  uvicorn skyvault.main:app

Routes live under /api/v1 (chat, files, system). The two probes /health and
/ready sit at the root so load balancers can reach them without a token.

Startup builds one httpx.AsyncClient and hangs three objects on app.state:

  http_client   shared by text extraction, OCR.space and ImageKit calls
  storage       ImageKitStorage
  pipeline      DocumentQAPipeline (extract → OCR fallback → answer)

Every response carries X-Request-ID (echoed from the request when present).
Validation failures and unhandled exceptions are rendered as ErrorResponse.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from skyvault.api.v1.chat import router as chat_router
from skyvault.api.v1.files import router as files_router
from skyvault.api.v1.system import router as system_router
from skyvault.core.config import Settings, settings
from skyvault.db.session import check_db_health, create_tables
from skyvault.observability.tracing import TracingConfig
from skyvault.processing.extractor import TextExtractor
from skyvault.processing.ocr import OcrOptions, OcrSpaceClient
from skyvault.processing.pipeline import DocumentQAPipeline
from skyvault.schemas.errors import ErrorDetail, ErrorResponse, internal_error
from skyvault.storage.imagekit import ImageKitConfig, ImageKitStorage

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
PRODUCTION_HOSTS = ["api.skyvault.app", "*.skyvault.app"]


def build_pipeline(cfg: Settings, http_client: httpx.AsyncClient) -> DocumentQAPipeline:
    """Wire extractor and OCR client into a pipeline using startup settings."""
    return DocumentQAPipeline(
        TextExtractor(
            http_client,
            max_chars=cfg.max_extracted_chars,
            max_pdf_pages=cfg.max_pdf_pages,
        ),
        OcrSpaceClient(
            http_client,
            api_key=cfg.ocr_space_api_key,
            endpoint=cfg.ocr_space_endpoint,
            language=cfg.ocr_language,
        ),
        max_chars=cfg.max_extracted_chars,
        ocr_options=OcrOptions(detect_orientation=True, language=cfg.ocr_language),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The OCR key is reported as a flag only.
    logger.info(
        "Startup | env=%s imagekit=%s ocr=%s issuer=%s",
        settings.app_env,
        settings.imagekit_configured,
        bool(settings.ocr_space_api_key),
        settings.auth_issuer or "-",
    )

    db = await check_db_health()
    if db["status"] != "ok":
        logger.critical("Startup | database unreachable: %s", db)
        raise RuntimeError(f"database unreachable: {db}")
    if not settings.is_production:
        await create_tables()

    client = httpx.AsyncClient(timeout=settings.http_timeout_seconds, follow_redirects=True)
    app.state.http_client = client
    app.state.storage = ImageKitStorage(ImageKitConfig.from_settings(settings), client)
    app.state.pipeline = build_pipeline(settings, client)

    try:
        yield
    finally:
        logger.info("Shutdown | closing outbound client and DB pool")
        await client.aclose()
        from skyvault.db.session import engine
        await engine.dispose()


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

def _install_middleware(app: FastAPI) -> None:
    # Last added runs first: request ids wrap everything below.
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.app_env == "development" else settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    if settings.is_production:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=PRODUCTION_HOSTS)

    @app.middleware("http")
    async def tag_request(request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = rid
        t0 = time.perf_counter()

        response = await call_next(request)

        response.headers["X-Request-ID"] = rid
        logger.info(
            "HTTP | %s %s status=%d elapsed_ms=%.1f request_id=%s",
            request.method, request.url.path, response.status_code,
            (time.perf_counter() - t0) * 1000, rid,
        )
        return response


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------

def _install_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(RequestValidationError)
    async def on_validation_error(request: Request, exc: RequestValidationError):
        body = ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed.",
            details=[
                ErrorDetail(
                    field=".".join(str(part) for part in err["loc"]),
                    message=err["msg"],
                    code="VALIDATION_ERROR",
                )
                for err in exc.errors()
            ],
            request_id=getattr(request.state, "request_id", None),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def on_unhandled_error(request: Request, exc: Exception):
        rid = getattr(request.state, "request_id", None) or uuid.uuid4().hex
        logger.exception("HTTP | unhandled error path=%s request_id=%s", request.url.path, rid)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=internal_error(rid).model_dump(mode="json"),
            headers={"X-Request-ID": rid},
        )


# ---------------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------------

def _install_probes(app: FastAPI) -> None:

    @app.get("/health", tags=["Operations"], summary="Liveness probe")
    async def health() -> dict:
        return {"status": "ok", "service": "skyvault-api"}

    @app.get("/ready", tags=["Operations"], summary="Readiness probe (database reachable)")
    async def ready() -> JSONResponse:
        db = await check_db_health()
        if db["status"] == "ok":
            return JSONResponse({"status": "ready", "database": db})
        # error text stays in the logs
        return JSONResponse(
            {"status": "not_ready", "database": {"status": db["status"]}},
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


def create_app() -> FastAPI:
    show_docs = not settings.is_production
    app = FastAPI(
        title="SkyVault API",
        description=(
            "Cloud file storage with folders, favourites and trash, plus "
            "heuristic question answering over stored documents."
        ),
        version="1.0.0",
        docs_url="/api/docs" if show_docs else None,
        redoc_url=None,
        openapi_url="/api/openapi.json" if show_docs else None,
        lifespan=lifespan,
    )

    _install_middleware(app)
    _install_error_handlers(app)

    for router in (chat_router, files_router, system_router):
        app.include_router(router, prefix=API_PREFIX)
    _install_probes(app)

    TracingConfig.init(settings)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "skyvault.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
    )

"""
OCR Fallback  —  OCR.space client for scanned PDFs
═══════════════════════════════════════════════════

Invoked by the pipeline only when the extractor reports a PDF with no text
layer. The provider fetches the document itself from its public URL, so the
request carries the URL, never the bytes.

Request (multipart/form-data):
  apikey, url, language (default "eng"), filetype=PDF, scale=true,
  OCREngine=2, plus isTable / detectOrientation = "true" when requested.

Response handling:
  non-2xx                         → OcrFailure(HTTP_ERROR, "<status>")
  IsErroredOnProcessing = true    → OcrFailure(API_ERROR, provider message)
  body not matching the schema    → OcrFailure(API_ERROR, validation message)
  ParsedResults joined + stripped
      non-empty                   → OcrRecognized(text, elapsed_ms, meta)
      empty                       → OcrFailure(NO_PARSED_RESULTS)
  transport exception             → OcrFailure(FETCH_EXCEPTION, message)

No retries. The API key is never logged and never appears in a result.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from skyvault.observability.tracing import traced

logger = logging.getLogger(__name__)

OCR_SPACE_ENDPOINT = "https://api.ocr.space/parse/image"
DEFAULT_OCR_LANGUAGE = "eng"
OCR_ENGINE_VERSION = "2"


# ---------------------------------------------------------------------------
# Provider response schema
# ---------------------------------------------------------------------------

class OcrSpaceParsedResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    parsed_text:    str | None = Field(default=None, alias="ParsedText")
    file_exit_code: int | None = Field(default=None, alias="FileParseExitCode")


class OcrSpaceResponse(BaseModel):
    """Subset of the OCR.space /parse/image response the client relies on."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    parsed_results:          list[OcrSpaceParsedResult] | None = Field(default=None, alias="ParsedResults")
    ocr_exit_code:           int | None               = Field(default=None, alias="OCRExitCode")
    is_errored_on_processing: bool                    = Field(default=False, alias="IsErroredOnProcessing")
    error_message:           str | list[str] | None   = Field(default=None, alias="ErrorMessage")
    error_details:           str | None               = Field(default=None, alias="ErrorDetails")
    processing_time_ms:      float | None             = Field(default=None, alias="ProcessingTimeInMilliseconds")

    @property
    def provider_error(self) -> str:
        message = self.error_message
        if isinstance(message, list):
            message = "; ".join(m for m in message if m)
        return message or self.error_details or "unknown"

    @property
    def combined_text(self) -> str:
        return "\n".join(r.parsed_text or "" for r in self.parsed_results or []).strip()


# ---------------------------------------------------------------------------
# Options and result variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OcrOptions:
    detect_orientation: bool = False
    is_table:           bool = False
    language:           str | None = None   # None = client default


class OcrErrorKind(str, Enum):
    MISSING_API_KEY   = "missing_api_key"
    HTTP_ERROR        = "http_error"
    API_ERROR         = "api_error"
    NO_PARSED_RESULTS = "no_parsed_results"
    FETCH_EXCEPTION   = "fetch_exception"


@dataclass(frozen=True)
class OcrEngineMeta:
    exit_code:              int | None
    page_count:             int
    provider_processing_ms: float | None


@dataclass(frozen=True)
class OcrRecognized:
    text:        str
    elapsed_ms:  float
    engine_meta: OcrEngineMeta


@dataclass(frozen=True)
class OcrFailure:
    reason:     OcrErrorKind
    detail:     str = ""
    elapsed_ms: float | None = field(default=None)


OcrResult = OcrRecognized | OcrFailure


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class OcrSpaceClient:
    """
    Thin async client for the OCR.space parse endpoint.

    An empty api_key disables OCR: every call short-circuits with
    MISSING_API_KEY and no request is sent.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key:     str,
        endpoint:    str = OCR_SPACE_ENDPOINT,
        language:    str = DEFAULT_OCR_LANGUAGE,
    ) -> None:
        self._http     = http_client
        self._api_key  = api_key
        self._endpoint = endpoint
        self._language = language or DEFAULT_OCR_LANGUAGE

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _form_fields(self, remote_url: str, options: OcrOptions) -> dict[str, str]:
        fields = {
            "apikey":    self._api_key,
            "url":       remote_url,
            "language":  options.language or self._language,
            "filetype":  "PDF",
            "scale":     "true",
            "OCREngine": OCR_ENGINE_VERSION,
        }
        if options.is_table:
            fields["isTable"] = "true"
        if options.detect_orientation:
            fields["detectOrientation"] = "true"
        return fields

    @traced("ocr_recognize")
    async def recognize(
        self,
        remote_url: str,
        options:    OcrOptions | None = None,
    ) -> OcrResult:
        if not self._api_key:
            logger.info("OCR skipped | api key not configured")
            return OcrFailure(OcrErrorKind.MISSING_API_KEY)

        options = options or OcrOptions()
        # (None, value) parts force multipart/form-data without filenames
        form = {k: (None, v) for k, v in self._form_fields(remote_url, options).items()}

        t0 = time.perf_counter()
        try:
            response = await self._http.post(self._endpoint, files=form)
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - t0) * 1000
            logger.warning("OCR request failed | elapsed_ms=%.0f error=%s", elapsed_ms, exc)
            return OcrFailure(OcrErrorKind.FETCH_EXCEPTION, str(exc), elapsed_ms)

        elapsed_ms = (time.perf_counter() - t0) * 1000
        logger.info(
            "OCR response | status=%d elapsed_ms=%.0f", response.status_code, elapsed_ms
        )

        if not response.is_success:
            return OcrFailure(OcrErrorKind.HTTP_ERROR, str(response.status_code), elapsed_ms)

        try:
            payload = OcrSpaceResponse.model_validate_json(response.content)
        except ValidationError as exc:
            logger.warning("OCR response did not match schema | errors=%d", exc.error_count())
            return OcrFailure(OcrErrorKind.API_ERROR, "malformed provider response", elapsed_ms)

        if payload.is_errored_on_processing:
            logger.warning("OCR provider error | message=%s", payload.provider_error)
            return OcrFailure(OcrErrorKind.API_ERROR, payload.provider_error, elapsed_ms)

        text = payload.combined_text
        if not text:
            logger.info("OCR returned no parsed text")
            return OcrFailure(OcrErrorKind.NO_PARSED_RESULTS, "", elapsed_ms)

        meta = OcrEngineMeta(
            exit_code=payload.ocr_exit_code,
            page_count=len(payload.parsed_results or []),
            provider_processing_ms=payload.processing_time_ms,
        )
        logger.info(
            "OCR recognized | chars=%d pages=%d elapsed_ms=%.0f",
            len(text), meta.page_count, elapsed_ms,
        )
        return OcrRecognized(text=text, elapsed_ms=elapsed_ms, engine_meta=meta)

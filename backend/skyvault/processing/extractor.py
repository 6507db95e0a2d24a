"""
Text Extraction  —  remote file → plain text
═════════════════════════════════════════════

Given a file's remote URL and declared media type, produce plain text or a
typed failure. The extractor never raises for a bad document; every outcome
is one of three result variants:

  ExtractedText(content)            text is available (possibly empty for Word)
  EmptyTextLayer()                  PDF parsed but has no selectable text
                                    → the pipeline may fall back to OCR
  ExtractionFailure(reason, detail) unsupported type, fetch or parse error

Dispatch on media type:

  ┌───────────────────────────────────────────────────────────────────────┐
  │  text/*                 → fetch as text, truncate to max_chars         │
  │  application/pdf        → fetch bytes, pypdf, first max_pdf_pages pages│
  │                           joined by "\n", stripped                     │
  │                           empty → EmptyTextLayer                       │
  │  Word (.doc / .docx)    → fetch bytes, python-docx paragraphs          │
  │  anything else          → UNSUPPORTED_TYPE, no network call            │
  └───────────────────────────────────────────────────────────────────────┘

A non-2xx fetch is terminal for the call (no retries). Parsing is CPU-bound
and runs in the default thread pool so the event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass
from enum import Enum
from itertools import islice

import httpx
from docx import Document
from pypdf import PdfReader

from skyvault.observability.tracing import traced

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Limits and media types
# ---------------------------------------------------------------------------

MAX_EXTRACTED_CHARS = 150_000
MAX_PDF_PAGES = 25

PDF_MEDIA_TYPE = "application/pdf"
WORD_MEDIA_TYPES = frozenset({
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
})


def normalize_media_type(media_type: str) -> str:
    """Lower-case a MIME tag and drop parameters: 'Text/Plain; charset=x' → 'text/plain'."""
    return media_type.split(";", 1)[0].strip().lower()


def is_pdf(media_type: str) -> bool:
    return normalize_media_type(media_type) == PDF_MEDIA_TYPE


def is_supported_media_type(media_type: str) -> bool:
    normalized = normalize_media_type(media_type)
    return (
        normalized.startswith("text/")
        or normalized == PDF_MEDIA_TYPE
        or normalized in WORD_MEDIA_TYPES
    )


# ---------------------------------------------------------------------------
# Result variants
# ---------------------------------------------------------------------------

class ExtractionErrorKind(str, Enum):
    UNSUPPORTED_TYPE = "unsupported_type"
    FETCH_ERROR      = "fetch_error"
    PDF_PARSE_ERROR  = "pdf_parse_error"
    DOC_PARSE_ERROR  = "doc_parse_error"
    UNKNOWN_ERROR    = "unknown_error"


@dataclass(frozen=True)
class ExtractedText:
    content: str


@dataclass(frozen=True)
class EmptyTextLayer:
    """A structurally valid PDF with zero extractable characters (likely scanned)."""


@dataclass(frozen=True)
class ExtractionFailure:
    reason: ExtractionErrorKind
    detail: str = ""


ExtractionResult = ExtractedText | EmptyTextLayer | ExtractionFailure


class _ParseError(Exception):
    def __init__(self, kind: ExtractionErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class TextExtractor:
    """
    Fetch a remote file and turn it into plain text.

    Constructor args:
        http_client   : shared httpx.AsyncClient (timeout configured by the app)
        max_chars     : hard cap on returned text length
        max_pdf_pages : pages beyond this index are never read

    Usage:
        extractor = TextExtractor(http_client)
        result = await extractor.extract(file.file_url, file.type)
    """

    def __init__(
        self,
        http_client:   httpx.AsyncClient,
        max_chars:     int = MAX_EXTRACTED_CHARS,
        max_pdf_pages: int = MAX_PDF_PAGES,
    ) -> None:
        self._http          = http_client
        self._max_chars     = max_chars
        self._max_pdf_pages = max_pdf_pages

    @traced("text_extraction")
    async def extract(self, remote_url: str, media_type: str) -> ExtractionResult:
        normalized = normalize_media_type(media_type)

        if not is_supported_media_type(normalized):
            logger.info("Extraction skipped | unsupported media_type=%s", media_type)
            return ExtractionFailure(ExtractionErrorKind.UNSUPPORTED_TYPE, media_type)

        try:
            response = await self._http.get(remote_url)
            if not response.is_success:
                logger.warning(
                    "Extraction fetch failed | status=%d media_type=%s",
                    response.status_code, normalized,
                )
                return ExtractionFailure(
                    ExtractionErrorKind.FETCH_ERROR, str(response.status_code)
                )

            if normalized.startswith("text/"):
                return ExtractedText(response.text[: self._max_chars])

            loop = asyncio.get_event_loop()
            if normalized == PDF_MEDIA_TYPE:
                text = await loop.run_in_executor(None, self._pdf_text, response.content)
                if not text:
                    logger.info("Extraction | PDF has no text layer")
                    return EmptyTextLayer()
            else:
                text = await loop.run_in_executor(None, self._word_text, response.content)

            logger.debug(
                "Extraction | media_type=%s chars=%d", normalized, len(text)
            )
            return ExtractedText(text[: self._max_chars])

        except _ParseError as exc:
            logger.warning("Extraction parse failed | kind=%s error=%s", exc.kind.value, exc)
            return ExtractionFailure(exc.kind, str(exc))
        except Exception as exc:
            logger.error("Extraction failed | media_type=%s error=%s", normalized, exc)
            return ExtractionFailure(ExtractionErrorKind.UNKNOWN_ERROR, str(exc))

    # ── Blocking parsers (run in executor) ─────────────────────────────────

    def _pdf_text(self, data: bytes) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [
                page.extract_text() or ""
                for page in islice(reader.pages, self._max_pdf_pages)
            ]
        except Exception as exc:
            raise _ParseError(ExtractionErrorKind.PDF_PARSE_ERROR, str(exc)) from exc
        return "\n".join(pages).strip()

    @staticmethod
    def _word_text(data: bytes) -> str:
        try:
            document = Document(io.BytesIO(data))
        except Exception as exc:
            raise _ParseError(ExtractionErrorKind.DOC_PARSE_ERROR, str(exc)) from exc
        return "\n".join(p.text for p in document.paragraphs).strip()

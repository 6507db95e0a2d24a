"""
Document Q&A Pipeline
═════════════════════

Sequences extraction, the optional OCR fallback and answer synthesis for one
question about one document.

  ┌─────────────────────────────────────────────────────────────────────┐
  │  0. latest user message → question  (none → MissingQuestionError)   │
  │  1. extractor.extract(url, media_type)                              │
  │       ExtractionFailure  → terminal: EXTRACTION_FAILED              │
  │       EmptyTextLayer     → 2                                        │
  │       ExtractedText      → 3                                        │
  │  2. PDF only: ocr.recognize(url)   (at most once)                   │
  │       OcrRecognized      → 3 with OCR text (capped to max_chars)    │
  │       OcrFailure         → terminal: NO_TEXT_LAYER                  │
  │  3. split sentences → score → answer       terminal: answered       │
  └─────────────────────────────────────────────────────────────────────┘

Every terminal state is a normal return value with a readable answer text.
Status codes, provider messages and exception text only ever appear in the
optional debug payload.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Sequence

from skyvault.processing.answer import answer_from_sentences, split_sentences
from skyvault.processing.extractor import (
    MAX_EXTRACTED_CHARS,
    EmptyTextLayer,
    ExtractedText,
    ExtractionFailure,
    ExtractionResult,
    TextExtractor,
    is_pdf,
)
from skyvault.processing.ocr import (
    OcrErrorKind,
    OcrFailure,
    OcrOptions,
    OcrRecognized,
    OcrSpaceClient,
)

logger = logging.getLogger(__name__)

TEXT_PREVIEW_CHARS = 200
SENTENCE_PREVIEW_COUNT = 3

_WHITESPACE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DocumentReference:
    remote_url:   str
    media_type:   str
    display_name: str


class MessageRole(str, Enum):
    USER      = "user"
    ASSISTANT = "assistant"
    SYSTEM    = "system"


@dataclass(frozen=True)
class ConversationMessage:
    role:      MessageRole
    content:   str
    timestamp: datetime | None = None


class MissingQuestionError(ValueError):
    """The conversation contains no user-authored message."""


def latest_user_question(conversation: Sequence[ConversationMessage]) -> str:
    for message in reversed(conversation):
        if message.role == MessageRole.USER:
            return message.content.strip()
    raise MissingQuestionError("Conversation has no user message")


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

class FailureReason(str, Enum):
    EXTRACTION_FAILED = "extraction_failed"
    NO_TEXT_LAYER     = "no_text_layer"


@dataclass(frozen=True)
class AnswerMetadata:
    document_name:  str
    media_type:     str
    sentence_count: int
    snippet_count:  int


@dataclass
class OcrTelemetry:
    attempted:  bool = False
    succeeded:  bool = False
    error:      str | None = None
    elapsed_ms: float | None = None


@dataclass
class PipelineDebug:
    media_type:            str
    extraction_elapsed_ms: float
    text_length:           int = 0
    text_preview:          str = ""
    sentence_preview:      list[str] = field(default_factory=list)
    extraction_error:      str | None = None
    ocr:                   OcrTelemetry | None = None


@dataclass
class PipelineAnswer:
    answer_text:    str
    snippets:       list[str]
    metadata:       AnswerMetadata
    failure_reason: FailureReason | None = None
    debug:          PipelineDebug | None = None


# ---------------------------------------------------------------------------
# User-facing messages
# ---------------------------------------------------------------------------

_OCR_STATUS = {
    OcrErrorKind.MISSING_API_KEY:   "OCR was skipped (API key missing).",
    OcrErrorKind.HTTP_ERROR:        "OCR was attempted but the OCR service returned an error.",
    OcrErrorKind.API_ERROR:         "OCR was attempted but the OCR service could not process the file.",
    OcrErrorKind.NO_PARSED_RESULTS: "OCR was attempted but it found no readable text.",
    OcrErrorKind.FETCH_EXCEPTION:   "OCR was attempted but the OCR service could not be reached.",
}


def extraction_failed_message(document: DocumentReference) -> str:
    return (
        f'I couldn\'t read any text from "{document.display_name}" '
        f"({document.media_type}). Either this file type ({document.media_type}) "
        "is not supported for questions, or extracting its text failed."
    )


def no_text_layer_message(document: DocumentReference, ocr: OcrFailure | None) -> str:
    status = _OCR_STATUS[ocr.reason] if ocr else "OCR was not attempted."
    return (
        f'No selectable text was found in "{document.display_name}"; it looks like '
        f"a scanned document. {status} Try uploading a text version of the file."
    )


def _describe(reason: Enum, detail: str) -> str:
    return f"{reason.value}:{detail}" if detail else reason.value


def _preview(text: str) -> str:
    return _WHITESPACE.sub(" ", text[:TEXT_PREVIEW_CHARS])


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class DocumentQAPipeline:
    """
    Stateless orchestrator; safe to share across concurrent requests.

    Constructor args:
        extractor    : TextExtractor
        ocr_client   : OcrSpaceClient (an unconfigured client skips OCR)
        max_chars    : cap applied to OCR text, same bound as the extractor
        ocr_options  : options forwarded on the single OCR attempt
    """

    def __init__(
        self,
        extractor:   TextExtractor,
        ocr_client:  OcrSpaceClient,
        max_chars:   int = MAX_EXTRACTED_CHARS,
        ocr_options: OcrOptions | None = None,
    ) -> None:
        self._extractor   = extractor
        self._ocr         = ocr_client
        self._max_chars   = max_chars
        self._ocr_options = ocr_options or OcrOptions(detect_orientation=True)

    async def answer_about_document(
        self,
        document:     DocumentReference,
        conversation: Sequence[ConversationMessage],
        *,
        debug:        bool = False,
    ) -> PipelineAnswer:
        question = latest_user_question(conversation)

        t0 = time.perf_counter()
        extraction: ExtractionResult = await self._extractor.extract(
            document.remote_url, document.media_type
        )
        extraction_ms = (time.perf_counter() - t0) * 1000

        info = PipelineDebug(media_type=document.media_type, extraction_elapsed_ms=extraction_ms)

        # ── Terminal: extraction failed ──────────────────────────────────
        if isinstance(extraction, ExtractionFailure):
            logger.info(
                "QA pipeline | document=%s outcome=extraction_failed reason=%s",
                document.display_name, extraction.reason.value,
            )
            info.extraction_error = _describe(extraction.reason, extraction.detail)
            return self._terminal(
                document, extraction_failed_message(document),
                FailureReason.EXTRACTION_FAILED, info if debug else None,
            )

        # ── Empty text layer → single OCR attempt ────────────────────────
        if isinstance(extraction, EmptyTextLayer):
            info.ocr = OcrTelemetry()
            ocr_failure: OcrFailure | None = None

            if is_pdf(document.media_type):
                info.ocr.attempted = True
                ocr_result = await self._ocr.recognize(document.remote_url, self._ocr_options)
                info.ocr.elapsed_ms = ocr_result.elapsed_ms
                if isinstance(ocr_result, OcrRecognized):
                    info.ocr.succeeded = True
                    text = ocr_result.text[: self._max_chars]
                else:
                    ocr_failure = ocr_result
                    info.ocr.error = _describe(ocr_result.reason, ocr_result.detail)

            if not info.ocr.succeeded:
                logger.info(
                    "QA pipeline | document=%s outcome=no_text_layer ocr_error=%s",
                    document.display_name, ocr_failure.reason.value if ocr_failure else None,
                )
                return self._terminal(
                    document, no_text_layer_message(document, ocr_failure),
                    FailureReason.NO_TEXT_LAYER, info if debug else None,
                )
        else:
            text = extraction.content

        # ── Answer ───────────────────────────────────────────────────────
        sentences = split_sentences(text)
        result = answer_from_sentences(question, sentences)

        logger.info(
            "QA pipeline | document=%s outcome=answered sentences=%d snippets=%d",
            document.display_name, len(sentences), len(result.supporting_snippets),
        )

        if debug:
            info.text_length = len(text)
            info.text_preview = _preview(text)
            info.sentence_preview = sentences[:SENTENCE_PREVIEW_COUNT]

        return PipelineAnswer(
            answer_text=result.answer_text,
            snippets=result.supporting_snippets,
            metadata=AnswerMetadata(
                document_name=document.display_name,
                media_type=document.media_type,
                sentence_count=len(sentences),
                snippet_count=len(result.supporting_snippets),
            ),
            debug=info if debug else None,
        )

    @staticmethod
    def _terminal(
        document: DocumentReference,
        message:  str,
        reason:   FailureReason,
        info:     PipelineDebug | None,
    ) -> PipelineAnswer:
        return PipelineAnswer(
            answer_text=message,
            snippets=[],
            metadata=AnswerMetadata(
                document_name=document.display_name,
                media_type=document.media_type,
                sentence_count=0,
                snippet_count=0,
            ),
            failure_reason=reason,
            debug=info,
        )

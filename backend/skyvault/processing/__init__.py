"""
Document Processing Package
════════════════════════════

Answers a question about one stored file:

  Text Extraction → (scanned PDF) OCR Fallback → Heuristic Answer

Modules
───────
  extractor.py  Remote file → text (plain text, PDF text layer, Word)
  ocr.py        OCR.space client, used only for PDFs without a text layer
  answer.py     Sentence splitting and keyword-overlap scoring
  pipeline.py   Orchestrator that sequences the three and builds the reply

Design principles
─────────────────
  • Every component is stateless and dependency-injected.
  • Stage failures are returned as values, never raised.
  • Every outbound call goes through the app's shared httpx client.
"""

from skyvault.processing.answer import AnswerResult, synthesize
from skyvault.processing.extractor import (
    EmptyTextLayer,
    ExtractedText,
    ExtractionErrorKind,
    ExtractionFailure,
    ExtractionResult,
    TextExtractor,
)
from skyvault.processing.ocr import (
    OcrErrorKind,
    OcrFailure,
    OcrOptions,
    OcrRecognized,
    OcrResult,
    OcrSpaceClient,
)
from skyvault.processing.pipeline import (
    ConversationMessage,
    DocumentQAPipeline,
    DocumentReference,
    MessageRole,
    MissingQuestionError,
    PipelineAnswer,
)

__all__ = [
    "AnswerResult",
    "synthesize",
    "EmptyTextLayer",
    "ExtractedText",
    "ExtractionErrorKind",
    "ExtractionFailure",
    "ExtractionResult",
    "TextExtractor",
    "OcrErrorKind",
    "OcrFailure",
    "OcrOptions",
    "OcrRecognized",
    "OcrResult",
    "OcrSpaceClient",
    "ConversationMessage",
    "DocumentQAPipeline",
    "DocumentReference",
    "MessageRole",
    "MissingQuestionError",
    "PipelineAnswer",
]
